"""Event Payload 子类型

所有领域事件的结构化 payload 定义。
Todo 快照以 camelCase 记录（与磁盘格式一致）存放。
"""

from typing import Any

from pydantic import BaseModel, Field

from .metrics import IntegrityRepairSummary


class TodoAddedPayload(BaseModel):
    """todo_added 事件 payload"""

    todo: dict[str, Any] = Field(description="新建 Todo 快照")


class TodoUpdatedPayload(BaseModel):
    """todo_updated 事件 payload"""

    before: dict[str, Any] = Field(description="修改前快照")
    after: dict[str, Any] = Field(description="修改后快照")


class TodoStartedPayload(BaseModel):
    """todo_started 事件 payload"""

    id: str


class TodoCompletedPayload(BaseModel):
    """todo_completed 事件 payload"""

    id: str
    completed_at: str = Field(description="完成时间 ISO-8601")


class TodoReopenedPayload(BaseModel):
    """todo_reopened 事件 payload"""

    id: str


class TodoReorderedPayload(BaseModel):
    """todo_reordered 事件 payload"""

    order: list[str] = Field(description="重排后的非归档 id 顺序")


class ArchiveCompletedBatchPayload(BaseModel):
    """archive_completed_batch 事件 payload"""

    archived_ids: list[str]


class IntegrityRepairPayload(BaseModel):
    """integrity_repair 事件 payload"""

    summary: IntegrityRepairSummary
