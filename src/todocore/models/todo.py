"""Todo Domain Model

Todo 是唯一持久化的实体。磁盘上使用 camelCase 字段名（createdAt 等），
Python 侧使用 snake_case 属性；两者通过 alias 互通。
"""

from collections.abc import Iterable
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field
from ulid import ULID

from .enums import TodoStatus


class Todo(BaseModel):
    """Todo 数据模型

    不变量：
    - 非归档 Todo 之间规范化后的 content 不重复
    - completed 必有 completed_at，archived 必有 archived_at
    - order 在全集上从 0 开始连续（归档项排在末尾）
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(min_length=1, description="唯一标识，ULID 格式，创建后不可变")
    content: str = Field(min_length=1, description="文本内容（已 trim）")
    status: TodoStatus = Field(default=TodoStatus.PENDING, description="当前状态")
    created_at: datetime = Field(alias="createdAt", description="创建时间")
    updated_at: datetime = Field(alias="updatedAt", description="最近修改时间")
    completed_at: datetime | None = Field(
        default=None,
        alias="completedAt",
        description="最近一次完成时间（reopen 后保留为历史数据）",
    )
    archived_at: datetime | None = Field(
        default=None,
        alias="archivedAt",
        description="归档时间",
    )
    order: int = Field(ge=0, strict=True, description="显示/处理顺序")
    tags: list[str] = Field(default_factory=list, description="规范化标签")

    def to_record(self) -> dict:
        """转换为磁盘 / JSON 输出使用的 camelCase 字典"""
        return self.model_dump(mode="json", by_alias=True)


def utcnow() -> datetime:
    """当前 UTC 时间"""
    return datetime.now(UTC)


def normalize_content(content: str) -> str:
    """重复检测使用的内容键：trim + lowercase"""
    return content.strip().lower()


def normalize_tags(tags: Iterable[str] | None) -> list[str]:
    """标签规范化：trim、小写、去空、去重，保留首次出现的顺序"""
    if not tags:
        return []
    seen: set[str] = set()
    result: list[str] = []
    for raw in tags:
        tag = raw.strip().lower()
        if not tag or tag in seen:
            continue
        seen.add(tag)
        result.append(tag)
    return result


def create_todo(
    content: str,
    order: int,
    tags: Iterable[str] | None = None,
    *,
    now: datetime | None = None,
) -> Todo:
    """Todo 工厂函数

    Args:
        content: 原始内容（会被 trim）
        order: 初始顺序
        tags: 原始标签（会被规范化）
        now: 创建时间，默认当前 UTC 时间

    Returns:
        状态为 pending 的新 Todo
    """
    ts = now or utcnow()
    return Todo(
        id=str(ULID()),
        content=content.strip(),
        status=TodoStatus.PENDING,
        created_at=ts,
        updated_at=ts,
        order=order,
        tags=normalize_tags(tags),
    )


def clone_todo(todo: Todo) -> Todo:
    """结构化深拷贝，跨越 Service 边界返回的值都经过这里"""
    return todo.model_copy(deep=True)
