"""Event Domain Model

TodoEvent 是 Service 每次成功操作发出的领域事件；
StructuredLogEvent 是写入日志的信封：{ts, ns, event, phase, correlationId?}。
"""

from datetime import datetime
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from .enums import TodoEventType
from .todo import utcnow

LOG_NAMESPACE = "todo"


class TodoEvent(BaseModel):
    """领域事件"""

    type: TodoEventType = Field(description="事件类型")
    payload: dict[str, Any] = Field(default_factory=dict, description="结构化 payload")


class StructuredLogEvent(BaseModel):
    """结构化日志信封"""

    model_config = ConfigDict(populate_by_name=True)

    ts: datetime = Field(description="事件时间戳")
    ns: str = Field(default=LOG_NAMESPACE, description="日志命名空间")
    event: TodoEvent
    phase: str | None = Field(default=None, description="阶段标记（如 init）")
    correlation_id: str | None = Field(
        default=None,
        alias="correlationId",
        description="关联标识，同一次调用共享",
    )


def create_log_event(
    event: TodoEvent,
    phase: str | None = None,
    correlation_id: str | None = None,
) -> StructuredLogEvent:
    """构建日志信封

    correlation_id 未显式传入时，从 structlog contextvars 中读取
    （CLI 每次调用绑定一次）。
    """
    if correlation_id is None:
        correlation_id = structlog.contextvars.get_contextvars().get("correlation_id")
    return StructuredLogEvent(
        ts=utcnow(),
        event=event,
        phase=phase,
        correlation_id=correlation_id,
    )
