"""todo-core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    ACTIVE_STATES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    AnomalyType,
    RepairAction,
    TodoEventType,
    TodoStatus,
    is_active_status,
    validate_transition,
)
from .event import StructuredLogEvent, TodoEvent, create_log_event
from .metrics import (
    IntegrityAnomaly,
    IntegrityCheckResult,
    IntegrityRepairAction,
    IntegrityRepairSummary,
    Metrics,
    compute_metrics,
)
from .payloads import (
    ArchiveCompletedBatchPayload,
    IntegrityRepairPayload,
    TodoAddedPayload,
    TodoCompletedPayload,
    TodoReopenedPayload,
    TodoReorderedPayload,
    TodoStartedPayload,
    TodoUpdatedPayload,
)
from .todo import (
    Todo,
    clone_todo,
    create_todo,
    normalize_content,
    normalize_tags,
    utcnow,
)

__all__ = [
    # 枚举
    "TodoStatus",
    "TodoEventType",
    "AnomalyType",
    "RepairAction",
    # 状态机
    "VALID_TRANSITIONS",
    "ACTIVE_STATES",
    "TERMINAL_STATES",
    "is_active_status",
    "validate_transition",
    # Todo
    "Todo",
    "create_todo",
    "clone_todo",
    "normalize_content",
    "normalize_tags",
    "utcnow",
    # Metrics / Integrity
    "Metrics",
    "compute_metrics",
    "IntegrityAnomaly",
    "IntegrityCheckResult",
    "IntegrityRepairAction",
    "IntegrityRepairSummary",
    # Event
    "TodoEvent",
    "StructuredLogEvent",
    "create_log_event",
    # Payloads
    "TodoAddedPayload",
    "TodoUpdatedPayload",
    "TodoStartedPayload",
    "TodoCompletedPayload",
    "TodoReopenedPayload",
    "TodoReorderedPayload",
    "ArchiveCompletedBatchPayload",
    "IntegrityRepairPayload",
]
