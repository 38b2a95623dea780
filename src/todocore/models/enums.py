"""枚举定义 -- TodoStatus 状态机与领域事件类型

包含 TodoStatus、TodoEventType 枚举，
以及 VALID_TRANSITIONS 合法流转映射、ACTIVE_STATES 活跃状态集合和 TERMINAL_STATES 终态集合。
"""

from enum import StrEnum


class TodoStatus(StrEnum):
    """Todo 状态机"""

    # 活跃状态
    PENDING = "pending"
    IN_PROGRESS = "in_progress"

    # 已完成（可在 reopen 窗口内重新打开）
    COMPLETED = "completed"

    # 终态
    ARCHIVED = "archived"


# 合法状态流转
VALID_TRANSITIONS: dict[TodoStatus, set[TodoStatus]] = {
    TodoStatus.PENDING: {TodoStatus.IN_PROGRESS},
    TodoStatus.IN_PROGRESS: {TodoStatus.COMPLETED},
    TodoStatus.COMPLETED: {TodoStatus.PENDING, TodoStatus.ARCHIVED},
    # 终态不可再流转
    TodoStatus.ARCHIVED: set(),
}

ACTIVE_STATES: set[TodoStatus] = {
    TodoStatus.PENDING,
    TodoStatus.IN_PROGRESS,
}

TERMINAL_STATES: set[TodoStatus] = {
    TodoStatus.ARCHIVED,
}


class TodoEventType(StrEnum):
    """领域事件类型（每个成功操作对应一个事件）"""

    TODO_ADDED = "todo_added"
    TODO_UPDATED = "todo_updated"
    TODO_STARTED = "todo_started"
    TODO_COMPLETED = "todo_completed"
    TODO_REOPENED = "todo_reopened"
    TODO_REORDERED = "todo_reordered"
    ARCHIVE_COMPLETED_BATCH = "archive_completed_batch"
    INTEGRITY_REPAIR = "integrity_repair"


class AnomalyType(StrEnum):
    """完整性检查异常分类"""

    DUPLICATE_ACTIVE_CONTENT = "duplicate_active_content"
    ORDER_GAP = "order_gap"
    INVALID_STATE = "invalid_state"
    MISSING_REQUIRED_FIELD = "missing_required_field"


class RepairAction(StrEnum):
    """完整性修复动作"""

    NORMALIZED_ORDER = "normalized_order"
    ARCHIVED_DUPLICATE = "archived_duplicate"


def is_active_status(status: TodoStatus) -> bool:
    """pending / in_progress 视为活跃"""
    return status in ACTIVE_STATES


def validate_transition(from_status: TodoStatus, to_status: TodoStatus) -> bool:
    """验证状态流转是否合法

    Args:
        from_status: 当前状态
        to_status: 目标状态

    Returns:
        True 如果流转合法，否则 False
    """
    allowed = VALID_TRANSITIONS.get(from_status, set())
    return to_status in allowed
