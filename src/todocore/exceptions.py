"""todo-core 异常体系

领域错误（业务规则违反）统一继承 TodoError，并携带可区分的 name，
CLI 据此映射到 "预期错误" 退出码。存储故障和编程错误不属于领域错误。
"""


class TodoError(Exception):
    """领域错误基类"""

    name = "TodoError"
    default_message = "Todo domain error"
    expected = True

    def __init__(self, message: str = "") -> None:
        """
        Args:
            message: 错误描述
        """
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class DuplicateContentError(TodoError):
    """已存在规范化内容相同的非归档 Todo"""

    name = "DuplicateContentError"
    default_message = "Duplicate active todo content"


class InvalidTransitionError(TodoError):
    """非法状态流转（包括通过 update 直接修改 status）"""

    name = "InvalidTransitionError"
    default_message = "Invalid status transition"


class ReopenWindowExpiredError(TodoError):
    """completed 超过 reopen 窗口后不可再打开"""

    name = "ReopenWindowExpiredError"
    default_message = "Reopen window expired"


class ReorderValidationError(TodoError):
    """reorder 请求非法（长度不符、重复 id、未知 id）"""

    name = "ReorderValidationError"
    default_message = "Invalid reorder request"


class TodoNotFoundError(LookupError):
    """Service 方法收到未知 id

    不是业务规则违反，CLI 映射为通用失败退出码。
    """

    def __init__(self, todo_id: str) -> None:
        super().__init__(f"Todo not found: {todo_id}")
        self.todo_id = todo_id


class StorageLockError(RuntimeError):
    """多次重试后仍无法获取存储锁文件"""

    def __init__(self, lock_path: str, attempts: int) -> None:
        """
        Args:
            lock_path: 锁文件路径
            attempts: 已尝试次数
        """
        super().__init__(
            f"Failed to acquire todo file lock after {attempts} attempts: {lock_path}"
        )
        self.lock_path = lock_path
        self.attempts = attempts


DOMAIN_ERRORS: tuple[type[TodoError], ...] = (
    DuplicateContentError,
    InvalidTransitionError,
    ReopenWindowExpiredError,
    ReorderValidationError,
)


def is_domain_error(error: BaseException) -> bool:
    """是否为预期的业务规则违反"""
    return isinstance(error, DOMAIN_ERRORS)
