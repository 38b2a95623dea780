"""TodoService -- Todo 生命周期业务逻辑

唯一允许修改 Todo 状态的入口：
1. 状态机（start / done / reopen / 批量归档）
2. 重复内容策略（非归档 Todo 之间规范化内容唯一）
3. reopen 窗口
4. 标签规范化
每次成功操作写一条结构化日志并通知事件订阅者；对外返回的一律是深拷贝。
"""

from collections.abc import Callable, Iterable, Sequence
from datetime import UTC, datetime
from typing import Any, Literal

import structlog
from pydantic import BaseModel

from .config import PERSIST_DEBOUNCE_S, TodoServiceConfig
from .exceptions import (
    DuplicateContentError,
    InvalidTransitionError,
    ReopenWindowExpiredError,
    TodoNotFoundError,
)
from .models import (
    ArchiveCompletedBatchPayload,
    IntegrityCheckResult,
    IntegrityRepairPayload,
    Metrics,
    Todo,
    TodoAddedPayload,
    TodoCompletedPayload,
    TodoEvent,
    TodoEventType,
    TodoReopenedPayload,
    TodoReorderedPayload,
    TodoStartedPayload,
    TodoStatus,
    TodoUpdatedPayload,
    clone_todo,
    compute_metrics,
    create_log_event,
    create_todo,
    normalize_content,
    normalize_tags,
    utcnow,
    validate_transition,
)
from .repository import TodoRepository
from .store.protocols import StorageAdapter

log = structlog.get_logger()

ServiceListener = Callable[[list[Todo]], None]
EventListener = Callable[[TodoEvent, list[Todo]], None]
SortKey = Literal["order", "createdAt"]

INTEGRITY_CHECK_NOTE = "Integrity check with anomaly classification (no repair performed)"


class _Unset:
    """区分 "未传入" 与显式 None"""

    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def _as_utc(ts: datetime) -> datetime:
    """旧数据中无时区的时间戳按 UTC 处理"""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts


class TodoService:
    """Todo 业务服务"""

    def __init__(
        self,
        adapter: StorageAdapter,
        config: TodoServiceConfig | None = None,
        *,
        clock: Callable[[], datetime] = utcnow,
        debounce_s: float = PERSIST_DEBOUNCE_S,
    ) -> None:
        self._adapter = adapter
        self._config = config or TodoServiceConfig()
        self._clock = clock
        self._repo = TodoRepository(adapter, debounce_s=debounce_s)
        # 观察者列表随实例创建，生命周期与 Service 一致
        self._listeners: set[ServiceListener] = set()
        self._event_listeners: set[EventListener] = set()
        self._repo.subscribe(self._emit)

    @property
    def config(self) -> TodoServiceConfig:
        return self._config

    # ========================================
    # 初始化 / 关闭
    # ========================================

    async def init(self) -> None:
        """加载数据并执行一次完整性修复；有修复时记录 integrity_repair 事件"""
        await self._repo.load()
        summary = self._repo.integrity_repair()
        if summary.changed:
            self._log_event(
                TodoEventType.INTEGRITY_REPAIR,
                IntegrityRepairPayload(summary=summary),
                phase="init",
            )

    async def shutdown(self) -> None:
        """刷出待写入数据并释放适配器"""
        await self._repo.flush()
        await self._adapter.dispose()

    async def flush(self) -> None:
        await self._repo.flush()

    # ========================================
    # 订阅
    # ========================================

    def subscribe(self, listener: ServiceListener) -> Callable[[], None]:
        """订阅变更：立即以当前快照回调一次，之后每次变更回调

        Returns:
            取消订阅函数
        """
        self._listeners.add(listener)
        self._safe_call(listener, self._snapshot())
        return lambda: self._listeners.discard(listener)

    def on_event(self, listener: EventListener) -> Callable[[], None]:
        """订阅领域事件，回调参数为 (event, snapshot)

        Returns:
            取消订阅函数
        """
        self._event_listeners.add(listener)
        return lambda: self._event_listeners.discard(listener)

    def _emit(self) -> None:
        if not self._listeners:
            return
        snapshot = self._snapshot()
        for listener in list(self._listeners):
            self._safe_call(listener, snapshot)

    def _snapshot(self) -> list[Todo]:
        return [clone_todo(t) for t in self._repo.get_all()]

    @staticmethod
    def _safe_call(listener: Callable[..., None], *args: Any) -> None:
        # 监听器异常不影响核心流程
        try:
            listener(*args)
        except Exception:
            log.debug("todo_listener_error", exc_info=True)

    # ========================================
    # 核心操作
    # ========================================

    def add_todo(self, content: str, tags: Iterable[str] | None = None) -> Todo:
        """新增 Todo

        Raises:
            ValueError: content trim 后为空
            DuplicateContentError: 已有规范化内容相同的非归档 Todo
        """
        trimmed = content.strip()
        if not trimmed:
            raise ValueError("Todo content must not be empty")
        self._ensure_no_duplicate_active(trimmed)

        order = len(self._repo.get_all())
        todo = create_todo(trimmed, order, tags, now=self._clock())
        self._repo.insert(todo)
        self._log_event(TodoEventType.TODO_ADDED, TodoAddedPayload(todo=todo.to_record()))
        return clone_todo(todo)

    def get_todo(self, todo_id: str) -> Todo:
        """按 id 查询

        Raises:
            TodoNotFoundError: id 不存在
        """
        return clone_todo(self._find_or_raise(todo_id))

    def list_todos(
        self,
        *,
        status: TodoStatus | None = None,
        include_archived: bool = False,
        tag: str | None = None,
        text: str | None = None,
        sort: SortKey = "order",
    ) -> list[Todo]:
        """查询 Todo 列表，过滤条件为 AND 关系

        Args:
            status: 精确匹配状态；显式查询 archived 时视为包含归档项
            include_archived: 是否包含归档项（默认不包含）
            tag: 匹配规范化后的标签
            text: content 大小写不敏感子串匹配
            sort: "order"（默认）或 "createdAt"
        """
        items: list[Todo] = list(self._repo.get_all())

        if status is not None:
            items = [t for t in items if t.status == status]
        if not include_archived and status != TodoStatus.ARCHIVED:
            items = [t for t in items if t.status != TodoStatus.ARCHIVED]
        if tag:
            needle_tag = tag.strip().lower()
            if needle_tag:
                items = [t for t in items if needle_tag in t.tags]
        if text:
            needle = text.strip().lower()
            if needle:
                items = [t for t in items if needle in t.content.lower()]

        if sort == "createdAt":
            items.sort(key=lambda t: _as_utc(t.created_at))
        else:
            items.sort(key=lambda t: t.order)
        return [clone_todo(t) for t in items]

    def update_todo(
        self,
        todo_id: str,
        *,
        content: str | None = None,
        tags: Iterable[str] | None = UNSET,
        status: TodoStatus | None = None,
    ) -> Todo:
        """修改 content 和/或 tags

        tags 只有显式传入时才替换（None 或空列表表示清空）。
        status 不允许通过此方法修改，必须使用 start / done / reopen。

        Raises:
            TodoNotFoundError: id 不存在
            InvalidTransitionError: 试图直接修改 status，或修改已归档 Todo 的 content
            DuplicateContentError: 新 content 与其他非归档 Todo 重复
            ValueError: 新 content trim 后为空
        """
        existing = self._find_or_raise(todo_id)
        if status is not None and status != existing.status:
            raise InvalidTransitionError(
                "Direct status change not permitted via update_todo; use start/done/reopen"
            )

        todo = clone_todo(existing)
        before = existing.to_record()
        now = self._clock()

        if content is not None:
            new_content = content.strip()
            if not new_content:
                raise ValueError("Todo content must not be empty")
            if new_content != todo.content:
                if todo.status == TodoStatus.ARCHIVED:
                    raise InvalidTransitionError("Archived todos cannot change content")
                self._ensure_no_duplicate_active(new_content, ignore_id=todo.id)
                todo.content = new_content
                todo.updated_at = now

        if tags is not UNSET:
            normalized = normalize_tags(tags)
            if normalized != todo.tags:
                todo.tags = normalized
                todo.updated_at = now

        self._repo.replace(todo)
        self._log_event(
            TodoEventType.TODO_UPDATED,
            TodoUpdatedPayload(before=before, after=todo.to_record()),
        )
        return clone_todo(todo)

    def start(self, todo_id: str) -> Todo:
        """pending -> in_progress"""
        todo = self._transition(
            todo_id, TodoStatus.IN_PROGRESS, "Only pending todos can be started"
        )
        self._repo.replace(todo)
        self._log_event(TodoEventType.TODO_STARTED, TodoStartedPayload(id=todo.id))
        return clone_todo(todo)

    def done(self, todo_id: str) -> Todo:
        """in_progress -> completed，刷新 completed_at"""
        todo = self._transition(
            todo_id, TodoStatus.COMPLETED, "Only in_progress todos can be completed"
        )
        # 重新完成时覆盖上一次的 completed_at
        todo.completed_at = todo.updated_at
        self._repo.replace(todo)
        self._log_event(
            TodoEventType.TODO_COMPLETED,
            TodoCompletedPayload(id=todo.id, completed_at=todo.completed_at.isoformat()),
        )
        return clone_todo(todo)

    def reopen(self, todo_id: str) -> Todo:
        """completed -> pending（需在 reopen 窗口内）

        窗口边界：now - completed_at 恰好等于窗口时允许，超过才拒绝。
        completed_at 作为历史数据保留，直到下一次完成时被覆盖。

        Raises:
            InvalidTransitionError: 当前不是 completed
            ReopenWindowExpiredError: 超出 reopen 窗口
        """
        existing = self._find_or_raise(todo_id)
        if not validate_transition(existing.status, TodoStatus.PENDING):
            raise InvalidTransitionError("Only completed todos can be reopened")

        window = self._config.reopen_window
        if window is not None:
            if existing.completed_at is None:
                raise ReopenWindowExpiredError(
                    "Completed timestamp missing; cannot validate reopen window"
                )
            elapsed = self._clock() - _as_utc(existing.completed_at)
            if elapsed > window:
                raise ReopenWindowExpiredError()

        todo = self._transition(todo_id, TodoStatus.PENDING, "Only completed todos can be reopened")
        self._repo.replace(todo)
        self._log_event(TodoEventType.TODO_REOPENED, TodoReopenedPayload(id=todo.id))
        return clone_todo(todo)

    def reorder_todos(self, ids: Sequence[str]) -> list[str]:
        """按完整 id 序列重排非归档 Todo

        Returns:
            重排后的非归档 id 顺序

        Raises:
            ReorderValidationError: 原样透传仓储的校验错误
        """
        self._repo.reorder(list(ids))
        ordered = [
            t.id
            for t in sorted(self._repo.get_all(), key=lambda t: t.order)
            if t.status != TodoStatus.ARCHIVED
        ]
        self._log_event(TodoEventType.TODO_REORDERED, TodoReorderedPayload(order=ordered))
        return ordered

    def archive_completed_todos(self) -> list[str]:
        """批量归档所有 completed Todo；没有时返回空列表且不发事件

        Returns:
            被归档的 id 列表
        """
        to_archive = [t.id for t in self._repo.get_all() if t.status == TodoStatus.COMPLETED]
        if not to_archive:
            return []

        now = self._clock()
        for todo_id in to_archive:
            todo = clone_todo(self._find_or_raise(todo_id))
            todo.status = TodoStatus.ARCHIVED
            todo.archived_at = now
            todo.updated_at = now
            self._repo.replace(todo)

        self._log_event(
            TodoEventType.ARCHIVE_COMPLETED_BATCH,
            ArchiveCompletedBatchPayload(archived_ids=to_archive),
        )
        return to_archive

    def get_metrics(self) -> Metrics:
        return compute_metrics(self._repo.get_all())

    def check_integrity(self) -> IntegrityCheckResult:
        """只读完整性检查：返回指标与异常分类，不做任何修复"""
        return IntegrityCheckResult(
            timestamp=self._clock(),
            metrics=self.get_metrics(),
            anomalies=self._repo.detect_anomalies(),
            note=INTEGRITY_CHECK_NOTE,
        )

    # ========================================
    # Helpers
    # ========================================

    def _find_or_raise(self, todo_id: str) -> Todo:
        todo = self._repo.get(todo_id)
        if todo is None:
            raise TodoNotFoundError(todo_id)
        return todo

    def _transition(self, todo_id: str, to_status: TodoStatus, message: str) -> Todo:
        """校验流转并返回已修改状态的副本（尚未写回仓储）"""
        existing = self._find_or_raise(todo_id)
        if not validate_transition(existing.status, to_status):
            raise InvalidTransitionError(message)
        todo = clone_todo(existing)
        todo.status = to_status
        todo.updated_at = self._clock()
        return todo

    def _ensure_no_duplicate_active(self, content: str, ignore_id: str | None = None) -> None:
        """任何非归档 Todo（pending / in_progress / completed）都视为冲突；归档项释放内容"""
        key = normalize_content(content)
        for todo in self._repo.get_all():
            if (
                todo.status != TodoStatus.ARCHIVED
                and todo.id != ignore_id
                and normalize_content(todo.content) == key
            ):
                raise DuplicateContentError(f"Duplicate active todo content: {content!r}")

    # ========================================
    # 日志 / 事件
    # ========================================

    def _log_event(
        self,
        event_type: TodoEventType,
        payload: BaseModel,
        phase: str | None = None,
    ) -> None:
        event = TodoEvent(type=event_type, payload=payload.model_dump(mode="json"))
        envelope = create_log_event(event, phase=phase)
        log.info(
            "todo_event",
            todo_event=envelope.model_dump(mode="json", by_alias=True, exclude_none=True),
        )

        if not self._event_listeners:
            return
        snapshot = self._snapshot()
        for listener in list(self._event_listeners):
            self._safe_call(listener, event, snapshot)


async def create_todo_service(
    adapter: StorageAdapter,
    config: TodoServiceConfig | None = None,
    **kwargs: Any,
) -> TodoService:
    """创建并初始化 TodoService"""
    service = TodoService(adapter, config, **kwargs)
    await service.init()
    return service
