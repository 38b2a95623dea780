"""TodoRepository -- 内存权威列表 + 适配器 I/O + 完整性修复/检测

职责：
1. 持有 Todo 的权威内存列表，启动时从适配器加载一次
2. insert / replace / reorder 后同步通知订阅者，并调度 debounce 持久化
3. integrity_repair()：修复 order 与重复活跃内容（会修改数据）
4. detect_anomalies()：只报告同类问题，不修改数据
"""

import asyncio
from collections.abc import Callable, Sequence
from datetime import datetime

import structlog

from .config import PERSIST_DEBOUNCE_S
from .exceptions import ReorderValidationError
from .models.enums import AnomalyType, RepairAction, TodoStatus, is_active_status
from .models.metrics import IntegrityAnomaly, IntegrityRepairAction, IntegrityRepairSummary
from .models.todo import Todo, clone_todo, normalize_content, utcnow
from .store.protocols import StorageAdapter

log = structlog.get_logger()

Listener = Callable[[], None]


def _order_key(todo: Todo) -> int:
    return todo.order


class TodoRepository:
    """Todo 仓储"""

    def __init__(
        self,
        adapter: StorageAdapter,
        debounce_s: float = PERSIST_DEBOUNCE_S,
    ) -> None:
        self._adapter = adapter
        self._debounce_s = debounce_s
        self._todos: list[Todo] = []
        self._listeners: set[Listener] = set()
        # debounce 定时器句柄与进行中的写入任务
        self._persist_handle: asyncio.TimerHandle | None = None
        self._persist_task: asyncio.Task | None = None
        self._dirty = False

    # ========================================
    # 初始化
    # ========================================

    async def load(self) -> None:
        """从适配器加载全部 Todo，并按 order 升序排列"""
        self._todos = list(await self._adapter.load())
        self._todos.sort(key=_order_key)
        log.debug("todo_repository_loaded", count=len(self._todos))

    # ========================================
    # 订阅（仓储内部使用）
    # ========================================

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """注册变更监听器，返回取消函数"""
        self._listeners.add(listener)
        return lambda: self._listeners.discard(listener)

    def _emit(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                log.debug("todo_repository_listener_error", exc_info=True)

    # ========================================
    # 读取
    # ========================================

    def get_all(self) -> Sequence[Todo]:
        """当前列表的只读视图（调用方不得修改）"""
        return self._todos

    def get(self, todo_id: str) -> Todo | None:
        for todo in self._todos:
            if todo.id == todo_id:
                return todo
        return None

    @property
    def has_pending_write(self) -> bool:
        return self._dirty or self._persist_handle is not None

    # ========================================
    # 修改
    # ========================================

    def insert(self, todo: Todo) -> None:
        self._todos.append(todo)
        self._schedule_persist()
        self._emit()

    def replace(self, todo: Todo) -> None:
        """按 id 替换

        Raises:
            KeyError: id 不存在（编程错误，Service 层应先校验）
        """
        for index, existing in enumerate(self._todos):
            if existing.id == todo.id:
                self._todos[index] = todo
                break
        else:
            raise KeyError(f"Attempted replace on non-existent todo: {todo.id}")
        self._schedule_persist()
        self._emit()

    def reorder(self, ids: Sequence[str]) -> None:
        """按给定 id 顺序重排所有非归档 Todo

        先完整校验再修改，校验失败不做任何改动。归档 Todo 在活跃项之后
        继续顺序编号。

        Raises:
            ReorderValidationError: 长度不符 / 重复 id / 未知 id
        """
        non_archived = [t for t in self._todos if t.status != TodoStatus.ARCHIVED]
        archived = [t for t in self._todos if t.status == TodoStatus.ARCHIVED]

        if len(ids) != len(non_archived):
            raise ReorderValidationError(
                f"Reorder id list length mismatch: expected {len(non_archived)}, got {len(ids)}"
            )
        if len(set(ids)) != len(ids):
            raise ReorderValidationError("Duplicate ids in reorder list")

        by_id = {t.id: t for t in non_archived}
        for todo_id in ids:
            if todo_id not in by_id:
                raise ReorderValidationError(f"Unknown id in reorder list: {todo_id}")

        now = utcnow()
        reordered: list[Todo] = []
        for order, todo_id in enumerate(ids):
            todo = by_id[todo_id]
            if todo.order != order:
                todo.order = order
                todo.updated_at = now
            reordered.append(todo)

        next_order = len(reordered)
        for todo in sorted(archived, key=_order_key):
            todo.order = next_order
            next_order += 1

        self._todos = sorted(reordered + archived, key=_order_key)
        self._schedule_persist()
        self._emit()

    # ========================================
    # 完整性修复 / 检测
    # ========================================

    def _normalize_order(self, now: datetime) -> int:
        """按当前 order 排序后重新编号为 0..N-1，返回改动条数"""
        self._todos.sort(key=_order_key)
        reassignments = 0
        for index, todo in enumerate(self._todos):
            if todo.order != index:
                todo.order = index
                todo.updated_at = now
                reassignments += 1
        return reassignments

    def integrity_repair(self) -> IntegrityRepairSummary:
        """修复结构性问题（启动时由 Service 调用一次）

        流程：
        1. order 规范化为从 0 开始的连续序列
        2. 活跃（pending/in_progress）Todo 中规范化内容重复的，保留首个，其余强制归档
        3. 若有改动，再次规范化 order

        数据问题只修复不抛出。
        """
        actions: list[IntegrityRepairAction] = []
        changed = False
        now = utcnow()

        reassignments = self._normalize_order(now)
        if reassignments:
            changed = True
            actions.append(
                IntegrityRepairAction(
                    action=RepairAction.NORMALIZED_ORDER,
                    details={"reassignments": reassignments},
                )
            )

        seen: dict[str, str] = {}  # 规范化内容 -> 首个 id
        for todo in self._todos:
            if not is_active_status(todo.status):
                continue
            key = normalize_content(todo.content)
            original_id = seen.get(key)
            if original_id is None:
                seen[key] = todo.id
                continue
            todo.status = TodoStatus.ARCHIVED
            todo.archived_at = now
            todo.updated_at = now
            changed = True
            actions.append(
                IntegrityRepairAction(
                    action=RepairAction.ARCHIVED_DUPLICATE,
                    details={"originalId": original_id, "archivedId": todo.id},
                )
            )

        if changed:
            self._normalize_order(now)
            self._schedule_persist()
            self._emit()

        return IntegrityRepairSummary(actions=actions, changed=changed)

    def detect_anomalies(self) -> list[IntegrityAnomaly]:
        """只读检测：报告与 integrity_repair 同类的问题，不做任何修改"""
        anomalies: list[IntegrityAnomaly] = []

        # 重复活跃内容
        groups: dict[str, list[str]] = {}
        for todo in self._todos:
            if not is_active_status(todo.status):
                continue
            groups.setdefault(normalize_content(todo.content), []).append(todo.id)
        for content, ids in groups.items():
            if len(ids) > 1:
                anomalies.append(
                    IntegrityAnomaly(
                        type=AnomalyType.DUPLICATE_ACTIVE_CONTENT,
                        details={"content": content, "ids": ids, "count": len(ids)},
                    )
                )

        # order 空洞（非连续）
        for index, todo in enumerate(sorted(self._todos, key=_order_key)):
            if todo.order != index:
                anomalies.append(
                    IntegrityAnomaly(
                        type=AnomalyType.ORDER_GAP,
                        details={
                            "expectedOrder": index,
                            "actualOrder": todo.order,
                            "id": todo.id,
                        },
                    )
                )

        # 非法状态 / 缺失必填字段
        for todo in self._todos:
            if todo.status == TodoStatus.COMPLETED and todo.completed_at is None:
                anomalies.append(
                    IntegrityAnomaly(
                        type=AnomalyType.INVALID_STATE,
                        details={
                            "id": todo.id,
                            "issue": "completed todo missing completedAt timestamp",
                            "status": todo.status.value,
                        },
                    )
                )
            if todo.status == TodoStatus.ARCHIVED and todo.archived_at is None:
                anomalies.append(
                    IntegrityAnomaly(
                        type=AnomalyType.INVALID_STATE,
                        details={
                            "id": todo.id,
                            "issue": "archived todo missing archivedAt timestamp",
                            "status": todo.status.value,
                        },
                    )
                )
            if not todo.content or not todo.content.strip():
                anomalies.append(
                    IntegrityAnomaly(
                        type=AnomalyType.MISSING_REQUIRED_FIELD,
                        details={"id": todo.id, "field": "content"},
                    )
                )
            if not todo.id or not todo.id.strip():
                anomalies.append(
                    IntegrityAnomaly(
                        type=AnomalyType.MISSING_REQUIRED_FIELD,
                        details={"id": todo.id, "field": "id"},
                    )
                )

        return anomalies

    # ========================================
    # 持久化控制
    # ========================================

    def _schedule_persist(self) -> None:
        """调度 debounce 写入；无运行中的事件循环时仅标记脏数据，等待 flush()"""
        self._dirty = True
        if self._persist_handle is not None:
            self._persist_handle.cancel()
            self._persist_handle = None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._persist_handle = loop.call_later(self._debounce_s, self._on_debounce_elapsed)

    def _on_debounce_elapsed(self) -> None:
        self._persist_handle = None
        self._persist_task = asyncio.ensure_future(self._persist_in_background())

    async def _persist_in_background(self) -> None:
        try:
            await self._persist_now()
        except Exception as e:
            # 脏标记已保留，下一次 flush() 会重试并向调用方抛出
            log.error(
                "todo_repository_persist_failed",
                error_type=type(e).__name__,
                error=str(e),
            )

    async def _persist_now(self) -> None:
        # 写入副本，避免写入过程中被修改
        snapshot = [clone_todo(t) for t in self._todos]
        self._dirty = False
        try:
            await self._adapter.persist(snapshot)
        except Exception:
            self._dirty = True
            raise

    async def flush(self) -> None:
        """取消待执行的 debounce 写入并立即持久化（关闭时 / 测试使用）"""
        if self._persist_handle is not None:
            self._persist_handle.cancel()
            self._persist_handle = None
        if self._persist_task is not None:
            if not self._persist_task.done():
                await self._persist_task
            self._persist_task = None
        await self._persist_now()
