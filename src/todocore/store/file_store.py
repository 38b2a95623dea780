"""StorageAdapter 文件实现 -- 崩溃安全的 JSON 持久化

写入协议：
1. 以 O_CREAT | O_EXCL 创建锁文件 <dir>/todos.lock（最多重试 5 次，每次间隔 50ms）
2. 紧凑 JSON（{version, todos} 信封）写入 <file>.tmp 并 fsync
3. os.replace(<file>.tmp, <file>)，POSIX 上为原子操作
4. finally 中释放锁并清理残留 tmp

加载协议：
- tmp 存在而主文件缺失：视为上次 rename 中断，提升 tmp 为主文件
- tmp 与主文件同时存在：主文件为准，丢弃 tmp
- 主文件 JSON 损坏：回退到 <file>.backup；备份也失败则返回空列表并告警
- 每条记录逐字段校验，非法记录丢弃并告警
- 成功加载后刷新 <file>.backup
"""

import asyncio
import json
import os
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from ..config import (
    DEFAULT_TODO_FILE,
    LOCK_ATTEMPTS,
    LOCK_BACKOFF_S,
    LOCK_FILE_NAME,
    STORAGE_VERSION,
)
from ..exceptions import StorageLockError
from ..models.todo import Todo

log = structlog.get_logger()


def serialize_todos(todos: Sequence[Todo]) -> str:
    """序列化为紧凑 JSON（无空白）"""
    payload = {
        "version": STORAGE_VERSION,
        "todos": [t.to_record() for t in todos],
    }
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def extract_records(parsed: Any) -> list[Any] | None:
    """从解析结果中取出记录列表

    兼容两种格式：
    - 版本化信封 {"version": 1, "todos": [...]}
    - 旧版顶层数组 [...]

    Returns:
        记录列表；格式无法识别时返回 None
    """
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict) and isinstance(parsed.get("todos"), list):
        return parsed["todos"]
    return None


def sanitize_records(records: list[Any], source: str) -> list[Todo]:
    """逐条校验记录，丢弃非法项

    校验项：id 非空、content 非空、order 为非负整数、tags 为数组、
    createdAt/updatedAt 存在、status 为四个合法值之一。
    """
    todos: list[Todo] = []
    for index, raw in enumerate(records):
        if not isinstance(raw, dict):
            log.warning(
                "todo_store_entry_dropped", source=source, index=index, reason="not_an_object"
            )
            continue
        try:
            todo = Todo.model_validate(raw)
        except ValidationError as e:
            log.warning(
                "todo_store_entry_dropped",
                source=source,
                index=index,
                todo_id=raw.get("id"),
                reason="validation_failed",
                fields=[".".join(str(p) for p in err["loc"]) for err in e.errors()],
            )
            continue
        if not todo.id.strip():
            log.warning("todo_store_entry_dropped", source=source, index=index, reason="blank_id")
            continue
        todos.append(todo)

    dropped = len(records) - len(todos)
    if dropped:
        log.warning("todo_store_sanitized", source=source, dropped=dropped, kept=len(todos))
    return todos


def safe_unlink(path: Path) -> None:
    """删除文件，文件不存在时忽略"""
    try:
        path.unlink()
    except FileNotFoundError:
        pass


class FileStorageAdapter:
    """StorageAdapter 的 JSON 文件实现"""

    def __init__(
        self,
        file_path: str | Path = DEFAULT_TODO_FILE,
        *,
        attempts: int = LOCK_ATTEMPTS,
        backoff_s: float = LOCK_BACKOFF_S,
    ) -> None:
        """
        Args:
            file_path: JSON 存储文件路径
            attempts: 获取锁的最大尝试次数（至少 1）
            backoff_s: 每次重试前的等待秒数

        Raises:
            ValueError: attempts 小于 1
        """
        if attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {attempts}")
        self.file_path = Path(file_path)
        self.dir = self.file_path.parent
        self.tmp_path = self.file_path.with_name(self.file_path.name + ".tmp")
        self.backup_path = self.file_path.with_name(self.file_path.name + ".backup")
        self.lock_path = self.dir / LOCK_FILE_NAME
        self._attempts = attempts
        self._backoff_s = backoff_s

    # ========================================
    # Public API
    # ========================================

    async def load(self) -> list[Todo]:
        """加载 Todo 列表（含 tmp 恢复、备份回退与逐条校验）"""
        self._ensure_directory()
        self._recover_if_necessary()

        try:
            try:
                raw = self.file_path.read_bytes()
            except FileNotFoundError:
                return []
            if not raw.strip():
                return []

            # 非法 UTF-8 与 JSON 损坏同样走备份回退
            try:
                parsed = json.loads(raw.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                backup = self._try_load_backup()
                if backup is not None:
                    log.warning(
                        "todo_store_backup_recovered",
                        file=str(self.file_path),
                        reason="json_parse_error",
                        error=str(e),
                    )
                    return backup
                log.warning(
                    "todo_store_load_failed",
                    file=str(self.file_path),
                    reason="json_parse_error_no_backup",
                    error=str(e),
                )
                return []

            records = extract_records(parsed)
            if records is None:
                log.warning(
                    "todo_store_unrecognized_format",
                    file=str(self.file_path),
                    top_level_type=type(parsed).__name__,
                )
                records = []

            todos = sanitize_records(records, source="primary")
            self._create_backup(todos)
            return todos
        except OSError as e:
            backup = self._try_load_backup()
            if backup is not None:
                log.warning(
                    "todo_store_backup_recovered",
                    file=str(self.file_path),
                    reason="io_error",
                    error_type=type(e).__name__,
                )
                return backup
            raise

    async def persist(self, todos: Sequence[Todo]) -> None:
        """原子写入（锁 + tmp + rename）

        Raises:
            StorageLockError: 重试耗尽仍未获取锁
        """
        self._ensure_directory()
        payload = serialize_todos(todos)

        for attempt in range(1, self._attempts + 1):
            if not self._try_acquire_lock():
                if attempt == self._attempts:
                    log.error(
                        "todo_store_lock_exhausted",
                        lock=str(self.lock_path),
                        attempts=self._attempts,
                    )
                    raise StorageLockError(str(self.lock_path), self._attempts)
                log.debug("todo_store_lock_busy", lock=str(self.lock_path), attempt=attempt)
                await asyncio.sleep(self._backoff_s)
                continue
            try:
                with open(self.tmp_path, "w", encoding="utf-8") as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(self.tmp_path, self.file_path)
                return
            finally:
                self._release_lock()
                safe_unlink(self.tmp_path)

    async def dispose(self) -> None:
        """尽力清理残留 tmp 与锁文件，不删除主数据文件"""
        for path in (self.tmp_path, self.lock_path):
            try:
                safe_unlink(path)
            except OSError as e:
                log.warning("todo_store_dispose_cleanup_failed", path=str(path), error=str(e))

    # ========================================
    # Internal Helpers
    # ========================================

    def _ensure_directory(self) -> None:
        self.dir.mkdir(parents=True, exist_ok=True)

    def _recover_if_necessary(self) -> None:
        """处理上次写入残留的 tmp 文件"""
        if not self.tmp_path.exists():
            return

        if not self.file_path.exists():
            try:
                os.replace(self.tmp_path, self.file_path)
                log.warning("todo_store_tmp_promoted", file=str(self.file_path))
            except OSError as e:
                # 保留现场，留待人工检查
                log.warning(
                    "todo_store_tmp_promote_failed",
                    file=str(self.file_path),
                    error=str(e),
                )
        else:
            safe_unlink(self.tmp_path)
            log.warning("todo_store_tmp_discarded", tmp=str(self.tmp_path))

    def _try_acquire_lock(self) -> bool:
        """以独占方式创建锁文件；已被占用返回 False，其他错误向上抛出"""
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            return False
        os.close(fd)
        return True

    def _release_lock(self) -> None:
        safe_unlink(self.lock_path)

    def _create_backup(self, todos: Sequence[Todo]) -> None:
        """写入最近一次成功加载的快照，失败只告警"""
        try:
            self.backup_path.write_text(serialize_todos(todos), encoding="utf-8")
        except OSError as e:
            log.warning(
                "todo_store_backup_write_failed", backup=str(self.backup_path), error=str(e)
            )

    def _try_load_backup(self) -> list[Todo] | None:
        """尝试读取备份；任何失败返回 None"""
        try:
            parsed = json.loads(self.backup_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            log.warning("todo_store_backup_unavailable", backup=str(self.backup_path), error=str(e))
            return None
        records = extract_records(parsed)
        if records is None:
            log.warning(
                "todo_store_backup_unavailable",
                backup=str(self.backup_path),
                error="unrecognized_format",
            )
            return None
        return sanitize_records(records, source="backup")
