"""全局 pytest 配置 -- async 测试支持 + 存储 / Service fixture"""

import logging
import sys
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
import structlog
from todocore.config import TodoServiceConfig
from todocore.service import TodoService, create_todo_service
from todocore.store import FileStorageAdapter, MemoryStorageAdapter


class FakeClock:
    """可手动推进的时钟，用于 reopen 窗口测试"""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


@pytest.fixture(autouse=True)
def _structlog_to_stderr():
    """日志统一写 stderr 且不缓存 logger，stdout 只保留 CLI 输出"""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_adapter() -> MemoryStorageAdapter:
    return MemoryStorageAdapter()


@pytest.fixture
def todo_file(tmp_path: Path) -> Path:
    """临时 Todo 存储文件路径（文件本身尚不存在）"""
    return tmp_path / "data" / "todos.json"


@pytest_asyncio.fixture
async def service(memory_adapter: MemoryStorageAdapter) -> AsyncGenerator[TodoService, None]:
    """已初始化的内存 Service"""
    svc = await create_todo_service(memory_adapter, debounce_s=0.01)
    yield svc
    await svc.shutdown()


@pytest_asyncio.fixture
async def clocked_service(
    memory_adapter: MemoryStorageAdapter, clock: FakeClock
) -> AsyncGenerator[TodoService, None]:
    """使用 FakeClock、reopen 窗口为 1 小时的 Service"""
    svc = await create_todo_service(
        memory_adapter,
        TodoServiceConfig(reopen_window=timedelta(hours=1)),
        clock=clock,
        debounce_s=0.01,
    )
    yield svc
    await svc.shutdown()


@pytest_asyncio.fixture
async def file_service(todo_file: Path) -> AsyncGenerator[TodoService, None]:
    """文件存储 Service"""
    svc = await create_todo_service(FileStorageAdapter(todo_file), debounce_s=0.01)
    yield svc
    await svc.shutdown()
