"""配置常量模块 -- 可通过环境变量覆盖

包含存储文件路径、reopen 窗口、持久化 debounce、锁重试参数等可配置常量，
以及 TodoServiceConfig 及其环境变量加载函数。
"""

import os
from datetime import timedelta
from pathlib import Path

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()

# 持久化格式版本（{version, todos} 信封）
STORAGE_VERSION: int = 1

# debounce 持久化延迟（秒），突发修改合并为一次写入
PERSIST_DEBOUNCE_S: float = 0.25

# 锁文件获取重试次数与固定退避（秒）
LOCK_ATTEMPTS: int = 5
LOCK_BACKOFF_S: float = 0.05

# 默认 reopen 窗口
REOPEN_WINDOW: timedelta = timedelta(hours=24)

DEFAULT_TODO_FILE = "todo-data.json"
LOCK_FILE_NAME = "todos.lock"


def get_todo_file() -> Path:
    """获取 Todo 存储文件路径"""
    return Path(os.environ.get("TODO_FILE", DEFAULT_TODO_FILE))


def get_snapshot_dir() -> Path:
    """获取 snapshot 命令输出目录"""
    return Path(os.environ.get("TODO_SNAPSHOT_DIR", "memory-bank"))


class TodoServiceConfig(BaseModel):
    """Service 配置

    环境变量:
        TODO_REOPEN_WINDOW_HOURS: reopen 窗口（小时，默认 24；负数或 none 表示不限制）
    """

    reopen_window: timedelta | None = Field(
        default=REOPEN_WINDOW,
        description="reopen 窗口，None 表示不限制",
    )


def parse_reopen_window_hours(raw: str) -> timedelta | None:
    """解析小时数；负数或 none 表示不限制

    Raises:
        ValueError: 无法解析为数字
    """
    if raw.strip().lower() in ("none", "unlimited"):
        return None
    hours = float(raw)
    if hours < 0:
        return None
    return timedelta(hours=hours)


def load_service_config() -> TodoServiceConfig:
    """从环境变量加载 Service 配置

    Returns:
        TodoServiceConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("TODO_REOPEN_WINDOW_HOURS"):
        try:
            kwargs["reopen_window"] = parse_reopen_window_hours(val)
        except ValueError:
            log.warning(
                "invalid_reopen_window_env",
                value=val,
                fallback_hours=REOPEN_WINDOW.total_seconds() / 3600,
            )

    return TodoServiceConfig(**kwargs)
