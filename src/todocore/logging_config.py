"""structlog 配置模块

CLI 的 stdout 只输出命令结果，所有日志经标准库 logging 写到 stderr。

TODO_LOG_FORMAT:
- "dev" (默认): ConsoleRenderer 可读输出
- "json": 每行一个 JSON 对象，todo_event 信封原样嵌入
TODO_LOG_LEVEL: 标准库级别名，默认 INFO；无法识别时回退 INFO
"""

import logging
import os
import sys

import structlog

_HANDLER_NAME = "todocore-stderr"


def _shared_processors() -> list[structlog.types.Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def _formatter_processors(log_format: str) -> list[structlog.types.Processor]:
    if log_format == "json":
        return [
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    return [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
        structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
    ]


def _resolve_level(log_level: str) -> int:
    level = logging.getLevelName(log_level.upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(log_format: str | None = None, log_level: str | None = None) -> None:
    """初始化 structlog + 标准库 logging

    重复调用只替换本模块安装的 handler，不影响其他 handler。

    Args:
        log_format: "dev" / "json"，缺省读 TODO_LOG_FORMAT
        log_level: 日志级别名，缺省读 TODO_LOG_LEVEL
    """
    log_format = (log_format or os.environ.get("TODO_LOG_FORMAT", "dev")).lower()
    log_level = log_level or os.environ.get("TODO_LOG_LEVEL", "INFO")
    shared = _shared_processors()

    structlog.configure(
        processors=[
            *shared,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.set_name(_HANDLER_NAME)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=_formatter_processors(log_format),
            foreign_pre_chain=shared,
        )
    )

    root_logger = logging.getLogger()
    for existing in list(root_logger.handlers):
        if existing.get_name() == _HANDLER_NAME:
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(_resolve_level(log_level))
    # asyncio 的 debug 输出与 CLI 无关
    logging.getLogger("asyncio").setLevel(logging.WARNING)
