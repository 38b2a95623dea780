"""CLI 分发 -- 解析命令行并调用 TodoService

退出码：0 成功 | 2 领域错误（预期的业务规则违反）| 1 其他错误
默认输出人类可读文本；--json 时每行输出一个 JSON 对象。
"""

import json
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import structlog
from pydantic import BaseModel, Field
from ulid import ULID

from .config import get_snapshot_dir, get_todo_file, load_service_config, parse_reopen_window_hours
from .exceptions import is_domain_error
from .models import Todo, TodoStatus
from .service import TodoService, create_todo_service
from .snapshot import generate_json, generate_markdown
from .store import create_storage_adapter

log = structlog.get_logger()

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_DOMAIN = 2

# 兼容旧版 camelCase 参数名
FLAG_ALIASES = {
    "includeArchived": "include-archived",
    "reopenWindowHours": "reopen-window-hours",
}

HELP_TEXT = """TODO CLI
Commands:
  add <content...> [--tags=tag1,tag2]       Add a new todo (tags normalized)
  update <id> [--content=..] [--tags=..]    Update content and/or tags
  list|search [--status=..] [--tag=..] [--text=substr] [--include-archived]
                                            List todos with filters (AND-combined)
  start <id>                                pending -> in_progress
  done <id>                                 in_progress -> completed
  reopen <id>                               completed -> pending (within window)
  reorder <id1,id2,...>                     Reorder all non-archived todos
  metrics                                   Show metrics
  archive|archive-completed                 Archive all completed todos
  export [--format=md|json] [--include-archived]
                                            Export snapshot to stdout
  snapshot [--include-archived]             Write markdown to <snapshot dir>/todo.md
  integrity                                 Non-mutating integrity check
  help                                      Show help
Flags:
  --json                                    JSON line output
  --file=path                               Storage file (default: $TODO_FILE or todo-data.json)
  --memory                                  In-memory (non-persistent)
  --reopen-window-hours=N                   Override reopen window hours (default 24)
"""


class ParsedArgs(BaseModel):
    """命令行解析结果"""

    command: str | None = None
    params: list[str] = Field(default_factory=list)
    flags: dict[str, str | bool] = Field(default_factory=dict)


class CliOptions(BaseModel):
    """全局选项"""

    json_output: bool = False
    storage_file: Path | None = None
    in_memory: bool = False
    reopen_window_hours: str | None = None


def parse_args(argv: list[str]) -> ParsedArgs:
    """解析 `<command> [params...] [--flag] [--key=value]`（argv 不含程序名）"""
    flags: dict[str, str | bool] = {}
    params: list[str] = []
    for arg in argv:
        if arg.startswith("--"):
            key, sep, value = arg[2:].partition("=")
            key = FLAG_ALIASES.get(key, key)
            flags[key] = value if sep else True
        else:
            params.append(arg)
    command = params[0] if params else None
    return ParsedArgs(command=command, params=params[1:], flags=flags)


def _flag_str(flags: dict[str, str | bool], key: str) -> str | None:
    value = flags.get(key)
    return value if isinstance(value, str) else None


def _split_list(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def build_cli_options(parsed: ParsedArgs) -> CliOptions:
    file_flag = _flag_str(parsed.flags, "file")
    return CliOptions(
        json_output=bool(parsed.flags.get("json")),
        storage_file=Path(file_flag) if file_flag else get_todo_file(),
        in_memory=bool(parsed.flags.get("memory")),
        reopen_window_hours=_flag_str(parsed.flags, "reopen-window-hours"),
    )


def output(options: CliOptions, obj: dict[str, Any], human: Callable[[], str]) -> None:
    if options.json_output:
        print(json.dumps(obj, ensure_ascii=False, default=str))
    else:
        print(human())


def format_todo(todo: Todo) -> str:
    base = f"[{todo.status.value}] #{todo.order} {todo.id} :: {todo.content}"
    if todo.tags:
        base += f" [{', '.join(todo.tags)}]"
    if todo.status == TodoStatus.COMPLETED and todo.completed_at is not None:
        base += f" (completedAt={todo.completed_at.isoformat()})"
    return base


def _output_todo(options: CliOptions, event: str, label: str, todo: Todo) -> None:
    output(
        options,
        {"event": event, "todo": todo.to_record()},
        lambda: f"{label}: {format_todo(todo)}",
    )


async def init_service(options: CliOptions) -> TodoService:
    adapter = create_storage_adapter(options.storage_file, in_memory=options.in_memory)
    config = load_service_config()
    if options.reopen_window_hours is not None:
        config = config.model_copy(
            update={"reopen_window": parse_reopen_window_hours(options.reopen_window_hours)}
        )
    return await create_todo_service(adapter, config)


# ========================================
# Commands
# ========================================


def cmd_add(svc: TodoService, options: CliOptions, params: list[str], flags: dict) -> None:
    if not params:
        raise ValueError("Content required: add <content...>")
    tags_flag = _flag_str(flags, "tags")
    todo = svc.add_todo(" ".join(params), _split_list(tags_flag) if tags_flag else None)
    _output_todo(options, "added", "Added", todo)


def cmd_list(
    command: str, svc: TodoService, options: CliOptions, params: list[str], flags: dict
) -> None:
    status_flag = _flag_str(flags, "status")
    try:
        status = TodoStatus(status_flag) if status_flag else None
    except ValueError:
        raise ValueError(f"Unknown --status value: {status_flag}") from None
    tag = _flag_str(flags, "tag")
    # search 允许直接以位置参数给出关键字
    text = _flag_str(flags, "text")
    if text is None and command == "search" and params:
        text = " ".join(params)
    include_archived = bool(flags.get("include-archived"))

    todos = svc.list_todos(status=status, include_archived=include_archived, tag=tag, text=text)
    output(
        options,
        {
            "event": command,
            "count": len(todos),
            "todos": [t.to_record() for t in todos],
            "filters": {
                "status": status_flag,
                "tag": tag,
                "text": text,
                "includeArchived": include_archived,
            },
        },
        lambda: "\n".join(format_todo(t) for t in todos) if todos else "No todos.",
    )


def _require_id(params: list[str], usage: str) -> str:
    if not params:
        raise ValueError(f"Usage: {usage}")
    return params[0]


def cmd_start(svc: TodoService, options: CliOptions, params: list[str], flags: dict) -> None:
    todo = svc.start(_require_id(params, "start <id>"))
    _output_todo(options, "started", "Started", todo)


def cmd_done(svc: TodoService, options: CliOptions, params: list[str], flags: dict) -> None:
    todo = svc.done(_require_id(params, "done <id>"))
    _output_todo(options, "completed", "Completed", todo)


def cmd_reopen(svc: TodoService, options: CliOptions, params: list[str], flags: dict) -> None:
    todo = svc.reopen(_require_id(params, "reopen <id>"))
    _output_todo(options, "reopened", "Reopened", todo)


def cmd_update(svc: TodoService, options: CliOptions, params: list[str], flags: dict) -> None:
    todo_id = _require_id(params, "update <id> [--content=...] [--tags=tag1,tag2]")
    patch: dict[str, Any] = {}
    content = _flag_str(flags, "content")
    if content is not None:
        patch["content"] = content
    if "tags" in flags:
        tags_flag = _flag_str(flags, "tags")
        patch["tags"] = _split_list(tags_flag) if tags_flag else []
    if not patch:
        raise ValueError("No changes specified; provide --content and/or --tags")
    todo = svc.update_todo(todo_id, **patch)
    _output_todo(options, "updated", "Updated", todo)


def cmd_reorder(svc: TodoService, options: CliOptions, params: list[str], flags: dict) -> None:
    if not params:
        raise ValueError("Usage: reorder <id1,id2,id3,...>")
    svc.reorder_todos(_split_list(params[0]))
    todos = svc.list_todos()
    output(
        options,
        {"event": "reordered", "newOrder": [{"id": t.id, "order": t.order} for t in todos]},
        lambda: "Reordered successfully.",
    )


def cmd_metrics(svc: TodoService, options: CliOptions, params: list[str], flags: dict) -> None:
    metrics = svc.get_metrics()
    output(
        options,
        {"event": "metrics", "metrics": metrics.model_dump(mode="json", by_alias=True)},
        lambda: (
            f"Metrics: total={metrics.total} active={metrics.active} "
            f"completed={metrics.completed} archived={metrics.archived} "
            f"ratio={metrics.completion_ratio:.2f}"
        ),
    )


def cmd_archive(svc: TodoService, options: CliOptions, params: list[str], flags: dict) -> None:
    archived = svc.archive_completed_todos()
    output(
        options,
        {"event": "archived_completed", "archivedCount": len(archived), "ids": archived},
        lambda: f"Archived {len(archived)} completed todo(s).",
    )


def cmd_integrity(svc: TodoService, options: CliOptions, params: list[str], flags: dict) -> None:
    result = svc.check_integrity()
    output(
        options,
        {"event": "integrity_check", "result": result.model_dump(mode="json", by_alias=True)},
        lambda: "\n".join(
            [f"Integrity: total={result.metrics.total} anomalies={len(result.anomalies)}"]
            + [
                f"  - {a.type.value}: {json.dumps(a.details, default=str)}"
                for a in result.anomalies
            ]
        ),
    )


def cmd_export(svc: TodoService, options: CliOptions, params: list[str], flags: dict) -> None:
    fmt = _flag_str(flags, "format") or "md"
    include_archived = bool(flags.get("include-archived"))
    todos = svc.list_todos(include_archived=include_archived)
    if fmt == "json":
        payload = generate_json(todos, include_archived=include_archived)
        output(
            options,
            {"event": "export", "format": "json", "payload": payload},
            lambda: json.dumps(payload, ensure_ascii=False, indent=2),
        )
        return
    if fmt == "md":
        markdown = generate_markdown(todos, svc.get_metrics(), include_archived=include_archived)
        output(options, {"event": "export", "format": "md", "markdown": markdown}, lambda: markdown)
        return
    raise ValueError(f"Unsupported export format: {fmt}")


def cmd_snapshot(svc: TodoService, options: CliOptions, params: list[str], flags: dict) -> None:
    include_archived = bool(flags.get("include-archived"))
    todos = svc.list_todos(include_archived=include_archived)
    markdown = generate_markdown(todos, svc.get_metrics(), include_archived=include_archived)
    snapshot_dir = get_snapshot_dir()
    snapshot_dir.mkdir(parents=True, exist_ok=True)
    file_path = snapshot_dir / "todo.md"
    file_path.write_text(markdown, encoding="utf-8")
    output(
        options,
        {"event": "snapshot_written", "file": str(file_path)},
        lambda: f"Snapshot written: {file_path}",
    )


COMMANDS: dict[str, Callable[[TodoService, CliOptions, list[str], dict], None]] = {
    "add": cmd_add,
    "update": cmd_update,
    "start": cmd_start,
    "done": cmd_done,
    "reopen": cmd_reopen,
    "reorder": cmd_reorder,
    "metrics": cmd_metrics,
    "archive": cmd_archive,
    "archive-completed": cmd_archive,
    "export": cmd_export,
    "snapshot": cmd_snapshot,
    "integrity": cmd_integrity,
}


def dispatch(
    command: str | None,
    params: list[str],
    svc: TodoService,
    options: CliOptions,
    flags: dict[str, str | bool],
) -> None:
    """分发命令

    Raises:
        ValueError: 未知命令或参数缺失
    """
    if command in ("list", "search"):
        cmd_list(command, svc, options, params, flags)
        return
    if command in (None, "help"):
        print(HELP_TEXT)
        return
    handler = COMMANDS.get(command)
    if handler is None:
        raise ValueError(f"Unknown command: {command}")
    handler(svc, options, params, flags)


def map_error(error: BaseException) -> tuple[bool, str, str]:
    """返回 (是否领域错误, 错误名, 消息)"""
    if is_domain_error(error):
        return True, getattr(error, "name", type(error).__name__), str(error)
    return False, type(error).__name__, str(error)


def report_error(options: CliOptions, error: BaseException) -> int:
    """输出错误到 stderr 并返回对应退出码"""
    is_domain, name, message = map_error(error)
    if options.json_output:
        print(json.dumps({"error": name, "message": message}, ensure_ascii=False), file=sys.stderr)
    else:
        prefix = "DomainError" if is_domain else "Error"
        print(f"{prefix}: {message}", file=sys.stderr)
    if not is_domain:
        log.debug("todo_cli_unexpected_error", error_type=name, exc_info=error)
    return EXIT_DOMAIN if is_domain else EXIT_UNEXPECTED


async def run_cli(argv: list[str]) -> int:
    """CLI 主流程，返回退出码；无论成功与否都会关闭 Service"""
    parsed = parse_args(argv)
    if parsed.flags.get("help"):
        print(HELP_TEXT)
        return EXIT_OK

    options = build_cli_options(parsed)
    structlog.contextvars.bind_contextvars(correlation_id=str(ULID()))
    exit_code = EXIT_OK
    svc: TodoService | None = None
    try:
        try:
            svc = await init_service(options)
            dispatch(parsed.command, parsed.params, svc, options, parsed.flags)
        except Exception as e:
            exit_code = report_error(options, e)

        if svc is not None:
            try:
                await svc.shutdown()
            except Exception as e:
                shutdown_code = report_error(options, e)
                if exit_code == EXIT_OK:
                    exit_code = shutdown_code
        return exit_code
    finally:
        structlog.contextvars.unbind_contextvars("correlation_id")
