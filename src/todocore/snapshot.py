"""Snapshot 生成 -- Markdown / JSON 报告

纯函数，只依赖 list_todos() 的返回值与 get_metrics() 指标，
不接触仓储或存储适配器。
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Any

from .models import Metrics, Todo, TodoStatus, compute_metrics, utcnow

# 分组顺序与标题
STATUS_SECTIONS: list[tuple[TodoStatus, str]] = [
    (TodoStatus.IN_PROGRESS, "In Progress"),
    (TodoStatus.PENDING, "Pending"),
    (TodoStatus.COMPLETED, "Completed"),
    (TodoStatus.ARCHIVED, "Archived"),
]


def _format_item(todo: Todo) -> str:
    box = "x" if todo.status in (TodoStatus.COMPLETED, TodoStatus.ARCHIVED) else " "
    line = f"- [{box}] {todo.content} (#{todo.order})"
    if todo.tags:
        line += " " + " ".join(f"`{tag}`" for tag in todo.tags)
    return line


def generate_markdown(
    todos: Sequence[Todo],
    metrics: Metrics | None = None,
    *,
    include_archived: bool = False,
    generated_at: datetime | None = None,
) -> str:
    """生成按状态分组、带标签索引的 Markdown 报告

    Args:
        todos: list_todos() 的结果
        metrics: get_metrics() 的结果；缺省时由 todos 计算
        include_archived: 是否输出 Archived 分组
        generated_at: 报告时间，默认当前 UTC 时间
    """
    metrics = metrics or compute_metrics(todos)
    ts = (generated_at or utcnow()).isoformat()

    lines: list[str] = [
        "# TODO Snapshot",
        "",
        f"_Generated: {ts}_",
        "",
        (
            f"**Total:** {metrics.total} | **Active:** {metrics.active} | "
            f"**Completed:** {metrics.completed} | **Archived:** {metrics.archived} | "
            f"**Completion:** {metrics.completion_ratio:.0%}"
        ),
        "",
    ]

    for status, title in STATUS_SECTIONS:
        if status == TodoStatus.ARCHIVED and not include_archived:
            continue
        group = sorted((t for t in todos if t.status == status), key=lambda t: t.order)
        lines.append(f"## {title} ({len(group)})")
        lines.append("")
        if group:
            lines.extend(_format_item(t) for t in group)
        else:
            lines.append("_None_")
        lines.append("")

    tag_index: dict[str, list[str]] = {}
    for todo in sorted(todos, key=lambda t: t.order):
        if todo.status == TodoStatus.ARCHIVED and not include_archived:
            continue
        for tag in todo.tags:
            tag_index.setdefault(tag, []).append(todo.content)

    lines.append("## Tags")
    lines.append("")
    if tag_index:
        for tag in sorted(tag_index):
            lines.append(f"- **{tag}** ({len(tag_index[tag])}): " + "; ".join(tag_index[tag]))
    else:
        lines.append("_No tags_")
    lines.append("")

    return "\n".join(lines)


def generate_json(
    todos: Sequence[Todo],
    *,
    include_archived: bool = False,
    generated_at: datetime | None = None,
) -> dict[str, Any]:
    """生成 JSON 导出结构"""
    return {
        "generatedAt": (generated_at or utcnow()).isoformat(),
        "includeArchived": include_archived,
        "todos": [t.to_record() for t in todos],
    }
