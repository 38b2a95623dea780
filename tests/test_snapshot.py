"""Snapshot 生成测试"""

from datetime import UTC, datetime

from todocore.models import TodoStatus, compute_metrics, create_todo
from todocore.snapshot import generate_json, generate_markdown

_GENERATED = datetime(2025, 3, 1, 9, 30, tzinfo=UTC)


def _sample():
    writing = create_todo("Write docs", 0, ["docs"])
    fixing = create_todo("Fix bug", 1, ["bug", "docs"])
    fixing.status = TodoStatus.IN_PROGRESS
    shipped = create_todo("Ship release", 2)
    shipped.status = TodoStatus.COMPLETED
    old = create_todo("Old chore", 3, ["chore"])
    old.status = TodoStatus.ARCHIVED
    return [writing, fixing, shipped, old]


class TestMarkdown:
    def test_sections_in_status_order(self):
        todos = _sample()
        md = generate_markdown(todos, compute_metrics(todos), generated_at=_GENERATED)

        assert md.startswith("# TODO Snapshot\n")
        assert "_Generated: 2025-03-01T09:30:00+00:00_" in md
        headings = ("## In Progress (1)", "## Pending (1)", "## Completed (1)")
        positions = [md.index(h) for h in headings]
        assert positions == sorted(positions)
        assert "## Archived" not in md
        assert "Old chore" not in md

    def test_items_and_tags(self):
        md = generate_markdown(_sample(), generated_at=_GENERATED)

        assert "- [ ] Fix bug (#1) `bug` `docs`" in md
        assert "- [x] Ship release (#2)" in md
        assert "- **docs** (2): Write docs; Fix bug" in md
        assert "- **bug** (1): Fix bug" in md
        assert "**chore**" not in md

    def test_metrics_line(self):
        todos = _sample()
        md = generate_markdown(todos, compute_metrics(todos), generated_at=_GENERATED)
        assert "**Total:** 4 | **Active:** 2 | **Completed:** 1 | **Archived:** 1" in md
        assert "**Completion:** 25%" in md

    def test_include_archived(self):
        md = generate_markdown(_sample(), include_archived=True, generated_at=_GENERATED)
        assert "## Archived (1)" in md
        assert "- [x] Old chore (#3) `chore`" in md
        assert "- **chore** (1): Old chore" in md

    def test_empty(self):
        md = generate_markdown([], generated_at=_GENERATED)
        assert "## Pending (0)" in md
        assert "_None_" in md
        assert "_No tags_" in md


class TestJson:
    def test_structure(self):
        todos = _sample()[:2]
        payload = generate_json(todos, include_archived=False, generated_at=_GENERATED)

        assert payload["generatedAt"] == "2025-03-01T09:30:00+00:00"
        assert payload["includeArchived"] is False
        assert [t["content"] for t in payload["todos"]] == ["Write docs", "Fix bug"]
        assert payload["todos"][1]["status"] == "in_progress"
