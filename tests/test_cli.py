"""CLI 测试

测试内容：
1. 参数解析与全局选项
2. 命令输出（--json 行格式）
3. 退出码：0 成功 / 2 领域错误 / 1 其他错误
4. snapshot / export
"""

import json
from pathlib import Path

import pytest
from todocore.cli import (
    EXIT_DOMAIN,
    EXIT_OK,
    EXIT_UNEXPECTED,
    HELP_TEXT,
    build_cli_options,
    parse_args,
    run_cli,
)


async def _run(capsys, *argv: str) -> tuple[int, list[dict], str]:
    """执行 CLI，返回 (退出码, stdout JSON 行, stderr)；非 --json 时不解析 stdout"""
    code = await run_cli(list(argv))
    captured = capsys.readouterr()
    lines = []
    if "--json" in argv:
        lines = [json.loads(line) for line in captured.out.splitlines() if line.strip()]
    return code, lines, captured.err


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path: Path):
    monkeypatch.delenv("TODO_FILE", raising=False)
    monkeypatch.delenv("TODO_REOPEN_WINDOW_HOURS", raising=False)
    monkeypatch.setenv("TODO_SNAPSHOT_DIR", str(tmp_path / "snapshots"))


@pytest.fixture
def file_flag(tmp_path: Path) -> str:
    return f"--file={tmp_path / 'cli' / 'todos.json'}"


class TestParseArgs:
    def test_command_params_flags(self):
        parsed = parse_args(["add", "Buy", "milk", "--tags=a,b", "--json"])
        assert parsed.command == "add"
        assert parsed.params == ["Buy", "milk"]
        assert parsed.flags == {"tags": "a,b", "json": True}

    def test_camel_case_alias(self):
        parsed = parse_args(["list", "--includeArchived", "--reopenWindowHours=2"])
        assert parsed.flags == {"include-archived": True, "reopen-window-hours": "2"}

    def test_empty(self):
        parsed = parse_args([])
        assert parsed.command is None
        assert parsed.params == []

    def test_file_from_env(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("TODO_FILE", str(tmp_path / "env.json"))
        options = build_cli_options(parse_args(["list"]))
        assert options.storage_file == tmp_path / "env.json"

    def test_file_flag_overrides_env(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("TODO_FILE", str(tmp_path / "env.json"))
        options = build_cli_options(parse_args(["list", f"--file={tmp_path / 'flag.json'}"]))
        assert options.storage_file == tmp_path / "flag.json"

    def test_defaults(self):
        options = build_cli_options(parse_args(["list"]))
        assert options.storage_file == Path("todo-data.json")
        assert options.json_output is False
        assert options.in_memory is False


class TestCommands:
    """命令执行"""

    async def test_add_json(self, capsys):
        code, lines, _ = await _run(
            capsys, "add", "Buy", "milk", "--tags=Home,home", "--memory", "--json"
        )

        assert code == EXIT_OK
        assert lines[0]["event"] == "added"
        assert lines[0]["todo"]["content"] == "Buy milk"
        assert lines[0]["todo"]["tags"] == ["home"]

    async def test_add_human(self, capsys):
        code = await run_cli(["add", "Plain", "--memory"])
        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert out.startswith("Added: [pending] #0 ")
        assert ":: Plain" in out

    async def test_lifecycle_across_invocations(self, capsys, file_flag: str):
        _, lines, _ = await _run(capsys, "add", "Release", file_flag, "--json")
        todo_id = lines[0]["todo"]["id"]

        code, lines, _ = await _run(capsys, "start", todo_id, file_flag, "--json")
        assert code == EXIT_OK
        assert lines[0]["todo"]["status"] == "in_progress"

        code, lines, _ = await _run(capsys, "done", todo_id, file_flag, "--json")
        assert lines[0]["event"] == "completed"
        assert lines[0]["todo"]["completedAt"] is not None

        code, lines, _ = await _run(capsys, "reopen", todo_id, file_flag, "--json")
        assert code == EXIT_OK
        assert lines[0]["todo"]["status"] == "pending"

        code, lines, _ = await _run(capsys, "list", file_flag, "--json")
        assert lines[0]["count"] == 1
        assert lines[0]["todos"][0]["id"] == todo_id

    async def test_update_and_search(self, capsys, file_flag: str):
        _, lines, _ = await _run(capsys, "add", "Draft", "notes", file_flag, "--json")
        todo_id = lines[0]["todo"]["id"]
        await _run(capsys, "add", "Other", file_flag, "--json")

        code, lines, _ = await _run(
            capsys, "update", todo_id, "--content=Final notes", "--tags=docs", file_flag, "--json"
        )
        assert code == EXIT_OK
        assert lines[0]["todo"]["content"] == "Final notes"
        assert lines[0]["todo"]["tags"] == ["docs"]

        _, lines, _ = await _run(capsys, "search", "final", file_flag, "--json")
        assert [t["id"] for t in lines[0]["todos"]] == [todo_id]
        assert lines[0]["filters"]["text"] == "final"

        _, lines, _ = await _run(capsys, "list", "--tag=docs", file_flag, "--json")
        assert lines[0]["count"] == 1

    async def test_reorder_and_archive(self, capsys, file_flag: str):
        ids = []
        for content in ("one", "two"):
            _, lines, _ = await _run(capsys, "add", content, file_flag, "--json")
            ids.append(lines[0]["todo"]["id"])

        code, lines, _ = await _run(capsys, "reorder", f"{ids[1]},{ids[0]}", file_flag, "--json")
        assert code == EXIT_OK
        assert lines[0]["newOrder"] == [{"id": ids[1], "order": 0}, {"id": ids[0], "order": 1}]

        await _run(capsys, "start", ids[0], file_flag)
        await _run(capsys, "done", ids[0], file_flag)
        code, lines, _ = await _run(capsys, "archive", file_flag, "--json")
        assert lines[0] == {"event": "archived_completed", "archivedCount": 1, "ids": [ids[0]]}

        _, lines, _ = await _run(capsys, "metrics", file_flag, "--json")
        assert lines[0]["metrics"]["total"] == 2
        assert lines[0]["metrics"]["archived"] == 1
        assert lines[0]["metrics"]["inProgress"] == 0

    async def test_integrity(self, capsys):
        code, lines, _ = await _run(capsys, "integrity", "--memory", "--json")
        assert code == EXIT_OK
        result = lines[0]["result"]
        assert result["anomalies"] == []
        assert result["note"] == "Integrity check with anomaly classification (no repair performed)"

    async def test_export_json(self, capsys, file_flag: str):
        await _run(capsys, "add", "Exported", file_flag)
        code, lines, _ = await _run(capsys, "export", "--format=json", file_flag, "--json")
        assert code == EXIT_OK
        assert lines[0]["payload"]["todos"][0]["content"] == "Exported"

    async def test_export_markdown(self, capsys, file_flag: str):
        await _run(capsys, "add", "Exported", file_flag)
        code = await run_cli(["export", file_flag])
        out = capsys.readouterr().out
        assert code == EXIT_OK
        assert "# TODO Snapshot" in out
        assert "Exported" in out

    async def test_snapshot_written(self, capsys, file_flag: str, tmp_path: Path):
        await _run(capsys, "add", "Snap", file_flag)
        code, lines, _ = await _run(capsys, "snapshot", file_flag, "--json")

        target = tmp_path / "snapshots" / "todo.md"
        assert code == EXIT_OK
        assert lines[0] == {"event": "snapshot_written", "file": str(target)}
        assert "- [ ] Snap (#0)" in target.read_text(encoding="utf-8")

    @pytest.mark.parametrize("argv", [["help"], [], ["--help"]])
    async def test_help(self, capsys, argv: list[str]):
        code = await run_cli([*argv, "--memory"])
        assert code == EXIT_OK
        assert HELP_TEXT.splitlines()[0] in capsys.readouterr().out


class TestExitCodes:
    """退出码映射"""

    async def test_duplicate_is_domain_error(self, capsys, file_flag: str):
        await _run(capsys, "add", "Buy milk", file_flag)
        code, _, err = await _run(capsys, "add", "buy milk ", file_flag)
        assert code == EXIT_DOMAIN
        assert "DomainError: Duplicate active todo content" in err

    async def test_domain_error_json(self, capsys, file_flag: str):
        _, lines, _ = await _run(capsys, "add", "Early", file_flag, "--json")
        code, _, err = await _run(capsys, "done", lines[0]["todo"]["id"], file_flag, "--json")

        assert code == EXIT_DOMAIN
        payloads = [json.loads(line) for line in err.splitlines() if line.startswith("{")]
        errors = [p for p in payloads if "message" in p and "error" in p]
        assert errors == [
            {
                "error": "InvalidTransitionError",
                "message": "Only in_progress todos can be completed",
            }
        ]

    async def test_reopen_window_flag(self, capsys, file_flag: str):
        _, lines, _ = await _run(capsys, "add", "Quick", file_flag, "--json")
        todo_id = lines[0]["todo"]["id"]
        await _run(capsys, "start", todo_id, file_flag)
        await _run(capsys, "done", todo_id, file_flag)

        code, _, err = await _run(capsys, "reopen", todo_id, file_flag, "--reopen-window-hours=0")

        assert code == EXIT_DOMAIN
        assert "Reopen window expired" in err

    async def test_unknown_id_is_unexpected(self, capsys):
        code, _, err = await _run(capsys, "start", "no-such-id", "--memory")
        assert code == EXIT_UNEXPECTED
        assert "Error: Todo not found: no-such-id" in err

    async def test_unknown_command(self, capsys):
        code, _, err = await _run(capsys, "frobnicate", "--memory")
        assert code == EXIT_UNEXPECTED
        assert "Unknown command: frobnicate" in err

    async def test_missing_argument(self, capsys):
        code, _, err = await _run(capsys, "add", "--memory")
        assert code == EXIT_UNEXPECTED
        assert "Content required" in err

    async def test_invalid_status_filter(self, capsys):
        code, _, _ = await _run(capsys, "list", "--status=done", "--memory")
        assert code == EXIT_UNEXPECTED
