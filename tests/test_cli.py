"""CLI 测试 -- python -m together.core <command>"""

import json
import logging

import pytest
import structlog
from together.core.__main__ import main
from together.core.store import STORE_VERSION, open_store

T = 1_767_225_600_000


@pytest.fixture(autouse=True)
def restore_logging():
    """CLI 会重新配置 logging，测试结束后恢复"""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def cli_db(monkeypatch, tmp_path):
    db_path = tmp_path / "cli.db"
    monkeypatch.setenv("TOGETHER_DB_PATH", str(db_path))
    monkeypatch.setenv("TOGETHER_LOG_LEVEL", "WARNING")
    with open_store(db_path) as store:
        store.upsert_task("t1", "Sweep floor", "kid1", 0, 2, "open", "family", T)
        store.upsert_task("t2", "Homework", "kid2", 0, 4, "done", "family", T + 1)
        store.delete_task("t1", T + 2, b'{"reason":"user_deleted"}')
    return db_path


def _json_lines(out: str) -> list[dict]:
    return [json.loads(line) for line in out.splitlines() if line.startswith("{")]


class TestCli:
    """CLI 命令测试"""

    def test_no_args_prints_usage(self, capsys):
        """无参数时打印用法并返回 1"""
        assert main([]) == 1
        assert "用法" in capsys.readouterr().out

    def test_unknown_command(self, capsys):
        """未知命令返回 1"""
        assert main(["bogus"]) == 1
        assert "未知命令" in capsys.readouterr().out

    def test_version(self, capsys):
        """version 打印 Store 版本"""
        assert main(["version"]) == 0
        assert capsys.readouterr().out.strip() == STORE_VERSION

    def test_since(self, cli_db, capsys):
        """since 以 JSON lines 输出 cursor 之后的事件"""
        assert main(["since", "1"]) == 0
        events = _json_lines(capsys.readouterr().out)
        assert [e["seq"] for e in events] == [2, 3]
        assert events[-1]["op"] == "delete"
        assert events[-1]["payload"] == '{"reason":"user_deleted"}'

    def test_since_invalid_cursor(self, cli_db, capsys):
        """非法 cursor 返回错误码"""
        assert main(["since", "abc"]) == 2

    def test_list_tasks(self, cli_db, capsys):
        """list-tasks 支持按 status 筛选"""
        assert main(["list-tasks", "done"]) == 0
        tasks = _json_lines(capsys.readouterr().out)
        assert [t["id"] for t in tasks] == ["t2"]

    def test_rebuild_projections(self, cli_db, capsys):
        """rebuild-projections 处理全部事件"""
        with open_store(cli_db) as store:
            store.conn.execute("DELETE FROM task")

        assert main(["rebuild-projections"]) == 0
        assert "处理 3 条事件" in capsys.readouterr().out

        with open_store(cli_db) as store:
            assert store.get_task_by_id("t1").status == "deleted"
            assert store.get_task_by_id("t2").status == "done"


class TestCliLogging:
    """日志选项测试：日志只写 stderr，stdout 保持可解析"""

    def test_json_logs_go_to_stderr(self, cli_db, capsys):
        """--log-format json：stdout 全是事件，stderr 全是带调用上下文的 JSON 日志"""
        assert main(["--log-format", "json", "--log-level", "INFO", "since", "0"]) == 0
        captured = capsys.readouterr()

        events = [json.loads(line) for line in captured.out.splitlines()]
        assert [e["seq"] for e in events] == [1, 2, 3]

        logs = [json.loads(line) for line in captured.err.splitlines()]
        opened = [entry for entry in logs if entry["event"] == "store_opened"]
        assert len(opened) == 1
        assert opened[0]["command"] == "since"
        assert opened[0]["db_path"] == str(cli_db)
        assert opened[0]["level"] == "info"

    def test_option_equals_form(self, cli_db, capsys):
        """--opt=value 形式同样生效"""
        assert main(["--log-format=json", "--log-level=INFO", "list-tasks"]) == 0
        err = capsys.readouterr().err
        assert all(json.loads(line)["command"] == "list-tasks" for line in err.splitlines())

    def test_log_level_option_overrides_env(self, cli_db, capsys):
        """--log-level 覆盖 TOGETHER_LOG_LEVEL=WARNING"""
        assert main(["--log-format", "json", "since", "0"]) == 0
        assert capsys.readouterr().err == ""

        assert main(["--log-format", "json", "--log-level", "DEBUG", "since", "0"]) == 0
        assert "store_opened" in capsys.readouterr().err

    def test_failure_logged_with_context(self, cli_db, capsys):
        """命令失败时 stderr 日志带 command"""
        assert main(["--log-format", "json", "since", "abc"]) == 2
        err_lines = capsys.readouterr().err.splitlines()

        failures = [json.loads(line) for line in err_lines if line.startswith("{")]
        assert failures[-1]["event"] == "command_failed"
        assert failures[-1]["command"] == "since"
        assert any(line.startswith("错误:") for line in err_lines)

    def test_unknown_log_format_rejected(self, cli_db, capsys):
        """未知日志格式返回 1"""
        assert main(["--log-format", "xml", "since", "0"]) == 1
        assert "unknown log format" in capsys.readouterr().err

    def test_unknown_option_rejected(self, capsys):
        """未知选项打印用法并返回 1"""
        assert main(["--verbose", "since"]) == 1
        captured = capsys.readouterr()
        assert "未知选项" in captured.err
        assert "用法" in captured.out

    def test_option_missing_value(self, capsys):
        """选项缺少取值返回 1"""
        assert main(["--log-level"]) == 1
        assert "选项缺少取值" in capsys.readouterr().err
