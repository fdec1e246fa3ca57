"""Schema 初始化测试

测试内容：
1. 表与索引创建
2. 重复初始化为 no-op
3. 旧 schema 迁移（补齐 deleted_at 列）
4. 文件损坏 / 路径不可用时 open 失败且 Store 保持关闭
"""

import sqlite3
from pathlib import Path

import pytest
from together.core.exceptions import SchemaError
from together.core.store import EventStore, init_db, verify_wal_mode


def _names(conn: sqlite3.Connection, kind: str) -> set[str]:
    rows = conn.execute("SELECT name FROM sqlite_master WHERE type = ?", (kind,)).fetchall()
    return {row[0] for row in rows}


class TestInitDb:
    """init_db 测试"""

    def test_creates_tables_and_indexes(self, store: EventStore):
        """event_log、task 两张表及其索引均已创建"""
        assert {"event_log", "task"} <= _names(store.conn, "table")
        assert {"idx_event_log_seq", "idx_task_status"} <= _names(store.conn, "index")

    def test_init_is_idempotent(self, tmp_path: Path):
        """对已初始化的数据库再次初始化不报错且不丢数据"""
        conn = sqlite3.connect(str(tmp_path / "idem.db"), isolation_level=None)
        init_db(conn)
        conn.execute(
            "INSERT INTO event_log (entity_type, entity_id, op, payload_blob, ts) "
            "VALUES ('event', 'e1', 'upsert', x'7b7d', 1)"
        )
        init_db(conn)
        init_db(conn)

        (count,) = conn.execute("SELECT COUNT(*) FROM event_log").fetchone()
        assert count == 1
        conn.close()

    def test_wal_mode_enabled(self, store: EventStore):
        """open 后启用 WAL 模式"""
        assert verify_wal_mode(store.conn) is True

    def test_task_defaults(self, store: EventStore):
        """task 表列默认值：status=open, visibility_tag=family"""
        store.conn.execute("INSERT INTO task (id, title, updated_at) VALUES ('d1', 'x', 5)")
        row = store.get_task_by_id("d1")
        assert row is not None
        assert row.status == "open"
        assert row.visibility_tag == "family"
        assert row.due_at == 0
        assert row.points == 0
        assert row.deleted_at == 0


class TestMigration:
    """旧 schema 迁移测试"""

    def test_adds_deleted_at_to_old_task_table(self, tmp_path: Path):
        """0.2 schema 的 task 表在 open 时补齐 deleted_at 列，已有数据保留"""
        db_path = tmp_path / "old.db"
        conn = sqlite3.connect(str(db_path))
        conn.execute(
            """
            CREATE TABLE task (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                assignees_csv TEXT DEFAULT '',
                due_at INTEGER DEFAULT 0,
                points INTEGER DEFAULT 0,
                status TEXT DEFAULT 'open',
                visibility_tag TEXT DEFAULT 'family',
                updated_at INTEGER NOT NULL
            )
            """
        )
        conn.execute(
            "INSERT INTO task (id, title, assignees_csv, points, updated_at) "
            "VALUES ('old1', 'Legacy', 'kid2', 7, 100)"
        )
        conn.commit()
        conn.close()

        with EventStore() as store:
            store.open(db_path)
            cols = {row[1] for row in store.conn.execute("PRAGMA table_info(task)")}
            assert "deleted_at" in cols

            row = store.get_task_by_id("old1")
            assert row is not None
            assert row.title == "Legacy"
            assert row.points == 7
            assert row.deleted_at == 0


class TestOpenFailures:
    """open 失败测试"""

    def test_corrupt_file_raises_schema_error(self, tmp_path: Path):
        """非 SQLite 文件 open 失败，Store 保持关闭"""
        db_path = tmp_path / "corrupt.db"
        db_path.write_bytes(b"this is definitely not a sqlite database\n" * 200)

        store = EventStore()
        with pytest.raises(SchemaError):
            store.open(db_path)
        assert store.is_open is False

    def test_directory_path_raises_schema_error(self, tmp_path: Path):
        """路径是目录时 open 失败"""
        store = EventStore()
        with pytest.raises(SchemaError):
            store.open(tmp_path)
        assert store.is_open is False


class TestVersion:
    """版本探针测试"""

    def test_version_is_static(self):
        """无需打开即可获取版本号"""
        assert EventStore.version() == "2gether_core/0.3.0"
