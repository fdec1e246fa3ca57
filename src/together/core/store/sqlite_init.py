"""SQLite 数据库初始化

PRAGMA 配置 + event_log / task 两张表 DDL + 索引创建。
可重复调用：对已初始化的数据库是 no-op。
"""

import sqlite3

import structlog

from ..exceptions import SchemaError

log = structlog.get_logger()

# event_log 表 DDL（append-only 历史）
_EVENT_LOG_DDL = """
CREATE TABLE IF NOT EXISTS event_log (
    seq          INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_type  TEXT NOT NULL,
    entity_id    TEXT NOT NULL,
    op           TEXT NOT NULL,
    payload_blob BLOB NOT NULL,
    ts           INTEGER NOT NULL
);
"""

_EVENT_LOG_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_event_log_seq ON event_log(seq);",
]

# task 表 DDL（task 当前状态）
_TASK_DDL = """
CREATE TABLE IF NOT EXISTS task (
    id             TEXT PRIMARY KEY,
    title          TEXT NOT NULL,
    assignees_csv  TEXT DEFAULT '',
    due_at         INTEGER DEFAULT 0,
    points         INTEGER DEFAULT 0,
    status         TEXT DEFAULT 'open',
    visibility_tag TEXT DEFAULT 'family',
    updated_at     INTEGER NOT NULL,
    deleted_at     INTEGER NOT NULL DEFAULT 0
);
"""

_TASK_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_task_status ON task(status);",
]

# 0.2 schema 缺失的列：(列名, 列声明)
_TASK_MIGRATIONS = [
    ("deleted_at", "INTEGER NOT NULL DEFAULT 0"),
]


def _migrate_task_table(conn: sqlite3.Connection) -> None:
    """为旧库补齐缺失列"""
    cols = {row[1] for row in conn.execute("PRAGMA table_info(task)").fetchall()}
    for name, decl in _TASK_MIGRATIONS:
        if name in cols:
            continue
        conn.execute(f"ALTER TABLE task ADD COLUMN {name} {decl}")
        log.info("schema_migration_applied", table="task", column=name)


def init_db(conn: sqlite3.Connection, busy_timeout_ms: int = 5000) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: 处于 autocommit 模式（isolation_level=None）的 sqlite3 连接
        busy_timeout_ms: 等待其他写者释放锁的毫秒数

    Raises:
        SchemaError: 数据库拒绝 PRAGMA 或 DDL（磁盘满、文件损坏等）
    """
    try:
        conn.execute("PRAGMA journal_mode = WAL;")
        conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")

        conn.execute("BEGIN IMMEDIATE;")
        try:
            conn.execute(_EVENT_LOG_DDL)
            conn.execute(_TASK_DDL)
            _migrate_task_table(conn)
            for idx_sql in _EVENT_LOG_INDEXES + _TASK_INDEXES:
                conn.execute(idx_sql)
            conn.execute("COMMIT;")
        except sqlite3.Error:
            if conn.in_transaction:
                conn.execute("ROLLBACK;")
            raise
    except sqlite3.Error as exc:
        raise SchemaError.from_sqlite("schema creation failed", exc) from exc


def verify_wal_mode(conn: sqlite3.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    row = conn.execute("PRAGMA journal_mode;").fetchone()
    return row is not None and row[0].lower() == "wal"
