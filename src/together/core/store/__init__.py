"""2gether Core Store -- SQLite 持久化实现

提供工厂函数打开 EventStore。
"""

from pathlib import Path

from ..config import StoreConfig
from .event_log import SqliteEventLog
from .event_store import STORE_VERSION, EventStore
from .retry import RetryingWriter
from .sqlite_init import init_db, verify_wal_mode
from .task_store import SqliteTaskStore
from .transaction import (
    append_event_and_delete_task,
    append_event_and_upsert_task,
    append_event_only,
    write_transaction,
)


def open_store(
    db_path: str | Path | None = None,
    config: StoreConfig | None = None,
) -> EventStore:
    """创建并打开 EventStore

    Args:
        db_path: SQLite 数据库文件路径，缺省取 config.db_path
        config: Store 配置，缺省使用默认 busy_timeout

    Returns:
        已打开的 EventStore 实例
    """
    if db_path is None:
        if config is None:
            raise ValueError("db_path or config is required")
        db_path = config.db_path
    busy_timeout_ms = config.busy_timeout_ms if config is not None else 5000

    store = EventStore(busy_timeout_ms=busy_timeout_ms)
    store.open(db_path)
    return store


__all__ = [
    "EventStore",
    "STORE_VERSION",
    "open_store",
    "RetryingWriter",
    "SqliteEventLog",
    "SqliteTaskStore",
    "init_db",
    "verify_wal_mode",
    "write_transaction",
    "append_event_only",
    "append_event_and_upsert_task",
    "append_event_and_delete_task",
]
