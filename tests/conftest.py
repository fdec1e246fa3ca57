"""测试配置 -- 临时 SQLite 数据库 fixture"""

from collections.abc import Generator
from pathlib import Path

import pytest
from together.core.store import EventStore


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    """临时数据库路径"""
    return tmp_path / "sqlite" / "test.db"


@pytest.fixture
def store(db_path: Path) -> Generator[EventStore, None, None]:
    """已打开的 EventStore"""
    s = EventStore()
    s.open(db_path)
    yield s
    s.close()


@pytest.fixture
def upsert(store: EventStore):
    """以默认字段写入 task 的便捷函数"""

    def _upsert(
        task_id: str,
        ts: int,
        title: str = "Task",
        status: str = "open",
        assignees_csv: str = "kid1",
        points: int = 1,
        payload: bytes | None = None,
    ) -> int:
        return store.upsert_task(
            task_id, title, assignees_csv, 0, points, status, "family", ts, payload
        )

    return _upsert
