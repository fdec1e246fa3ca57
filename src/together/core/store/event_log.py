"""EventLog SQLite 实现

event_log 表 append-only：只允许插入，不允许更新或删除。
seq 由 AUTOINCREMENT 分配，同一数据库文件内永不复用。
"""

import sqlite3

import structlog

from ..exceptions import LogAppendError, ReadError
from ..models.event import DeltaEvent

log = structlog.get_logger()

_COLUMNS = "seq, entity_type, entity_id, op, payload_blob, ts"


class SqliteEventLog:
    """event_log 表访问层"""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def append_event(self, event: DeltaEvent) -> int:
        """追加事件（append-only），返回分配的 seq

        注意：此方法不自动提交事务，需由调用方管理事务。
        event.seq 在输入时被忽略。

        Raises:
            LogAppendError: 插入被数据库拒绝
        """
        try:
            cursor = self._conn.execute(
                """
                INSERT INTO event_log (entity_type, entity_id, op, payload_blob, ts)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    event.entity_type,
                    event.entity_id,
                    event.op.value,
                    event.payload,
                    event.ts,
                ),
            )
        except sqlite3.Error as exc:
            raise LogAppendError.from_sqlite("event_log insert failed", exc) from exc
        return int(cursor.lastrowid)

    def get_events_since(self, cursor: int) -> list[DeltaEvent]:
        """查询 seq > cursor 的全部事件，按 seq 正序（用于增量同步）

        cursor=0 返回完整历史。
        """
        try:
            rows = self._conn.execute(
                f"SELECT {_COLUMNS} FROM event_log WHERE seq > ? ORDER BY seq ASC",
                (cursor,),
            ).fetchall()
        except sqlite3.Error as exc:
            raise ReadError.from_sqlite("event_log query failed", exc) from exc
        return [self._row_to_event(row) for row in rows]

    def last_seq(self) -> int:
        """当前最大的 seq，空日志返回 0"""
        try:
            row = self._conn.execute("SELECT COALESCE(MAX(seq), 0) FROM event_log").fetchone()
        except sqlite3.Error as exc:
            raise ReadError.from_sqlite("event_log query failed", exc) from exc
        return int(row[0])

    def count_events(self) -> int:
        try:
            row = self._conn.execute("SELECT COUNT(*) FROM event_log").fetchone()
        except sqlite3.Error as exc:
            raise ReadError.from_sqlite("event_log query failed", exc) from exc
        return int(row[0])

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> DeltaEvent:
        """将数据库行转换为 DeltaEvent 模型"""
        return DeltaEvent(
            seq=row[0],
            entity_type=row[1],
            entity_id=row[2],
            op=row[3],
            payload=bytes(row[4]) if row[4] is not None else b"",
            ts=row[5],
        )
