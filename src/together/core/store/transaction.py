"""事件 + Projection 原子事务封装

在同一 SQLite 事务内原子提交 task projection 写入和 event_log 追加：
任何读者只能看到事务前或完整提交后的状态。
事务以 BEGIN IMMEDIATE 开启，并发写者在此排队而不会交错。
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager

import structlog

from ..exceptions import CommitError, TransactionBeginError
from ..models.enums import TASK_ENTITY, EventOp
from ..models.event import DeltaEvent
from ..models.task import TaskRow
from .event_log import SqliteEventLog
from .task_store import SqliteTaskStore

log = structlog.get_logger()


def _rollback(conn: sqlite3.Connection) -> None:
    if not conn.in_transaction:
        return
    try:
        conn.execute("ROLLBACK")
    except sqlite3.Error as exc:
        # 不覆盖正在传播的原始异常
        log.error("rollback_failed", error=str(exc))


@contextmanager
def write_transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """排他写事务：正常退出时提交，任何异常退出时完整回滚

    Args:
        conn: 处于 autocommit 模式（isolation_level=None）的连接

    Raises:
        TransactionBeginError: 无法获取写锁
        CommitError: 提交失败（已回滚）
    """
    try:
        conn.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as exc:
        raise TransactionBeginError.from_sqlite("begin failed", exc) from exc

    try:
        yield conn
    except BaseException:
        _rollback(conn)
        raise

    try:
        conn.execute("COMMIT")
    except sqlite3.Error as exc:
        _rollback(conn)
        raise CommitError.from_sqlite("commit failed", exc) from exc


def append_event_only(
    conn: sqlite3.Connection,
    event_log: SqliteEventLog,
    event: DeltaEvent,
) -> int:
    """仅追加日志事件（无 projection 的实体类型），返回 seq"""
    with write_transaction(conn):
        return event_log.append_event(event)


def append_event_and_upsert_task(
    conn: sqlite3.Connection,
    event_log: SqliteEventLog,
    task_store: SqliteTaskStore,
    task: TaskRow,
    payload: bytes,
) -> int:
    """在同一事务内写入 task projection 并追加 upsert 事件

    事件 ts 取 task.updated_at。

    Returns:
        事件的 seq

    Raises:
        ProjectionWriteError / LogAppendError / TransactionError: 已完整回滚
    """
    with write_transaction(conn):
        task_store.upsert_task(task)
        return event_log.append_event(
            DeltaEvent(
                entity_type=TASK_ENTITY,
                entity_id=task.id,
                op=EventOp.UPSERT,
                payload=payload,
                ts=task.updated_at,
            )
        )


def append_event_and_delete_task(
    conn: sqlite3.Connection,
    event_log: SqliteEventLog,
    task_store: SqliteTaskStore,
    task_id: str,
    ts: int,
    payload: bytes,
) -> int:
    """在同一事务内软删除 task projection 并追加 delete 事件

    即使 projection 中不存在该行，delete 事件仍会写入日志。
    """
    with write_transaction(conn):
        found = task_store.mark_deleted(task_id, ts)
        if not found:
            log.info("task_delete_without_projection_row", task_id=task_id)
        return event_log.append_event(
            DeltaEvent(
                entity_type=TASK_ENTITY,
                entity_id=task_id,
                op=EventOp.DELETE,
                payload=payload,
                ts=ts,
            )
        )
