"""EventStore -- 持有数据库连接的 Store 对象

一个 EventStore 实例独占一个打开的数据库文件：
- open() 创建文件与 schema，并启用 WAL
- close() 只真正关闭一次，等待进行中的事务结束
- 同一进程内多线程共享连接，由内部可重入锁串行化
- 跨进程写者通过 BEGIN IMMEDIATE + busy_timeout 排队
"""

import sqlite3
import threading
from pathlib import Path

import structlog

from ..exceptions import NotOpenError, SchemaError, StoreError
from ..models.enums import TASK_ENTITY
from ..models.event import DeltaEvent
from ..models.payloads import (
    TaskDeletePayload,
    TaskSnapshotPayload,
    encode_payload,
    snapshot_from_payload,
)
from ..models.task import TaskRow
from .event_log import SqliteEventLog
from .sqlite_init import init_db
from .task_store import SqliteTaskStore
from .transaction import (
    append_event_and_delete_task,
    append_event_and_upsert_task,
    append_event_only,
)

log = structlog.get_logger()

STORE_VERSION = "2gether_core/0.3.0"


def _check_snapshot(task_id: str, payload: bytes, expected: TaskSnapshotPayload) -> None:
    """校验 upsert payload 重放后与调用参数得到同一行"""
    snapshot = snapshot_from_payload(payload)
    if snapshot != expected:
        mismatched = sorted(
            name
            for name in TaskSnapshotPayload.model_fields
            if getattr(snapshot, name) != getattr(expected, name)
        )
        raise ValueError(
            f"payload for task {task_id!r} does not match arguments: {', '.join(mismatched)}"
        )


class EventStore:
    """事件日志 + task projection 存储"""

    def __init__(self, busy_timeout_ms: int = 5000) -> None:
        self._busy_timeout_ms = busy_timeout_ms
        self._conn: sqlite3.Connection | None = None
        self._path: str | None = None
        self._lock = threading.RLock()
        self._event_log: SqliteEventLog | None = None
        self._task_store: SqliteTaskStore | None = None

    @staticmethod
    def version() -> str:
        """schema / 行为版本号，供调用方做兼容性检查"""
        return STORE_VERSION

    # ---- lifecycle ----

    def open(self, db_path: str | Path) -> None:
        """打开或创建数据库文件并确保 schema 存在

        已打开时为 no-op。

        Raises:
            SchemaError: 文件无法打开、已损坏或 schema 初始化失败
            ReadError: 读取日志状态失败
            以上情况 Store 均保持关闭状态
        """
        with self._lock:
            if self._conn is not None:
                return

            path = Path(db_path)
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise SchemaError(f"sqlite open failed: {exc}") from exc

            try:
                conn = sqlite3.connect(
                    str(path),
                    isolation_level=None,
                    check_same_thread=False,
                    timeout=self._busy_timeout_ms / 1000,
                )
            except sqlite3.Error as exc:
                raise SchemaError.from_sqlite("sqlite open failed", exc) from exc

            event_log = SqliteEventLog(conn)
            try:
                init_db(conn, busy_timeout_ms=self._busy_timeout_ms)
                last_seq = event_log.last_seq()
            except StoreError:
                conn.close()
                raise

            self._conn = conn
            self._path = str(path)
            self._event_log = event_log
            self._task_store = SqliteTaskStore(conn)

            log.info(
                "store_opened",
                db_path=self._path,
                version=STORE_VERSION,
                last_seq=last_seq,
            )

    def close(self) -> None:
        """关闭连接并释放资源；重复调用安全"""
        with self._lock:
            if self._conn is None:
                return
            self._conn.close()
            log.info("store_closed", db_path=self._path)
            self._conn = None
            self._event_log = None
            self._task_store = None

    def __enter__(self) -> "EventStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def path(self) -> str | None:
        return self._path

    @property
    def conn(self) -> sqlite3.Connection:
        """底层连接（projection 重建等需在同一连接上操作）"""
        if self._conn is None:
            raise NotOpenError()
        return self._conn

    @property
    def lock(self):
        """写事务串行化锁（可重入）"""
        return self._lock

    @property
    def event_log(self) -> SqliteEventLog:
        if self._event_log is None:
            raise NotOpenError()
        return self._event_log

    @property
    def task_store(self) -> SqliteTaskStore:
        if self._task_store is None:
            raise NotOpenError()
        return self._task_store

    # ---- log ----

    def append(self, event: DeltaEvent) -> int:
        """追加一条原始事件，返回分配的 seq（>= 1）

        用于没有物化视图的实体类型；task 事件走此路径不会更新 projection。

        Raises:
            NotOpenError / TransactionBeginError / LogAppendError / CommitError
        """
        with self._lock:
            if event.entity_type == TASK_ENTITY:
                log.warning(
                    "task_event_appended_without_projection",
                    entity_id=event.entity_id,
                    op=event.op.value,
                )
            seq = append_event_only(self.conn, self.event_log, event)
            log.debug(
                "event_appended",
                seq=seq,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                op=event.op.value,
            )
            return seq

    def since(self, cursor: int) -> list[DeltaEvent]:
        """返回 seq > cursor 的全部已提交事件，按 seq 正序

        Raises:
            NotOpenError / ReadError
        """
        with self._lock:
            return self.event_log.get_events_since(cursor)

    def last_seq(self) -> int:
        with self._lock:
            return self.event_log.last_seq()

    def count_events(self) -> int:
        with self._lock:
            return self.event_log.count_events()

    # ---- dual write ----

    def upsert_task(
        self,
        id: str,
        title: str,
        assignees_csv: str,
        due_at: int,
        points: int,
        status: str,
        visibility_tag: str,
        updated_at_millis: int,
        payload: bytes | str | None = None,
    ) -> int:
        """原子地整行覆盖 task projection 并追加 upsert 事件

        payload 为 None 时写入 task 的完整 JSON 快照，使日志可独立重建 projection。
        调用方提供 payload 时，按快照解码（缺失字段取默认值）的结果必须与调用参数一致，
        否则重放日志得到的 projection 会与当前 projection 不同。

        Returns:
            upsert 事件的 seq（>= 1）

        Raises:
            ValueError: payload 不是与调用参数一致的 task 快照（未写入任何数据）
            NotOpenError / TransactionBeginError / ProjectionWriteError /
            LogAppendError / CommitError: 均已完整回滚
        """
        task = TaskRow(
            id=id,
            title=title,
            assignees_csv=assignees_csv,
            due_at=due_at,
            points=points,
            status=status,
            visibility_tag=visibility_tag,
            updated_at=updated_at_millis,
        )
        expected = TaskSnapshotPayload.model_validate(task.model_dump())
        if payload is None:
            payload = encode_payload(expected)
        else:
            if isinstance(payload, str):
                payload = payload.encode("utf-8")
            _check_snapshot(id, payload, expected)

        with self._lock:
            seq = append_event_and_upsert_task(
                self.conn, self.event_log, self.task_store, task, payload
            )
        log.info("task_upserted", task_id=id, seq=seq, status=status)
        return seq

    def delete_task(
        self,
        id: str,
        ts: int,
        payload: bytes | str | None = None,
    ) -> int:
        """原子地软删除 task projection 并追加 delete 事件

        Returns:
            delete 事件的 seq（>= 1）
        """
        if payload is None:
            payload = encode_payload(TaskDeletePayload())
        elif isinstance(payload, str):
            payload = payload.encode("utf-8")

        with self._lock:
            seq = append_event_and_delete_task(
                self.conn, self.event_log, self.task_store, id, ts, payload
            )
        log.info("task_deleted", task_id=id, seq=seq)
        return seq

    # ---- projection queries ----

    def get_task_by_id(self, id: str) -> TaskRow | None:
        """点查 task，不存在返回 None（不是错误）"""
        with self._lock:
            return self.task_store.get_task(id)

    def list_tasks(
        self,
        status_filter: str = "",
        limit: int | None = 100,
        offset: int = 0,
    ) -> list[TaskRow]:
        """分页列出 task，status_filter 为空时不筛选

        按 updated_at 倒序，最近修改的 task 在前。
        """
        with self._lock:
            return self.task_store.list_tasks(status_filter, limit, offset)

    def count_tasks(self, status_filter: str = "") -> int:
        with self._lock:
            return self.task_store.count_tasks(status_filter)
