"""TaskStore SQLite 实现

task 表是 event_log 的物化视图（projection）。
所有写入都应通过 transaction 模块与日志追加一同提交，此处仅提供数据库操作。
"""

import sqlite3

from ..exceptions import ProjectionWriteError, ReadError
from ..models.enums import DELETED_STATUS
from ..models.task import TaskRow

_COLUMNS = (
    "id, title, assignees_csv, due_at, points, status, visibility_tag, updated_at, deleted_at"
)


class SqliteTaskStore:
    """task 表访问层"""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def upsert_task(self, task: TaskRow) -> None:
        """写入或整行覆盖 task（不做字段合并）

        重复 upsert 会替换所有字段，并清除软删除标记。
        """
        try:
            self._conn.execute(
                f"""
                INSERT INTO task ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, 0)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    assignees_csv = excluded.assignees_csv,
                    due_at = excluded.due_at,
                    points = excluded.points,
                    status = excluded.status,
                    visibility_tag = excluded.visibility_tag,
                    updated_at = excluded.updated_at,
                    deleted_at = 0
                """,
                (
                    task.id,
                    task.title,
                    task.assignees_csv,
                    task.due_at,
                    task.points,
                    task.status,
                    task.visibility_tag,
                    task.updated_at,
                ),
            )
        except sqlite3.Error as exc:
            raise ProjectionWriteError.from_sqlite("task upsert failed", exc) from exc

    def mark_deleted(self, task_id: str, ts: int) -> bool:
        """软删除：保留行，status 置为 deleted 并记录 deleted_at

        Returns:
            True 如果存在对应的 projection 行
        """
        try:
            cursor = self._conn.execute(
                """
                UPDATE task
                SET status = ?, deleted_at = ?, updated_at = ?
                WHERE id = ?
                """,
                (DELETED_STATUS, ts, ts, task_id),
            )
        except sqlite3.Error as exc:
            raise ProjectionWriteError.from_sqlite("task delete failed", exc) from exc
        return cursor.rowcount > 0

    def insert_row(self, task: TaskRow) -> None:
        """原样插入整行（projection 重建时使用）"""
        try:
            self._conn.execute(
                f"INSERT INTO task ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    task.id,
                    task.title,
                    task.assignees_csv,
                    task.due_at,
                    task.points,
                    task.status,
                    task.visibility_tag,
                    task.updated_at,
                    task.deleted_at,
                ),
            )
        except sqlite3.Error as exc:
            raise ProjectionWriteError.from_sqlite("task insert failed", exc) from exc

    def clear(self) -> None:
        try:
            self._conn.execute("DELETE FROM task")
        except sqlite3.Error as exc:
            raise ProjectionWriteError.from_sqlite("task clear failed", exc) from exc

    def get_task(self, task_id: str) -> TaskRow | None:
        """根据 id 查询 task，不存在返回 None"""
        try:
            row = self._conn.execute(
                f"SELECT {_COLUMNS} FROM task WHERE id = ?",
                (task_id,),
            ).fetchone()
        except sqlite3.Error as exc:
            raise ReadError.from_sqlite("task query failed", exc) from exc
        if row is None:
            return None
        return self._row_to_task(row)

    def list_tasks(
        self,
        status: str = "",
        limit: int | None = None,
        offset: int = 0,
    ) -> list[TaskRow]:
        """查询 task 列表，支持按状态筛选和分页

        按 updated_at 倒序，同一时间戳按 id 正序，保证同一快照内顺序稳定。
        status 为空字符串时不筛选。limit=None 表示不限条数。
        """
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        if offset < 0:
            raise ValueError(f"offset must be >= 0, got {offset}")

        sql = f"SELECT {_COLUMNS} FROM task"
        params: list = []
        if status:
            sql += " WHERE status = ?"
            params.append(status)
        sql += " ORDER BY updated_at DESC, id ASC LIMIT ? OFFSET ?"
        params.extend([-1 if limit is None else limit, offset])

        try:
            rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise ReadError.from_sqlite("task query failed", exc) from exc
        return [self._row_to_task(row) for row in rows]

    def count_tasks(self, status: str = "") -> int:
        try:
            if status:
                row = self._conn.execute(
                    "SELECT COUNT(*) FROM task WHERE status = ?", (status,)
                ).fetchone()
            else:
                row = self._conn.execute("SELECT COUNT(*) FROM task").fetchone()
        except sqlite3.Error as exc:
            raise ReadError.from_sqlite("task query failed", exc) from exc
        return int(row[0])

    @staticmethod
    def _row_to_task(row: sqlite3.Row) -> TaskRow:
        """将数据库行转换为 TaskRow 模型"""
        return TaskRow(
            id=row[0],
            title=row[1],
            assignees_csv=row[2] or "",
            due_at=row[3] or 0,
            points=row[4] or 0,
            status=row[5] or "",
            visibility_tag=row[6] or "",
            updated_at=row[7],
            deleted_at=row[8] or 0,
        )
