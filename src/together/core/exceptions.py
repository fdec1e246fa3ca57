"""Store 异常体系

所有写入失败均完整回滚，不存在部分提交。
retryable=True 表示底层原因是锁竞争（SQLITE_BUSY / SQLITE_LOCKED），
可由上层重试包装器（RetryingWriter）重试。
"""

import sqlite3

# SQLite 主错误码（扩展错误码取低 8 位）
_SQLITE_BUSY = 5
_SQLITE_LOCKED = 6


def is_busy_error(exc: BaseException) -> bool:
    """判断 sqlite 异常是否由锁竞争引起"""
    if not isinstance(exc, sqlite3.Error):
        return False
    code = getattr(exc, "sqlite_errorcode", None)
    if code is not None:
        return (code & 0xFF) in (_SQLITE_BUSY, _SQLITE_LOCKED)
    message = str(exc).lower()
    return "locked" in message or "busy" in message


class StoreError(Exception):
    """Store 包基础异常"""

    def __init__(self, message: str, retryable: bool = False) -> None:
        """
        Args:
            message: 错误描述（包含底层 sqlite 错误文本）
            retryable: 是否可通过重试恢复
        """
        super().__init__(message)
        self.retryable = retryable

    @classmethod
    def from_sqlite(cls, prefix: str, exc: sqlite3.Error) -> "StoreError":
        """由 sqlite 异常构造，保留原始错误文本"""
        return cls(f"{prefix}: {exc}", retryable=is_busy_error(exc))


class NotOpenError(StoreError):
    """在 open() 成功之前调用了操作"""

    def __init__(self, message: str = "database not open") -> None:
        super().__init__(message, retryable=False)


class SchemaError(StoreError):
    """数据库文件无法打开或 schema 初始化失败"""


class TransactionError(StoreError):
    """事务 begin/commit 失败"""


class TransactionBeginError(TransactionError):
    """BEGIN IMMEDIATE 失败（通常是其他写者持有锁）"""


class CommitError(TransactionError):
    """COMMIT 失败，事务已回滚"""


class WriteError(StoreError):
    """插入/更新被拒绝"""


class ProjectionWriteError(WriteError):
    """task projection 写入失败"""


class LogAppendError(WriteError):
    """event_log 追加失败"""


class ReadError(StoreError):
    """查询失败"""
