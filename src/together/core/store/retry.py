"""RetryingWriter -- 写入重试包装器

在 EventStore 之上做有界重试：仅对 retryable=True 的错误（锁竞争）重试，
退避时间按 backoff_ms * 2**(n-1) 指数增长，耗尽次数后抛出最后一次的错误。
核心事务逻辑本身不做任何重试。
"""

import time
from collections.abc import Callable
from typing import TypeVar

import structlog

from ..config import StoreConfig
from ..exceptions import StoreError
from ..models.event import DeltaEvent
from .event_store import EventStore

log = structlog.get_logger()

T = TypeVar("T")


class RetryingWriter:
    """带有界重试的写入器"""

    def __init__(
        self,
        store: EventStore,
        attempts: int = 3,
        backoff_ms: int = 50,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Args:
            store: 被包装的 EventStore
            attempts: 最多尝试次数（含首次）
            backoff_ms: 首次重试前的等待毫秒数
            sleep: 等待函数（测试可替换）
        """
        if attempts < 1:
            raise ValueError(f"attempts must be >= 1, got {attempts}")
        self._store = store
        self._attempts = attempts
        self._backoff_ms = backoff_ms
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        store: EventStore,
        config: StoreConfig,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "RetryingWriter":
        """按 StoreConfig 的 retry_attempts / retry_backoff_ms 构造"""
        return cls(
            store,
            attempts=config.retry_attempts,
            backoff_ms=config.retry_backoff_ms,
            sleep=sleep,
        )

    def _call(self, operation: str, fn: Callable[..., T], *args, **kwargs) -> T:
        for attempt in range(1, self._attempts + 1):
            try:
                return fn(*args, **kwargs)
            except StoreError as e:
                if not e.retryable or attempt == self._attempts:
                    raise
                delay_ms = self._backoff_ms * 2 ** (attempt - 1)
                log.warning(
                    "write_retry_scheduled",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=self._attempts,
                    delay_ms=delay_ms,
                    error=str(e),
                )
                self._sleep(delay_ms / 1000)
        raise AssertionError("unreachable")

    def append(self, event: DeltaEvent) -> int:
        return self._call("append", self._store.append, event)

    def upsert_task(self, *args, **kwargs) -> int:
        return self._call("upsert_task", self._store.upsert_task, *args, **kwargs)

    def delete_task(self, *args, **kwargs) -> int:
        return self._call("delete_task", self._store.delete_task, *args, **kwargs)
