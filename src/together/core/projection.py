"""Projection 重建模块

从 event_log 重放重建 task 表（物化视图），确保事件溯源的一致性。
支持单事件应用和全量重建两种模式。

只有 entity_type="task" 的事件参与 projection；
upsert 事件的 payload 需要携带 task 完整快照（TaskSnapshotPayload）。
"""

import time
from collections.abc import Iterable

import structlog

from .models.enums import DELETED_STATUS, TASK_ENTITY, EventOp
from .models.event import DeltaEvent
from .models.payloads import snapshot_from_payload
from .models.task import TaskRow
from .store.event_store import EventStore
from .store.transaction import write_transaction

log = structlog.get_logger()


def apply_event(tasks: dict[str, TaskRow], event: DeltaEvent) -> None:
    """将单个事件应用到 task 状态（内存中操作）

    Args:
        tasks: id -> TaskRow 的映射表（会被就地修改）
        event: 要应用的事件

    Raises:
        ValueError: upsert 事件的 payload 不是 JSON 对象
    """
    if event.entity_type != TASK_ENTITY:
        return

    task_id = event.entity_id

    if event.op == EventOp.UPSERT:
        snapshot = snapshot_from_payload(event.payload)
        tasks[task_id] = TaskRow(
            id=task_id,
            **snapshot.model_dump(),
            updated_at=event.ts,
            deleted_at=0,
        )
    elif event.op == EventOp.DELETE:
        # 删除不存在的 task：日志有记录，projection 无变化
        if task_id in tasks:
            tasks[task_id] = tasks[task_id].model_copy(
                update={
                    "status": DELETED_STATUS,
                    "updated_at": event.ts,
                    "deleted_at": event.ts,
                }
            )


def replay_events(events: Iterable[DeltaEvent]) -> dict[str, TaskRow]:
    """按给定顺序重放事件，返回重建出的 task 映射"""
    tasks: dict[str, TaskRow] = {}
    for event in events:
        apply_event(tasks, event)
    return tasks


def rebuild_all(store: EventStore) -> int:
    """从 event_log 重建 task 表

    流程：
    1. 在写事务内读取所有事件（按 seq 排序）
    2. 在内存中应用所有事件，构建 task 状态
    3. 清空 task 表并写入重建结果
    任何一步失败都完整回滚，原 projection 保持不变。

    Args:
        store: 已打开的 EventStore

    Returns:
        处理的事件总数
    """
    start_time = time.monotonic()

    with store.lock, write_transaction(store.conn):
        events = store.event_log.get_events_since(0)
        event_count = len(events)

        log.info("projection_rebuild_started", event_count=event_count)

        tasks = replay_events(events)

        store.task_store.clear()
        for task in tasks.values():
            store.task_store.insert_row(task)

    elapsed_ms = int((time.monotonic() - start_time) * 1000)
    log.info(
        "projection_rebuild_completed",
        event_count=event_count,
        task_count=len(tasks),
        elapsed_ms=elapsed_ms,
    )

    return event_count
