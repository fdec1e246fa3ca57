"""2gether Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .enums import (
    DEFAULT_STATUS,
    DEFAULT_VISIBILITY,
    DELETED_STATUS,
    TASK_ENTITY,
    EventOp,
)
from .event import DeltaEvent
from .payloads import (
    TaskDeletePayload,
    TaskSnapshotPayload,
    decode_payload,
    encode_payload,
    snapshot_from_payload,
)
from .task import TaskRow

__all__ = [
    # 枚举与常量
    "EventOp",
    "TASK_ENTITY",
    "DEFAULT_STATUS",
    "DEFAULT_VISIBILITY",
    "DELETED_STATUS",
    # Event
    "DeltaEvent",
    # Task
    "TaskRow",
    # Payloads
    "TaskSnapshotPayload",
    "TaskDeletePayload",
    "encode_payload",
    "decode_payload",
    "snapshot_from_payload",
]
