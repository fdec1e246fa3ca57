"""Task 事件 payload 及 JSON 编解码

核心存储层把 payload 当作不透明字节串；此处的模型只服务于
默认 payload 的生成和 projection 重放。
"""

import json
from typing import Any

from pydantic import AliasChoices, BaseModel, Field

from .enums import DEFAULT_STATUS, DEFAULT_VISIBILITY


class TaskSnapshotPayload(BaseModel):
    """upsert 事件 payload：task 的完整快照

    兼容旧客户端写入的 "assignees" 键。
    """

    title: str = ""
    assignees_csv: str = Field(
        default="",
        validation_alias=AliasChoices("assignees_csv", "assignees"),
    )
    due_at: int = 0
    points: int = 0
    status: str = DEFAULT_STATUS
    visibility_tag: str = DEFAULT_VISIBILITY


class TaskDeletePayload(BaseModel):
    """delete 事件 payload"""

    reason: str = Field(default="", description="删除原因，如 user_deleted")


def encode_payload(model: BaseModel | dict[str, Any]) -> bytes:
    """将 payload 模型或 dict 编码为 UTF-8 JSON 字节"""
    data = model.model_dump() if isinstance(model, BaseModel) else model
    return json.dumps(data, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def decode_payload(payload: bytes) -> dict[str, Any]:
    """将 JSON payload 解码为 dict

    Raises:
        ValueError: payload 不是 JSON 对象
    """
    if not payload:
        return {}
    data = json.loads(payload.decode("utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"payload is not a JSON object: {type(data).__name__}")
    return data


def snapshot_from_payload(payload: bytes) -> TaskSnapshotPayload:
    """将 upsert payload 解码为 task 快照，缺失字段取默认值

    Raises:
        ValueError: payload 不是 JSON 对象或字段类型不合法
    """
    return TaskSnapshotPayload.model_validate(decode_payload(payload))
