"""DeltaEvent Domain Model

event_log 表 append-only：行一旦提交不再更新或删除。
seq 由数据库分配，从 1 开始严格单调递增，定义所有变更的全序。
"""

from pydantic import BaseModel, ConfigDict, Field

from .enums import EventOp


class DeltaEvent(BaseModel):
    """DeltaEvent 数据模型（不可变）

    payload 对核心而言是不透明字节串，只保证逐字节往返。
    """

    model_config = ConfigDict(frozen=True)

    seq: int = Field(default=0, ge=0, description="日志序号，由数据库分配，输入时忽略")
    entity_type: str = Field(description="实体类型，如 task / event / budget_tx")
    entity_id: str = Field(description="调用方提供的实体 ID")
    op: EventOp = Field(description="upsert | delete")
    payload: bytes = Field(default=b"", description="不透明 payload（当前为 JSON）")
    ts: int = Field(description="调用方提供的逻辑时间，epoch 毫秒")
