"""TaskRow Domain Model

task 表是 event_log 的物化视图（projection），保存每个 task 的当前状态。
updated_at 恒等于该 id 最近一条日志事件的 ts。
"""

from pydantic import BaseModel, Field

from .enums import DEFAULT_STATUS, DEFAULT_VISIBILITY, DELETED_STATUS


class TaskRow(BaseModel):
    """TaskRow 数据模型"""

    id: str = Field(description="主键，调用方提供，跨更新保持不变")
    title: str = Field(description="显示文本")
    assignees_csv: str = Field(default="", description="逗号分隔的执行人 ID")
    due_at: int = Field(default=0, description="截止时间 epoch 毫秒，0 表示未设置")
    points: int = Field(default=0, description="奖励分值")
    status: str = Field(default=DEFAULT_STATUS, description="状态标签")
    visibility_tag: str = Field(default=DEFAULT_VISIBILITY, description="共享范围标签")
    updated_at: int = Field(description="最近一次写入的 epoch 毫秒")
    deleted_at: int = Field(default=0, description="软删除时间 epoch 毫秒，0 表示未删除")

    @property
    def assignees(self) -> list[str]:
        """拆分后的执行人列表"""
        return [a.strip() for a in self.assignees_csv.split(",") if a.strip()]

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at > 0 or self.status == DELETED_STATUS
