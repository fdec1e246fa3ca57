"""枚举与常量定义

entity_type 为自由字符串，核心不做枚举校验；
此处仅给出 projection 相关的已知取值。
"""

from enum import StrEnum


class EventOp(StrEnum):
    """事件对实体的语义效果"""

    UPSERT = "upsert"
    DELETE = "delete"


# 唯一拥有物化视图的实体类型
TASK_ENTITY = "task"

# task projection 字段默认值
DEFAULT_STATUS = "open"
DEFAULT_VISIBILITY = "family"

# 软删除后 projection 行的 status
DELETED_STATUS = "deleted"
