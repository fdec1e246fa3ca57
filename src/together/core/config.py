"""配置模块 -- 可通过环境变量覆盖

包含数据库路径、busy_timeout、写入重试次数与退避等可配置项。
WAL 模式为固定配置，不对调用方开放。
"""

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

log = structlog.get_logger()


def _get_base_dir() -> Path:
    """获取 data 基础目录"""
    return Path(os.environ.get("TOGETHER_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "TOGETHER_DB_PATH",
        str(_get_base_dir() / "sqlite" / "together.db"),
    )


class StoreConfig(BaseModel):
    """Store 配置 -- 从环境变量加载

    环境变量:
        TOGETHER_DB_PATH: 数据库文件路径
        TOGETHER_BUSY_TIMEOUT_MS: 等待写锁的毫秒数（默认 5000）
        TOGETHER_WRITE_RETRY_ATTEMPTS: 写入最多尝试次数（默认 3）
        TOGETHER_WRITE_RETRY_BACKOFF_MS: 首次重试退避毫秒数（默认 50）
    """

    db_path: str = Field(description="SQLite 数据库文件路径")
    busy_timeout_ms: int = Field(default=5000, ge=0, description="busy_timeout（毫秒）")
    retry_attempts: int = Field(default=3, ge=1, description="写入最多尝试次数")
    retry_backoff_ms: int = Field(default=50, ge=0, description="首次重试退避（毫秒）")


def _int_from_env(env_var: str, field: str, db_path: str) -> int | None:
    """读取整数环境变量，并按 StoreConfig 字段约束校验"""
    val = os.environ.get(env_var)
    if not val:
        return None
    default = StoreConfig.model_fields[field].default
    try:
        parsed = int(val)
        StoreConfig(db_path=db_path, **{field: parsed})
    except (ValueError, ValidationError):
        log.warning(
            "invalid_store_config",
            env_var=env_var,
            value=val,
            fallback=default,
        )
        return None
    return parsed


def load_store_config() -> StoreConfig:
    """从环境变量加载 Store 配置

    非整数或超出取值范围（如负的 busy_timeout、0 次重试）的值
    只记录告警并回退到默认值，不阻塞启动。

    Returns:
        StoreConfig 实例
    """
    kwargs: dict = {"db_path": get_db_path()}

    for env_var, field in (
        ("TOGETHER_BUSY_TIMEOUT_MS", "busy_timeout_ms"),
        ("TOGETHER_WRITE_RETRY_ATTEMPTS", "retry_attempts"),
        ("TOGETHER_WRITE_RETRY_BACKOFF_MS", "retry_backoff_ms"),
    ):
        if (val := _int_from_env(env_var, field, kwargs["db_path"])) is not None:
            kwargs[field] = val

    return StoreConfig(**kwargs)
