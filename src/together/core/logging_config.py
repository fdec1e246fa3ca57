"""structlog 配置模块

日志一律写 stderr，stdout 只留给 CLI 的 JSON lines 输出，
因此 json 模式下两条流都可以被机器解析。

dev 模式：彩色可读输出（默认）
json 模式：每行一条 JSON 事件
"""

import logging
import os
import sys
from typing import TextIO

import structlog

LOG_FORMATS = ("dev", "json")


def _resolve_level(log_level: str) -> int | None:
    level = logging.getLevelName(log_level.upper())
    return level if isinstance(level, int) else None


def setup_logging(
    log_format: str | None = None,
    log_level: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """初始化 structlog 配置

    参数优先于环境变量 TOGETHER_LOG_FORMAT / TOGETHER_LOG_LEVEL。

    Args:
        log_format: "dev" 或 "json"
        log_level: 标准 logging 级别名，如 "DEBUG"、"WARNING"
        stream: 输出流，缺省为调用时的 sys.stderr

    Raises:
        ValueError: 显式传入了未知的格式或级别
    """
    if log_format is not None and log_format not in LOG_FORMATS:
        raise ValueError(f"unknown log format: {log_format}")
    if log_level is not None and _resolve_level(log_level) is None:
        raise ValueError(f"unknown log level: {log_level}")

    # 环境变量非法时静默回退，不阻塞启动
    env_format = os.environ.get("TOGETHER_LOG_FORMAT", "dev")
    fmt = log_format or (env_format if env_format in LOG_FORMATS else "dev")
    level = _resolve_level(log_level or os.environ.get("TOGETHER_LOG_LEVEL", "INFO"))

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]

    if fmt == "json":
        renderer = structlog.processors.JSONRenderer(ensure_ascii=False)
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=(stream or sys.stderr).isatty(),
        )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level if level is not None else logging.INFO)


def bind_invocation_context(command: str, db_path: str) -> None:
    """为一次 CLI 调用绑定 command / db_path，之后的所有日志都带上这两个字段"""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(command=command, db_path=db_path)
