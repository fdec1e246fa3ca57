"""CLI 入口模块 -- python -m together.core [options] <command>

支持的命令：
  version               打印 Store 版本
  rebuild-projections   从 event_log 重建 task 表
  since [cursor]        以 JSON lines 输出 seq > cursor 的事件
  list-tasks [status]   以 JSON lines 输出 task projection

全局选项（位于命令之前）：
  --log-format dev|json  日志格式，覆盖 TOGETHER_LOG_FORMAT
  --log-level LEVEL      日志级别，覆盖 TOGETHER_LOG_LEVEL

结果写 stdout，日志写 stderr。
"""

import base64
import json
import sys

import structlog

from .config import StoreConfig, load_store_config
from .exceptions import StoreError
from .logging_config import bind_invocation_context, setup_logging
from .models.event import DeltaEvent

log = structlog.get_logger()

_USAGE = """用法: python -m together.core [--log-format dev|json] [--log-level LEVEL] <command>
命令:
  version               打印 Store 版本
  rebuild-projections   从 event_log 重建 task 表
  since [cursor]        输出 seq > cursor 的事件
  list-tasks [status]   输出 task projection"""


_OPTIONS = ("--log-format", "--log-level")


def _split_options(args: list[str]) -> tuple[dict[str, str], list[str]]:
    """拆出命令之前的全局选项，支持 --opt value 与 --opt=value

    Raises:
        ValueError: 未知选项或选项缺少取值
    """
    options: dict[str, str] = {}
    i = 0
    while i < len(args) and args[i].startswith("--"):
        name, sep, value = args[i].partition("=")
        if name not in _OPTIONS:
            raise ValueError(f"未知选项: {name}")
        if not sep:
            i += 1
            if i >= len(args):
                raise ValueError(f"选项缺少取值: {name}")
            value = args[i]
        options[name] = value
        i += 1
    return options, args[i:]


def main(argv: list[str] | None = None) -> int:
    """CLI 主入口"""
    args = sys.argv[1:] if argv is None else argv
    try:
        options, args = _split_options(args)
    except ValueError as e:
        print(f"错误: {e}", file=sys.stderr)
        print(_USAGE)
        return 1
    if not args:
        print(_USAGE)
        return 1

    command, rest = args[0], args[1:]

    if command == "version":
        from .store import STORE_VERSION

        print(STORE_VERSION)
        return 0

    handlers = {
        "rebuild-projections": rebuild_projections,
        "since": print_since,
        "list-tasks": print_tasks,
    }
    handler = handlers.get(command)
    if handler is None:
        print(f"未知命令: {command}")
        print("可用命令: version, " + ", ".join(handlers))
        return 1

    try:
        setup_logging(
            log_format=options.get("--log-format"),
            log_level=options.get("--log-level"),
        )
    except ValueError as e:
        print(f"错误: {e}", file=sys.stderr)
        return 1

    config = load_store_config()
    bind_invocation_context(command, config.db_path)
    try:
        handler(config, rest)
    except (StoreError, ValueError) as e:
        log.error("command_failed", error=str(e))
        print(f"错误: {e}", file=sys.stderr)
        return 2
    return 0


def _event_to_json(event: DeltaEvent) -> str:
    try:
        payload = event.payload.decode("utf-8")
        encoding = "utf-8"
    except UnicodeDecodeError:
        payload = base64.b64encode(event.payload).decode("ascii")
        encoding = "base64"
    return json.dumps(
        {
            "seq": event.seq,
            "entity_type": event.entity_type,
            "entity_id": event.entity_id,
            "op": event.op.value,
            "payload": payload,
            "payload_encoding": encoding,
            "ts": event.ts,
        },
        ensure_ascii=False,
    )


def rebuild_projections(config: StoreConfig, args: list[str]) -> None:
    """执行 Projection 重建"""
    from .projection import rebuild_all
    from .store import open_store

    print(f"数据库路径: {config.db_path}")
    print("开始重建 Projection...")

    with open_store(config=config) as store:
        event_count = rebuild_all(store)
    print(f"重建完成，处理 {event_count} 条事件")


def print_since(config: StoreConfig, args: list[str]) -> None:
    """输出 cursor 之后的增量事件"""
    from .store import open_store

    cursor = int(args[0]) if args else 0
    with open_store(config=config) as store:
        for event in store.since(cursor):
            print(_event_to_json(event))


def print_tasks(config: StoreConfig, args: list[str]) -> None:
    """输出 task projection"""
    from .store import open_store

    status = args[0] if args else ""
    with open_store(config=config) as store:
        for task in store.list_tasks(status, limit=None):
            print(task.model_dump_json())


if __name__ == "__main__":
    sys.exit(main())
