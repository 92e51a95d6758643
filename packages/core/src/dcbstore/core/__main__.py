"""CLI 入口模块 -- python -m dcbstore.core <command>

支持的命令：
  head            打印当前 head 位置
  read [limit]    打印事件（位置、类型、标签）
  verify          校验账本完整性
"""

import asyncio
import sys

from . import create_event_store
from .config import load_store_config
from .exceptions import CorruptionError
from .logging_config import setup_logging

_USAGE = """用法: python -m dcbstore.core <command>
命令:
  head            打印当前 head 位置
  read [limit]    打印事件（位置、类型、标签）
  verify          校验账本完整性"""


def main() -> None:
    """CLI 主入口"""
    if len(sys.argv) < 2:
        print(_USAGE)
        sys.exit(1)

    setup_logging()
    command = sys.argv[1]

    if command == "head":
        asyncio.run(print_head())
    elif command == "read":
        limit = int(sys.argv[2]) if len(sys.argv) > 2 else None
        asyncio.run(print_events(limit))
    elif command == "verify":
        sys.exit(asyncio.run(verify_ledger()))
    else:
        print(f"未知命令: {command}")
        print("可用命令: head, read, verify")
        sys.exit(1)


async def print_head() -> None:
    """打印 head"""
    async with await create_event_store(load_store_config()) as store:
        head = await store.head()
        print(head if head is not None else "空")


async def print_events(limit: int | None) -> None:
    """按位置正序打印事件"""
    async with await create_event_store(load_store_config()) as store:
        async with store.read(limit=limit) as cursor:
            async for sequenced in cursor:
                event = sequenced.event
                tags = ",".join(sorted(event.tags))
                print(f"{sequenced.position}\t{event.event_type}\t{tags}")


async def verify_ledger() -> int:
    """执行账本校验，损坏时返回退出码 1"""
    config = load_store_config()
    print(f"账本后端: {config.backend}")
    if config.backend == "sqlite":
        print(f"数据库路径: {config.db_path}")

    async with await create_event_store(config) as store:
        try:
            count = await store.verify()
        except CorruptionError as e:
            print(f"校验失败: {e}")
            return 1
    print(f"校验完成，共 {count} 条事件")
    return 0


if __name__ == "__main__":
    main()
