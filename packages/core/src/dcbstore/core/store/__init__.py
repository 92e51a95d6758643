"""dcbstore Core Store -- 位置账本实现

提供内存与 SQLite 两种账本，以及 SQLite 账本的工厂函数。
"""

from pathlib import Path

import aiosqlite
import structlog

from .memory_ledger import InMemoryLedger
from .protocols import PositionLedger
from .sqlite_init import init_db, verify_wal_mode
from .sqlite_ledger import SqliteLedger

log = structlog.get_logger()


async def create_sqlite_ledger(
    db_path: str | Path,
    read_batch_size: int = 100,
) -> SqliteLedger:
    """创建 SQLite 账本

    Args:
        db_path: SQLite 数据库文件路径
        read_batch_size: 扫描时每页读取的行数

    Returns:
        已初始化并加载 head 的 SqliteLedger
    """
    # 确保数据库目录存在
    db_dir = Path(db_path).parent
    db_dir.mkdir(parents=True, exist_ok=True)

    conn = await aiosqlite.connect(str(db_path))
    await init_db(conn)

    ledger = SqliteLedger(conn, read_batch_size=read_batch_size)
    head = await ledger.load_head()
    log.info("ledger_opened", backend="sqlite", db_path=str(db_path), head=head)
    return ledger


__all__ = [
    "PositionLedger",
    "InMemoryLedger",
    "SqliteLedger",
    "create_sqlite_ledger",
    "init_db",
    "verify_wal_mode",
]
