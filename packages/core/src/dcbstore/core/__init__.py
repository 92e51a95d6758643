"""dcbstore Core -- Dynamic Consistency Boundary 一致性引擎

对带标签、带类型的 append-only 事件序列提供：
- 查询匹配（OR-of-AND 查询）
- 带追加条件的乐观并发控制与幂等重试
- 正向/反向/订阅读取

公开接口从此入口导入。
"""

from .config import StoreConfig, load_store_config
from .cursor import ReadCursor
from .event_store import EventStore
from .exceptions import (
    CorruptionError,
    DCBError,
    IntegrityError,
    InvalidArgumentError,
    StorageError,
    StorageIOError,
)
from .idempotency import IdempotencyResolver, condition_fingerprint
from .logging_config import setup_logging
from .matching import item_matches, matches_any, query_matches
from .models import (
    AppendBatch,
    AppendCondition,
    Event,
    Query,
    QueryItem,
    SequencedEvent,
)
from .notifier import AppendNotifier
from .store import (
    InMemoryLedger,
    PositionLedger,
    SqliteLedger,
    create_sqlite_ledger,
)


async def create_event_store(config: StoreConfig | None = None) -> EventStore:
    """按配置创建 EventStore

    Args:
        config: 存储配置，None 时从环境变量加载

    Returns:
        EventStore 实例
    """
    config = config or load_store_config()
    if config.backend == "sqlite":
        ledger = await create_sqlite_ledger(
            config.db_path,
            read_batch_size=config.read_batch_size,
        )
    else:
        ledger = InMemoryLedger()
    return EventStore(ledger, AppendNotifier(queue_maxsize=config.subscriber_queue_size))


__all__ = [
    # 模型
    "Event",
    "SequencedEvent",
    "AppendBatch",
    "QueryItem",
    "Query",
    "AppendCondition",
    # 匹配
    "item_matches",
    "query_matches",
    "matches_any",
    # 账本
    "PositionLedger",
    "InMemoryLedger",
    "SqliteLedger",
    "create_sqlite_ledger",
    # 服务
    "EventStore",
    "ReadCursor",
    "AppendNotifier",
    "IdempotencyResolver",
    "condition_fingerprint",
    "create_event_store",
    # 配置与日志
    "StoreConfig",
    "load_store_config",
    "setup_logging",
    # 异常
    "DCBError",
    "IntegrityError",
    "StorageError",
    "CorruptionError",
    "StorageIOError",
    "InvalidArgumentError",
]
