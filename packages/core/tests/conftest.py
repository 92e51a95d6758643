"""packages/core 测试配置 -- 核心层 fixture"""

from collections.abc import AsyncGenerator
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio
from dcbstore.core import (
    EventStore,
    InMemoryLedger,
    SqliteLedger,
    create_sqlite_ledger,
)
from dcbstore.core.models import Event


@pytest_asyncio.fixture
async def memory_ledger() -> InMemoryLedger:
    """内存账本"""
    return InMemoryLedger()


@pytest_asyncio.fixture
async def sqlite_ledger(tmp_path: Path) -> AsyncGenerator[SqliteLedger, None]:
    """临时 SQLite 账本（分页大小设为 2，覆盖多页扫描）"""
    ledger = await create_sqlite_ledger(tmp_path / "ledger.db", read_batch_size=2)
    yield ledger
    await ledger.close()


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def ledger(request, tmp_path: Path):
    """两种账本后端参数化"""
    if request.param == "memory":
        yield InMemoryLedger()
        return
    ledger = await create_sqlite_ledger(tmp_path / "ledger.db", read_batch_size=2)
    yield ledger
    await ledger.close()


@pytest_asyncio.fixture
async def store(ledger) -> EventStore:
    """基于参数化账本的 EventStore"""
    return EventStore(ledger)


@pytest.fixture
def make_event():
    """构造测试事件的辅助函数"""

    def _make(
        event_type: str = "TestEvent",
        tags: list[str] | None = None,
        data: bytes = b"{}",
        with_id: bool = False,
    ) -> Event:
        return Event(
            event_type=event_type,
            data=data,
            tags=tags or [],
            event_id=uuid4() if with_id else None,
        )

    return _make
