"""StoreConfig 加载测试"""

from pathlib import Path

import pytest
from dcbstore.core import (
    EventStore,
    InMemoryLedger,
    SqliteLedger,
    StoreConfig,
    create_event_store,
    load_store_config,
)
from dcbstore.core.config import get_db_path
from dcbstore.core.models import Event
from pydantic import ValidationError

_ENV_VARS = [
    "DCBSTORE_BACKEND",
    "DCBSTORE_DATA_DIR",
    "DCBSTORE_DB_PATH",
    "DCBSTORE_READ_BATCH_SIZE",
    "DCBSTORE_SUBSCRIBER_QUEUE_SIZE",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestLoadStoreConfig:
    """环境变量加载"""

    def test_defaults(self):
        config = load_store_config()
        assert config.backend == "memory"
        assert config.read_batch_size == 100
        assert config.subscriber_queue_size == 16
        assert Path(config.db_path) == Path("data") / "sqlite" / "dcbstore.db"

    def test_data_dir(self, monkeypatch):
        monkeypatch.setenv("DCBSTORE_DATA_DIR", "/srv/dcb")
        assert Path(get_db_path()) == Path("/srv/dcb/sqlite/dcbstore.db")

    def test_env_overrides(self, monkeypatch, tmp_path: Path):
        monkeypatch.setenv("DCBSTORE_BACKEND", "sqlite")
        monkeypatch.setenv("DCBSTORE_DB_PATH", str(tmp_path / "x.db"))
        monkeypatch.setenv("DCBSTORE_READ_BATCH_SIZE", "25")
        monkeypatch.setenv("DCBSTORE_SUBSCRIBER_QUEUE_SIZE", "4")

        config = load_store_config()
        assert config.backend == "sqlite"
        assert config.db_path == str(tmp_path / "x.db")
        assert config.read_batch_size == 25
        assert config.subscriber_queue_size == 4

    def test_invalid_int_falls_back(self, monkeypatch):
        """非整数配置使用默认值"""
        monkeypatch.setenv("DCBSTORE_READ_BATCH_SIZE", "lots")
        assert load_store_config().read_batch_size == 100

    def test_invalid_backend_rejected(self, monkeypatch):
        monkeypatch.setenv("DCBSTORE_BACKEND", "postgres")
        with pytest.raises(ValidationError):
            load_store_config()

    def test_non_positive_batch_size_rejected(self):
        with pytest.raises(ValidationError):
            StoreConfig(read_batch_size=0)


class TestCreateEventStore:
    """按配置创建 EventStore"""

    async def test_memory_backend(self):
        store = await create_event_store(StoreConfig())
        assert isinstance(store, EventStore)
        assert isinstance(store.ledger, InMemoryLedger)
        await store.close()

    async def test_sqlite_backend(self, tmp_path: Path):
        db_path = tmp_path / "nested" / "store.db"
        config = StoreConfig(backend="sqlite", db_path=str(db_path), read_batch_size=3)

        async with await create_event_store(config) as store:
            assert isinstance(store.ledger, SqliteLedger)
            assert await store.append([Event(event_type="A")]) == 1
        assert db_path.exists()

        async with await create_event_store(config) as store:
            assert await store.head() == 1
