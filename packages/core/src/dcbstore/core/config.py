"""StoreConfig -- 存储配置加载

从环境变量加载配置:
    DCBSTORE_BACKEND: 账本后端（memory/sqlite，默认 memory）
    DCBSTORE_DATA_DIR: 数据基础目录（默认 data）
    DCBSTORE_DB_PATH: SQLite 数据库路径（默认 <data>/sqlite/dcbstore.db）
    DCBSTORE_READ_BATCH_SIZE: 扫描分页大小（默认 100）
    DCBSTORE_SUBSCRIBER_QUEUE_SIZE: 订阅唤醒队列大小（默认 16）
"""

import os
from pathlib import Path
from typing import Literal

import structlog
from pydantic import BaseModel, Field

log = structlog.get_logger()

DEFAULT_READ_BATCH_SIZE = 100
DEFAULT_SUBSCRIBER_QUEUE_SIZE = 16


def _get_base_dir() -> Path:
    """获取 data 基础目录"""
    return Path(os.environ.get("DCBSTORE_DATA_DIR", "data"))


def get_db_path() -> str:
    """获取 SQLite 数据库路径"""
    return os.environ.get(
        "DCBSTORE_DB_PATH",
        str(_get_base_dir() / "sqlite" / "dcbstore.db"),
    )


class StoreConfig(BaseModel):
    """存储配置"""

    backend: Literal["memory", "sqlite"] = Field(
        default="memory",
        description="账本后端：memory / sqlite",
    )
    db_path: str = Field(
        default_factory=get_db_path,
        description="SQLite 数据库文件路径（仅 sqlite 后端）",
    )
    read_batch_size: int = Field(
        default=DEFAULT_READ_BATCH_SIZE,
        ge=1,
        description="扫描时每页读取的行数",
    )
    subscriber_queue_size: int = Field(
        default=DEFAULT_SUBSCRIBER_QUEUE_SIZE,
        ge=1,
        description="订阅者唤醒队列大小",
    )


def _int_from_env(env_var: str, fallback: int) -> int | None:
    val = os.environ.get(env_var)
    if not val:
        return None
    try:
        return int(val)
    except ValueError:
        log.warning(
            "invalid_int_config",
            env_var=env_var,
            value=val,
            fallback=fallback,
        )
        # 使用默认值，不阻塞启动
        return None


def load_store_config() -> StoreConfig:
    """从环境变量加载存储配置

    Returns:
        StoreConfig 实例
    """
    kwargs: dict = {}

    if val := os.environ.get("DCBSTORE_BACKEND"):
        kwargs["backend"] = val

    kwargs["db_path"] = get_db_path()

    if (val := _int_from_env("DCBSTORE_READ_BATCH_SIZE", DEFAULT_READ_BATCH_SIZE)) is not None:
        kwargs["read_batch_size"] = val

    if (
        val := _int_from_env("DCBSTORE_SUBSCRIBER_QUEUE_SIZE", DEFAULT_SUBSCRIBER_QUEUE_SIZE)
    ) is not None:
        kwargs["subscriber_queue_size"] = val

    return StoreConfig(**kwargs)
