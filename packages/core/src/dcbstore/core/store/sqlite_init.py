"""SQLite 数据库初始化

PRAGMA 配置 + 账本表 DDL + 索引创建。
使用 aiosqlite 异步操作。
"""

import aiosqlite

# events 表 DDL（position 即 rowid，严格递增）
_EVENTS_DDL = """
CREATE TABLE IF NOT EXISTS events (
    position     INTEGER PRIMARY KEY,
    event_type   TEXT NOT NULL,
    data         BLOB NOT NULL,
    tags         TEXT NOT NULL DEFAULT '[]',
    event_id     TEXT,
    recorded_at  TEXT NOT NULL
);
"""

# 标签二级索引表：一个标签一行
_EVENT_TAGS_DDL = """
CREATE TABLE IF NOT EXISTS event_tags (
    tag       TEXT NOT NULL,
    position  INTEGER NOT NULL,

    PRIMARY KEY (tag, position),
    FOREIGN KEY (position) REFERENCES events(position)
) WITHOUT ROWID;
"""

_EVENTS_INDEXES = [
    # 类型二级索引（按位置有序）
    "CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type, position);",
    "CREATE INDEX IF NOT EXISTS idx_events_event_id ON events(event_id) WHERE event_id IS NOT NULL;",
    "CREATE INDEX IF NOT EXISTS idx_event_tags_position ON event_tags(position);",
]

# 幂等记录：带条件追加的批次
_APPEND_BATCHES_DDL = """
CREATE TABLE IF NOT EXISTS append_batches (
    batch_id        INTEGER PRIMARY KEY AUTOINCREMENT,
    fingerprint     TEXT NOT NULL,
    event_ids       TEXT NOT NULL,
    first_position  INTEGER NOT NULL,
    last_position   INTEGER NOT NULL
);
"""

_APPEND_BATCH_IDS_DDL = """
CREATE TABLE IF NOT EXISTS append_batch_ids (
    fingerprint  TEXT NOT NULL,
    event_id     TEXT NOT NULL,
    batch_id     INTEGER NOT NULL,

    PRIMARY KEY (fingerprint, event_id),
    FOREIGN KEY (batch_id) REFERENCES append_batches(batch_id)
) WITHOUT ROWID;
"""


async def init_db(conn: aiosqlite.Connection) -> None:
    """初始化数据库：设置 PRAGMA + 创建表 + 创建索引

    Args:
        conn: aiosqlite 数据库连接
    """
    # 设置 PRAGMA
    await conn.execute("PRAGMA journal_mode = WAL;")
    await conn.execute("PRAGMA foreign_keys = ON;")
    await conn.execute("PRAGMA busy_timeout = 5000;")

    # 创建表
    await conn.execute(_EVENTS_DDL)
    await conn.execute(_EVENT_TAGS_DDL)
    await conn.execute(_APPEND_BATCHES_DDL)
    await conn.execute(_APPEND_BATCH_IDS_DDL)

    # 创建索引
    for idx_sql in _EVENTS_INDEXES:
        await conn.execute(idx_sql)

    await conn.commit()


async def verify_wal_mode(conn: aiosqlite.Connection) -> bool:
    """验证 WAL 模式是否生效

    Returns:
        True 如果 WAL 模式已启用
    """
    cursor = await conn.execute("PRAGMA journal_mode;")
    row = await cursor.fetchone()
    return row is not None and row[0].lower() == "wal"
