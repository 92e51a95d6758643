"""PositionLedger SQLite 实现

events 表 append-only：只允许插入，不允许更新或删除。
position 即 rowid，整批事件在同一事务内写入并提交。
event_tags 表是标签二级索引，类型索引建在 events(event_type, position) 上。

已提交 head 保存在内存中，仅在事务提交后推进；扫描与存在性检查
都以它为上界，同一连接上未提交的行对读者不可见。
"""

import asyncio
import json
from collections.abc import AsyncIterator, Sequence
from datetime import UTC, datetime
from uuid import UUID

import aiosqlite
import structlog

from ..exceptions import CorruptionError, InvalidArgumentError, StorageIOError
from ..models.event import AppendBatch, Event, SequencedEvent
from ..models.query import Query

log = structlog.get_logger()

_SELECT_EVENT = "SELECT e.position, e.event_type, e.data, e.tags, e.event_id FROM events e"


def _placeholders(count: int) -> str:
    return ", ".join("?" * count)


def _query_clause(query: Query, after: int, until: int) -> tuple[str, list]:
    """将 Query 编译为 WHERE 子句（OR-of-AND）

    标签子集通过 event_tags 分组计数判断，子查询限定在 (after, until] 区间。
    """
    if query.matches_all:
        return "1", []

    clauses: list[str] = []
    params: list = []
    for item in query.items:
        parts: list[str] = []
        if item.types:
            types = sorted(item.types)
            parts.append(f"e.event_type IN ({_placeholders(len(types))})")
            params.extend(types)
        if item.tags:
            tags = sorted(item.tags)
            parts.append(
                "e.position IN ("
                "SELECT t.position FROM event_tags t "
                f"WHERE t.tag IN ({_placeholders(len(tags))}) "
                "AND t.position > ? AND t.position <= ? "
                "GROUP BY t.position HAVING COUNT(*) = ?)"
            )
            params.extend(tags)
            params.extend([after, until, len(tags)])
        clauses.append("(" + " AND ".join(parts) + ")")
    return " OR ".join(clauses), params


class SqliteLedger:
    """PositionLedger 的 SQLite 实现"""

    def __init__(self, conn: aiosqlite.Connection, read_batch_size: int = 100) -> None:
        self.conn = conn
        self._read_batch_size = read_batch_size
        self._head = 0
        self._write_lock = asyncio.Lock()

    async def load_head(self) -> int | None:
        """从 events 表加载已提交 head（打开账本时调用）"""
        try:
            cursor = await self.conn.execute("SELECT COALESCE(MAX(position), 0) FROM events")
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageIOError("读取 head 失败", e) from e
        self._head = row[0] if row else 0
        return self._head or None

    async def append(
        self,
        events: Sequence[Event],
        fingerprint: str | None = None,
    ) -> tuple[int, int]:
        """追加一批事件（单事务）

        注意：失败时回滚，不消耗任何位置。
        """
        if not events:
            raise InvalidArgumentError("不能追加空批次")

        async with self._write_lock:
            first = self._head + 1
            last = first + len(events) - 1
            recorded_at = datetime.now(UTC).isoformat()
            try:
                await self.conn.executemany(
                    """
                    INSERT INTO events (position, event_type, data, tags, event_id, recorded_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            first + offset,
                            event.event_type,
                            event.data,
                            json.dumps(sorted(event.tags), ensure_ascii=False),
                            str(event.event_id) if event.event_id else None,
                            recorded_at,
                        )
                        for offset, event in enumerate(events)
                    ],
                )
                await self.conn.executemany(
                    "INSERT INTO event_tags (tag, position) VALUES (?, ?)",
                    [
                        (tag, first + offset)
                        for offset, event in enumerate(events)
                        for tag in sorted(event.tags)
                    ],
                )
                if fingerprint is not None and any(e.event_id for e in events):
                    await self._record_batch(fingerprint, events, first, last)

                await self.conn.commit()
            except aiosqlite.Error as e:
                await self.conn.rollback()
                log.error("storage_error", operation="append", error=str(e))
                raise StorageIOError("追加事件失败", e) from e
            except BaseException:
                # 取消可能发生在 commit 之后，回滚后按已提交数据对齐 head
                await self.conn.rollback()
                await self.load_head()
                log.warning("append_interrupted", first_position=first, head=self._head)
                raise

            self._head = last
        return first, last

    async def _record_batch(
        self,
        fingerprint: str,
        events: Sequence[Event],
        first: int,
        last: int,
    ) -> None:
        """在当前事务内写入幂等记录"""
        event_ids = [str(e.event_id) if e.event_id else None for e in events]
        cursor = await self.conn.execute(
            """
            INSERT INTO append_batches (fingerprint, event_ids, first_position, last_position)
            VALUES (?, ?, ?, ?)
            """,
            (fingerprint, json.dumps(event_ids), first, last),
        )
        batch_id = cursor.lastrowid
        await self.conn.executemany(
            "INSERT INTO append_batch_ids (fingerprint, event_id, batch_id) VALUES (?, ?, ?)",
            [(fingerprint, event_id, batch_id) for event_id in event_ids if event_id],
        )

    async def head(self) -> int | None:
        return self._head or None

    async def exists_after(self, after: int | None, query: Query) -> bool:
        after = after or 0
        head = self._head
        if head <= after:
            return False
        if query.matches_all:
            return True

        clause, params = _query_clause(query, after, head)
        try:
            cursor = await self.conn.execute(
                f"SELECT 1 FROM events e WHERE e.position > ? AND e.position <= ? "
                f"AND ({clause}) LIMIT 1",
                [after, head, *params],
            )
            row = await cursor.fetchone()
        except aiosqlite.Error as e:
            log.error("storage_error", operation="exists_after", error=str(e))
            raise StorageIOError("存在性检查失败", e) from e
        return row is not None

    async def scan(
        self,
        query: Query,
        start: int | None = None,
        backwards: bool = False,
        limit: int | None = None,
        until: int | None = None,
    ) -> AsyncIterator[SequencedEvent]:
        """按 read_batch_size 分页的惰性扫描（keyset 分页）"""
        upper = self._head if until is None else min(until, self._head)
        if limit == 0:
            return

        clause, params = _query_clause(query, 0, upper)
        if backwards:
            next_position = upper if start is None else min(start - 1, upper)
        else:
            next_position = max(start or 1, 1)

        delivered = 0
        while next_position >= 1 and next_position <= upper:
            page_size = self._read_batch_size
            if limit is not None:
                page_size = min(page_size, limit - delivered)

            if backwards:
                sql = (
                    f"{_SELECT_EVENT} WHERE e.position <= ? AND ({clause}) "
                    "ORDER BY e.position DESC LIMIT ?"
                )
                args = [next_position, *params, page_size]
            else:
                sql = (
                    f"{_SELECT_EVENT} WHERE e.position >= ? AND e.position <= ? "
                    f"AND ({clause}) ORDER BY e.position ASC LIMIT ?"
                )
                args = [next_position, upper, *params, page_size]

            try:
                cursor = await self.conn.execute(sql, args)
                rows = await cursor.fetchall()
            except aiosqlite.Error as e:
                log.error("storage_error", operation="scan", error=str(e))
                raise StorageIOError("读取事件失败", e) from e

            for row in rows:
                yield self._row_to_event(row)
            delivered += len(rows)

            if len(rows) < page_size:
                return
            if limit is not None and delivered >= limit:
                return
            last_position = rows[-1][0]
            next_position = last_position - 1 if backwards else last_position + 1

    async def find_batches(
        self,
        fingerprint: str,
        event_ids: Sequence[UUID],
    ) -> list[AppendBatch]:
        if not event_ids:
            return []
        keys = [str(event_id) for event_id in event_ids]
        try:
            cursor = await self.conn.execute(
                f"""
                SELECT DISTINCT b.fingerprint, b.event_ids, b.first_position, b.last_position
                FROM append_batch_ids i
                JOIN append_batches b ON b.batch_id = i.batch_id
                WHERE i.fingerprint = ? AND i.event_id IN ({_placeholders(len(keys))})
                ORDER BY b.first_position ASC
                """,
                [fingerprint, *keys],
            )
            rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            log.error("storage_error", operation="find_batches", error=str(e))
            raise StorageIOError("查询幂等记录失败", e) from e

        return [
            AppendBatch(
                fingerprint=row[0],
                event_ids=tuple(json.loads(row[1])),
                first_position=row[2],
                last_position=row[3],
            )
            for row in rows
        ]

    async def verify(self) -> int:
        """校验位置连续性、行可解码性、标签索引一致性"""
        try:
            cursor = await self.conn.execute(
                "SELECT COUNT(*), COALESCE(MIN(position), 0), COALESCE(MAX(position), 0) "
                "FROM events"
            )
            count, lowest, highest = await cursor.fetchone()
            cursor = await self.conn.execute(
                "SELECT position, tag FROM event_tags ORDER BY position"
            )
            tag_rows = await cursor.fetchall()
            cursor = await self.conn.execute(f"{_SELECT_EVENT} ORDER BY e.position ASC")
            event_rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            raise StorageIOError("校验账本失败", e) from e

        if count and (lowest != 1 or highest != count):
            raise CorruptionError(
                f"位置不连续: {count} 条事件分布在 {lowest}..{highest}"
            )
        if highest != self._head:
            raise CorruptionError(f"已提交 head {self._head} 与账本最大位置 {highest} 不一致")

        indexed: dict[int, set[str]] = {}
        for position, tag in tag_rows:
            indexed.setdefault(position, set()).add(tag)
        for row in event_rows:
            sequenced = self._row_to_event(row)
            if indexed.pop(sequenced.position, set()) != set(sequenced.event.tags):
                raise CorruptionError(f"标签索引不一致: position={sequenced.position}")
        if indexed:
            raise CorruptionError(f"标签索引引用了不存在的位置: {sorted(indexed)}")

        log.debug("ledger_verified", backend="sqlite", event_count=count)
        return count

    async def close(self) -> None:
        """关闭连接前强制 WAL checkpoint"""
        await self.conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
        await self.conn.close()

    @staticmethod
    def _row_to_event(row: aiosqlite.Row) -> SequencedEvent:
        """将数据库行转换为 SequencedEvent 模型"""
        try:
            event = Event(
                event_type=row[1],
                data=bytes(row[2]),
                tags=json.loads(row[3]),
                event_id=row[4],
            )
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            raise CorruptionError(f"无法解码 position={row[0]} 的事件: {e}") from e
        return SequencedEvent(event=event, position=row[0])
