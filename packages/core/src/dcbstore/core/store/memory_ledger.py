"""PositionLedger 内存实现

已提交事件按位置顺序保存在列表中，另维护两组二级索引：
event_type -> 位置列表、tag -> 位置列表（均为升序），
用于存在性检查时跳过不可能命中的位置。
"""

import asyncio
from bisect import bisect_right
from collections import defaultdict
from collections.abc import AsyncIterator, Iterator, Sequence
from uuid import UUID

import structlog

from ..exceptions import CorruptionError, InvalidArgumentError
from ..matching import item_matches, query_matches
from ..models.event import AppendBatch, Event, SequencedEvent
from ..models.query import Query, QueryItem

log = structlog.get_logger()


def _positions_between(positions: Sequence[int], after: int, head: int) -> Iterator[int]:
    """升序位置列表中 (after, head] 区间内的位置"""
    for position in positions[bisect_right(positions, after):]:
        if position > head:
            return
        yield position


class InMemoryLedger:
    """PositionLedger 的内存实现"""

    def __init__(self) -> None:
        self._events: list[SequencedEvent] = []
        self._by_type: dict[str, list[int]] = defaultdict(list)
        self._by_tag: dict[str, list[int]] = defaultdict(list)
        # fingerprint -> event_id -> 幂等记录
        self._batches: dict[str, dict[UUID, AppendBatch]] = defaultdict(dict)
        # 已提交 head，整批写入完成后才推进
        self._head = 0
        self._write_lock = asyncio.Lock()

    async def append(
        self,
        events: Sequence[Event],
        fingerprint: str | None = None,
    ) -> tuple[int, int]:
        """追加一批事件（整批原子可见）"""
        if not events:
            raise InvalidArgumentError("不能追加空批次")

        async with self._write_lock:
            first = self._head + 1
            last = first + len(events) - 1

            # 先构造整批记录与索引项，任何一步失败都不改动账本
            sequenced = [
                SequencedEvent(event=event, position=first + offset)
                for offset, event in enumerate(events)
            ]
            type_entries = [(s.event.event_type, s.position) for s in sequenced]
            tag_entries = [(tag, s.position) for s in sequenced for tag in s.event.tags]
            batch = None
            if fingerprint is not None and any(s.event.event_id for s in sequenced):
                batch = AppendBatch(
                    fingerprint=fingerprint,
                    event_ids=tuple(s.event.event_id for s in sequenced),
                    first_position=first,
                    last_position=last,
                )

            self._events.extend(sequenced)
            for event_type, position in type_entries:
                self._by_type[event_type].append(position)
            for tag, position in tag_entries:
                self._by_tag[tag].append(position)
            if batch is not None:
                for event_id in batch.event_ids:
                    if event_id is not None:
                        self._batches[fingerprint][event_id] = batch

            self._head = last
        return first, last

    async def head(self) -> int | None:
        return self._head or None

    async def exists_after(self, after: int | None, query: Query) -> bool:
        after = after or 0
        head = self._head
        if head <= after:
            return False
        if query.matches_all:
            return True

        for item in query.items:
            for position in self._candidates(item, after, head):
                if item_matches(self._events[position - 1].event, item):
                    return True
        return False

    def _candidates(self, item: QueryItem, after: int, head: int) -> Iterator[int]:
        """候选位置：有标签时取最短的标签索引，否则取各类型索引"""
        if item.tags:
            shortest = min(
                (self._by_tag.get(tag, ()) for tag in item.tags),
                key=len,
            )
            yield from _positions_between(shortest, after, head)
            return
        for event_type in item.types:
            yield from _positions_between(self._by_type.get(event_type, ()), after, head)

    async def scan(
        self,
        query: Query,
        start: int | None = None,
        backwards: bool = False,
        limit: int | None = None,
        until: int | None = None,
    ) -> AsyncIterator[SequencedEvent]:
        upper = self._head if until is None else min(until, self._head)
        if limit == 0:
            return

        if backwards:
            top = upper if start is None else min(start - 1, upper)
            positions = range(top, 0, -1)
        else:
            positions = range(max(start or 1, 1), upper + 1)

        delivered = 0
        for position in positions:
            sequenced = self._events[position - 1]
            if not query_matches(sequenced.event, query):
                continue
            yield sequenced
            delivered += 1
            if limit is not None and delivered >= limit:
                return

    async def find_batches(
        self,
        fingerprint: str,
        event_ids: Sequence[UUID],
    ) -> list[AppendBatch]:
        recorded = self._batches.get(fingerprint, {})
        found = {recorded[event_id] for event_id in event_ids if event_id in recorded}
        return sorted(found, key=lambda batch: batch.first_position)

    async def verify(self) -> int:
        head = self._head
        for index, sequenced in enumerate(self._events[:head]):
            if sequenced.position != index + 1:
                raise CorruptionError(
                    f"位置不连续: 第 {index + 1} 条事件的位置为 {sequenced.position}"
                )

        for event_type, positions in self._by_type.items():
            for position in positions:
                if self._events[position - 1].event.event_type != event_type:
                    raise CorruptionError(f"类型索引不一致: {event_type}@{position}")
        for tag, positions in self._by_tag.items():
            for position in positions:
                if tag not in self._events[position - 1].event.tags:
                    raise CorruptionError(f"标签索引不一致: {tag}@{position}")

        log.debug("ledger_verified", backend="memory", event_count=head)
        return head

    async def close(self) -> None:
        return None
