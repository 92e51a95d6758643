"""EventStore -- 追加条件执行 + 读取入口

追加流程：
1. 无追加条件：直接交给位置账本
2. 有追加条件：先做幂等解析，命中重试直接返回之前的位置
3. 否则检查 after 之后是否存在命中条件查询的事件，存在则拒绝，不做任何写入
4. 通过后追加，并在同一事务内写入幂等记录

2~4 在同一把写锁内完成，任意两个并发追加不可能同时通过同一条件检查。
失败的追加不消耗位置，不在内部重试。
"""

import asyncio
from collections.abc import Sequence

import structlog

from .cursor import ReadCursor
from .exceptions import IntegrityError, InvalidArgumentError
from .idempotency import IdempotencyResolver, condition_fingerprint
from .models.event import Event
from .models.query import AppendCondition, Query
from .notifier import AppendNotifier
from .store.protocols import PositionLedger

log = structlog.get_logger()


class EventStore:
    """DCB 事件存储服务"""

    def __init__(
        self,
        ledger: PositionLedger,
        notifier: AppendNotifier | None = None,
    ) -> None:
        self.ledger = ledger
        self.notifier = notifier or AppendNotifier()
        self._resolver = IdempotencyResolver(ledger)
        self._write_lock = asyncio.Lock()

    async def append(
        self,
        events: Sequence[Event],
        condition: AppendCondition | None = None,
    ) -> int:
        """追加一批事件

        Args:
            events: 要追加的事件，按批次顺序分配连续位置
            condition: 可选追加条件（一致性边界）

        Returns:
            本批次最后一个事件的位置（幂等重试时为之前提交的位置）

        Raises:
            IntegrityError: 追加条件命中已有事件，或幂等重试存在歧义
            StorageError: 底层存储失败
            InvalidArgumentError: 空批次，或批次中含有非 Event 对象
        """
        events = list(events)
        if not events:
            raise InvalidArgumentError("events 不能为空")
        for event in events:
            if not isinstance(event, Event):
                raise InvalidArgumentError(f"只能追加 Event 实例: {type(event).__name__}")

        async with self._write_lock:
            if condition is None:
                first, last = await self.ledger.append(events)
            else:
                resolved = await self._resolver.resolve(events, condition)
                if resolved is not None:
                    return resolved

                query = condition.fail_if_events_match
                if await self.ledger.exists_after(condition.after, query):
                    log.info(
                        "append_condition_failed",
                        after=condition.after,
                        item_count=len(query.items),
                        event_count=len(events),
                    )
                    raise IntegrityError(
                        f"追加条件失败：位置 {condition.after or 0} 之后存在命中查询的事件",
                        after=condition.after,
                    )

                first, last = await self.ledger.append(
                    events,
                    fingerprint=condition_fingerprint(condition),
                )

        log.info(
            "append_committed",
            first_position=first,
            last_position=last,
            event_count=len(events),
            conditional=condition is not None,
        )
        await self.notifier.broadcast(last)
        return last

    def read(
        self,
        query: Query | None = None,
        start: int | None = None,
        backwards: bool = False,
        limit: int | None = None,
        subscribe: bool = False,
    ) -> ReadCursor:
        """读取命中事件，返回惰性游标

        Args:
            query: 过滤查询，None 表示全部事件
            start: 起始位置；正向包含，反向不包含；None 表示首位置（正向）或 head（反向）
            backwards: 按位置倒序读取
            limit: 最多返回的事件数
            subscribe: 读完已提交事件后继续等待新事件

        Raises:
            InvalidArgumentError: backwards 与 subscribe 同时开启，或 start/limit 为负数
        """
        return ReadCursor(
            self.ledger,
            self.notifier,
            query=query,
            start=start,
            backwards=backwards,
            limit=limit,
            subscribe=subscribe,
        )

    async def head(self) -> int | None:
        """当前 head，空存储返回 None"""
        return await self.ledger.head()

    async def verify(self) -> int:
        """校验账本完整性"""
        return await self.ledger.verify()

    async def close(self) -> None:
        await self.ledger.close()

    async def __aenter__(self) -> "EventStore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()
