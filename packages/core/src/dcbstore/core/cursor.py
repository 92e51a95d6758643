"""ReadCursor -- 惰性读取游标

- 有界读取：迭代开始时取已提交 head 作为快照上界，按位置正序或倒序返回命中事件
- 订阅读取：读完已提交事件后挂起，等待新提交后按位置顺序继续推送
- 取消（aclose / 退出 async with / 超时）时立即注销订阅
"""

from collections.abc import AsyncIterator
from contextlib import aclosing

from .exceptions import InvalidArgumentError
from .models.event import SequencedEvent
from .models.query import Query
from .notifier import AppendNotifier
from .store.protocols import PositionLedger


class ReadCursor:
    """读取游标 -- 异步迭代器 + 异步上下文管理器

    参数在构造时校验，非法组合立即抛出 InvalidArgumentError。
    """

    def __init__(
        self,
        ledger: PositionLedger,
        notifier: AppendNotifier,
        query: Query | None = None,
        start: int | None = None,
        backwards: bool = False,
        limit: int | None = None,
        subscribe: bool = False,
    ) -> None:
        if backwards and subscribe:
            raise InvalidArgumentError("订阅读取只能正向进行，不能与 backwards 同时使用")
        if start is not None and start < 0:
            raise InvalidArgumentError(f"start 不能为负数: {start}")
        if limit is not None and limit < 0:
            raise InvalidArgumentError(f"limit 不能为负数: {limit}")

        self._ledger = ledger
        self._notifier = notifier
        self._query = query or Query()
        self._start = start
        self._backwards = backwards
        self._limit = limit
        self._subscribe = subscribe
        self._iterator: AsyncIterator[SequencedEvent] | None = None

    def __aiter__(self) -> "ReadCursor":
        return self

    async def __anext__(self) -> SequencedEvent:
        if self._iterator is None:
            self._iterator = self._subscribed() if self._subscribe else self._bounded()
        return await self._iterator.__anext__()

    async def aclose(self) -> None:
        """停止读取并释放订阅"""
        if self._iterator is not None:
            await self._iterator.aclose()

    async def __aenter__(self) -> "ReadCursor":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def collect(self) -> list[SequencedEvent]:
        """读取全部结果为列表；订阅读取必须指定 limit"""
        if self._subscribe and self._limit is None:
            raise InvalidArgumentError("订阅读取没有终点，collect() 需要指定 limit")
        async with self:
            return [sequenced async for sequenced in self]

    async def _bounded(self) -> AsyncIterator[SequencedEvent]:
        snapshot = await self._ledger.head()
        if snapshot is None:
            return
        async with aclosing(
            self._ledger.scan(
                self._query,
                start=self._start,
                backwards=self._backwards,
                limit=self._limit,
                until=snapshot,
            )
        ) as events:
            async for sequenced in events:
                yield sequenced

    async def _subscribed(self) -> AsyncIterator[SequencedEvent]:
        # 先注册再读取，避免读完到挂起之间的提交被漏掉
        queue = await self._notifier.subscribe()
        delivered = 0
        next_position = max(self._start or 1, 1)
        try:
            while self._limit is None or delivered < self._limit:
                head = await self._ledger.head() or 0
                if head < next_position:
                    await queue.get()
                    continue

                remaining = None if self._limit is None else self._limit - delivered
                async with aclosing(
                    self._ledger.scan(
                        self._query,
                        start=next_position,
                        limit=remaining,
                        until=head,
                    )
                ) as events:
                    async for sequenced in events:
                        yield sequenced
                        delivered += 1
                next_position = head + 1
        finally:
            await self._notifier.unsubscribe(queue)
