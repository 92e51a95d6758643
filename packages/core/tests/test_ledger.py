"""位置账本测试（内存 + SQLite 两种后端）

测试内容：
1. 位置从 1 开始、批次内连续、批次间严格递增
2. head 语义
3. exists_after 存在性语义（含 after=None、空查询）
4. scan 正向包含 / 反向不包含、limit、快照上界
"""

import asyncio

import pytest
from dcbstore.core.exceptions import InvalidArgumentError
from dcbstore.core.models import Event, Query, QueryItem
from pydantic import ValidationError


async def _positions(ledger, query=None, **kwargs) -> list[int]:
    return [s.position async for s in ledger.scan(query or Query(), **kwargs)]


class TestPositionAssignment:
    """位置分配测试"""

    async def test_empty_ledger_head_is_none(self, ledger):
        """空账本 head 为 None"""
        assert await ledger.head() is None

    async def test_first_position_is_one(self, ledger, make_event):
        first, last = await ledger.append([make_event()])
        assert (first, last) == (1, 1)
        assert await ledger.head() == 1

    async def test_batch_positions_contiguous(self, ledger, make_event):
        """同一批次按批次顺序分配连续位置"""
        events = [make_event(f"E{i}") for i in range(3)]
        first, last = await ledger.append(events)
        assert (first, last) == (1, 3)

        read = [s async for s in ledger.scan(Query())]
        assert [s.event.event_type for s in read] == ["E0", "E1", "E2"]
        assert [s.position for s in read] == [1, 2, 3]

    async def test_positions_monotonic_across_batches(self, ledger, make_event):
        """先提交批次的所有位置都小于后提交批次"""
        b1 = await ledger.append([make_event(), make_event()])
        b2 = await ledger.append([make_event()])
        b3 = await ledger.append([make_event(), make_event(), make_event()])
        assert b1 == (1, 2)
        assert b2 == (3, 3)
        assert b3 == (4, 6)
        assert max(b1) < min(b2) and max(b2) < min(b3)

    async def test_empty_batch_rejected(self, ledger):
        with pytest.raises(InvalidArgumentError):
            await ledger.append([])
        assert await ledger.head() is None

    async def test_event_content_preserved(self, ledger):
        """事件内容原样保存"""
        event = Event(
            event_type="BinaryTest",
            data=bytes(range(256)),
            tags=["binary", "t:1"],
        )
        await ledger.append([event])
        [stored] = [s async for s in ledger.scan(Query())]
        assert stored.event == event


class TestExistsAfter:
    """存在性检查测试"""

    @pytest.fixture
    def order_events(self, make_event):
        return [
            make_event("OrderCreated", ["order:O1"]),
            make_event("OrderCreated", ["order:O2"]),
            make_event("OrderShipped", ["order:O1", "warehouse:W1"]),
        ]

    async def test_empty_ledger(self, ledger):
        assert not await ledger.exists_after(None, Query())

    async def test_empty_query_means_any_event(self, ledger, make_event):
        """空查询：after 之后只要有事件即为 True"""
        await ledger.append([make_event(), make_event()])
        assert await ledger.exists_after(None, Query())
        assert await ledger.exists_after(1, Query())
        assert not await ledger.exists_after(2, Query())

    async def test_after_none_checks_from_first_position(self, ledger, order_events):
        await ledger.append(order_events)
        query = Query.of(QueryItem(types=["OrderCreated"], tags=["order:O1"]))
        assert await ledger.exists_after(None, query)
        assert await ledger.exists_after(0, query)

    async def test_after_excludes_earlier_positions(self, ledger, order_events):
        """位置 <= after 的事件不参与检查"""
        await ledger.append(order_events)
        query = Query.of(QueryItem(types=["OrderCreated"], tags=["order:O1"]))
        assert not await ledger.exists_after(1, query)

    async def test_tag_subset_required(self, ledger, order_events):
        await ledger.append(order_events)
        assert await ledger.exists_after(
            None, Query.of(QueryItem(tags=["order:O1", "warehouse:W1"]))
        )
        assert not await ledger.exists_after(
            None, Query.of(QueryItem(tags=["order:O2", "warehouse:W1"]))
        )

    async def test_unknown_tag_or_type(self, ledger, order_events):
        await ledger.append(order_events)
        assert not await ledger.exists_after(None, Query.of(QueryItem(tags=["nope"])))
        assert not await ledger.exists_after(None, Query.of(QueryItem(types=["Nope"])))

    async def test_or_across_items(self, ledger, order_events):
        """任一查询项命中即为 True"""
        await ledger.append(order_events)
        query = Query.of(
            QueryItem(types=["Missing"]),
            QueryItem(types=["OrderShipped"], tags=["warehouse:W1"]),
        )
        assert await ledger.exists_after(2, query)
        assert not await ledger.exists_after(3, query)

    async def test_empty_item_in_query_matches_everything(self, ledger, order_events):
        await ledger.append(order_events)
        query = Query.of(QueryItem(types=["Missing"]), QueryItem())
        assert await ledger.exists_after(2, query)


class TestScan:
    """扫描测试"""

    async def _fill(self, ledger, make_event, count: int = 12) -> None:
        for i in range(count):
            tags = ["even"] if i % 2 else ["odd"]
            await ledger.append([make_event(f"E{i + 1}", tags)])

    async def test_forward_start_inclusive(self, ledger, make_event):
        await self._fill(ledger, make_event)
        assert await _positions(ledger, start=10) == [10, 11, 12]

    async def test_forward_start_none_or_zero(self, ledger, make_event):
        await self._fill(ledger, make_event, 3)
        assert await _positions(ledger) == [1, 2, 3]
        assert await _positions(ledger, start=0) == [1, 2, 3]

    async def test_backward_start_exclusive(self, ledger, make_event):
        """反向读取从 12 起、limit 2，结果为 [11, 10]"""
        await self._fill(ledger, make_event)
        assert await _positions(ledger, start=12, backwards=True, limit=2) == [11, 10]

    async def test_backward_start_none_includes_head(self, ledger, make_event):
        await self._fill(ledger, make_event, 4)
        assert await _positions(ledger, backwards=True) == [4, 3, 2, 1]

    async def test_backward_strictly_decreasing(self, ledger, make_event):
        await self._fill(ledger, make_event)
        positions = await _positions(ledger, start=9, backwards=True)
        assert positions == sorted(positions, reverse=True)
        assert all(p < 9 for p in positions)
        assert len(set(positions)) == len(positions)

    async def test_limit_counts_matches(self, ledger, make_event):
        """limit 计数的是命中事件"""
        await self._fill(ledger, make_event)
        query = Query.of(QueryItem(tags=["even"]))
        assert await _positions(ledger, query, limit=3) == [2, 4, 6]
        assert await _positions(ledger, query, backwards=True, limit=3) == [12, 10, 8]

    async def test_limit_zero(self, ledger, make_event):
        await self._fill(ledger, make_event, 3)
        assert await _positions(ledger, limit=0) == []

    async def test_until_bounds_snapshot(self, ledger, make_event):
        """until 为快照上界"""
        await self._fill(ledger, make_event, 6)
        assert await _positions(ledger, until=4) == [1, 2, 3, 4]
        assert await _positions(ledger, backwards=True, until=3) == [3, 2, 1]

    async def test_filter_by_type_and_tag(self, ledger, make_event):
        await self._fill(ledger, make_event, 6)
        query = Query.of(QueryItem(types=["E3", "E4"], tags=["odd"]))
        assert await _positions(ledger, query) == [3]

    async def test_restartable(self, ledger, make_event):
        """未变更的账本上，相同参数的扫描结果相同"""
        await self._fill(ledger, make_event, 5)
        query = Query.of(QueryItem(tags=["odd"]))
        assert await _positions(ledger, query) == await _positions(ledger, query)

    async def test_start_beyond_head(self, ledger, make_event):
        await self._fill(ledger, make_event, 3)
        assert await _positions(ledger, start=10) == []
        assert await _positions(ledger, start=1, backwards=True) == []


class TestVerify:
    """账本校验测试"""

    async def test_verify_counts_events(self, ledger, make_event):
        await ledger.append([make_event(tags=["a", "b"]), make_event()])
        await ledger.append([make_event(tags=["c"])])
        assert await ledger.verify() == 3

    async def test_verify_empty(self, ledger):
        assert await ledger.verify() == 0


class TestFailedAppend:
    """失败或被取消的追加不留下部分写入"""

    async def test_invalid_item_leaves_memory_ledger_unchanged(self, memory_ledger, make_event):
        """批次中途构造失败时不改动账本"""
        with pytest.raises(ValidationError):
            await memory_ledger.append([make_event("A", ["x"]), {"data": b""}])

        assert await memory_ledger.head() is None
        assert await memory_ledger.append([make_event("C")]) == (1, 1)
        [stored] = [s async for s in memory_ledger.scan(Query())]
        assert stored.event.event_type == "C"
        assert not await memory_ledger.exists_after(None, Query.of(QueryItem(tags=["x"])))
        assert await memory_ledger.verify() == 1

    @pytest.mark.parametrize("ticks", range(8))
    async def test_cancelled_append_keeps_ledger_consistent(self, ledger, make_event, ticks):
        """追加在任意时刻被取消后，后续追加位置连续、账本可校验"""
        task = asyncio.create_task(ledger.append([make_event("A", ["x"]), make_event("A")]))
        for _ in range(ticks):
            await asyncio.sleep(0)
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        before = await ledger.head() or 0
        assert before in (0, 2)
        for expected in range(before + 1, before + 4):
            assert await ledger.append([make_event("B", ["y"])]) == (expected, expected)

        assert await ledger.head() == before + 3
        assert await ledger.verify() == before + 3
        assert await _positions(ledger) == list(range(1, before + 4))
