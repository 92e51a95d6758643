"""Store Protocol 接口定义

定义位置账本（PositionLedger）的抽象接口，
使用 Python Protocol 实现结构化子类型（duck typing）。
内存实现与 SQLite 实现对外契约一致，索引策略属于内部优化。
"""

from collections.abc import AsyncIterator, Sequence
from typing import Protocol
from uuid import UUID

from ..models.event import AppendBatch, Event, SequencedEvent
from ..models.query import Query


class PositionLedger(Protocol):
    """位置账本接口

    账本 append-only：只允许追加，不允许更新或删除。
    append 是唯一的写入路径，同一批次要么全部可见，要么全部不可见。
    """

    async def append(
        self,
        events: Sequence[Event],
        fingerprint: str | None = None,
    ) -> tuple[int, int]:
        """追加一批事件，返回 (first_position, last_position)

        fingerprint 非空且批次中存在 event_id 时，在同一事务内写入幂等记录。
        """
        ...

    async def head(self) -> int | None:
        """最大已提交位置，空账本返回 None"""
        ...

    async def exists_after(self, after: int | None, query: Query) -> bool:
        """是否存在位置大于 after（None 表示从第一个位置起）且命中 query 的事件"""
        ...

    def scan(
        self,
        query: Query,
        start: int | None = None,
        backwards: bool = False,
        limit: int | None = None,
        until: int | None = None,
    ) -> AsyncIterator[SequencedEvent]:
        """惰性扫描命中事件

        正向：从 start 起（含）按位置升序；反向：从 start 起（不含）按位置降序。
        until 为读取快照的上界（含），为空时取调用时的 head。
        """
        ...

    async def find_batches(
        self,
        fingerprint: str,
        event_ids: Sequence[UUID],
    ) -> list[AppendBatch]:
        """查询同一追加条件下与给定 event_id 有交集的幂等记录"""
        ...

    async def verify(self) -> int:
        """校验账本完整性，返回校验过的事件数；损坏时抛出 CorruptionError"""
        ...

    async def close(self) -> None:
        """释放底层资源"""
        ...
