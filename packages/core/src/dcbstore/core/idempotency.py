"""幂等解析 -- 带条件追加的重试去重

去重范围是「追加条件 + 事件内容」的组合：
同一批 event_id 在同一追加条件下重试，且内容完全一致时，
直接返回之前提交的位置，不再求值条件、不再写入。

只与之前的批次部分重合、或 event_id 相同但内容不同的重试，
说明调用方存在 bug，抛出 IntegrityError 而不是部分应用。
"""

import hashlib
import json
from collections.abc import Sequence

import structlog

from .exceptions import IntegrityError
from .models.event import Event
from .models.query import AppendCondition, Query
from .store.protocols import PositionLedger

log = structlog.get_logger()


def condition_fingerprint(condition: AppendCondition) -> str:
    """追加条件指纹（SHA-256）

    查询项内部的集合与查询项之间的顺序都不影响语义，规范化后再哈希；
    after=0 与 after=None 等价。
    """
    items = sorted(
        (sorted(item.types), sorted(item.tags))
        for item in condition.fail_if_events_match.items
    )
    canonical = json.dumps(
        {"items": items, "after": condition.after or None},
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


class IdempotencyResolver:
    """幂等解析器

    必须在写锁内调用，与存在性检查、追加处于同一临界区。
    """

    def __init__(self, ledger: PositionLedger) -> None:
        self._ledger = ledger

    async def resolve(
        self,
        events: Sequence[Event],
        condition: AppendCondition,
    ) -> int | None:
        """判断本次追加是否为已提交批次的重试

        Returns:
            之前批次最后一个事件的位置；不是重试时返回 None

        Raises:
            IntegrityError: 与已提交批次部分重合，或内容不一致
        """
        event_ids = [event.event_id for event in events]
        keyed = [event_id for event_id in event_ids if event_id is not None]
        if not keyed:
            return None

        fingerprint = condition_fingerprint(condition)
        batches = await self._ledger.find_batches(fingerprint, keyed)
        if not batches:
            return None

        recorded_ids = batches[0].event_ids
        reordered = (
            len(batches) == 1
            and tuple(event_ids) != recorded_ids
            and len(event_ids) == len(recorded_ids)
            and sorted(event_ids, key=str) == sorted(recorded_ids, key=str)
        )
        if reordered:
            log.warning(
                "ambiguous_idempotent_retry",
                first_position=batches[0].first_position,
                event_count=len(events),
                reason="reordered_ids",
            )
            raise IntegrityError(
                "幂等重试存在歧义：event_id 与已提交批次相同但顺序不同",
                after=condition.after,
            )

        if len(batches) > 1 or tuple(event_ids) != batches[0].event_ids:
            log.warning(
                "ambiguous_idempotent_retry",
                batch_count=len(batches),
                event_count=len(events),
                reason="partial_overlap",
            )
            raise IntegrityError(
                "幂等重试存在歧义：本批次与已提交批次只部分重合",
                after=condition.after,
            )

        batch = batches[0]
        committed = [
            sequenced
            async for sequenced in self._ledger.scan(
                Query(),
                start=batch.first_position,
                limit=len(events),
                until=batch.last_position,
            )
        ]
        if len(committed) != len(events) or not all(
            new.same_content(old.event) for new, old in zip(events, committed)
        ):
            log.warning(
                "ambiguous_idempotent_retry",
                first_position=batch.first_position,
                last_position=batch.last_position,
                reason="content_mismatch",
            )
            raise IntegrityError(
                "幂等重试存在歧义：event_id 相同但事件内容不同",
                after=condition.after,
            )

        log.info(
            "idempotent_append_resolved",
            first_position=batch.first_position,
            last_position=batch.last_position,
        )
        return batch.last_position
