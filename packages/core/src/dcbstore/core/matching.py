"""事件匹配 -- 查询项匹配 + 查询求值

纯函数，无副作用、无锁，可在任意并发读者中调用。
格式异常的输入（例如空字符串）按字面处理，不做校验。
"""

from collections.abc import Iterable

from .models.event import Event, SequencedEvent
from .models.query import Query, QueryItem


def item_matches(event: Event, item: QueryItem) -> bool:
    """事件是否命中单个查询项

    types 为空或包含事件类型，且 tags 为空或是事件标签的子集。
    """
    if item.types and event.event_type not in item.types:
        return False
    return item.tags <= event.tags


def query_matches(event: Event, query: Query) -> bool:
    """事件是否命中查询（OR 语义，命中第一个查询项即返回）"""
    if not query.items:
        return True
    return any(item_matches(event, item) for item in query.items)


def matches_any(events: Iterable[SequencedEvent | Event], query: Query) -> bool:
    """存在性检查：找到第一个命中事件即返回 True"""
    for event in events:
        if isinstance(event, SequencedEvent):
            event = event.event
        if query_matches(event, query):
            return True
    return False
