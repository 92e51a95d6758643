"""dcbstore Core Domain Models -- 公共类型导出

所有公共模型类型从此入口导入。
"""

from .event import AppendBatch, Event, SequencedEvent
from .query import AppendCondition, Query, QueryItem

__all__ = [
    # Event
    "Event",
    "SequencedEvent",
    "AppendBatch",
    # Query
    "QueryItem",
    "Query",
    "AppendCondition",
]
