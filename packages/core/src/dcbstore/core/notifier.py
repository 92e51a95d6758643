"""AppendNotifier -- 内存中的追加通知广播器

每个订阅者持有一个 asyncio.Queue，提交成功后推送新的 head。
队列只用作唤醒信号：队列已满说明已有未处理的唤醒，直接跳过即可。
"""

import asyncio

import structlog

log = structlog.get_logger()


class AppendNotifier:
    """追加通知广播器 -- 基于 asyncio.Queue 的发布/订阅模式"""

    def __init__(self, queue_maxsize: int = 16) -> None:
        self._subscribers: set[asyncio.Queue] = set()
        self._queue_maxsize = queue_maxsize

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(self) -> asyncio.Queue:
        """注册订阅

        Returns:
            asyncio.Queue 实例，新提交的 head 会被推送到此队列
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._queue_maxsize)
        self._subscribers.add(queue)
        log.debug("subscription_opened", subscriber_count=len(self._subscribers))
        return queue

    async def unsubscribe(self, queue: asyncio.Queue) -> None:
        """取消订阅

        Args:
            queue: 之前订阅时返回的队列
        """
        self._subscribers.discard(queue)
        log.debug("subscription_closed", subscriber_count=len(self._subscribers))

    async def broadcast(self, head: int) -> None:
        """向所有订阅者广播新的 head

        Args:
            head: 最新已提交位置
        """
        for queue in self._subscribers:
            try:
                queue.put_nowait(head)
            except asyncio.QueueFull:
                # 已有未消费的唤醒信号
                continue
