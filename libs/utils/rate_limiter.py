"""
异步非阻塞限流器（原子能力）

用于控制模型 API 调用频率（RPM：每分钟请求数）
"""

import asyncio
import time
from collections import deque
from typing import Callable, Deque


class AsyncRateLimiter:
    """
    滑动窗口限流器

    在 time_limit 秒内最多放行 max_count 次调用，超出时异步等待最早的
    时间戳滑出窗口。
    """

    def __init__(
        self,
        max_count: int,
        time_limit: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_count < 1:
            raise ValueError("max_count must be >= 1")
        self.max_count = max_count
        self.time_limit = time_limit
        self._clock = clock
        self.timestamps: Deque[float] = deque()
        self._lock = asyncio.Lock()

    def _evict(self, now: float) -> None:
        while self.timestamps and now - self.timestamps[0] >= self.time_limit:
            self.timestamps.popleft()

    async def check_and_wait(self) -> None:
        """登记一次调用，必要时等待窗口腾出名额"""
        async with self._lock:
            now = self._clock()
            self._evict(now)

            if len(self.timestamps) >= self.max_count:
                wait_time = self.time_limit - (now - self.timestamps[0])
                if wait_time > 0:
                    await asyncio.sleep(wait_time)
                now = self._clock()
                self._evict(now)

            self.timestamps.append(now)

    def pending(self) -> int:
        """当前窗口内已登记的调用数"""
        self._evict(self._clock())
        return len(self.timestamps)
