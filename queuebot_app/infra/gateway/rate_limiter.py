# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/gateway/rate_limiter.py

import time
import uuid
import logging
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

from redis.asyncio import Redis

from queuebot_app.infra.namespaces import REDIS, session_key

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Rate limit configuration"""
    points: int = 5
    window_sec: int = 60  # seconds

    def __post_init__(self):
        if self.points <= 0:
            raise ValueError(f"points must be positive, got {self.points}")
        if self.window_sec <= 0:
            raise ValueError(f"window_sec must be positive, got {self.window_sec}")


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    remaining: int
    retry_after_sec: Optional[float] = None


class IRateGate(ABC):
    """Per-session limiter: at most `points` consumptions in any rolling `window_sec`."""

    def __init__(self, config: RateLimitConfig):
        self.config = config

    @abstractmethod
    async def consume(self, session_id: str) -> RateDecision:
        """Record one request for the session and report whether it fits the window."""

    async def close(self) -> None:
        return None


class InMemoryRateGate(IRateGate):
    """
    Process-local sliding window.

    Keeps a deque of timestamps per session. Rejected attempts are not recorded,
    so a throttled session regains budget as soon as its oldest admitted request
    leaves the window. Sessions idle for a whole window are swept at most once
    per window.
    """

    def __init__(self, config: RateLimitConfig, clock: Callable[[], float] = time.monotonic):
        super().__init__(config)
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._last_sweep: Optional[float] = None

    @property
    def tracked_sessions(self) -> int:
        return len(self._hits)

    def _sweep(self, now: float) -> None:
        expire_before = now - self.config.window_sec
        idle = [sid for sid, q in self._hits.items() if not q or q[-1] <= expire_before]
        for sid in idle:
            del self._hits[sid]
        self._last_sweep = now
        if idle:
            logger.debug("Rate gate swept %s idle sessions, %s tracked", len(idle), len(self._hits))

    async def consume(self, session_id: str) -> RateDecision:
        now = self._clock()
        if self._last_sweep is None:
            self._last_sweep = now
        elif now - self._last_sweep >= self.config.window_sec:
            self._sweep(now)

        q = self._hits[session_id]

        expire_before = now - self.config.window_sec
        while q and q[0] <= expire_before:
            q.popleft()

        if len(q) >= self.config.points:
            retry_after = max(0.0, q[0] + self.config.window_sec - now)
            return RateDecision(allowed=False, remaining=0, retry_after_sec=retry_after)

        q.append(now)
        return RateDecision(allowed=True, remaining=self.config.points - len(q))


class RedisRateGate(IRateGate):
    """Sliding window shared by every replica, one sorted set per session."""

    def __init__(self, redis: Redis, config: RateLimitConfig, clock: Callable[[], float] = time.time):
        super().__init__(config)
        self.redis = redis
        self._clock = clock
        self.BURST_PREFIX = REDIS.RATE_LIMIT.BURST

    async def consume(self, session_id: str) -> RateDecision:
        burst_key = session_key(self.BURST_PREFIX, session_id)
        current_time = self._clock()
        member = f"{current_time:.6f}:{uuid.uuid4().hex[:8]}"

        # Use Redis pipeline for atomic operations
        pipe = self.redis.pipeline()
        pipe.zremrangebyscore(burst_key, 0, current_time - self.config.window_sec)
        pipe.zcard(burst_key)
        pipe.zadd(burst_key, {member: current_time})
        pipe.expire(burst_key, self.config.window_sec)
        results = await pipe.execute()

        burst_count = int(results[1])
        if burst_count >= self.config.points:
            # roll back the optimistic insert so rejected attempts do not extend the lockout
            await self.redis.zrem(burst_key, member)
            oldest = await self.redis.zrange(burst_key, 0, 0, withscores=True)
            retry_after = None
            if oldest:
                retry_after = max(0.0, float(oldest[0][1]) + self.config.window_sec - current_time)
            logger.info(
                "Burst limit exceeded session=%s count=%s limit=%s",
                session_id, burst_count, self.config.points,
            )
            return RateDecision(allowed=False, remaining=0, retry_after_sec=retry_after)

        return RateDecision(allowed=True, remaining=self.config.points - burst_count - 1)
