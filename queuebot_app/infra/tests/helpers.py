# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

import asyncio
from collections import defaultdict, deque
from typing import Any, Deque, Dict, List, Optional

from redis.exceptions import ConnectionError as RedisConnectionError


class FakePipeline:
    def __init__(self, redis: "FakeRedis"):
        self.redis = redis
        self.ops: List[tuple] = []

    def __getattr__(self, name):
        def queue(*args, **kwargs):
            self.ops.append((name, args, kwargs))
            return self
        return queue

    async def execute(self) -> List[Any]:
        self.redis._check()
        results = []
        for name, args, kwargs in self.ops:
            results.append(await getattr(self.redis, name)(*args, **kwargs))
        self.ops = []
        return results


class FakeRedis:
    """Just enough of redis.asyncio.Redis for the gate, ledger and channel."""

    def __init__(self):
        self.kv: Dict[str, int] = {}
        self.zsets: Dict[str, Dict[str, float]] = defaultdict(dict)
        self.lists: Dict[str, Deque[str]] = defaultdict(deque)
        self.expiries: Dict[str, int] = {}
        self.down = False
        self.closed = False
        self.lua_calls = 0

    def _check(self):
        if self.down:
            raise RedisConnectionError("Connection refused")

    # strings
    async def get(self, key):
        self._check()
        value = self.kv.get(key)
        return None if value is None else str(value)

    async def incrby(self, key, amount):
        self._check()
        self.kv[key] = self.kv.get(key, 0) + int(amount)
        return self.kv[key]

    async def eval(self, script, numkeys, *keys_and_args):
        # only the deduct script is used
        self._check()
        self.lua_calls += 1
        key, cost = keys_and_args[0], int(keys_and_args[1])
        balance = self.kv.get(key, 0)
        if balance < cost:
            return -1
        self.kv[key] = balance - cost
        return self.kv[key]

    # sorted sets
    def pipeline(self):
        return FakePipeline(self)

    async def zremrangebyscore(self, key, low, high):
        z = self.zsets[key]
        drop = [m for m, s in z.items() if low <= s <= high]
        for m in drop:
            del z[m]
        return len(drop)

    async def zcard(self, key):
        return len(self.zsets[key])

    async def zadd(self, key, mapping):
        self.zsets[key].update(mapping)
        return len(mapping)

    async def expire(self, key, seconds):
        self.expiries[key] = seconds
        return True

    async def zrem(self, key, *members):
        self._check()
        return sum(1 for m in members if self.zsets[key].pop(m, None) is not None)

    async def zrange(self, key, start, end, withscores=False):
        self._check()
        items = sorted(self.zsets[key].items(), key=lambda kv: kv[1])
        items = items[start:] if end == -1 else items[start:end + 1]
        return items if withscores else [m for m, _ in items]

    # lists
    async def ping(self):
        self._check()
        return True

    async def lpush(self, key, *values):
        self._check()
        for v in values:
            self.lists[key].appendleft(v)
        return len(self.lists[key])

    async def brpop(self, keys, timeout: Optional[float] = 0):
        self._check()
        deadline = asyncio.get_running_loop().time() + (timeout or 0)
        while True:
            for key in keys:
                if self.lists[key]:
                    return key, self.lists[key].pop()
            if asyncio.get_running_loop().time() >= deadline:
                return None
            await asyncio.sleep(0.005)

    async def aclose(self):
        self.closed = True
