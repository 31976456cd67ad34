# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/economics/credits.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

from redis.asyncio import Redis
from redis.exceptions import RedisError

from queuebot_app.infra.gateway.definitions import LedgerError
from queuebot_app.infra.namespaces import REDIS, session_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreditBalance:
    session_id: str
    credits: int = 0


class ICreditLedger(ABC):
    """
    Per-session credit balances.

    The admission core only reads balances, grants the start allowance and asks
    for the per-query deduction; it never writes a balance directly.
    """

    def __init__(self, *, default_start_credits: int, query_command_cost: int):
        if default_start_credits <= 0:
            raise ValueError(f"default_start_credits must be positive, got {default_start_credits}")
        if query_command_cost <= 0:
            raise ValueError(f"query_command_cost must be positive, got {query_command_cost}")
        self.DEFAULT_START_CREDITS = default_start_credits
        self.QUERY_COMMAND_COST = query_command_cost

    @abstractmethod
    async def fetch_balance(self, session_id: str) -> CreditBalance:
        ...

    @abstractmethod
    async def credit(self, session_id: str, amount: int) -> CreditBalance:
        """Add `amount` credits; returns the new balance."""

    @abstractmethod
    async def deduct_query_cost(self, session_id: str) -> bool:
        """
        Atomically subtract QUERY_COMMAND_COST.

        Returns False (and changes nothing) when the balance is below the cost.
        """

    async def close(self) -> None:
        return None


# --------- Lua scripts ---------
# Check-and-deduct in one round trip.
# KEYS[1] = balance key
# ARGV = [cost]
# returns new balance, or -1 when insufficient
_LUA_DEDUCT = r"""
local k = KEYS[1]
local cost = tonumber(ARGV[1])
local bal = tonumber(redis.call('GET', k) or '0')
if bal < cost then
  return -1
end
return redis.call('DECRBY', k, cost)
"""


class RedisCreditLedger(ICreditLedger):

    def __init__(self, redis: Redis, *, default_start_credits: int, query_command_cost: int):
        super().__init__(default_start_credits=default_start_credits, query_command_cost=query_command_cost)
        self.r = redis
        self.BALANCE_PREFIX = REDIS.CREDITS.BALANCE

    def _key(self, session_id: str) -> str:
        return session_key(self.BALANCE_PREFIX, session_id)

    async def fetch_balance(self, session_id: str) -> CreditBalance:
        try:
            raw = await self.r.get(self._key(session_id))
        except RedisError as e:
            raise LedgerError(f"Failed to fetch balance: {e}", session_id=session_id) from e
        return CreditBalance(session_id=session_id, credits=int(raw or 0))

    async def credit(self, session_id: str, amount: int) -> CreditBalance:
        if amount <= 0:
            raise ValueError(f"amount must be positive, got {amount}")
        try:
            new_balance = await self.r.incrby(self._key(session_id), int(amount))
        except RedisError as e:
            raise LedgerError(f"Failed to credit {amount}: {e}", session_id=session_id) from e
        logger.info("Credited session=%s amount=%s balance=%s", session_id, amount, new_balance)
        return CreditBalance(session_id=session_id, credits=int(new_balance))

    async def deduct_query_cost(self, session_id: str) -> bool:
        try:
            res = await self.r.eval(_LUA_DEDUCT, 1, self._key(session_id), str(self.QUERY_COMMAND_COST))
        except RedisError as e:
            raise LedgerError(f"Failed to deduct query cost: {e}", session_id=session_id) from e
        if int(res) < 0:
            logger.info("Deduction refused session=%s cost=%s", session_id, self.QUERY_COMMAND_COST)
            return False
        return True
