# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/orchestration/job_channel.py
import asyncio
import contextlib
import json
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, Awaitable, Callable, Optional

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.exceptions import RedisError

from queuebot_app.apps.chat.sdk.protocol import Job, JobResult
from queuebot_app.infra.gateway.definitions import JobChannelError
from queuebot_app.infra.namespaces import REDIS
from queuebot_app.infra.redis.client import safe_redis_url

logger = logging.getLogger("JobChannel")

ResultHandler = Callable[[JobResult], Awaitable[None]]


class IJobChannel(ABC):
    """
    Durable hand-off to the worker pool.

    open()/close() are called once at process start/stop. subscribe_results()
    starts delivering completed jobs to the handler until close().
    """

    @abstractmethod
    async def open(self) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...

    @abstractmethod
    async def publish(self, job: Job) -> None:
        ...

    @abstractmethod
    async def subscribe_results(self, handler: ResultHandler) -> None:
        ...

    @property
    def is_open(self) -> bool:
        return False


class RedisJobChannel(IJobChannel):
    """
    Redis list queues.

    Jobs are LPUSHed onto `job_queue` for workers to BRPOP; workers LPUSH
    results onto `result_queue`, which a single listener task drains here.

    Message schema (JSON):
        job:    {"chatId": str, "query": str, "jobId": str, "createdAt": float}
        result: {"chatId": str|int, "response": str, "jobId"?: str}
    """

    def __init__(
            self,
            redis_url: str,
            *,
            job_queue: str = REDIS.JOBS.QUEUE,
            result_queue: str = REDIS.JOBS.RESULTS,
            pop_timeout_sec: float = 1.0,
            error_backoff_sec: float = 0.5,
            redis: Optional[aioredis.Redis] = None,
    ):
        self.redis_url = redis_url
        self.job_queue = job_queue
        self.result_queue = result_queue
        self.pop_timeout_sec = pop_timeout_sec
        self.error_backoff_sec = error_backoff_sec

        self._redis: Optional[aioredis.Redis] = redis
        self._owns_client = redis is None
        self._listen_task: Optional[asyncio.Task] = None
        self._opened = False

    @property
    def is_open(self) -> bool:
        return self._opened

    # ---------- lifecycle ----------

    async def open(self) -> None:
        if self._opened:
            return
        if self._redis is None:
            self._redis = aioredis.Redis.from_url(self.redis_url)
        try:
            await self._redis.ping()
        except RedisError as e:
            raise JobChannelError(f"Job channel unreachable at {safe_redis_url(self.redis_url)}: {e}") from e
        self._opened = True
        logger.info(
            "Job channel open url=%s job_queue=%s result_queue=%s",
            safe_redis_url(self.redis_url), self.job_queue, self.result_queue,
        )

    async def close(self) -> None:
        task, self._listen_task = self._listen_task, None
        if task:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._opened = False
        if self._redis is not None and self._owns_client:
            client, self._redis = self._redis, None
            try:
                await client.aclose()
            except Exception as e:
                raise JobChannelError(f"Failed to close job channel: {e}") from e
        logger.info("Job channel closed")

    # ---------- publisher ----------

    async def publish(self, job: Job) -> None:
        if not self._opened:
            raise JobChannelError("Job channel is not open", session_id=job.session_id)
        try:
            await self._redis.lpush(self.job_queue, json.dumps(job.to_wire()))
        except RedisError as e:
            raise JobChannelError(f"Failed to publish job {job.job_id}: {e}", session_id=job.session_id) from e
        logger.info("Published job '%s' to '%s' for session '%s'", job.job_id, self.job_queue, job.session_id)

    # ---------- consumer ----------

    @staticmethod
    def decode_result(raw) -> Optional[JobResult]:
        """Parse one queue entry; malformed entries are logged and yield None."""
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.error("Result JSON decode error: %s (%r)", e, raw[:200] if raw else raw)
            return None
        try:
            return JobResult.model_validate(payload)
        except ValidationError as e:
            logger.error("Result payload rejected: %s (%r)", e.errors(), payload)
            return None

    async def results(self) -> AsyncIterator[JobResult]:
        """Async iterator over completed jobs. Redis errors back off and retry."""
        if not self._opened:
            raise JobChannelError("Call open() before consuming results.")

        while True:
            try:
                item = await self._redis.brpop([self.result_queue], timeout=self.pop_timeout_sec)
            except RedisError as e:
                logger.error("Result queue read failed: %s", e)
                await asyncio.sleep(self.error_backoff_sec)
                continue
            if not item:
                continue
            result = self.decode_result(item[1])
            if result is not None:
                yield result

    async def subscribe_results(self, handler: ResultHandler) -> None:
        if not self._opened:
            raise JobChannelError("Call open() before subscribe_results().")
        if self._listen_task and not self._listen_task.done():
            return  # already running

        async def _loop():
            async for result in self.results():
                try:
                    await handler(result)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("Result handler failed for session '%s'", result.session_id)

        self._listen_task = asyncio.create_task(_loop(), name="job-channel-results-listener")
        logger.info("Started result listener on '%s'", self.result_queue)
