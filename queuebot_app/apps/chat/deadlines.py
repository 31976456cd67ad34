# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# chat/deadlines.py
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Dict, Optional, Tuple

from queuebot_app.apps.chat import messages
from queuebot_app.apps.chat.sessions import SessionRegistry
from queuebot_app.apps.chat.transport.base import IChatTransport
from queuebot_app.infra.gateway.definitions import TransportError

logger = logging.getLogger("Chat.Deadlines")


class JobDeadlines:
    """
    One timer per published job.

    When a timer fires and the session still awaits that job, the session is
    freed and the user gets a timeout notice. timeout_sec <= 0 disables timers.
    """

    def __init__(self, registry: SessionRegistry, transport: IChatTransport, timeout_sec: Optional[float]):
        self.registry = registry
        self.transport = transport
        self.timeout_sec = float(timeout_sec or 0)
        self._timers: Dict[str, Tuple[str, asyncio.Task]] = {}

    @property
    def enabled(self) -> bool:
        return self.timeout_sec > 0

    def arm(self, session_id: str, job_id: str) -> None:
        if not self.enabled:
            return
        self.disarm(session_id)
        task = asyncio.create_task(self._expire(session_id, job_id), name=f"job-deadline:{job_id}")
        self._timers[session_id] = (job_id, task)

    def disarm(self, session_id: str, job_id: Optional[str] = None) -> None:
        current = self._timers.get(session_id)
        if current is None:
            return
        armed_job_id, task = current
        if job_id is not None and armed_job_id != job_id:
            return
        del self._timers[session_id]
        task.cancel()

    def pending(self) -> int:
        return len(self._timers)

    async def _expire(self, session_id: str, job_id: str) -> None:
        await asyncio.sleep(self.timeout_sec)
        current = self._timers.get(session_id)
        if current is not None and current[0] == job_id:
            del self._timers[session_id]

        if not self.registry.resolve(session_id, job_id):
            return
        logger.warning("Job %s for session %s timed out after %ss", job_id, session_id, self.timeout_sec)
        try:
            await self.transport.send_message(session_id, messages.JOB_TIMED_OUT)
        except TransportError as e:
            logger.error("Error sending timeout notice to session %s: %s", session_id, e)

    async def close(self) -> None:
        timers, self._timers = list(self._timers.values()), {}
        for _, task in timers:
            task.cancel()
        for _, task in timers:
            with contextlib.suppress(asyncio.CancelledError):
                await task
