# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# chat/correlator.py
from __future__ import annotations

import logging
from typing import Optional

from queuebot_app.apps.chat.deadlines import JobDeadlines
from queuebot_app.apps.chat.sdk.protocol import JobResult
from queuebot_app.apps.chat.sessions import SessionRegistry
from queuebot_app.apps.chat.transport.base import IChatTransport
from queuebot_app.infra.gateway.definitions import TransportError
from queuebot_app.infra.orchestration.job_channel import IJobChannel

logger = logging.getLogger("Chat.Correlator")


class ResultCorrelator:
    """
    Delivers worker results to their sessions and frees them.

    The session is cleared whether or not delivery succeeds; failed
    deliveries are logged and dropped.
    """

    def __init__(
            self,
            *,
            registry: SessionRegistry,
            transport: IChatTransport,
            deadlines: Optional[JobDeadlines] = None,
    ):
        self.registry = registry
        self.transport = transport
        self.deadlines = deadlines

    async def attach(self, job_channel: IJobChannel) -> None:
        await job_channel.subscribe_results(self.handle_result)

    async def handle_result(self, result: JobResult) -> bool:
        """Returns True if the response reached the transport."""
        session_id = result.session_id
        outstanding = self.registry.job_id(session_id)
        # untagged results answer the bound job, if there is one
        job_id = result.job_id or outstanding
        # no bound job, or a different one: the request already timed out
        stale = outstanding is None or job_id != outstanding

        if stale:
            logger.info("Late result job=%s for session %s (outstanding=%s); delivering without state change",
                        result.job_id, session_id, outstanding)
        elif self.deadlines is not None:
            self.deadlines.disarm(session_id, job_id)

        try:
            await self.transport.send_message(session_id, result.response)
            return True
        except TransportError as e:
            logger.error("Error in sending response to session %s: %s", session_id, e)
            return False
        finally:
            if not stale and self.registry.resolve(session_id, job_id) and self.deadlines is not None:
                # publish may have settled and armed a timer while the send was suspended
                self.deadlines.disarm(session_id, job_id)
