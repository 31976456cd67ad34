# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# chat/admission.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from queuebot_app.apps.chat import messages
from queuebot_app.apps.chat.deadlines import JobDeadlines
from queuebot_app.apps.chat.sdk.protocol import InboundMessage, Job
from queuebot_app.apps.chat.sessions import SessionRegistry, SessionStatus
from queuebot_app.apps.chat.transport.base import IChatTransport
from queuebot_app.infra.economics.credits import ICreditLedger
from queuebot_app.infra.gateway.definitions import LedgerError, TransportError
from queuebot_app.infra.gateway.rate_limiter import IRateGate
from queuebot_app.infra.orchestration.job_channel import IJobChannel

logger = logging.getLogger("Chat.Admission")


@dataclass(frozen=True)
class FlowOutcome:
    """Where a handled message leaves its session, plus the reply to send (if any)."""
    status: SessionStatus
    reply: Optional[str] = None
    job_id: Optional[str] = None


class AdmissionPipeline:
    """
    Admits one inbound message per call:

      busy guard -> rate gate -> start flow | query flow -> settle + reply

    The flows never touch the registry status themselves; they return a
    FlowOutcome and handle() settles it, so every admitted message leaves its
    session FREE or AWAITING_RESPONSE.
    """

    def __init__(
            self,
            *,
            registry: SessionRegistry,
            rate_gate: IRateGate,
            ledger: ICreditLedger,
            job_channel: IJobChannel,
            transport: IChatTransport,
            deadlines: Optional[JobDeadlines] = None,
            start_command: str = "/start",
            refill_contact_url: Optional[str] = None,
    ):
        self.registry = registry
        self.rate_gate = rate_gate
        self.ledger = ledger
        self.job_channel = job_channel
        self.transport = transport
        self.deadlines = deadlines
        self.start_command = start_command
        self.refill_contact_url = refill_contact_url

    async def __call__(self, message: InboundMessage) -> None:
        if message.text is None:
            return
        await self.handle(message.session_id, message.text)

    async def handle(self, session_id: str, text: str) -> FlowOutcome:
        if not self.registry.try_acquire(session_id):
            await self._reply(session_id, messages.STILL_PROCESSING)
            return FlowOutcome(status=self.registry.get(session_id), reply=messages.STILL_PROCESSING)

        try:
            outcome = await self._admit(session_id, text)
        except asyncio.CancelledError:
            self.registry.clear(session_id)
            raise
        except Exception:
            logger.exception("Error in processing message for session %s", session_id)
            outcome = FlowOutcome(status=SessionStatus.FREE, reply=messages.PROCESSING_ERROR)

        self._settle(session_id, outcome)
        if outcome.reply:
            await self._reply(session_id, outcome.reply)
        return outcome

    def is_start_command(self, text: str) -> bool:
        parts = text.strip().split(maxsplit=1)
        if not parts:
            return False
        # "/start@my_bot" and "/start <payload>" are the same command
        return parts[0].split("@", 1)[0] == self.start_command

    # ---------------- flows ----------------

    async def _admit(self, session_id: str, text: str) -> FlowOutcome:
        decision = await self.rate_gate.consume(session_id)
        if not decision.allowed:
            logger.info("Rate limited session %s retry_after=%s", session_id, decision.retry_after_sec)
            return FlowOutcome(status=SessionStatus.FREE, reply=messages.TOO_MANY_REQUESTS)

        if self.is_start_command(text):
            return await self.start_flow(session_id)
        return await self.query_flow(session_id, text)

    async def start_flow(self, session_id: str) -> FlowOutcome:
        try:
            await self.ledger.credit(session_id, self.ledger.DEFAULT_START_CREDITS)
        except LedgerError as e:
            logger.error("Error in handling start command for session %s: %s", session_id, e)
            return FlowOutcome(status=SessionStatus.FREE, reply=messages.START_FAILED)
        return FlowOutcome(status=SessionStatus.FREE, reply=messages.WELCOME)

    async def query_flow(self, session_id: str, text: str) -> FlowOutcome:
        cost = self.ledger.QUERY_COMMAND_COST
        balance = await self.ledger.fetch_balance(session_id)
        if balance.credits < cost:
            if balance.credits == 0:
                return FlowOutcome(status=SessionStatus.FREE, reply=messages.out_of_credits(self.refill_contact_url))
            return FlowOutcome(status=SessionStatus.FREE, reply=messages.INSUFFICIENT_CREDITS)

        # authoritative check: another replica may have spent the balance since the read
        if not await self.ledger.deduct_query_cost(session_id):
            return FlowOutcome(status=SessionStatus.FREE, reply=messages.INSUFFICIENT_CREDITS)

        job = Job(session_id=session_id, query=text)
        self.registry.bind_job(session_id, job.job_id)
        await self.job_channel.publish(job)
        logger.info("Query enqueued for session %s job=%s", session_id, job.job_id)
        return FlowOutcome(status=SessionStatus.AWAITING_RESPONSE, job_id=job.job_id)

    # ---------------- settle ----------------

    def _settle(self, session_id: str, outcome: FlowOutcome) -> None:
        if outcome.status == SessionStatus.AWAITING_RESPONSE and outcome.job_id:
            if self.registry.mark_awaiting(session_id, outcome.job_id):
                if self.deadlines is not None:
                    self.deadlines.arm(session_id, outcome.job_id)
            else:
                logger.info("Result for job %s arrived before publish settled; session %s already free",
                            outcome.job_id, session_id)
            return
        self.registry.clear(session_id)

    async def _reply(self, session_id: str, text: str) -> bool:
        try:
            await self.transport.send_message(session_id, text)
            return True
        except TransportError as e:
            logger.error("Error sending reply to session %s: %s", session_id, e)
            return False
