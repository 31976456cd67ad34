# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# chat/service.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from queuebot_app.apps.chat.admission import AdmissionPipeline
from queuebot_app.apps.chat.correlator import ResultCorrelator
from queuebot_app.apps.chat.deadlines import JobDeadlines
from queuebot_app.apps.chat.sessions import SessionRegistry
from queuebot_app.apps.chat.transport.base import IChatTransport
from queuebot_app.infra.economics.credits import ICreditLedger
from queuebot_app.infra.gateway.rate_limiter import IRateGate
from queuebot_app.infra.orchestration.job_channel import IJobChannel

logger = logging.getLogger("Chat.Service")


async def _safe_shutdown_step(name: str, step: Callable[[], Awaitable[Any]], timeout: float = 5.0) -> bool:
    try:
        await asyncio.wait_for(step(), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        logger.warning("Shutdown step timed out: %s (>%ss)", name, timeout)
    except Exception:
        logger.exception("Shutdown step failed: %s", name)
    return False


class AdmissionService:
    """
    Composition root: one registry shared by the pipeline, the correlator and
    the job deadlines; collaborators are injected.
    """

    def __init__(
            self,
            *,
            transport: IChatTransport,
            rate_gate: IRateGate,
            ledger: ICreditLedger,
            job_channel: IJobChannel,
            job_timeout_sec: Optional[float] = 600.0,
            start_command: str = "/start",
            refill_contact_url: Optional[str] = None,
            registry: Optional[SessionRegistry] = None,
            shutdown_step_timeout_sec: float = 5.0,
    ):
        self.transport = transport
        self.rate_gate = rate_gate
        self.ledger = ledger
        self.job_channel = job_channel
        self.registry = registry or SessionRegistry()
        self.shutdown_step_timeout_sec = shutdown_step_timeout_sec

        self.deadlines = JobDeadlines(self.registry, transport, job_timeout_sec)
        self.pipeline = AdmissionPipeline(
            registry=self.registry,
            rate_gate=rate_gate,
            ledger=ledger,
            job_channel=job_channel,
            transport=transport,
            deadlines=self.deadlines,
            start_command=start_command,
            refill_contact_url=refill_contact_url,
        )
        self.correlator = ResultCorrelator(
            registry=self.registry,
            transport=transport,
            deadlines=self.deadlines,
        )
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Open the job channel, then consume results, then accept messages. Channel failure is fatal."""
        try:
            await self.job_channel.open()
        except Exception:
            logger.exception("Failed to initialize the job channel; aborting startup")
            raise
        await self.correlator.attach(self.job_channel)
        await self.transport.start(self.pipeline)
        self._started = True
        logger.info("Admission service initialized successfully.")

    async def stop(self) -> bool:
        """Stop intake first, then timers, then the channel and clients. Returns False if any step failed."""
        steps: List[Tuple[str, Callable[[], Awaitable[Any]]]] = [
            ("transport.stop", self.transport.stop),
            ("deadlines.close", self.deadlines.close),
            ("job_channel.close", self.job_channel.close),
            ("transport.close", self.transport.close),
            ("rate_gate.close", self.rate_gate.close),
            ("ledger.close", self.ledger.close),
        ]
        ok = True
        for name, step in steps:
            ok = await _safe_shutdown_step(name, step, self.shutdown_step_timeout_sec) and ok
        self._started = False
        if ok:
            logger.info("Admission service stopped cleanly.")
        else:
            logger.error("Admission service stopped with errors.")
        return ok

    def status(self) -> Dict[str, Any]:
        return {
            "started": self._started,
            "sessions": self.registry.counts(),
            "pending_deadlines": self.deadlines.pending(),
            "job_channel_open": self.job_channel.is_open,
        }
