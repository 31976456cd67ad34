# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional, Set, Tuple

from queuebot_app.apps.chat.admission import AdmissionPipeline
from queuebot_app.apps.chat.deadlines import JobDeadlines
from queuebot_app.apps.chat.sdk.protocol import InboundMessage, Job, JobResult
from queuebot_app.apps.chat.sessions import SessionRegistry
from queuebot_app.apps.chat.transport.base import IChatTransport, MessageHandler
from queuebot_app.infra.economics.credits import CreditBalance, ICreditLedger
from queuebot_app.infra.gateway.definitions import JobChannelError, LedgerError, TransportError
from queuebot_app.infra.gateway.rate_limiter import InMemoryRateGate, RateLimitConfig
from queuebot_app.infra.orchestration.job_channel import IJobChannel, ResultHandler

START_CREDITS = 10
QUERY_COST = 2


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport(IChatTransport):
    def __init__(self):
        self.sent: List[Tuple[str, str]] = []
        self.failing: Set[str] = set()
        self.handler: Optional[MessageHandler] = None
        self.stopped = False
        self.closed = False
        # when set, sends block until it is released
        self.hold: Optional[asyncio.Event] = None
        self.send_entered = asyncio.Event()

    async def send_message(self, session_id: str, text: str) -> None:
        if self.hold is not None:
            self.send_entered.set()
            await self.hold.wait()
        if session_id in self.failing:
            raise TransportError("chat not found", session_id=session_id, code=400)
        self.sent.append((session_id, text))

    async def start(self, handler: MessageHandler) -> None:
        self.handler = handler

    async def stop(self) -> None:
        self.stopped = True

    async def close(self) -> None:
        self.closed = True

    async def deliver(self, session_id: str, text: Optional[str]) -> None:
        await self.handler(InboundMessage(session_id=session_id, text=text))

    def texts_for(self, session_id: str) -> List[str]:
        return [t for sid, t in self.sent if sid == session_id]


class FakeLedger(ICreditLedger):
    def __init__(self, balances: Optional[Dict[str, int]] = None):
        super().__init__(default_start_credits=START_CREDITS, query_command_cost=QUERY_COST)
        self.balances: Dict[str, int] = dict(balances or {})
        self.unreachable = False
        self.refuse_deductions = False
        self.calls: List[Tuple[str, str]] = []

    def _check(self, op: str, session_id: str) -> None:
        self.calls.append((op, session_id))
        if self.unreachable:
            raise LedgerError("ledger unreachable", session_id=session_id)

    async def fetch_balance(self, session_id: str) -> CreditBalance:
        self._check("fetch", session_id)
        return CreditBalance(session_id=session_id, credits=self.balances.get(session_id, 0))

    async def credit(self, session_id: str, amount: int) -> CreditBalance:
        self._check("credit", session_id)
        self.balances[session_id] = self.balances.get(session_id, 0) + amount
        return CreditBalance(session_id=session_id, credits=self.balances[session_id])

    async def deduct_query_cost(self, session_id: str) -> bool:
        self._check("deduct", session_id)
        if self.refuse_deductions or self.balances.get(session_id, 0) < self.QUERY_COMMAND_COST:
            return False
        self.balances[session_id] -= self.QUERY_COMMAND_COST
        return True

    @property
    def mutations(self) -> List[Tuple[str, str]]:
        return [c for c in self.calls if c[0] in ("credit", "deduct")]


class FakeJobChannel(IJobChannel):
    def __init__(self):
        self.published: List[Job] = []
        self.handler: Optional[ResultHandler] = None
        self.fail_open = False
        self.fail_publish = False
        self.fail_close = False
        self.opened = False
        self.closed = False
        # awaited inside publish(), before it returns
        self.during_publish: Optional[Callable[[Job], Awaitable[None]]] = None

    @property
    def is_open(self) -> bool:
        return self.opened

    async def open(self) -> None:
        if self.fail_open:
            raise JobChannelError("connection refused")
        self.opened = True

    async def close(self) -> None:
        self.opened = False
        if self.fail_close:
            raise JobChannelError("close failed")
        self.closed = True

    async def publish(self, job: Job) -> None:
        if self.fail_publish:
            raise JobChannelError("publish failed", session_id=job.session_id)
        self.published.append(job)
        if self.during_publish is not None:
            await self.during_publish(job)

    async def subscribe_results(self, handler: ResultHandler) -> None:
        self.handler = handler

    async def emit(self, session_id: str, response: str, job_id: Optional[str] = None) -> None:
        await self.handler(JobResult(session_id=session_id, response=response, job_id=job_id))


def make_pipeline(
        *,
        balances: Optional[Dict[str, int]] = None,
        points: int = 5,
        window_sec: int = 60,
        clock: Optional[FakeClock] = None,
        job_timeout_sec: float = 0,
        refill_contact_url: Optional[str] = None,
):
    registry = SessionRegistry()
    transport = FakeTransport()
    ledger = FakeLedger(balances)
    channel = FakeJobChannel()
    rate_gate = InMemoryRateGate(RateLimitConfig(points=points, window_sec=window_sec), clock=clock or FakeClock())
    deadlines = JobDeadlines(registry, transport, job_timeout_sec)
    pipeline = AdmissionPipeline(
        registry=registry,
        rate_gate=rate_gate,
        ledger=ledger,
        job_channel=channel,
        transport=transport,
        deadlines=deadlines,
        refill_contact_url=refill_contact_url,
    )
    return pipeline, registry, transport, ledger, channel
