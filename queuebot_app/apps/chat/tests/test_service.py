# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

import asyncio

import pytest
from fastapi.testclient import TestClient

from queuebot_app.apps.chat import messages, web_app
from queuebot_app.apps.chat.service import AdmissionService, _safe_shutdown_step
from queuebot_app.apps.chat.sessions import SessionStatus
from queuebot_app.apps.chat.tests.helpers import FakeJobChannel, FakeLedger, FakeTransport
from queuebot_app.apps.chat.web_app import create_app
from queuebot_app.infra.gateway.rate_limiter import InMemoryRateGate, RateLimitConfig


def _service(**kw):
    transport = FakeTransport()
    channel = FakeJobChannel()
    ledger = FakeLedger(kw.pop("balances", None))
    service = AdmissionService(
        transport=transport,
        rate_gate=InMemoryRateGate(RateLimitConfig()),
        ledger=ledger,
        job_channel=channel,
        job_timeout_sec=kw.pop("job_timeout_sec", 0),
        shutdown_step_timeout_sec=kw.pop("shutdown_step_timeout_sec", 1.0),
        **kw,
    )
    return service, transport, channel, ledger


@pytest.mark.asyncio
async def test_start_wires_channel_correlator_and_transport():
    service, transport, channel, ledger = _service(balances={"7": 10})

    await service.start()

    assert service.started
    assert channel.opened
    assert channel.handler is not None
    assert transport.handler is service.pipeline

    # end to end: inbound -> job -> result -> reply
    await transport.deliver("7", "draw a fox")
    assert service.registry.get("7") == SessionStatus.AWAITING_RESPONSE
    await channel.emit("7", "a fox", job_id=channel.published[0].job_id)
    assert transport.texts_for("7") == ["a fox"]
    assert service.registry.get("7") == SessionStatus.FREE


@pytest.mark.asyncio
async def test_channel_open_failure_is_fatal():
    service, transport, channel, ledger = _service()
    channel.fail_open = True

    with pytest.raises(Exception):
        await service.start()

    assert not service.started
    assert transport.handler is None


@pytest.mark.asyncio
async def test_stop_runs_every_step_in_order():
    service, transport, channel, ledger = _service()
    order = []

    def record(name, fn):
        async def step():
            order.append(name)
            return await fn()
        return step

    transport.stop = record("transport.stop", transport.stop)
    service.deadlines.close = record("deadlines.close", service.deadlines.close)
    channel.close = record("job_channel.close", channel.close)
    transport.close = record("transport.close", transport.close)
    service.rate_gate.close = record("rate_gate.close", service.rate_gate.close)
    ledger.close = record("ledger.close", ledger.close)

    await service.start()
    ok = await service.stop()

    assert ok is True
    assert order == [
        "transport.stop", "deadlines.close", "job_channel.close",
        "transport.close", "rate_gate.close", "ledger.close",
    ]
    assert not service.started


@pytest.mark.asyncio
async def test_stop_reports_failure_but_finishes_remaining_steps():
    service, transport, channel, ledger = _service()
    await service.start()
    channel.fail_close = True

    ok = await service.stop()

    assert ok is False
    assert transport.stopped
    assert transport.closed


@pytest.mark.asyncio
async def test_pending_deadlines_are_cancelled_on_stop():
    service, transport, channel, ledger = _service(balances={"7": 10}, job_timeout_sec=30)
    await service.start()
    await transport.deliver("7", "slow")
    assert service.status()["pending_deadlines"] == 1

    await service.stop()

    assert service.deadlines.pending() == 0
    assert messages.JOB_TIMED_OUT not in transport.texts_for("7")


@pytest.mark.asyncio
async def test_safe_shutdown_step_times_out():
    async def hangs():
        await asyncio.sleep(10)

    assert await _safe_shutdown_step("hangs", hangs, timeout=0.01) is False


def test_status_snapshot():
    service, transport, channel, ledger = _service()
    assert service.status() == {
        "started": False,
        "sessions": {"busy": 0, "awaiting_response": 0},
        "pending_deadlines": 0,
        "job_channel_open": False,
    }


def test_web_app_health_and_status():
    service, transport, channel, ledger = _service()
    app = create_app(lambda: service)

    with TestClient(app) as client:
        assert client.get("/health").json() == {"status": "ok"}
        body = client.get("/status").json()
        assert body["started"] is True
        assert body["job_channel_open"] is True

    assert app.state.exit_code == 0
    assert transport.closed


def test_web_app_sets_exit_code_when_close_fails():
    service, transport, channel, ledger = _service()
    app = create_app(lambda: service)

    with TestClient(app):
        channel.fail_close = True

    assert app.state.exit_code == 1


def test_web_app_startup_failure_propagates_and_closes_pools(monkeypatch):
    closed = []

    async def fake_close():
        closed.append(True)

    monkeypatch.setattr(web_app, "close_async_redis_clients", fake_close)
    service, transport, channel, ledger = _service()
    channel.fail_open = True
    app = create_app(lambda: service)

    with pytest.raises(Exception):
        with TestClient(app):
            pass
    assert not service.started
    assert transport.closed
    assert closed == [True]
    assert app.state.exit_code == 1
