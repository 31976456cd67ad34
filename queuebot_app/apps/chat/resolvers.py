# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# chat/resolvers.py
"""
Builds the collaborators from Settings.
"""
import logging

from queuebot_app.apps.chat.sdk.config import Settings
from queuebot_app.apps.chat.service import AdmissionService
from queuebot_app.apps.chat.transport.base import IChatTransport
from queuebot_app.apps.chat.transport.telegram import TelegramTransport
from queuebot_app.infra.economics.credits import ICreditLedger, RedisCreditLedger
from queuebot_app.infra.gateway.rate_limiter import IRateGate, InMemoryRateGate, RateLimitConfig, RedisRateGate
from queuebot_app.infra.orchestration.job_channel import IJobChannel, RedisJobChannel
from queuebot_app.infra.redis.client import get_async_redis_client

logger = logging.getLogger(__name__)


def get_rate_gate(settings: Settings) -> IRateGate:
    config = RateLimitConfig(points=settings.RATE_LIMIT_POINTS, window_sec=settings.RATE_LIMIT_WINDOW_SEC)
    if settings.RATE_LIMIT_BACKEND == "redis":
        redis = get_async_redis_client(settings.REDIS_URL, max_connections=settings.REDIS_MAX_CONNECTIONS)
        return RedisRateGate(redis, config)
    return InMemoryRateGate(config)


def get_credit_ledger(settings: Settings) -> ICreditLedger:
    redis = get_async_redis_client(
        settings.REDIS_URL,
        decode_responses=True,
        max_connections=settings.REDIS_MAX_CONNECTIONS,
    )
    return RedisCreditLedger(
        redis,
        default_start_credits=settings.DEFAULT_START_CREDITS,
        query_command_cost=settings.QUERY_COMMAND_COST,
    )


def get_job_channel(settings: Settings) -> IJobChannel:
    return RedisJobChannel(
        settings.REDIS_URL,
        job_queue=settings.JOB_QUEUE,
        result_queue=settings.RESULT_QUEUE,
    )


def get_transport(settings: Settings) -> IChatTransport:
    if not settings.TELEGRAM_BOT_TOKEN:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")
    return TelegramTransport(
        settings.TELEGRAM_BOT_TOKEN,
        api_base=settings.TELEGRAM_API_BASE,
        poll_timeout_sec=settings.TELEGRAM_POLL_TIMEOUT_SEC,
    )


def build_admission_service(settings: Settings) -> AdmissionService:
    logger.info(
        "Building admission service: rate_limit=%s %s/%ss start_credits=%s query_cost=%s job_timeout=%ss",
        settings.RATE_LIMIT_BACKEND,
        settings.RATE_LIMIT_POINTS,
        settings.RATE_LIMIT_WINDOW_SEC,
        settings.DEFAULT_START_CREDITS,
        settings.QUERY_COMMAND_COST,
        settings.JOB_TIMEOUT_SEC,
    )
    return AdmissionService(
        transport=get_transport(settings),
        rate_gate=get_rate_gate(settings),
        ledger=get_credit_ledger(settings),
        job_channel=get_job_channel(settings),
        job_timeout_sec=settings.JOB_TIMEOUT_SEC,
        start_command=settings.START_COMMAND,
        refill_contact_url=settings.REFILL_CONTACT_URL,
    )
