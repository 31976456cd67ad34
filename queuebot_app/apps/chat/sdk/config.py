# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# chat/sdk/config.py
from __future__ import annotations
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

from queuebot_app.infra.namespaces import REDIS


class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")

    # Liveness HTTP
    PORT: int = 3000

    # Telegram
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_API_BASE: str = "https://api.telegram.org"
    TELEGRAM_POLL_TIMEOUT_SEC: int = 30

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: Optional[int] = None

    # Rate gate
    RATE_LIMIT_BACKEND: Literal["memory", "redis"] = "memory"
    RATE_LIMIT_POINTS: int = Field(default=5, gt=0)
    RATE_LIMIT_WINDOW_SEC: int = Field(default=60, gt=0)

    # Credits
    DEFAULT_START_CREDITS: int = Field(default=10, gt=0)
    QUERY_COMMAND_COST: int = Field(default=1, gt=0)
    REFILL_CONTACT_URL: Optional[str] = None

    # Job channel
    JOB_QUEUE: str = REDIS.JOBS.QUEUE
    RESULT_QUEUE: str = REDIS.JOBS.RESULTS
    JOB_TIMEOUT_SEC: float = Field(default=600.0, ge=0)

    START_COMMAND: str = "/start"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
