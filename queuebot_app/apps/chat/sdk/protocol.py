# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# chat/sdk/protocol.py
from __future__ import annotations

import time
import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _new_job_id() -> str:
    return uuid.uuid4().hex


class _WireBase(BaseModel):
    """
    Queue payloads keep the camelCase names existing workers already speak
    (`chatId`, `jobId`, ...); Python code uses the snake_case attributes.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    session_id: str = Field(alias="chatId")

    @field_validator("session_id", mode="before")
    @classmethod
    def _coerce_session_id(cls, v: Any) -> Any:
        # chat ids arrive as numbers from some producers
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return str(int(v))
        return v

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class InboundMessage(BaseModel):
    session_id: str
    text: Optional[str] = None


class Job(_WireBase):
    query: str
    job_id: str = Field(default_factory=_new_job_id, alias="jobId")
    created_at: float = Field(default_factory=time.time, alias="createdAt")


class JobResult(_WireBase):
    response: str
    job_id: Optional[str] = Field(default=None, alias="jobId")
