# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# chat/sessions.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class SessionStatus(str, Enum):
    FREE = "free"
    BUSY = "busy"
    AWAITING_RESPONSE = "awaiting_response"


@dataclass
class SessionEntry:
    status: SessionStatus
    job_id: Optional[str] = None


class SessionRegistry:
    """
    Process-local map of session id -> status.

    An absent entry means FREE; FREE is never stored. Every method is
    synchronous, so a check and the write it guards happen without an
    intervening suspension point on the event loop.
    """

    def __init__(self):
        self._entries: Dict[str, SessionEntry] = {}

    # ---- basic contract ----

    def get(self, session_id: str) -> SessionStatus:
        entry = self._entries.get(session_id)
        return entry.status if entry else SessionStatus.FREE

    def set(self, session_id: str, status: SessionStatus) -> None:
        if status == SessionStatus.FREE:
            self.clear(session_id)
            return
        entry = self._entries.get(session_id)
        if entry is None:
            self._entries[session_id] = SessionEntry(status=status)
        else:
            entry.status = status

    def clear(self, session_id: str) -> None:
        self._entries.pop(session_id, None)

    # ---- compare-and-set helpers ----

    def try_acquire(self, session_id: str) -> bool:
        """FREE -> BUSY in one step. False if the session is already BUSY or AWAITING_RESPONSE."""
        if session_id in self._entries:
            return False
        self._entries[session_id] = SessionEntry(status=SessionStatus.BUSY)
        return True

    def bind_job(self, session_id: str, job_id: str) -> None:
        entry = self._entries.get(session_id)
        if entry is None or entry.status != SessionStatus.BUSY:
            raise RuntimeError(f"Session {session_id} is not busy; cannot bind job {job_id}")
        entry.job_id = job_id

    def mark_awaiting(self, session_id: str, job_id: str) -> bool:
        """
        BUSY -> AWAITING_RESPONSE, only if the entry still carries `job_id`.

        Returns False when the entry is gone, i.e. the result was already
        correlated while the publish call was suspended.
        """
        entry = self._entries.get(session_id)
        if entry is None or entry.job_id != job_id:
            return False
        entry.status = SessionStatus.AWAITING_RESPONSE
        return True

    def resolve(self, session_id: str, job_id: Optional[str] = None) -> bool:
        """
        Clear the session once its job is settled.

        With a `job_id`, only clears if that job is still the outstanding one,
        so a late result never frees a session that moved on to a newer job.
        """
        entry = self._entries.get(session_id)
        if entry is None:
            return False
        if job_id is not None and entry.job_id != job_id:
            return False
        del self._entries[session_id]
        return True

    def job_id(self, session_id: str) -> Optional[str]:
        entry = self._entries.get(session_id)
        return entry.job_id if entry else None

    # ---- introspection ----

    def counts(self) -> Dict[str, int]:
        out = {SessionStatus.BUSY.value: 0, SessionStatus.AWAITING_RESPONSE.value: 0}
        for entry in self._entries.values():
            out[entry.status.value] += 1
        return out

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._entries
