# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# infra/gateway/definitions.py
from typing import Optional


class QueuebotError(Exception):
    """Base error for collaborator failures surfaced to the admission core"""
    def __init__(self, message: str, code: int = 500, retry_after: Optional[int] = None, session_id: Optional[str] = None):
        self.message = message
        self.code = code
        self.session_id = session_id
        self.retry_after = retry_after
        super().__init__(message)


class LedgerError(QueuebotError):
    """Credit ledger unreachable or rejected the operation"""
    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(message, 503, session_id=session_id)


class JobChannelError(QueuebotError):
    """Job channel could not open, publish or consume"""
    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(message, 503, session_id=session_id)


class TransportError(QueuebotError):
    """Chat transport failed to deliver or fetch messages"""
    def __init__(self, message: str, session_id: Optional[str] = None, code: int = 502):
        super().__init__(message, code, session_id=session_id)
