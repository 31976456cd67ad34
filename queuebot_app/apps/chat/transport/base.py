# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# chat/transport/base.py
from abc import ABC, abstractmethod
from typing import Awaitable, Callable

from queuebot_app.apps.chat.sdk.protocol import InboundMessage

MessageHandler = Callable[[InboundMessage], Awaitable[None]]


class IChatTransport(ABC):
    """Inbound/outbound chat surface. Text-less inbound updates never reach the handler."""

    @abstractmethod
    async def send_message(self, session_id: str, text: str) -> None:
        """Deliver one outbound message; raises TransportError on failure."""

    @abstractmethod
    async def start(self, handler: MessageHandler) -> None:
        """Begin delivering inbound messages to `handler` in the background."""

    @abstractmethod
    async def stop(self) -> None:
        """Stop accepting inbound messages and wait for in-flight handlers."""

    async def close(self) -> None:
        return None
