# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Elena Viter

# chat/transport/telegram.py
"""
Telegram Bot API transport (long polling).

Inbound: getUpdates with an advancing offset; every text message becomes an
InboundMessage handled in its own task so a slow handler does not stall the
poll loop. Non-text updates (stickers, photos, edits) are skipped.
Outbound: sendMessage.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

import httpx

from queuebot_app.apps.chat.sdk.protocol import InboundMessage
from queuebot_app.apps.chat.transport.base import IChatTransport, MessageHandler
from queuebot_app.infra.gateway.definitions import TransportError

logger = logging.getLogger("Chat.Telegram")


def parse_update(update: Dict[str, Any]) -> Optional[InboundMessage]:
    msg = update.get("message")
    if not isinstance(msg, dict):
        return None
    chat_id = (msg.get("chat") or {}).get("id")
    text = msg.get("text")
    if chat_id is None or not isinstance(text, str):
        return None
    return InboundMessage(session_id=str(chat_id), text=text)


class TelegramTransport(IChatTransport):

    def __init__(
            self,
            token: str,
            *,
            api_base: str = "https://api.telegram.org",
            poll_timeout_sec: int = 30,
            error_backoff_sec: float = 2.0,
            client: Optional[httpx.AsyncClient] = None,
    ):
        if not token:
            raise ValueError("Telegram bot token is required")
        self.poll_timeout_sec = poll_timeout_sec
        self.error_backoff_sec = error_backoff_sec
        self._base_url = f"{api_base.rstrip('/')}/bot{token}"
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(poll_timeout_sec + 10.0))
        self._offset: Optional[int] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._handler_tasks: Set[asyncio.Task] = set()

    # ---------- Bot API ----------

    async def _call(self, method: str, payload: Dict[str, Any]) -> Any:
        try:
            resp = await self._client.post(f"{self._base_url}/{method}", json=payload)
        except httpx.HTTPError as e:
            # never include the url: it carries the bot token
            raise TransportError(f"Telegram {method} request failed: {type(e).__name__}") from e
        try:
            body = resp.json()
        except ValueError as e:
            raise TransportError(f"Telegram {method} returned non-JSON (HTTP {resp.status_code})",
                                 code=resp.status_code) from e
        if not body.get("ok"):
            raise TransportError(
                f"Telegram {method} failed: {body.get('description') or 'unknown error'}",
                code=int(body.get("error_code") or resp.status_code),
            )
        return body.get("result")

    async def send_message(self, session_id: str, text: str) -> None:
        try:
            await self._call("sendMessage", {"chat_id": session_id, "text": text})
        except TransportError as e:
            e.session_id = session_id
            raise

    async def get_updates(self) -> List[Dict[str, Any]]:
        payload: Dict[str, Any] = {"timeout": self.poll_timeout_sec, "allowed_updates": ["message"]}
        if self._offset is not None:
            payload["offset"] = self._offset
        updates = await self._call("getUpdates", payload) or []
        if updates:
            self._offset = max(int(u["update_id"]) for u in updates) + 1
        return updates

    # ---------- polling ----------

    async def start(self, handler: MessageHandler) -> None:
        if self._poll_task and not self._poll_task.done():
            return
        self._poll_task = asyncio.create_task(self._poll_loop(handler), name="telegram-poll-loop")
        logger.info("Telegram polling started (timeout=%ss)", self.poll_timeout_sec)

    async def _poll_loop(self, handler: MessageHandler) -> None:
        while True:
            try:
                updates = await self.get_updates()
            except asyncio.CancelledError:
                raise
            except TransportError as e:
                logger.error("Telegram polling error: %s", e)
                await asyncio.sleep(self.error_backoff_sec)
                continue

            for update in updates:
                message = parse_update(update)
                if message is None:
                    continue
                task = asyncio.create_task(self._dispatch(handler, message),
                                           name=f"telegram-message:{message.session_id}")
                self._handler_tasks.add(task)
                task.add_done_callback(self._handler_tasks.discard)

    async def _dispatch(self, handler: MessageHandler, message: InboundMessage) -> None:
        try:
            await handler(message)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Message handler failed for session %s", message.session_id)

    async def stop(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._handler_tasks:
            await asyncio.gather(*list(self._handler_tasks), return_exceptions=True)
        logger.info("Telegram polling stopped")

    async def close(self) -> None:
        await self._client.aclose()
