"""Async message bus connecting chat channels to the agent loop.

Channels push InboundMessage onto a bounded inbound queue; a full queue
blocks the producer rather than dropping messages. The agent publishes
OutboundMessage onto the outbound queue, and dispatch_outbound() delivers
each one to every subscriber registered for its channel, in order.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Coroutine
from typing import Any

from loguru import logger

from mikrobot.bus.events import InboundMessage, OutboundMessage

OutboundCallback = Callable[[OutboundMessage], Coroutine[Any, Any, None]]


class MessageBus:
    """Inbound work queue plus per-channel outbound fan-out."""

    def __init__(self, max_queue_size: int = 256) -> None:
        self._inbound: asyncio.Queue[InboundMessage] = asyncio.Queue(maxsize=max_queue_size)
        self._outbound: asyncio.Queue[OutboundMessage] = asyncio.Queue()
        self._subscribers: dict[str, list[OutboundCallback]] = {}

    async def publish_inbound(self, message: InboundMessage) -> None:
        """Called by channels to submit an incoming user message."""
        await self._inbound.put(message)
        logger.debug(
            "Inbound queued: channel={} chat_id={} len={}",
            message.channel,
            message.chat_id,
            len(message.text),
        )

    async def consume_inbound(self) -> InboundMessage:
        """Wait for the next inbound message.

        Cancelling the waiting task raises CancelledError and leaves the
        queue untouched.
        """
        message = await self._inbound.get()
        self._inbound.task_done()
        return message

    async def publish_outbound(self, message: OutboundMessage) -> None:
        await self._outbound.put(message)
        logger.debug(
            "Outbound queued: channel={} chat_id={} len={}",
            message.channel,
            message.chat_id,
            len(message.text),
        )

    def subscribe(self, channel: str, callback: OutboundCallback) -> None:
        """Register a callback receiving every outbound message for a channel."""
        self._subscribers.setdefault(channel, []).append(callback)
        logger.debug("Outbound subscriber registered for {}", channel)

    def unsubscribe(self, channel: str, callback: OutboundCallback) -> None:
        with contextlib.suppress(ValueError, KeyError):
            self._subscribers[channel].remove(callback)

    async def dispatch_outbound(self) -> None:
        """Deliver outbound messages until cancelled.

        Subscribers are awaited sequentially so each one sees messages in
        the order they were published. A failing subscriber is logged and
        skipped; it never affects the others or stops the dispatcher.
        """
        logger.info("Outbound dispatcher started")
        while True:
            message = await self._outbound.get()
            try:
                await self._deliver(message)
            finally:
                self._outbound.task_done()

    async def _deliver(self, message: OutboundMessage) -> None:
        subscribers = list(self._subscribers.get(message.channel, ()))
        if not subscribers:
            logger.warning("No subscriber for channel '{}', dropping reply", message.channel)
            return
        for callback in subscribers:
            try:
                await callback(message)
            except Exception as exc:
                logger.error(
                    "Outbound subscriber error on channel {}: {}", message.channel, exc
                )

    @property
    def inbound_pending(self) -> int:
        return self._inbound.qsize()

    @property
    def outbound_pending(self) -> int:
        return self._outbound.qsize()

    @property
    def subscriber_count(self) -> int:
        return sum(len(subs) for subs in self._subscribers.values())
