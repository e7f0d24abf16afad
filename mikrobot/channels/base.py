"""Base class for all chat channel integrations.

A channel receives messages from its platform, wraps them as
InboundMessage and publishes them on the MessageBus. It subscribes to the
bus under its own name to deliver the agent's replies back.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from loguru import logger

from mikrobot.bus.events import InboundMessage, OutboundMessage
from mikrobot.bus.queue import MessageBus
from mikrobot.config.schema import ChannelEntry


class BaseChannel(ABC):
    """Abstract base for all chat channel implementations."""

    def __init__(self, config: ChannelEntry) -> None:
        self._config = config
        self._bus: MessageBus | None = None
        self._accepting = True

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique channel identifier (e.g. 'telegram')."""

    async def start(self, bus: MessageBus) -> None:
        """Attach to the bus and connect to the platform."""
        self._bus = bus
        self._accepting = True
        bus.subscribe(self.name, self._handle_outbound)
        if not self._config.allow_from:
            logger.warning(
                "Channel '{}' has an empty allow_from list: every sender is accepted",
                self.name,
            )
        try:
            await self.connect()
        except Exception:
            bus.unsubscribe(self.name, self._handle_outbound)
            self._bus = None
            raise

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the platform and begin receiving messages."""

    def pause_inbound(self) -> None:
        """Refuse new inbound messages; replies still go out until stop()."""
        self._accepting = False

    async def stop(self) -> None:
        """Detach from the bus and disconnect from the platform."""
        if self._bus is not None:
            self._bus.unsubscribe(self.name, self._handle_outbound)
        await self.disconnect()

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect from the platform and clean up resources."""

    @abstractmethod
    async def send(self, message: OutboundMessage) -> None:
        """Deliver one reply to its chat on the platform."""

    def is_allowed(self, sender_id: str) -> bool:
        """Check a sender against the allowlist. Empty list allows everyone."""
        if not self._config.allow_from:
            return True
        return sender_id in self._config.allow_from

    async def publish(self, sender_id: str, chat_id: str, text: str, **metadata: str) -> bool:
        """Publish an inbound message if the sender is allowed."""
        if self._bus is None:
            raise RuntimeError(f"Channel '{self.name}' is not started")
        if not self._accepting:
            logger.info("{}: shutting down, dropped message from {}", self.name, sender_id)
            return False
        if not self.is_allowed(sender_id):
            logger.warning("{}: blocked message from non-allowed sender {}", self.name, sender_id)
            return False
        await self._bus.publish_inbound(
            InboundMessage(
                channel=self.name,
                sender_id=sender_id,
                chat_id=chat_id,
                text=text,
                metadata=dict(metadata),
            )
        )
        return True

    async def _handle_outbound(self, message: OutboundMessage) -> None:
        if message.channel != self.name:
            return
        try:
            await self.send(message)
        except Exception as exc:
            logger.error("Failed to send on {}: {}", self.name, exc)

    @staticmethod
    def split_message(text: str, max_length: int) -> list[str]:
        """Split text into chunks that fit within platform message limits.

        Splits on newline boundaries when possible, falls back to a hard
        split at max_length.
        """
        if len(text) <= max_length:
            return [text]

        chunks: list[str] = []
        remaining = text
        while remaining:
            if len(remaining) <= max_length:
                chunks.append(remaining)
                break

            split_at = remaining.rfind("\n", 0, max_length)
            if split_at == -1 or split_at < max_length // 2:
                split_at = max_length

            chunks.append(remaining[:split_at])
            remaining = remaining[split_at:].lstrip("\n")

        return chunks
