"""Message bus event types.

InboundMessage flows from channels into the agent loop.
OutboundMessage flows from the agent loop back to channels.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class InboundMessage:
    """A message arriving from a chat channel to be processed by the agent."""

    channel: str
    sender_id: str
    chat_id: str
    text: str
    media: tuple[str, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def session_key(self) -> str:
        return f"{self.channel}:{self.chat_id}"


@dataclass(frozen=True, slots=True)
class OutboundMessage:
    """A reply from the agent to be delivered to one chat on one channel."""

    channel: str
    chat_id: str
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)
