"""Message bus for channel <-> agent communication."""

from mikrobot.bus.events import InboundMessage, OutboundMessage
from mikrobot.bus.queue import MessageBus

__all__ = ["InboundMessage", "MessageBus", "OutboundMessage"]
