"""Chat channel integrations."""

from mikrobot.channels.base import BaseChannel
from mikrobot.channels.manager import ChannelManager

__all__ = ["BaseChannel", "ChannelManager"]
