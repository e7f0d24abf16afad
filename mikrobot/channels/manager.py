"""Channel manager: builds enabled channels from config and runs their lifecycle."""

from __future__ import annotations

from loguru import logger

from mikrobot.bus.queue import MessageBus
from mikrobot.channels.base import BaseChannel
from mikrobot.config.schema import ChannelEntry, ChannelsConfig


def _create_channel(name: str, config: ChannelEntry) -> BaseChannel | None:
    """Lazily import and instantiate a channel by name."""
    if name == "telegram":
        from mikrobot.channels.telegram import TelegramChannel

        return TelegramChannel(config)
    logger.warning("Unknown channel type: {}", name)
    return None


class ChannelManager:
    """Manages the lifecycle of all enabled chat channels."""

    def __init__(
        self,
        channels_config: ChannelsConfig,
        extra_channels: list[BaseChannel] | None = None,
    ) -> None:
        self._config = channels_config
        self._extra = list(extra_channels or [])
        self._channels: list[BaseChannel] = []
        self._failed: list[str] = []

    @property
    def active_channels(self) -> list[BaseChannel]:
        return list(self._channels)

    @property
    def failed_channels(self) -> list[str]:
        """Names of channels whose start() raised during the last start_all()."""
        return list(self._failed)

    def _build_channels(self) -> list[BaseChannel]:
        channels: list[BaseChannel] = []
        for name, entry in (("telegram", self._config.telegram),):
            if not entry.enabled:
                continue
            channel = _create_channel(name, entry)
            if channel is not None:
                channels.append(channel)
        channels.extend(self._extra)
        return channels

    async def start_all(self, bus: MessageBus) -> list[str]:
        """Start all enabled channels. Returns the names that started.

        A channel that fails to start is logged and skipped; the others
        keep running.
        """
        started: list[str] = []
        self._failed = []
        for channel in self._build_channels():
            try:
                await channel.start(bus)
            except Exception as exc:
                logger.error("Failed to start channel '{}': {}", channel.name, exc)
                self._failed.append(channel.name)
                continue
            self._channels.append(channel)
            started.append(channel.name)
            logger.info("Channel '{}' started", channel.name)
        return started

    def pause_inbound(self) -> None:
        """Stop taking new messages from every channel ahead of shutdown."""
        for channel in self._channels:
            channel.pause_inbound()

    async def stop_all(self) -> None:
        """Stop all running channels in reverse start order."""
        for channel in reversed(self._channels):
            try:
                await channel.stop()
                logger.info("Channel '{}' stopped", channel.name)
            except Exception as exc:
                logger.error("Error stopping channel '{}': {}", channel.name, exc)

        self._channels.clear()

    def get_channel(self, name: str) -> BaseChannel | None:
        for ch in self._channels:
            if ch.name == name:
                return ch
        return None
