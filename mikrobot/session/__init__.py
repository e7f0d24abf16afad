"""Conversation session persistence."""

from mikrobot.session.manager import Session, SessionManager

__all__ = ["Session", "SessionManager"]
