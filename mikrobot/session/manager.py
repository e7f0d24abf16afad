"""Session persistence: conversation history per channel:chat_id key.

Each session is a JSON file holding the message history and timestamps.
Writes use temp-file-then-rename so a crash never leaves a half-written
file behind. The in-memory Session stays authoritative when a write fails.
"""

from __future__ import annotations

import asyncio
import json
import time
import weakref
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote

from loguru import logger

from mikrobot.providers.types import LLMMessage, ToolCall


@dataclass(slots=True)
class Session:
    """A single conversation and its ordered message history."""

    key: str
    messages: list[LLMMessage] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def add_message(self, message: LLMMessage | str, content: str | None = None) -> None:
        """Append a message; accepts an LLMMessage or a (role, content) pair."""
        if isinstance(message, str):
            message = LLMMessage(role=message, content=content)
        self.messages.append(message)
        self.updated_at = time.time()

    def history(self, max_count: int) -> list[LLMMessage]:
        """Return at most the last max_count messages, oldest first."""
        if max_count <= 0:
            return []
        return list(self.messages[-max_count:])

    @property
    def message_count(self) -> int:
        return len(self.messages)


def _key_to_filename(key: str) -> str:
    """Percent-encode a session key into a filename; distinct keys never collide."""
    return quote(key, safe="")


def _message_to_dict(msg: LLMMessage) -> dict[str, Any]:
    d: dict[str, Any] = {"role": msg.role}
    if msg.content is not None:
        d["content"] = msg.content
    if msg.tool_calls:
        d["tool_calls"] = [
            {"id": tc.id, "function_name": tc.function_name, "arguments": tc.arguments}
            for tc in msg.tool_calls
        ]
    if msg.tool_call_id is not None:
        d["tool_call_id"] = msg.tool_call_id
    if msg.name is not None:
        d["name"] = msg.name
    return d


def _dict_to_message(d: dict[str, Any]) -> LLMMessage:
    tool_calls = [
        ToolCall(id=tc["id"], function_name=tc["function_name"], arguments=tc["arguments"])
        for tc in d.get("tool_calls", [])
    ]
    return LLMMessage(
        role=d["role"],
        content=d.get("content"),
        tool_calls=tool_calls,
        tool_call_id=d.get("tool_call_id"),
        name=d.get("name"),
    )


def _session_to_dict(session: Session) -> dict[str, Any]:
    return {
        "key": session.key,
        "messages": [_message_to_dict(m) for m in session.messages],
        "created_at": session.created_at,
        "updated_at": session.updated_at,
    }


def _dict_to_session(d: dict[str, Any]) -> Session:
    return Session(
        key=d["key"],
        messages=[_dict_to_message(m) for m in d.get("messages", [])],
        created_at=d.get("created_at", time.time()),
        updated_at=d.get("updated_at", time.time()),
    )


class SessionManager:
    """Manages conversation session files on disk.

    Sessions live as individual JSON files under sessions_dir. A bounded
    cache keeps recently used sessions in memory, and lock_for() hands out
    one asyncio.Lock per key so concurrent workers never interleave
    mutations of the same conversation.
    """

    _DEFAULT_MAX_CACHE = 200

    def __init__(self, sessions_dir: Path, max_cache_size: int = _DEFAULT_MAX_CACHE) -> None:
        self._dir = sessions_dir
        self._dir.mkdir(parents=True, exist_ok=True)
        self._cache: dict[str, Session] = {}
        # Entries disappear once no task holds or waits on the lock.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self._dirty: set[str] = set()
        self._max_cache_size = max_cache_size

    def _path_for(self, key: str) -> Path:
        return self._dir / f"{_key_to_filename(key)}.json"

    def _load(self, key: str) -> Session | None:
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            session = _dict_to_session(data)
        except (OSError, json.JSONDecodeError, KeyError, TypeError) as exc:
            logger.warning("Corrupt session file {}: {}", path, exc)
            return None
        if session.key != key:
            logger.warning("Session file {} belongs to '{}', not '{}'", path, session.key, key)
            return None
        logger.debug("Loaded session '{}' ({} messages)", key, session.message_count)
        return session

    def get(self, key: str) -> Session | None:
        """Return an existing session, or None if it does not exist."""
        if key in self._cache:
            return self._cache[key]
        session = self._load(key)
        if session is not None:
            self._cache[key] = session
            self._evict_if_needed()
        return session

    def get_or_create(self, key: str) -> Session:
        """Return the session for key, creating an empty one if needed.

        Idempotent: repeated calls return the same object while it stays
        cached. Never raises; unreadable files yield a fresh session.
        """
        session = self.get(key)
        if session is not None:
            return session

        session = Session(key=key)
        self._cache[key] = session
        self._evict_if_needed()
        logger.debug("Created new session: {}", key)
        return session

    def lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def save(self, session: Session) -> bool:
        """Persist a session atomically.

        Returns False and logs when the write fails; the session is kept
        in memory and flushed again on close().
        """
        session.updated_at = time.time()
        self._cache[session.key] = session
        path = self._path_for(session.key)
        tmp_path = path.with_suffix(".tmp")

        try:
            tmp_path.write_text(
                json.dumps(_session_to_dict(session), ensure_ascii=False, separators=(",", ":")),
                encoding="utf-8",
            )
            tmp_path.replace(path)
        except OSError as exc:
            self._dirty.add(session.key)
            logger.error("Failed to save session '{}': {}", session.key, exc)
            return False

        self._dirty.discard(session.key)
        self._evict_if_needed()
        logger.debug("Saved session '{}' ({} messages)", session.key, session.message_count)
        return True

    def delete(self, key: str) -> bool:
        """Remove a session from disk and cache."""
        self._cache.pop(key, None)
        self._dirty.discard(key)
        path = self._path_for(key)
        if path.exists():
            path.unlink()
            logger.debug("Deleted session: {}", key)
            return True
        return False

    def list_sessions(self) -> list[str]:
        """Return all session keys, cached or on disk."""
        keys: set[str] = set(self._cache.keys())
        cached_stems = {_key_to_filename(k) for k in keys}
        for path in self._dir.glob("*.json"):
            if path.stem in cached_stems:
                continue
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
                keys.add(data["key"])
            except (OSError, json.JSONDecodeError, KeyError):
                keys.add(unquote(path.stem))
        return sorted(keys)

    def _evict_if_needed(self) -> None:
        """Evict least-recently-updated clean sessions when over capacity."""
        if len(self._cache) <= self._max_cache_size:
            return
        candidates = sorted(
            (k for k in self._cache if k not in self._dirty and not self._is_locked(k)),
            key=lambda k: self._cache[k].updated_at,
        )
        excess = len(self._cache) - self._max_cache_size
        for key in candidates[:excess]:
            del self._cache[key]

    def _is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def clear_cache(self) -> None:
        """Drop all in-memory cached sessions that are safely on disk."""
        for key in list(self._cache):
            if key not in self._dirty:
                del self._cache[key]

    def close(self) -> None:
        """Retry any writes that failed earlier. Called on shutdown."""
        for key in list(self._dirty):
            session = self._cache.get(key)
            if session is not None:
                self.save(session)
        if self._dirty:
            logger.warning("{} session(s) could not be flushed on close", len(self._dirty))
