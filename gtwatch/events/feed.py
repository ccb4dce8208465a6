"""Event Feed — append-only log of structured facts.

Cleanup code records what it is about to do (e.g. a pre-termination
``session_death`` event) so crashes can be investigated afterwards. The
doctor only depends on the ``EventSink`` protocol; ``FeedLog`` writes one
JSON object per line to the town's ``.events.jsonl``.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field

from gtwatch.types import new_id

_logger = logging.getLogger(__name__)

# ── Event types ──────────────────────────────────────────────────────────────

TYPE_SESSION_DEATH = "session_death"

# ── Visibility ───────────────────────────────────────────────────────────────

VISIBILITY_AUDIT = "audit"
VISIBILITY_FEED = "feed"
VISIBILITY_BOTH = "both"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Event(BaseModel):
    """A single recorded fact."""

    id: str = Field(default_factory=new_id)
    timestamp: datetime = Field(default_factory=_utc_now)
    source: str = "gtwatch"
    type: str
    actor: str = ""
    payload: dict[str, Any] = Field(default_factory=dict)
    visibility: str = VISIBILITY_FEED


def session_death_payload(session: str, agent: str, reason: str, caller: str) -> dict[str, Any]:
    return {
        "session": session,
        "agent": agent,
        "reason": reason,
        "caller": caller,
    }


class EventSink(Protocol):
    def log(
        self,
        type: str,
        actor: str,
        payload: dict[str, Any],
        visibility: str = VISIBILITY_FEED,
    ) -> Event: ...


class FeedLog:
    """Appends events to a JSONL file."""

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def log(
        self,
        type: str,
        actor: str,
        payload: dict[str, Any],
        visibility: str = VISIBILITY_FEED,
    ) -> Event:
        event = Event(type=type, actor=actor, payload=payload, visibility=visibility)
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as fh:
                fh.write(event.model_dump_json() + "\n")
        return event

    def read(self, limit: int = 0) -> list[Event]:
        """Most recent events (all when ``limit`` is 0)."""
        try:
            lines = self._path.read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        events = []
        for line in lines:
            if not line.strip():
                continue
            try:
                events.append(Event.model_validate_json(line))
            except ValueError as e:
                _logger.warning("Skipping malformed event line in %s: %s", self._path, e)
        return events[-limit:] if limit else events


class MemorySink:
    """Keeps events in memory. Used when no town feed is available."""

    def __init__(self) -> None:
        self.events: list[Event] = []

    def log(
        self,
        type: str,
        actor: str,
        payload: dict[str, Any],
        visibility: str = VISIBILITY_FEED,
    ) -> Event:
        event = Event(type=type, actor=actor, payload=payload, visibility=visibility)
        self.events.append(event)
        return event
