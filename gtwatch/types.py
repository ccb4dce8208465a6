"""Core types shared across all gtwatch subsystems."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeAlias

from pydantic import BaseModel

# ── ID Types ──────────────────────────────────────────────────────────────────

Pid: TypeAlias = int
SessionName: TypeAlias = str


def new_id() -> str:
    return uuid.uuid4().hex[:12]


# ── Process snapshots ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProcessNode:
    """One process record, sampled fresh from the kernel."""

    pid: Pid
    parent_pid: Pid
    command_name: str
    command_line: str


@dataclass(frozen=True)
class OrphanCandidate:
    """A runtime process found without a tmux ancestor at detection time."""

    pid: Pid
    ppid: Pid
    command_line: str


@dataclass
class SignalResult:
    """Outcome of a best-effort signal broadcast."""

    sent: int = 0
    failures: dict[Pid, str] = field(default_factory=dict)

    @property
    def failed(self) -> int:
        return len(self.failures)


# ── Sessions ─────────────────────────────────────────────────────────────────


class SessionState(str, Enum):
    ABSENT = "absent"
    ZOMBIE = "zombie"
    AGENT_RUNNING = "agent-running"


class SessionRecord(BaseModel):
    """What tmux reports about one session."""

    name: SessionName
    pane_command: str = ""
    window_count: int = 0
    attached: bool = False
    created: int = 0  # Unix timestamp
