"""Recognizing agent processes by their command name."""

from __future__ import annotations

import re
from dataclasses import dataclass

from gtwatch.config import GtwatchSettings, settings as default_settings


@dataclass(frozen=True)
class AgentMatcher:
    """Which foreground commands count as "an agent is running".

    Exact name matches, plus a bare semantic version (Claude Code shows up
    as e.g. ``2.0.76`` in ``pane_current_command``).
    """

    names: tuple[str, ...] = ("node", "claude")
    version_pattern: str = r"^\d+\.\d+\.\d+"

    @classmethod
    def from_settings(cls, settings: GtwatchSettings | None = None) -> AgentMatcher:
        cfg = settings or default_settings
        names = tuple(n.strip() for n in cfg.agent_process_names.split(",") if n.strip())
        return cls(names=names, version_pattern=cfg.agent_version_pattern)

    def matches(self, command: str) -> bool:
        if not command:
            return False
        if command in self.names:
            return True
        return bool(self.version_pattern) and re.match(self.version_pattern, command) is not None

    def with_names(self, names: tuple[str, ...]) -> AgentMatcher:
        """An explicit candidate list: exact names only, no version fallback."""
        return AgentMatcher(names=names, version_pattern="")
