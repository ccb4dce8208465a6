"""Workspace roster — which rigs and town sessions are legitimate.

A town is a directory holding ``mayor/rigs.json``. Each rig is a
subdirectory with a ``polecats/`` or ``crew/`` directory in it.
"""

from __future__ import annotations

from pathlib import Path

from gtwatch.config import GtwatchSettings, settings as default_settings

_NON_RIG_DIRS = {"mayor", "deacon", ".beads"}


def find_town_root(start: Path | str) -> Path | None:
    """Walk up from ``start`` to the directory holding mayor/rigs.json."""
    current = Path(start).resolve()
    for candidate in (current, *current.parents):
        if (candidate / "mayor" / "rigs.json").is_file():
            return candidate
    return None


class WorkspaceRoster:
    def __init__(self, town_root: Path | str, settings: GtwatchSettings | None = None) -> None:
        self._root = Path(town_root)
        self._settings = settings or default_settings

    @property
    def town_root(self) -> Path:
        return self._root

    def valid_rigs(self) -> frozenset[str]:
        """Rig names found on disk right now. Empty outside a town."""
        if not (self._root / "mayor" / "rigs.json").exists():
            return frozenset()
        try:
            entries = list(self._root.iterdir())
        except OSError:
            return frozenset()
        rigs = set()
        for entry in entries:
            if not entry.is_dir() or entry.name in _NON_RIG_DIRS or entry.name.startswith("."):
                continue
            if (entry / "polecats").is_dir() or (entry / "crew").is_dir():
                rigs.add(entry.name)
        return frozenset(rigs)

    def mayor_session_name(self) -> str:
        return self._settings.mayor_session

    def deacon_session_name(self) -> str:
        return self._settings.deacon_session

    def town_sessions(self) -> frozenset[str]:
        return frozenset(n for n in (self.mayor_session_name(), self.deacon_session_name()) if n)

    def events_path(self) -> Path:
        return self._root / self._settings.events_file
