"""Process tree inspection straight from the /proc filesystem.

Every query here is a handful of file reads against kernel-maintained
records; nothing in this module spawns a subprocess. A missing or
unreadable record is how "the process is gone" shows up, so read failures
come back as empty values rather than exceptions.

Signals go through an injectable ``kill`` callable (``os.kill`` by default)
so tests can build a synthetic /proc tree and record deliveries.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Iterable

from gtwatch.types import Pid, ProcessNode, SignalResult

_logger = logging.getLogger(__name__)

KillFunc = Callable[[int, int], None]

# Bounds all_descendants on a corrupted or cyclic /proc
MAX_TREE_DEPTH = 256


class ProcessInspector:
    """Read-only view of the kernel process table, plus signal delivery.

    Holds no process state of its own: every call re-reads /proc.
    """

    def __init__(self, proc_root: Path | str = "/proc", kill: KillFunc | None = None) -> None:
        self._root = Path(proc_root)
        self._kill = kill or os.kill

    @property
    def proc_root(self) -> Path:
        return self._root

    # ── Raw record reads ─────────────────────────────────────────────────

    def _read_text(self, *parts: str) -> str | None:
        try:
            return self._root.joinpath(*parts).read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None

    def children(self, pid: Pid) -> list[Pid]:
        """Direct children of ``pid``. Empty if the process is gone or unreadable."""
        data = self._read_text(str(pid), "task", str(pid), "children")
        if not data:
            return []
        children = []
        for field in data.split():
            try:
                children.append(int(field))
            except ValueError:
                continue
        return children

    def command_name(self, pid: Pid) -> str:
        data = self._read_text(str(pid), "comm")
        return data.strip() if data else ""

    def command_line(self, pid: Pid) -> str:
        """argv joined with spaces (cmdline is NUL-separated)."""
        try:
            raw = self._root.joinpath(str(pid), "cmdline").read_bytes()
        except OSError:
            return ""
        return raw.decode("utf-8", errors="replace").replace("\x00", " ").strip()

    def argv0(self, pid: Pid) -> str:
        try:
            raw = self._root.joinpath(str(pid), "cmdline").read_bytes()
        except OSError:
            return ""
        return raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace")

    def parent_pid(self, pid: Pid) -> Pid | None:
        """Current parent PID, or None when the process no longer exists."""
        data = self._read_text(str(pid), "stat")
        if not data:
            return None
        # "pid (comm) state ppid ..." where comm may itself contain ") "
        close = data.rfind(")")
        if close == -1:
            return None
        fields = data[close + 1:].split()
        if len(fields) < 2:
            return None
        try:
            return int(fields[1])
        except ValueError:
            return None

    def node(self, pid: Pid) -> ProcessNode | None:
        ppid = self.parent_pid(pid)
        if ppid is None:
            return None
        return ProcessNode(
            pid=pid,
            parent_pid=ppid,
            command_name=self.command_name(pid),
            command_line=self.command_line(pid),
        )

    def pids(self) -> list[Pid]:
        """All PIDs currently listed under the proc root."""
        try:
            entries = list(self._root.iterdir())
        except OSError as e:
            _logger.warning("Cannot read process table at %s: %s", self._root, e)
            return []
        return sorted(int(entry.name) for entry in entries if entry.name.isdigit())

    def nodes(self) -> list[ProcessNode]:
        """Snapshot of the whole table. Processes that exit mid-scan are skipped."""
        result = []
        for pid in self.pids():
            node = self.node(pid)
            if node is not None:
                result.append(node)
        return result

    # ── Tree walks ───────────────────────────────────────────────────────

    def all_descendants(self, pid: Pid) -> list[Pid]:
        """Every descendant of ``pid``, deepest first.

        A child always appears before its own parent, so signaling the list
        in order never lets a parent die (and its children get reparented
        to init) before those children have been reached.
        """
        result: list[Pid] = []
        visited = {pid}
        stack = [(pid, iter(self.children(pid)))]
        while stack:
            current, pending = stack[-1]
            child = next(pending, None)
            if child is None:
                stack.pop()
                if stack:
                    result.append(current)
                continue
            if child in visited:
                continue
            visited.add(child)
            if len(stack) >= MAX_TREE_DEPTH:
                _logger.warning("Process tree under %d exceeds depth %d; truncating", pid, MAX_TREE_DEPTH)
                result.append(child)
                continue
            stack.append((child, iter(self.children(child))))
        return result

    def has_descendant_matching(
        self,
        pid: Pid,
        names: Iterable[str],
        visited: set[Pid] | None = None,
    ) -> bool:
        """True if any descendant's command name is exactly one of ``names``."""
        wanted = set(names)
        if visited is None:
            visited = set()
        if not wanted or pid in visited:
            return False
        visited.add(pid)
        stack = [pid]
        while stack:
            for child in self.children(stack.pop()):
                if child in visited:
                    continue
                visited.add(child)
                if self.command_name(child) in wanted:
                    return True
                stack.append(child)
        return False

    # ── Signals ──────────────────────────────────────────────────────────

    def exists(self, pid: Pid) -> bool:
        """Probe with signal 0. A permission refusal still means the process exists."""
        if pid <= 0:
            return False
        try:
            self._kill(pid, 0)
        except PermissionError:
            return True
        except OSError:
            return False
        return True

    def signal(self, pid: Pid, sig: int) -> None:
        """Deliver ``sig`` to ``pid``. Raises OSError if delivery is refused."""
        if pid <= 0:
            # 0 and negative PIDs address process groups, never a single target
            raise ProcessLookupError(f"refusing to signal pid {pid}")
        self._kill(pid, sig)

    def signal_all(self, pids: Iterable[Pid], sig: int) -> SignalResult:
        """Best-effort broadcast; per-target errors are recorded, not raised."""
        result = SignalResult()
        for pid in pids:
            try:
                self.signal(pid, sig)
            except OSError as e:
                result.failures[pid] = str(e)
                continue
            result.sent += 1
        return result
