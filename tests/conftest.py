"""Shared test fixtures: a synthetic /proc tree and a scripted tmux."""

from __future__ import annotations

import errno
import signal
import subprocess
from pathlib import Path
from typing import Callable

import pytest

from gtwatch.config import GtwatchSettings
from gtwatch.proc.inspector import ProcessInspector


class FakeProcTable:
    """Writes just enough of /proc for ProcessInspector to read.

    Each process gets ``comm``, ``cmdline``, ``stat`` and
    ``task/<pid>/children``; the parent's children file is kept in sync.
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self._parents: dict[int, int] = {}
        self._children: dict[int, list[int]] = {}
        self._comm: dict[int, str] = {}

    def add(self, pid: int, ppid: int, comm: str, cmdline: str | None = None) -> int:
        self._parents[pid] = ppid
        self._comm[pid] = comm
        self._children.setdefault(pid, [])
        pdir = self.root / str(pid)
        (pdir / "task" / str(pid)).mkdir(parents=True, exist_ok=True)
        (pdir / "comm").write_text(comm + "\n")
        argv = (cmdline if cmdline is not None else comm).split(" ")
        (pdir / "cmdline").write_bytes(b"\x00".join(a.encode() for a in argv) + b"\x00")
        self._write_stat(pid)
        self._write_children(pid)
        if ppid in self._children:
            self._children[ppid].append(pid)
            self._write_children(ppid)
        return pid

    def remove(self, pid: int) -> None:
        ppid = self._parents.pop(pid, None)
        self._comm.pop(pid, None)
        self._children.pop(pid, None)
        if ppid in self._children and pid in self._children[ppid]:
            self._children[ppid].remove(pid)
            self._write_children(ppid)
        pdir = self.root / str(pid)
        for path in sorted(pdir.rglob("*"), key=lambda p: len(p.parts), reverse=True):
            path.rmdir() if path.is_dir() else path.unlink()
        pdir.rmdir()

    def reparent(self, pid: int, new_ppid: int) -> None:
        old = self._parents[pid]
        if old in self._children and pid in self._children[old]:
            self._children[old].remove(pid)
            self._write_children(old)
        self._parents[pid] = new_ppid
        if new_ppid in self._children:
            self._children[new_ppid].append(pid)
            self._write_children(new_ppid)
        self._write_stat(pid)

    def set_children(self, pid: int, children: list[int]) -> None:
        """Overwrite a children file directly (for corrupted-table tests)."""
        self._children[pid] = list(children)
        self._write_children(pid)

    def alive(self, pid: int) -> bool:
        return pid in self._parents

    def _write_stat(self, pid: int) -> None:
        (self.root / str(pid) / "stat").write_text(
            f"{pid} ({self._comm[pid]}) S {self._parents[pid]} {pid} {pid} 0 -1 4194560\n"
        )

    def _write_children(self, pid: int) -> None:
        path = self.root / str(pid) / "task" / str(pid) / "children"
        path.write_text("".join(f"{c} " for c in self._children[pid]))


class RecordingKill:
    """Stands in for os.kill against a FakeProcTable.

    Signal 0 probes existence. Signals in ``fatal`` remove the target from
    the table, like a process that exits when told to.
    """

    def __init__(self, table: FakeProcTable, fatal: tuple[int, ...] = (signal.SIGTERM, signal.SIGKILL)) -> None:
        self.table = table
        self.fatal = set(fatal)
        self.calls: list[tuple[int, int]] = []
        self.denied: set[int] = set()

    def __call__(self, pid: int, sig: int) -> None:
        self.calls.append((pid, sig))
        if not self.table.alive(pid):
            raise ProcessLookupError(errno.ESRCH, "No such process")
        if pid in self.denied:
            raise PermissionError(errno.EPERM, "Operation not permitted")
        if sig in self.fatal:
            self.table.remove(pid)

    def delivered(self) -> list[tuple[int, int]]:
        """Real deliveries, excluding signal-0 probes."""
        return [(pid, sig) for pid, sig in self.calls if sig != 0]


class FakeTmuxRunner:
    """Scripted replacement for subprocess.run on the tmux binary.

    Handlers are keyed by tmux subcommand and return ``(rc, stdout, stderr)``
    or a plain stdout string.
    """

    def __init__(self) -> None:
        self.handlers: dict[str, Callable[[list[str]], object]] = {}
        self.calls: list[list[str]] = []

    def on(self, subcommand: str, handler: Callable[[list[str]], object]) -> None:
        self.handlers[subcommand] = handler

    def commands(self, subcommand: str) -> list[list[str]]:
        return [c for c in self.calls if c and c[0] == subcommand]

    def __call__(self, cmd: list[str], **kwargs) -> subprocess.CompletedProcess:
        args = list(cmd[1:])
        if args[:1] == ["-L"]:
            args = args[2:]
        self.calls.append(args)
        handler = self.handlers.get(args[0])
        if handler is None:
            return subprocess.CompletedProcess(cmd, 0, "", "")
        out = handler(args)
        if isinstance(out, tuple):
            rc, stdout, stderr = out
            return subprocess.CompletedProcess(cmd, rc, stdout, stderr)
        return subprocess.CompletedProcess(cmd, 0, out or "", "")


@pytest.fixture
def proc_table(tmp_path):
    return FakeProcTable(tmp_path / "proc")


@pytest.fixture
def kill_recorder(proc_table):
    return RecordingKill(proc_table)


@pytest.fixture
def inspector(proc_table, kill_recorder):
    return ProcessInspector(proc_table.root, kill=kill_recorder)


@pytest.fixture
def fast_settings(tmp_path):
    """Settings with no real waiting and a private proc root."""
    return GtwatchSettings(
        proc_root=tmp_path / "proc",
        town_root=tmp_path / "town",
        sigterm_grace_seconds=0.0,
        descendant_rescan_delay_seconds=0.0,
        descendant_rescan_attempts=2,
        fresh_session_retries=3,
    )


@pytest.fixture
def tmux_runner():
    return FakeTmuxRunner()


@pytest.fixture
def town(tmp_path):
    """A town directory with rigs 'acme' (polecats) and 'beads' (crew)."""
    root = tmp_path / "town"
    (root / "mayor").mkdir(parents=True)
    (root / "mayor" / "rigs.json").write_text("{}")
    (root / "acme" / "polecats").mkdir(parents=True)
    (root / "beads" / "crew").mkdir(parents=True)
    (root / "notarig").mkdir()
    (root / ".hidden" / "crew").mkdir(parents=True)
    return root


@pytest.fixture
def make_kill(proc_table):
    """Build a RecordingKill with a custom set of fatal signals."""

    def factory(fatal=(signal.SIGTERM, signal.SIGKILL)):
        return RecordingKill(proc_table, fatal=tuple(fatal))

    return factory
