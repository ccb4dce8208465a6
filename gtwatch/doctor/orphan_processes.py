"""Orphan process check — agent runtimes running outside any tmux pane.

A runtime process is orphaned when none of its ancestors (up to
``MAX_ANCESTRY_DEPTH`` levels, re-read live at every step) is a tmux server
or a tmux pane's foreground process. These are typically left behind by
crashed sessions, though a user's personal terminal session looks the same.

``run`` classifies and caches candidates. ``fix`` never trusts that cache
on its own: it resamples the pane registry and re-checks each candidate's
ancestry immediately before signaling it, so a process that was attached
to a pane in the meantime is skipped rather than killed.
"""

from __future__ import annotations

import os
import re
import signal
from typing import Protocol

import structlog

from gtwatch.config import settings
from gtwatch.doctor.base import CheckCategory, CheckContext, CheckResult, CheckStatus, FixableCheck, FixReport
from gtwatch.exceptions import RemediationError, TmuxError
from gtwatch.proc.inspector import ProcessInspector
from gtwatch.session.tmux import Tmux
from gtwatch.types import OrphanCandidate, Pid

logger = structlog.get_logger()

# tmux -> shell -> shell -> ... -> claude rarely goes deeper than this
MAX_ANCESTRY_DEPTH = 8

RUNTIME_PATTERN = re.compile(r"(?i)(^claude$|/claude$|^claude-code$|/claude-code$|^codex$|/codex$)")
# Desktop apps and browser bridges that share the name
EXCLUDE_PATTERN = re.compile(r"(?i)(Claude\.app|claude-native|chrome-native)")


class ProcessLister(Protocol):
    def list_tmux_server_pids(self) -> list[Pid]: ...

    def list_pane_pids(self) -> list[Pid]: ...

    def list_runtime_processes(self) -> list[OrphanCandidate]: ...

    def parent_pid(self, pid: Pid) -> Pid | None: ...


def is_runtime_process(command_name: str, argv0: str, command_line: str) -> bool:
    if EXCLUDE_PATTERN.search(command_line) or EXCLUDE_PATTERN.search(command_name):
        return False
    return bool(RUNTIME_PATTERN.search(command_name) or RUNTIME_PATTERN.search(argv0))


def _is_tmux_server(command_name: str) -> bool:
    # Long-running servers show up as "tmux: server" on Linux
    return (
        command_name == "tmux"
        or command_name.startswith("tmux:")
        or command_name.endswith("/tmux")
    )


class ProcfsProcessLister:
    """ProcessLister backed by /proc and a single ``tmux list-panes -a``."""

    def __init__(self, inspector: ProcessInspector, tmux: Tmux | None = None) -> None:
        self._inspector = inspector
        self._tmux = tmux or Tmux(inspector=inspector)

    def _require_table(self) -> None:
        if not self._inspector.proc_root.is_dir():
            raise OSError(f"process table unavailable at {self._inspector.proc_root}")

    def list_tmux_server_pids(self) -> list[Pid]:
        self._require_table()
        return [
            pid for pid in self._inspector.pids()
            if _is_tmux_server(self._inspector.command_name(pid))
        ]

    def list_pane_pids(self) -> list[Pid]:
        return self._tmux.list_pane_pids()

    def list_runtime_processes(self) -> list[OrphanCandidate]:
        self._require_table()
        found = []
        for pid in self._inspector.pids():
            if pid == os.getpid():
                continue
            name = self._inspector.command_name(pid)
            cmdline = self._inspector.command_line(pid)
            if not is_runtime_process(name, self._inspector.argv0(pid), cmdline):
                continue
            ppid = self._inspector.parent_pid(pid)
            if ppid is None:
                continue
            found.append(OrphanCandidate(pid=pid, ppid=ppid, command_line=cmdline or name))
        return found

    def parent_pid(self, pid: Pid) -> Pid | None:
        return self._inspector.parent_pid(pid)


class OrphanProcessCheck(FixableCheck):
    name = "orphan-processes"
    description = "Detect runtime processes outside tmux"
    category = CheckCategory.CLEANUP

    def __init__(
        self,
        lister: ProcessLister | None = None,
        inspector: ProcessInspector | None = None,
    ) -> None:
        self._inspector = inspector or ProcessInspector(settings.proc_root)
        self._lister = lister or ProcfsProcessLister(self._inspector)
        self._candidates: list[OrphanCandidate] = []

    @property
    def candidates(self) -> list[OrphanCandidate]:
        return list(self._candidates)

    def sample_registry(self) -> frozenset[Pid]:
        """Fresh set of tmux server PIDs plus every pane's foreground PID."""
        return frozenset(self._lister.list_tmux_server_pids()) | frozenset(self._lister.list_pane_pids())

    def is_orphan(self, candidate: OrphanCandidate, registry: frozenset[Pid]) -> bool:
        """True if no ancestor within MAX_ANCESTRY_DEPTH levels is in ``registry``.

        Starts from the candidate's current parent, falling back to the
        recorded one if it has exited. Uses at most MAX_ANCESTRY_DEPTH
        parent lookups.
        """
        ppid = self._lister.parent_pid(candidate.pid)
        if ppid is None:
            ppid = candidate.ppid

        visited: set[Pid] = set()
        for depth in range(MAX_ANCESTRY_DEPTH):
            if ppid <= 1 or ppid in visited:
                break
            visited.add(ppid)
            if ppid in registry:
                return False
            if depth == MAX_ANCESTRY_DEPTH - 1:
                break
            parent = self._lister.parent_pid(ppid)
            if parent is None:
                break
            ppid = parent
        return True

    def run(self, ctx: CheckContext) -> CheckResult:
        self._candidates = []
        try:
            registry = self.sample_registry()
        except (TmuxError, OSError) as e:
            return self._result(
                CheckStatus.WARNING, "Could not get tmux session info", details=[str(e)],
            )

        try:
            runtime = self._lister.list_runtime_processes()
        except OSError as e:
            return self._result(
                CheckStatus.WARNING, "Could not list runtime processes", details=[str(e)],
            )

        if not runtime:
            return self._result(CheckStatus.OK, "No runtime processes found")

        orphans = []
        inside = 0
        for candidate in runtime:
            if self.is_orphan(candidate, registry):
                orphans.append(candidate)
            else:
                inside += 1

        self._candidates = orphans

        if not orphans:
            return self._result(CheckStatus.OK, f"All {inside} runtime processes are inside tmux")

        details = [
            f"These processes have no tmux pane ancestor (checked {MAX_ANCESTRY_DEPTH} levels).",
            "Orphaned processes detected:",
        ]
        details += [f"  PID {c.pid}: {c.command_line} (parent: {c.ppid})" for c in orphans]
        return self._result(
            CheckStatus.WARNING,
            f"Found {len(orphans)} orphaned runtime process(es)",
            details=details,
            fix_hint="Run 'gtwatch doctor --fix' to kill orphaned processes",
        )

    def fix(self, ctx: CheckContext) -> FixReport:
        candidates, self._candidates = self._candidates, []
        report = FixReport(name=self.name, dry_run=ctx.dry_run)
        if not candidates:
            return report

        try:
            registry = self.sample_registry()
        except (TmuxError, OSError) as e:
            raise RemediationError(f"failed to list current pane PIDs: {e}", report=report) from e

        for candidate in candidates:
            if not self.is_orphan(candidate, registry):
                report.skipped += 1
                logger.info("orphan_process_reattached", pid=candidate.pid)
                continue

            if not self._inspector.exists(candidate.pid):
                report.gone += 1
                continue

            if ctx.dry_run:
                report.killed += 1
                report.actions.append(
                    f"[dry-run] Would kill PID {candidate.pid}: {candidate.command_line}"
                )
                continue

            try:
                self._inspector.signal(candidate.pid, signal.SIGTERM)
            except OSError as e:
                report.errors.append(f"failed to kill PID {candidate.pid}: {e}")
                continue
            report.killed += 1
            report.actions.append(f"Sent SIGTERM to PID {candidate.pid}: {candidate.command_line}")
            logger.info("orphan_process_killed", pid=candidate.pid, command=candidate.command_line)

        if ctx.dry_run and report.skipped:
            report.actions.append(
                f"[dry-run] {report.skipped} process(es) now have tmux ancestors, would skip"
            )

        if report.errors and report.killed == 0:
            raise RemediationError(report.errors[-1], report=report)
        return report
