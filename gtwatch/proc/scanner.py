"""Pattern Scanner — find processes by a fragment of their command line.

Replaces ``pgrep -f`` / ``pkill -f`` with a direct scan of the process
table. Patterns are plain substrings, not regular expressions.
"""

from __future__ import annotations

import logging
import signal
import time
from dataclasses import dataclass
from typing import Callable

from gtwatch.config import settings
from gtwatch.proc.inspector import ProcessInspector
from gtwatch.types import Pid

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StopResult:
    killed: int
    remaining: int


class PatternScanner:
    """Full-table command-line scans and the terminate/kill escalation."""

    def __init__(
        self,
        inspector: ProcessInspector | None = None,
        sleep: Callable[[float], None] = time.sleep,
        graceful_timeout: float | None = None,
        settle_delay: float | None = None,
    ) -> None:
        self._inspector = inspector or ProcessInspector(settings.proc_root)
        self._sleep = sleep
        self._graceful_timeout = (
            settings.daemon_graceful_timeout_seconds if graceful_timeout is None else graceful_timeout
        )
        self._settle_delay = settings.daemon_settle_seconds if settle_delay is None else settle_delay

    @property
    def inspector(self) -> ProcessInspector:
        return self._inspector

    def find_by_pattern(self, pattern: str) -> list[Pid]:
        """PIDs whose command line contains ``pattern``."""
        return [
            pid for pid in self._inspector.pids()
            if pattern in self._inspector.command_line(pid)
        ]

    def count_by_pattern(self, pattern: str) -> int:
        return len(self.find_by_pattern(pattern))

    def stop_matching(self, pattern: str, force: bool = False, dry_run: bool = False) -> StopResult:
        """Stop every process matching ``pattern``.

        Without ``force`` this sends SIGTERM, waits the grace period, and
        SIGKILLs whatever is still matching. The table is re-scanned at each
        step, never reused. ``killed`` is clamped at zero because matching
        processes may spawn while we work.
        """
        before = self.count_by_pattern(pattern)
        if before == 0:
            return StopResult(killed=0, remaining=0)
        if dry_run:
            return StopResult(killed=before, remaining=before)

        pids = self.find_by_pattern(pattern)
        if force:
            self._inspector.signal_all(pids, signal.SIGKILL)
        else:
            sent = self._inspector.signal_all(pids, signal.SIGTERM)
            _logger.debug("SIGTERM sent to %d/%d '%s' processes", sent.sent, len(pids), pattern)
            self._sleep(self._graceful_timeout)
            if self.count_by_pattern(pattern) > 0:
                self._inspector.signal_all(self.find_by_pattern(pattern), signal.SIGKILL)

        self._sleep(self._settle_delay)

        after = self.count_by_pattern(pattern)
        killed = max(before - after, 0)
        _logger.info("Stopped %d '%s' process(es), %d remaining", killed, pattern, after)
        return StopResult(killed=killed, remaining=after)
