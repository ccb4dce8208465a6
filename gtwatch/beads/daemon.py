"""Stopping the bd (beads) background processes.

Uses the pattern scanner instead of ``pkill`` so no shell is spawned per
signal. Health checks and restarts belong to bd itself.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass

from gtwatch.exceptions import ShutdownIncompleteError
from gtwatch.proc.scanner import PatternScanner

_logger = logging.getLogger(__name__)

DAEMON_PATTERN = "bd daemon"
ACTIVITY_PATTERN = "bd activity"


@dataclass(frozen=True)
class BdStopResult:
    daemons_killed: int
    activity_killed: int


def count_bd_daemons(scanner: PatternScanner | None = None) -> int:
    return (scanner or PatternScanner()).count_by_pattern(DAEMON_PATTERN)


def count_bd_activity_processes(scanner: PatternScanner | None = None) -> int:
    return (scanner or PatternScanner()).count_by_pattern(ACTIVITY_PATTERN)


def stop_all_bd_processes(
    dry_run: bool = False,
    force: bool = False,
    scanner: PatternScanner | None = None,
    bd_binary: str = "bd",
) -> BdStopResult:
    """Stop every bd daemon and ``bd activity`` process.

    With ``dry_run`` nothing is signaled and the counts are what would be
    stopped. Raises ShutdownIncompleteError if anything survives the full
    terminate/kill escalation.
    """
    if shutil.which(bd_binary) is None:
        return BdStopResult(0, 0)

    scanner = scanner or PatternScanner()
    daemons = scanner.stop_matching(DAEMON_PATTERN, force=force, dry_run=dry_run)
    activity = scanner.stop_matching(ACTIVITY_PATTERN, force=force, dry_run=dry_run)
    result = BdStopResult(daemons.killed, activity.killed)
    if dry_run:
        return result

    if daemons.remaining > 0:
        raise ShutdownIncompleteError(
            f"bd daemon shutdown incomplete: {daemons.remaining} still running",
            killed=daemons.killed,
            remaining=daemons.remaining,
        )
    if activity.remaining > 0:
        raise ShutdownIncompleteError(
            f"bd activity shutdown incomplete: {activity.remaining} still running",
            killed=activity.killed,
            remaining=activity.remaining,
        )
    _logger.info(
        "Stopped %d bd daemon(s) and %d bd activity process(es)",
        result.daemons_killed, result.activity_killed,
    )
    return result
