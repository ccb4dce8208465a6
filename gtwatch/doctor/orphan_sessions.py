"""Orphan session check — gt-* tmux sessions that belong to no known rig.

Valid sessions are the town singletons (whose names come from the
workspace, not from the gt- grammar) and anything under a rig that exists
on disk. Role names under a valid rig are not verified further: worker
names are free-form and cannot be checked without reading agent state.

Crew sessions (gt-<rig>-crew-<name>) are human-managed and are never
killed automatically, orphaned or not.
"""

from __future__ import annotations

from typing import Protocol

import structlog

from gtwatch.doctor.base import CheckCategory, CheckContext, CheckResult, CheckStatus, FixableCheck, FixReport
from gtwatch.events.feed import TYPE_SESSION_DEATH, EventSink, FeedLog, session_death_payload
from gtwatch.exceptions import RemediationError, SessionNotFoundError, TmuxError
from gtwatch.session.names import SESSION_PREFIX, is_crew_session, rig_of
from gtwatch.session.tmux import Tmux
from gtwatch.workspace.roster import WorkspaceRoster

logger = structlog.get_logger()

ORPHAN_REASON = "orphan cleanup"


class SessionBackend(Protocol):
    def list_sessions(self) -> list[str]: ...

    def kill_session(self, name: str) -> None: ...


def is_valid_session(session: str, valid_rigs: frozenset[str], town_sessions: frozenset[str]) -> bool:
    if session in town_sessions:
        return True
    rig = rig_of(session)
    return rig is not None and rig in valid_rigs


class OrphanSessionCheck(FixableCheck):
    name = "orphan-sessions"
    description = "Detect orphaned tmux sessions"
    category = CheckCategory.CLEANUP

    def __init__(
        self,
        tmux: SessionBackend | None = None,
        roster: WorkspaceRoster | None = None,
        events: EventSink | None = None,
        caller: str = "gtwatch doctor",
    ) -> None:
        self._tmux = tmux
        self._roster = roster
        self._events = events
        self._caller = caller
        self._orphans: list[str] = []

    @property
    def orphans(self) -> list[str]:
        return list(self._orphans)

    def _backend(self) -> SessionBackend:
        if self._tmux is None:
            self._tmux = Tmux()
        return self._tmux

    def _roster_for(self, ctx: CheckContext) -> WorkspaceRoster:
        return self._roster or WorkspaceRoster(ctx.town_root)

    def run(self, ctx: CheckContext) -> CheckResult:
        self._orphans = []
        try:
            sessions = self._backend().list_sessions()
        except TmuxError as e:
            return self._result(
                CheckStatus.WARNING, "Could not list tmux sessions", details=[str(e)],
            )

        if not sessions:
            return self._result(CheckStatus.OK, "No tmux sessions found")

        roster = self._roster_for(ctx)
        valid_rigs = roster.valid_rigs()
        town_sessions = roster.town_sessions()

        orphans = []
        valid = 0
        for session in sessions:
            if not session.startswith(SESSION_PREFIX):
                continue
            if is_valid_session(session, valid_rigs, town_sessions):
                valid += 1
            else:
                orphans.append(session)

        self._orphans = orphans

        if not orphans:
            return self._result(CheckStatus.OK, f"All {valid} gt sessions are valid")

        return self._result(
            CheckStatus.WARNING,
            f"Found {len(orphans)} orphaned session(s)",
            details=[f"Orphan: {s}" for s in orphans],
            fix_hint="Run 'gtwatch doctor --fix' to kill orphaned sessions",
        )

    def fix(self, ctx: CheckContext) -> FixReport:
        orphans, self._orphans = self._orphans, []
        report = FixReport(name=self.name, dry_run=ctx.dry_run)
        if not orphans:
            return report

        events = self._events or FeedLog(self._roster_for(ctx).events_path())
        backend = self._backend()

        for session in orphans:
            if is_crew_session(session):
                report.protected += 1
                report.actions.append(f"Protected crew session {session}")
                continue
            if ctx.dry_run:
                report.killed += 1
                report.actions.append(f"[dry-run] Would kill session {session}")
                continue

            try:
                events.log(
                    TYPE_SESSION_DEATH,
                    session,
                    session_death_payload(session, "unknown", ORPHAN_REASON, self._caller),
                )
            except OSError as e:
                logger.warning("session_death_event_failed", session=session, error=str(e))

            try:
                backend.kill_session(session)
            except SessionNotFoundError:
                report.gone += 1
                continue
            except TmuxError as e:
                report.errors.append(f"failed to kill session {session}: {e}")
                continue
            report.killed += 1
            report.actions.append(f"Killed session {session}")
            logger.info("orphan_session_killed", session=session, caller=self._caller)

        if report.errors and report.killed == 0:
            raise RemediationError(report.errors[-1], report=report)
        return report
