"""Tmux — the session controller.

Wraps the tmux binary as a subprocess contract: create/list/kill sessions,
send keys, capture panes, and read what each pane is running. Error text
from tmux is translated into a small set of sentinel exceptions that
callers branch on.

On top of that sits the freshness state machine for a named session:

    ABSENT         no such session
    ZOMBIE         session exists but only a shell is running in it
    AGENT_RUNNING  the pane (or one of its descendants) is an agent

``ensure_session_fresh`` drives any session to "exists and is fresh" and is
safe to call repeatedly.
"""

from __future__ import annotations

import logging
import signal
import subprocess
import time
from typing import Callable, Iterable

from gtwatch.config import GtwatchSettings, settings as default_settings
from gtwatch.exceptions import (
    NoServerError,
    SessionExistsError,
    SessionNotFoundError,
    TmuxError,
    TmuxTimeoutError,
)
from gtwatch.proc.inspector import ProcessInspector
from gtwatch.session.agents import AgentMatcher
from gtwatch.types import Pid, SessionRecord, SessionState

_logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]

# stderr fragment -> sentinel error class, checked in order
_ERROR_PATTERNS: list[tuple[str, type[TmuxError]]] = [
    ("no server running", NoServerError),
    ("error connecting", NoServerError),
    ("duplicate session", SessionExistsError),
    ("session not found", SessionNotFoundError),
    ("can't find session", SessionNotFoundError),
    ("can't find window", SessionNotFoundError),
    ("can't find pane", SessionNotFoundError),
]

_WAIT_POLL_SECONDS = 0.1


def _pane_target(session: str) -> str:
    """``=name:`` targets exactly ``name``; a bare name also matches a unique prefix."""
    return f"={session}:"


def wrap_error(stderr: str, args: Iterable[str]) -> TmuxError:
    """Map tmux's error output onto the sentinel exception taxonomy."""
    for fragment, error_cls in _ERROR_PATTERNS:
        if fragment in stderr:
            return error_cls(stderr.strip())
    joined = " ".join(args)
    return TmuxError(f"tmux {joined}: {stderr.strip() or 'failed'}")


class SessionSet:
    """Point-in-time set of session names from one ``list-sessions`` call."""

    def __init__(self, names: Iterable[str]) -> None:
        self._names = frozenset(names)

    def has(self, name: str) -> bool:
        return name in self._names

    def names(self) -> list[str]:
        return sorted(self._names)

    def __contains__(self, name: object) -> bool:
        return name in self._names

    def __len__(self) -> int:
        return len(self._names)


class Tmux:
    """Subprocess wrapper around tmux plus session lifecycle helpers."""

    def __init__(
        self,
        binary: str | None = None,
        socket: str | None = None,
        inspector: ProcessInspector | None = None,
        agents: AgentMatcher | None = None,
        runner: Runner = subprocess.run,
        sleep: Callable[[float], None] = time.sleep,
        settings: GtwatchSettings | None = None,
    ) -> None:
        cfg = settings or default_settings
        self._binary = binary or cfg.tmux_binary
        self._socket = cfg.tmux_socket if socket is None else socket
        self._inspector = inspector or ProcessInspector(cfg.proc_root)
        self._agents = agents or AgentMatcher.from_settings(cfg)
        self._runner = runner
        self._sleep = sleep
        self._timeout = cfg.tmux_timeout_seconds
        self._grace = cfg.sigterm_grace_seconds
        self._rescan_delay = cfg.descendant_rescan_delay_seconds
        self._rescan_attempts = max(cfg.descendant_rescan_attempts, 1)
        self._fresh_retries = max(cfg.fresh_session_retries, 1)

    @property
    def inspector(self) -> ProcessInspector:
        return self._inspector

    @property
    def agents(self) -> AgentMatcher:
        return self._agents

    def _run(self, *args: str) -> str:
        cmd = [self._binary]
        if self._socket:
            cmd += ["-L", self._socket]
        cmd += args
        try:
            proc = self._runner(cmd, capture_output=True, text=True, timeout=self._timeout)
        except FileNotFoundError as e:
            raise TmuxError(f"tmux binary not found: {self._binary}") from e
        except subprocess.TimeoutExpired as e:
            raise TmuxError(f"tmux {args[0]} timed out after {self._timeout}s") from e
        if proc.returncode != 0:
            raise wrap_error(proc.stderr or "", args)
        return proc.stdout or ""

    # ── Pass-through operations ──────────────────────────────────────────

    def has_session(self, name: str) -> bool:
        # "=" forces an exact match; tmux otherwise accepts name prefixes
        try:
            self._run("has-session", "-t", f"={name}")
        except (SessionNotFoundError, NoServerError):
            return False
        return True

    def list_sessions(self) -> list[str]:
        try:
            out = self._run("list-sessions", "-F", "#{session_name}")
        except NoServerError:
            return []
        return [line.strip() for line in out.splitlines() if line.strip()]

    def get_session_set(self) -> SessionSet:
        return SessionSet(self.list_sessions())

    def new_session(self, name: str, work_dir: str = "") -> None:
        args = ["new-session", "-d", "-s", name]
        if work_dir:
            args += ["-c", work_dir]
        self._run(*args)

    def new_session_with_command(self, name: str, work_dir: str, command: str) -> None:
        args = ["new-session", "-d", "-s", name]
        if work_dir:
            args += ["-c", work_dir]
        args.append(command)
        self._run(*args)

    def kill_session(self, name: str) -> None:
        self._run("kill-session", "-t", f"={name}")

    def send_keys(self, session: str, keys: str) -> None:
        """Type ``keys`` literally into the pane, then press Enter."""
        self._run("send-keys", "-t", _pane_target(session), "-l", keys)
        self._run("send-keys", "-t", _pane_target(session), "Enter")

    def capture_pane(self, session: str, lines: int = 50) -> str:
        return self._run("capture-pane", "-p", "-t", _pane_target(session), "-S", f"-{lines}")

    def get_pane_command(self, session: str) -> str:
        out = self._run("list-panes", "-t", _pane_target(session), "-F", "#{pane_current_command}")
        first = out.splitlines()[0] if out.strip() else ""
        return first.strip()

    def get_pane_pid(self, session: str) -> Pid:
        out = self._run("list-panes", "-t", _pane_target(session), "-F", "#{pane_pid}")
        try:
            return int(out.split()[0])
        except (IndexError, ValueError) as e:
            raise TmuxError(f"no pane pid for session {session}") from e

    def list_pane_pids(self) -> list[Pid]:
        """Foreground PIDs of every pane in every session, in one call."""
        try:
            out = self._run("list-panes", "-a", "-F", "#{pane_pid}")
        except NoServerError:
            return []
        pids = []
        for line in out.splitlines():
            try:
                pids.append(int(line.strip()))
            except ValueError:
                continue
        return pids

    def get_session_info(self, name: str) -> SessionRecord:
        out = self._run(
            "list-sessions", "-F",
            "#{session_name}|#{session_windows}|#{session_attached}|#{session_created}",
        )
        for line in out.splitlines():
            parts = line.strip().split("|")
            if len(parts) != 4 or parts[0] != name:
                continue
            return SessionRecord(
                name=name,
                pane_command=self.get_pane_command(name),
                window_count=_int_or_zero(parts[1]),
                attached=_int_or_zero(parts[2]) > 0,
                created=_int_or_zero(parts[3]),
            )
        raise SessionNotFoundError(f"session not found: {name}")

    def wait_for_command(self, session: str, exclude: Iterable[str], timeout: float) -> str:
        """Wait until the pane runs something not in ``exclude``; return it."""
        excluded = set(exclude)
        deadline = time.monotonic() + timeout
        while True:
            try:
                cmd = self.get_pane_command(session)
            except TmuxError:
                cmd = ""
            if cmd and cmd not in excluded:
                return cmd
            if time.monotonic() >= deadline:
                raise TmuxTimeoutError(
                    f"timed out after {timeout}s waiting for {session} to leave {sorted(excluded)}"
                )
            self._sleep(_WAIT_POLL_SECONDS)

    # ── Process-aware teardown ───────────────────────────────────────────

    def descendants_with_retry(self, pid: Pid) -> list[Pid]:
        """Descendants of ``pid`` over several scans, deepest first.

        Processes that fork mid-scan can be missed by a single pass. PIDs
        seen only in earlier scans come first; the last scan keeps its order.
        """
        earlier: list[Pid] = []
        latest: list[Pid] = []
        for attempt in range(self._rescan_attempts):
            if attempt:
                self._sleep(self._rescan_delay)
            for p in latest:
                if p not in earlier:
                    earlier.append(p)
            latest = self._inspector.all_descendants(pid)
        final = set(latest)
        return [p for p in earlier if p not in final] + latest

    def kill_session_with_processes(self, name: str) -> int:
        """Terminate everything under the session's pane, then the session.

        Descendants get SIGTERM deepest-first, a grace period, then SIGKILL
        if they are still around. Returns how many descendants were
        signaled.
        """
        try:
            pane_pid = self.get_pane_pid(name)
        except (SessionNotFoundError, NoServerError):
            return 0

        descendants = self.descendants_with_retry(pane_pid)
        signaled = 0
        if descendants:
            signaled = self._inspector.signal_all(descendants, signal.SIGTERM).sent
            self._sleep(self._grace)
            survivors = [p for p in descendants if self._inspector.exists(p)]
            if survivors:
                _logger.info("Force-killing %d process(es) in %s", len(survivors), name)
                self._inspector.signal_all(survivors, signal.SIGKILL)

        try:
            self.kill_session(name)
        except (SessionNotFoundError, NoServerError):
            # the session (or the whole server) can exit once its processes die
            pass
        if self._inspector.exists(pane_pid):
            self._inspector.signal_all([pane_pid], signal.SIGKILL)
        return signaled

    # ── Freshness state machine ──────────────────────────────────────────

    def is_agent_running(self, name: str, *process_names: str) -> bool:
        """Is an agent running in the session?

        Explicit ``process_names`` replace the configured defaults. False
        (never an error) when the session does not exist.
        """
        matcher = self._agents.with_names(process_names) if process_names else self._agents
        try:
            cmd = self.get_pane_command(name)
        except TmuxError as e:
            _logger.debug("No pane command for %s: %s", name, e)
            return False
        if matcher.matches(cmd):
            return True
        try:
            pane_pid = self.get_pane_pid(name)
        except TmuxError:
            return False
        return self._inspector.has_descendant_matching(pane_pid, matcher.names, visited=set())

    def is_claude_running(self, name: str) -> bool:
        return self.is_agent_running(name)

    def session_state(self, name: str) -> SessionState:
        if not self.has_session(name):
            return SessionState.ABSENT
        if self.is_agent_running(name):
            return SessionState.AGENT_RUNNING
        return SessionState.ZOMBIE

    def ensure_session_fresh(self, name: str, work_dir: str = "") -> None:
        """Make sure ``name`` exists and is not a zombie.

        ABSENT creates it, ZOMBIE kills and recreates it, AGENT_RUNNING is
        left alone. A zombie that lingers after the kill is waited out
        instead of surfacing SessionExistsError.
        """
        state = self.session_state(name)
        if state is SessionState.AGENT_RUNNING:
            return
        if state is SessionState.ZOMBIE:
            _logger.info("Session %s is a zombie; recreating", name)
            self.kill_session_with_processes(name)

        for attempt in range(self._fresh_retries):
            try:
                self.new_session(name, work_dir)
                return
            except SessionExistsError:
                if self.is_agent_running(name):
                    return
                if attempt == self._fresh_retries - 1:
                    raise
                self._sleep(self._rescan_delay)
                try:
                    self.kill_session(name)
                except (SessionNotFoundError, NoServerError):
                    pass


def _int_or_zero(value: str) -> int:
    try:
        return int(value)
    except ValueError:
        return 0
