"""Custom exception hierarchy for gtwatch.

Absence (a process or session that does not exist) is never an exception;
it is reported as ``False`` or an empty result.
"""


class GtwatchError(Exception):
    """Base for all gtwatch errors."""


class TmuxError(GtwatchError):
    """The tmux subprocess failed with an unrecognized error."""


class NoServerError(TmuxError):
    """No tmux server is running (or it cannot be reached)."""


class SessionExistsError(TmuxError):
    """A session with the requested name already exists."""


class SessionNotFoundError(TmuxError):
    """The named session does not exist."""


class TmuxTimeoutError(TmuxError):
    """Timed out waiting for a pane to reach the expected state."""


class SessionNameError(GtwatchError, ValueError):
    """A session name does not follow the gt-<rig>-<role> grammar."""


class RemediationError(GtwatchError):
    """A cleanup pass could not kill any of its targets."""

    def __init__(self, message: str, report: object | None = None) -> None:
        super().__init__(message)
        self.report = report


class RemediationLockedError(RemediationError):
    """Another cleanup pass holds the remediation lock."""


class ShutdownIncompleteError(RemediationError):
    """Processes survived the full terminate/kill escalation."""

    def __init__(self, message: str, killed: int = 0, remaining: int = 0) -> None:
        super().__init__(message)
        self.killed = killed
        self.remaining = remaining
