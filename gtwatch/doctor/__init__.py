"""Doctor — health checks that detect, and optionally clean up, orphans.

- OrphanSessionCheck: gt-* sessions for rigs that no longer exist
- OrphanProcessCheck: agent runtimes with no tmux pane ancestor
- Doctor: runs checks, applies fixes under an advisory lock
"""

from gtwatch.doctor.base import CheckCategory, CheckContext, CheckResult, CheckStatus, FixReport
from gtwatch.doctor.orphan_processes import OrphanProcessCheck, ProcfsProcessLister
from gtwatch.doctor.orphan_sessions import OrphanSessionCheck
from gtwatch.doctor.runner import Doctor, DoctorReport

__all__ = [
    "CheckCategory",
    "CheckContext",
    "CheckResult",
    "CheckStatus",
    "Doctor",
    "DoctorReport",
    "FixReport",
    "OrphanProcessCheck",
    "OrphanSessionCheck",
    "ProcfsProcessLister",
]
