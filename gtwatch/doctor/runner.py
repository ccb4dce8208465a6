"""Doctor — runs every registered check and, on request, their fixes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from gtwatch.doctor.base import BaseCheck, CheckContext, CheckResult, CheckStatus, FixableCheck, FixReport
from gtwatch.doctor.lock import remediation_lock
from gtwatch.doctor.orphan_processes import OrphanProcessCheck
from gtwatch.doctor.orphan_sessions import OrphanSessionCheck
from gtwatch.exceptions import RemediationError, RemediationLockedError

_logger = logging.getLogger(__name__)


@dataclass
class CheckOutcome:
    result: CheckResult
    fix: FixReport | None = None
    fix_error: str = ""
    after: CheckResult | None = None


@dataclass
class DoctorReport:
    outcomes: list[CheckOutcome] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        for outcome in self.outcomes:
            final = outcome.after or outcome.result
            if final.status is not CheckStatus.OK or outcome.fix_error:
                return False
        return True

    def count(self, status: CheckStatus) -> int:
        return sum(1 for o in self.outcomes if (o.after or o.result).status is status)


def default_checks() -> list[BaseCheck]:
    return [OrphanSessionCheck(), OrphanProcessCheck()]


class Doctor:
    def __init__(self, checks: list[BaseCheck] | None = None) -> None:
        self._checks = checks if checks is not None else default_checks()

    @property
    def checks(self) -> list[BaseCheck]:
        return list(self._checks)

    def register(self, check: BaseCheck) -> None:
        self._checks.append(check)

    def _run_check(self, check: BaseCheck, ctx: CheckContext) -> CheckResult:
        try:
            return check.run(ctx)
        except Exception as e:
            _logger.exception("Check %s crashed", check.name)
            return CheckResult(name=check.name, status=CheckStatus.ERROR, message=f"Check failed: {e}")

    def run(self, ctx: CheckContext, fix: bool = False) -> DoctorReport:
        """Run all checks. With ``fix``, repair what they found.

        Fixes run under the town's remediation lock; a concurrent pass makes
        this raise RemediationLockedError before anything is inspected.
        """
        if not fix:
            return DoctorReport([CheckOutcome(self._run_check(c, ctx)) for c in self._checks])
        with remediation_lock(ctx.town_root):
            return self._run_and_fix(ctx)

    def _run_and_fix(self, ctx: CheckContext) -> DoctorReport:
        report = DoctorReport()
        for check in self._checks:
            outcome = CheckOutcome(self._run_check(check, ctx))
            report.outcomes.append(outcome)
            if outcome.result.status is CheckStatus.OK or not isinstance(check, FixableCheck):
                continue
            try:
                outcome.fix = check.fix(ctx)
            except RemediationLockedError:
                raise
            except RemediationError as e:
                outcome.fix_error = str(e)
                if isinstance(e.report, FixReport):
                    outcome.fix = e.report
                continue
            if not ctx.dry_run:
                outcome.after = self._run_check(check, ctx)
        return report
