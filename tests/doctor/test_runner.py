"""Tests for the Doctor runner and the remediation lock."""

import pytest

from gtwatch.doctor.base import BaseCheck, CheckContext, CheckStatus, FixableCheck, FixReport
from gtwatch.doctor.lock import lock_path, remediation_lock
from gtwatch.doctor.orphan_processes import OrphanProcessCheck
from gtwatch.doctor.orphan_sessions import OrphanSessionCheck
from gtwatch.doctor.runner import Doctor, default_checks
from gtwatch.exceptions import RemediationError, RemediationLockedError


class StubCheck(FixableCheck):
    def __init__(self, name, statuses, fix_error=None):
        self.name = name
        self._statuses = list(statuses)
        self._fix_error = fix_error
        self.fixes = 0

    def run(self, ctx):
        status = self._statuses.pop(0) if len(self._statuses) > 1 else self._statuses[0]
        return self._result(status, f"{self.name} is {status.value}")

    def fix(self, ctx):
        self.fixes += 1
        if self._fix_error:
            raise self._fix_error
        return FixReport(name=self.name, dry_run=ctx.dry_run, killed=1)


class ReadOnlyCheck(BaseCheck):
    name = "read-only"

    def run(self, ctx):
        return self._result(CheckStatus.WARNING, "look but do not touch")


class CrashingCheck(BaseCheck):
    name = "crashy"

    def run(self, ctx):
        raise RuntimeError("boom")


@pytest.fixture
def ctx(tmp_path):
    return CheckContext(town_root=tmp_path)


def test_default_checks():
    kinds = [type(c) for c in default_checks()]
    assert kinds == [OrphanSessionCheck, OrphanProcessCheck]


def test_report_without_fix(ctx, tmp_path):
    check = StubCheck("stub", [CheckStatus.WARNING])
    report = Doctor([check]).run(ctx)
    assert not report.ok
    assert report.count(CheckStatus.WARNING) == 1
    assert check.fixes == 0
    assert not lock_path(tmp_path).exists()


def test_fix_then_recheck(ctx):
    check = StubCheck("stub", [CheckStatus.WARNING, CheckStatus.OK])
    healthy = StubCheck("healthy", [CheckStatus.OK])
    report = Doctor([check, healthy]).run(ctx, fix=True)

    assert report.ok
    first = report.outcomes[0]
    assert first.fix.killed == 1
    assert first.after.status is CheckStatus.OK
    assert healthy.fixes == 0


def test_dry_run_does_not_recheck(tmp_path):
    check = StubCheck("stub", [CheckStatus.WARNING, CheckStatus.OK])
    report = Doctor([check]).run(CheckContext(town_root=tmp_path, dry_run=True), fix=True)
    assert report.outcomes[0].fix.dry_run
    assert report.outcomes[0].after is None
    assert not report.ok


def test_fix_error_is_recorded(ctx):
    partial = FixReport(name="stub", errors=["failed to kill session gt-x"])
    check = StubCheck("stub", [CheckStatus.WARNING], RemediationError("failed to kill session gt-x", report=partial))
    other = StubCheck("other", [CheckStatus.WARNING, CheckStatus.OK])
    report = Doctor([check, other]).run(ctx, fix=True)

    outcome = report.outcomes[0]
    assert outcome.fix_error == "failed to kill session gt-x"
    assert outcome.fix is partial
    assert outcome.after is None
    assert other.fixes == 1
    assert not report.ok


def test_unfixable_checks_are_left_alone(ctx):
    report = Doctor([ReadOnlyCheck()]).run(ctx, fix=True)
    assert report.outcomes[0].fix is None
    assert report.count(CheckStatus.WARNING) == 1


def test_crashing_check_becomes_error(ctx):
    doctor = Doctor([])
    doctor.register(CrashingCheck())
    report = doctor.run(ctx)
    result = report.outcomes[0].result
    assert result.status is CheckStatus.ERROR
    assert "boom" in result.message


def test_lock_is_written_and_released(tmp_path):
    with remediation_lock(tmp_path) as path:
        assert path == tmp_path / ".runtime" / "doctor-fix.lock"
        assert path.read_text().strip().isdigit()
    with remediation_lock(tmp_path):
        pass


def test_unusable_town_root_is_a_remediation_error(tmp_path):
    not_a_dir = tmp_path / "town"
    not_a_dir.write_text("")
    with pytest.raises(RemediationError) as exc:
        with remediation_lock(not_a_dir):
            pass
    assert not isinstance(exc.value, RemediationLockedError)

    check = StubCheck("stub", [CheckStatus.WARNING])
    with pytest.raises(RemediationError):
        Doctor([check]).run(CheckContext(town_root=not_a_dir), fix=True)
    assert check.fixes == 0


def test_concurrent_fix_is_refused(ctx, tmp_path):
    check = StubCheck("stub", [CheckStatus.WARNING])
    with remediation_lock(tmp_path):
        with pytest.raises(RemediationLockedError):
            Doctor([check]).run(ctx, fix=True)
    assert check.fixes == 0


def test_report_only_ignores_lock(ctx, tmp_path):
    with remediation_lock(tmp_path):
        report = Doctor([StubCheck("stub", [CheckStatus.OK])]).run(ctx)
    assert report.ok
