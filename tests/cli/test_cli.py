"""Tests for the gtwatch CLI."""

from typer.testing import CliRunner

from gtwatch.beads import daemon
from gtwatch.cli import main as cli_main
from gtwatch.cli.main import app
from gtwatch.doctor.base import CheckResult, CheckStatus
from gtwatch.doctor.runner import CheckOutcome, DoctorReport

runner = CliRunner()


def test_help():
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("doctor", "sessions", "ensure", "descendants", "bd-stop"):
        assert command in result.output


def test_descendants(proc_table, monkeypatch):
    proc_table.add(1, 0, "systemd")
    proc_table.add(500, 1, "bash")
    proc_table.add(501, 500, "bash")
    proc_table.add(502, 501, "node", "node agent.js")
    monkeypatch.setattr(cli_main.settings, "proc_root", proc_table.root)

    result = runner.invoke(app, ["descendants", "500"])
    assert result.exit_code == 0
    assert "node agent.js" in result.output
    assert result.output.index("502") < result.output.index("501")


def test_bd_stop_dry_run(proc_table, monkeypatch):
    proc_table.add(1, 0, "systemd")
    proc_table.add(100, 1, "bd", "bd daemon")
    proc_table.add(101, 1, "bd", "bd activity")
    monkeypatch.setattr(cli_main.settings, "proc_root", proc_table.root)
    monkeypatch.setattr(daemon.shutil, "which", lambda name: "/usr/bin/bd")

    result = runner.invoke(app, ["bd-stop", "--dry-run"])
    assert result.exit_code == 0
    assert "Would stop 1 bd daemon(s), 1 bd activity process(es)" in result.output
    assert proc_table.alive(100)


def test_doctor_reports_and_fails_on_warning(town, monkeypatch):
    class Stub:
        def run(self, ctx, fix=False):
            result = CheckResult(
                name="orphan-sessions",
                status=CheckStatus.WARNING,
                message="Found 1 orphaned session(s)",
                details=["Orphan: gt-gone-toast"],
                fix_hint="Run 'gtwatch doctor --fix' to kill orphaned sessions",
            )
            return DoctorReport([CheckOutcome(result)])

    monkeypatch.setattr(cli_main, "Doctor", Stub)
    result = runner.invoke(app, ["doctor", "--town", str(town)])
    assert result.exit_code == 1
    assert "Orphan: gt-gone-toast" in result.output
    assert "gtwatch doctor --fix" in result.output


def test_doctor_fix_with_unusable_town(tmp_path):
    not_a_dir = tmp_path / "town"
    not_a_dir.write_text("")
    result = runner.invoke(app, ["doctor", "--fix", "--town", str(not_a_dir)])
    assert result.exit_code == 1
    assert "cannot open remediation lock" in result.output
