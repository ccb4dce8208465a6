"""Tests for PatternScanner."""

import signal

from gtwatch.proc.inspector import ProcessInspector
from gtwatch.proc.scanner import PatternScanner, StopResult


def _bd_table(table):
    table.add(1, 0, "systemd")
    table.add(100, 1, "bd", "bd daemon --rig acme")
    table.add(101, 1, "bd", "bd daemon --rig beads")
    table.add(102, 1, "bd", "bd daemon")
    table.add(103, 1, "bd", "bd activity --follow")
    table.add(104, 1, "vim", "vim notes-about-bd")


def _scanner(table, kill, sleep=None):
    return PatternScanner(
        ProcessInspector(table.root, kill=kill),
        sleep=sleep or (lambda _s: None),
        graceful_timeout=2.0,
        settle_delay=0.1,
    )


def test_count_and_find_by_pattern(proc_table, kill_recorder):
    _bd_table(proc_table)
    scanner = _scanner(proc_table, kill_recorder)
    assert scanner.count_by_pattern("bd daemon") == 3
    assert scanner.find_by_pattern("bd activity") == [103]
    assert scanner.count_by_pattern("nothing-matches") == 0


def test_stop_matching_nothing_to_do(proc_table, kill_recorder):
    _bd_table(proc_table)
    assert _scanner(proc_table, kill_recorder).stop_matching("gt-ghost") == StopResult(0, 0)
    assert kill_recorder.delivered() == []


def test_stop_matching_graceful(proc_table, kill_recorder):
    _bd_table(proc_table)
    sleeps = []
    result = _scanner(proc_table, kill_recorder, sleeps.append).stop_matching("bd daemon")
    assert result == StopResult(killed=3, remaining=0)
    assert {sig for _, sig in kill_recorder.delivered()} == {signal.SIGTERM}
    assert sleeps == [2.0, 0.1]
    assert proc_table.alive(103)


def test_stop_matching_escalates_to_sigkill(proc_table, make_kill):
    _bd_table(proc_table)
    stubborn = make_kill(fatal=(signal.SIGKILL,))
    result = _scanner(proc_table, stubborn).stop_matching("bd daemon")
    assert result == StopResult(killed=3, remaining=0)
    sigs = [sig for _, sig in stubborn.delivered()]
    assert sigs == [signal.SIGTERM] * 3 + [signal.SIGKILL] * 3


def test_stop_matching_force_skips_sigterm(proc_table, kill_recorder):
    _bd_table(proc_table)
    sleeps = []
    result = _scanner(proc_table, kill_recorder, sleeps.append).stop_matching("bd daemon", force=True)
    assert result.killed == 3
    assert {sig for _, sig in kill_recorder.delivered()} == {signal.SIGKILL}
    assert sleeps == [0.1]


def test_stop_matching_dry_run_signals_nothing(proc_table, kill_recorder):
    _bd_table(proc_table)
    result = _scanner(proc_table, kill_recorder).stop_matching("bd daemon", dry_run=True)
    assert result == StopResult(killed=3, remaining=3)
    assert kill_recorder.delivered() == []


def test_stop_matching_clamps_when_new_processes_appear(proc_table, make_kill):
    _bd_table(proc_table)
    immortal = make_kill(fatal=())
    spawned = iter(range(200, 210))

    def sleep(_seconds):
        # more matching daemons start while we wait
        for _ in range(3):
            proc_table.add(next(spawned), 1, "bd", "bd daemon")

    result = _scanner(proc_table, immortal, sleep).stop_matching("bd daemon")
    assert result.killed == 0
    assert result.remaining == 9
