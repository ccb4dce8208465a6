"""gtwatch CLI — inspect sessions and clean up after crashed agents.

`gtwatch doctor` reports orphans, `gtwatch doctor --fix` removes them.
The remaining commands are thin views over the session controller and the
process inspector.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from gtwatch.beads.daemon import stop_all_bd_processes
from gtwatch.config import settings
from gtwatch.doctor import CheckContext, CheckStatus, Doctor
from gtwatch.exceptions import GtwatchError
from gtwatch.proc.inspector import ProcessInspector
from gtwatch.session.tmux import Tmux
from gtwatch.types import SessionState
from gtwatch.workspace.roster import find_town_root

console = Console()

app = typer.Typer(
    name="gtwatch",
    help="gtwatch -- supervise tmux-hosted agents and reclaim what crashed ones leave behind.",
    no_args_is_help=True,
)

_STATUS_STYLE = {
    CheckStatus.OK: "green",
    CheckStatus.WARNING: "yellow",
    CheckStatus.ERROR: "bold red",
}

_STATE_STYLE = {
    SessionState.ABSENT: "dim",
    SessionState.ZOMBIE: "yellow",
    SessionState.AGENT_RUNNING: "bold green",
}


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")):
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _resolve_town(town: Optional[Path]) -> Path:
    if town is not None:
        return town
    return find_town_root(Path.cwd()) or settings.town_root


@app.command("doctor")
def doctor(
    fix: bool = typer.Option(False, "--fix", help="Kill orphaned sessions and processes"),
    dry_run: bool = typer.Option(False, "--dry-run", help="With --fix, only report what would be killed"),
    town: Optional[Path] = typer.Option(None, "--town", "-t", help="Town root (default: search upward)"),
):
    """Detect orphaned sessions and runtime processes."""
    ctx = CheckContext(town_root=_resolve_town(town), dry_run=dry_run)
    try:
        report = Doctor().run(ctx, fix=fix)
    except GtwatchError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    for outcome in report.outcomes:
        result = outcome.after or outcome.result
        style = _STATUS_STYLE[result.status]
        console.print(f"[{style}]{result.status.value:>7}[/{style}]  {result.name}: {result.message}")
        if result.status is not CheckStatus.OK:
            for line in result.details:
                console.print(f"           [dim]{line}[/dim]")
            if result.fix_hint and not fix:
                console.print(f"           [cyan]{result.fix_hint}[/cyan]")
        if outcome.fix is not None:
            for action in outcome.fix.actions:
                console.print(f"           {action}")
            console.print(
                f"           killed={outcome.fix.killed} skipped={outcome.fix.skipped} "
                f"protected={outcome.fix.protected} gone={outcome.fix.gone}"
            )
        if outcome.fix_error:
            console.print(f"           [red]fix failed: {outcome.fix_error}[/red]")

    if not report.ok:
        raise typer.Exit(1)


@app.command("sessions")
def sessions():
    """List tmux sessions with their state."""
    tmux = Tmux()
    try:
        names = tmux.list_sessions()
    except GtwatchError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    if not names:
        console.print("[dim]No tmux sessions.[/dim]")
        return

    table = Table(title="Sessions")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Pane", style="white")
    table.add_column("Windows", justify="right")
    table.add_column("State")

    for name in names:
        state = tmux.session_state(name)
        style = _STATE_STYLE[state]
        try:
            info = tmux.get_session_info(name)
        except GtwatchError:
            continue
        table.add_row(
            name,
            info.pane_command,
            str(info.window_count),
            f"[{style}]{state.value}[/{style}]",
        )

    console.print(table)


@app.command("state")
def state(name: str = typer.Argument(help="Session name")):
    """Show whether a session is absent, a zombie, or running an agent."""
    current = Tmux().session_state(name)
    style = _STATE_STYLE[current]
    console.print(f"{name}: [{style}]{current.value}[/{style}]")


@app.command("ensure")
def ensure(
    name: str = typer.Argument(help="Session name"),
    work_dir: str = typer.Option("", "--dir", "-d", help="Working directory for a new session"),
):
    """Create the session, or recreate it if it is a zombie."""
    try:
        Tmux().ensure_session_fresh(name, work_dir)
    except GtwatchError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]{name} is fresh[/green]")


@app.command("kill")
def kill(name: str = typer.Argument(help="Session name")):
    """Kill a session and every process under its pane."""
    try:
        signaled = Tmux().kill_session_with_processes(name)
    except GtwatchError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Killed {name}[/green] ({signaled} descendant process(es) signaled)")


@app.command("descendants")
def descendants(pid: int = typer.Argument(help="Root process ID")):
    """Print a process's descendants, deepest first."""
    inspector = ProcessInspector(settings.proc_root)
    table = Table(title=f"Descendants of {pid}")
    table.add_column("PID", justify="right", style="cyan")
    table.add_column("PPID", justify="right")
    table.add_column("Command", style="white")
    for child in inspector.all_descendants(pid):
        node = inspector.node(child)
        if node is None:
            continue
        table.add_row(str(node.pid), str(node.parent_pid), node.command_line or node.command_name)
    console.print(table)


@app.command("bd-stop")
def bd_stop(
    force: bool = typer.Option(False, "--force", "-f", help="SIGKILL immediately"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only count what would be stopped"),
):
    """Stop all bd daemon and bd activity processes."""
    try:
        result = stop_all_bd_processes(dry_run=dry_run, force=force)
    except GtwatchError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    verb = "Would stop" if dry_run else "Stopped"
    console.print(
        f"{verb} {result.daemons_killed} bd daemon(s), "
        f"{result.activity_killed} bd activity process(es)"
    )
