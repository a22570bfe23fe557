"""panewatch command line."""

from __future__ import annotations

import asyncio
import json
import signal
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.live import Live
from rich.table import Table
from rich.text import Text

from panewatch.config import MonitorConfig, load_config
from panewatch.detection.engine import StatusEngine
from panewatch.detection.models import AgentTree, MonitoredAgent, PaneSnapshot, StatusKind
from panewatch.errors import ConfigurationError, TransientIoError
from panewatch.events import ALL_EVENTS, Event
from panewatch.fixtures import run_fixtures
from panewatch.logging_manager import LoggingManager
from panewatch.monitoring import (
    FallbackPolicy,
    MonitorLoop,
    SelectionState,
    reconcile,
    select,
)
from panewatch.profiles import AgentMatcher, LazyCapture, ProfileRegistry, load_registry
from panewatch.tmux_client import TmuxClient, send_decision, send_input

app = typer.Typer(
    help="Watch AI coding agents running in tmux panes.",
    no_args_is_help=True,
    add_completion=False,
)
console = Console()

STATUS_STYLES = {
    StatusKind.IDLE: "green",
    StatusKind.WORKING: "yellow",
    StatusKind.APPROVAL: "bold red",
    StatusKind.ERROR: "red",
    StatusKind.UNKNOWN: "dim",
}

NOTICE_EVENTS = (
    "monitor.list_failed",
    "monitor.list_recovered",
    "profiles.reloaded",
    "profiles.reload_rejected",
)


def _config(ctx: typer.Context) -> MonitorConfig:
    return ctx.obj


def _fail(message: str, code: int = 2) -> typer.Exit:
    console.print(f"[red]{message}[/red]")
    return typer.Exit(code)


def _setup_logging(config: MonitorConfig) -> LoggingManager:
    return LoggingManager(config.log_path, config.log_level)


def _registry(config: MonitorConfig) -> ProfileRegistry:
    try:
        return load_registry(config.user_profiles_path)
    except ConfigurationError as e:
        raise _fail(f"Profile error: {e}") from e


def _monitor(config: MonitorConfig, registry: ProfileRegistry) -> MonitorLoop:
    return MonitorLoop(TmuxClient(capture_lines=config.capture_lines), registry, config)


async def _snapshot(config: MonitorConfig, registry: ProfileRegistry) -> AgentTree | None:
    monitor = _monitor(config, registry)
    if config.ignore_self:
        monitor.session_filter.current_session = monitor.client.current_session()
    try:
        return await monitor.poll_once()
    finally:
        await monitor.stop()


def _status_text(agent: MonitoredAgent) -> Text:
    return Text(f"{agent.indicator} {agent.status.describe()}", style=STATUS_STYLES[agent.status.kind])


def render_tree(tree: AgentTree, state: SelectionState | None = None, notice: str = "") -> Table:
    """Render a tree as a table grouped by session."""
    cursor = state.cursor.unique_id if state is not None and state.cursor is not None else None
    marked = {m.unique_id for m in state.marked} if state is not None else set()

    table = Table(show_header=True, header_style="bold", expand=True)
    table.add_column("", width=2)
    table.add_column("Target", style="cyan", no_wrap=True)
    table.add_column("Agent")
    table.add_column("Status")
    table.add_column("Subagents", justify="right")
    table.add_column("Path", style="dim", overflow="ellipsis")

    for session, agents in tree.by_session().items():
        table.add_section()
        table.add_row("", Text(session, style="bold"), "", "", "", "")
        for agent in agents:
            row_style = "reverse" if agent.unique_id == cursor else None
            table.add_row(
                "*" if agent.unique_id in marked else "",
                agent.target,
                agent.display_name if agent.is_agent else Text(agent.display_name, style="dim"),
                _status_text(agent),
                str(agent.running_subagents) if agent.subagents else "",
                agent.path,
                style=row_style,
            )

    table.caption = (
        f"{tree.total_count} agents · {tree.active_count} active · "
        f"{tree.awaiting_approval_count} awaiting approval · "
        f"{tree.running_subagent_count} subagents running · "
        f"{tree.non_agent_count} other panes · tick {tree.sequence}"
    )
    if notice:
        table.caption += f"\n{notice}"
    return table


def tree_to_dict(tree: AgentTree) -> dict[str, Any]:
    return {
        "sequence": tree.sequence,
        "created_at": tree.created_at,
        "agents": [
            {
                "unique_id": agent.unique_id,
                "target": agent.target,
                "pid": agent.pid,
                "profile": agent.profile_id,
                "name": agent.display_name,
                "status": agent.status.kind.value,
                "detail": agent.status.describe(),
                "path": agent.path,
                "subagents": [
                    {"type": s.subagent_type, "status": s.status.value, "description": s.description}
                    for s in agent.subagents
                ],
            }
            for agent in tree.root_agents
        ],
    }


@app.callback()
def main_callback(
    ctx: typer.Context,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Configuration file (default: ~/.config/panewatch/config.yaml)"),
    ] = None,
    overrides: Annotated[
        Optional[list[str]],
        typer.Option("--set", help="Override a configuration key, e.g. --set poll_interval_seconds=1"),
    ] = None,
    profiles_path: Annotated[
        Optional[Path],
        typer.Option("--profiles", "-p", help="User profile file merged over the defaults"),
    ] = None,
    log_level: Annotated[Optional[str], typer.Option("--log-level", help="Log level")] = None,
) -> None:
    extra = list(overrides or [])
    if profiles_path is not None:
        extra.append(f"profiles_path={profiles_path}")
    if log_level:
        extra.append(f"log_level={log_level}")
    try:
        ctx.obj = load_config(config_path, extra)
    except ConfigurationError as e:
        raise _fail(f"Configuration error: {e}") from e


@app.command()
def watch(
    ctx: typer.Context,
    select_target: Annotated[
        Optional[str], typer.Option("--select", help="Target to select initially, e.g. main:1.0")
    ] = None,
) -> None:
    """Live dashboard of agent panes. Send SIGHUP to reload profiles."""
    config = _config(ctx)
    logging_manager = _setup_logging(config)
    registry = _registry(config)
    try:
        asyncio.run(_watch(config, registry, logging_manager, select_target))
    except KeyboardInterrupt:
        pass
    finally:
        logging_manager.close()


async def _watch(
    config: MonitorConfig,
    registry: ProfileRegistry,
    logging_manager: LoggingManager,
    select_target: str | None,
) -> None:
    monitor = _monitor(config, registry)
    policy = FallbackPolicy(config.selection_fallback)
    state = SelectionState()
    notices: list[str] = []

    def on_event(event: Event) -> None:
        if event.event_type in NOTICE_EVENTS:
            detail = event.data.get("error", "")
            notices.append(f"{event.timestamp:%H:%M:%S} {event.event_type} {detail}".strip())

    monitor.event_bus.subscribe(ALL_EVENTS, on_event)

    reloads: set[asyncio.Task] = set()
    profiles_path = config.user_profiles_path

    def on_sighup() -> None:
        task = asyncio.create_task(monitor.reload_async(lambda: load_registry(profiles_path)))
        reloads.add(task)
        task.add_done_callback(reloads.discard)

    if profiles_path is not None:
        asyncio.get_running_loop().add_signal_handler(signal.SIGHUP, on_sighup)

    await monitor.start()
    logging_manager.set_console_enabled(False)
    try:
        with Live(Text("Waiting for tmux..."), console=console, refresh_per_second=4) as live:
            while True:
                tree = await monitor.channel.receive()
                if select_target is not None and state.cursor is None:
                    index = next((i for i, a in enumerate(tree.root_agents) if a.target == select_target), None)
                    if index is not None:
                        state = select(tree, index)
                state = reconcile(tree, state, policy).state
                live.update(render_tree(tree, state, notices[-1] if notices else ""))
    finally:
        logging_manager.set_console_enabled(True)
        await monitor.stop()


@app.command()
def once(
    ctx: typer.Context,
    as_json: Annotated[bool, typer.Option("--json", help="Print the tree as JSON")] = False,
) -> None:
    """Run a single detection pass and print the result."""
    config = _config(ctx)
    logging_manager = _setup_logging(config)
    try:
        tree = asyncio.run(_snapshot(config, _registry(config)))
    finally:
        logging_manager.close()

    if tree is None:
        raise _fail("Could not list tmux panes (is the tmux server running?)", code=1)
    if as_json:
        console.print_json(json.dumps(tree_to_dict(tree)))
    else:
        console.print(render_tree(tree))


@app.command()
def explain(
    ctx: typer.Context,
    file: Annotated[Path, typer.Argument(help="Captured pane buffer", exists=True, dir_okay=False)],
    profile_id: Annotated[Optional[str], typer.Option("--profile", help="Profile id to classify with")] = None,
    command: Annotated[Optional[str], typer.Option("--command", help="Pane command line to match profiles against")] = None,
    title: Annotated[Optional[str], typer.Option("--title", help="Pane title to match profiles against")] = None,
    ancestors: Annotated[
        Optional[list[str]], typer.Option("--ancestor", help="Ancestor command, nearest first (repeatable)")
    ] = None,
) -> None:
    """Show which matcher, rule and refinement classify a captured buffer.

    With --profile the buffer is classified with that profile. Otherwise the
    profile is picked by the agent matcher from --command, --title and
    --ancestor, as it would be for a live pane.
    """
    registry = _registry(_config(ctx))
    text = file.read_text(encoding="utf-8", errors="replace")

    match = None
    if profile_id is not None:
        profile = registry.get(profile_id)
        if profile is None:
            raise _fail(f"Unknown profile {profile_id!r}. Known: {', '.join(p.id for p in registry)}")
    elif command or title or ancestors:
        snapshot = PaneSnapshot(
            session="explain",
            window_index=0,
            window_name="",
            pane_index=0,
            pid=0,
            command=Path((command or "").split(" ", 1)[0]).name,
            title=title or "",
            full_cmdline=command or "",
            ancestor_commands=tuple(ancestors or ()),
        )
        match = AgentMatcher(registry).match(snapshot, LazyCapture.of(text))
        if match.profile is None:
            raise _fail("No profile matches the given pane identity", code=1)
        profile = match.profile
    else:
        raise _fail("Pass --profile, or --command/--title/--ancestor to run the matcher")

    trace = StatusEngine(registry.glyphs).explain(text, profile, match)
    for line in trace.format():
        console.print(line, markup=False, highlight=False)


@app.command("test")
def test_fixtures(
    ctx: typer.Context,
    directory: Annotated[Path, typer.Argument(help="Fixture directory", exists=True, file_okay=False)],
) -> None:
    """Run fixture regression cases: DIR/<profile>/case_<status>_<name>.txt."""
    registry = _registry(_config(ctx))
    report = run_fixtures(directory, registry)

    for case in report.cases:
        if case.passed:
            console.print(f"[green]PASS[/green] {case.profile_id}/{case.path.name}")
            continue
        actual = case.error or (case.actual.value if case.actual else "none")
        console.print(f"[red]FAIL[/red] {case.profile_id}/{case.path.name}: expected {case.expected.value}, got {actual}")
        if case.trace is not None:
            for line in case.trace.format():
                console.print(f"    {line}", markup=False, highlight=False)

    console.print(f"{len(report.cases) - len(report.failures)}/{len(report.cases)} passed")
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def profiles(ctx: typer.Context) -> None:
    """List loaded agent profiles in match order."""
    registry = _registry(_config(ctx))
    table = Table(show_header=True, header_style="bold")
    table.add_column("Id", style="cyan")
    table.add_column("Name")
    table.add_column("Priority", justify="right")
    table.add_column("Matchers")
    table.add_column("Rules", justify="right")
    for profile in registry:
        table.add_row(
            profile.id,
            profile.display_name,
            str(profile.priority),
            ", ".join(m.describe() for m in profile.matchers),
            str(len(profile.state_rules)),
        )
    console.print(table)


def _decide(ctx: typer.Context, targets: list[str], all_pending: bool, approve: bool) -> None:
    config = _config(ctx)
    registry = _registry(config)
    logging_manager = _setup_logging(config)
    try:
        agents = _resolve(config, registry, targets, all_pending)
        results = send_decision(TmuxClient(capture_lines=config.capture_lines), agents, registry, approve)
    finally:
        logging_manager.close()
    _report(results, "approved" if approve else "rejected")


def _resolve(
    config: MonitorConfig,
    registry: ProfileRegistry,
    targets: list[str],
    all_pending: bool,
) -> list[MonitoredAgent]:
    """Agents named by target or unique id, or every agent awaiting approval."""
    tree = asyncio.run(_snapshot(config, registry))
    if tree is None:
        raise _fail("Could not list tmux panes (is the tmux server running?)", code=1)

    if all_pending:
        agents = [a for a in tree.agents if a.status.kind is StatusKind.APPROVAL]
    else:
        wanted = set(targets)
        agents = [a for a in tree.root_agents if a.target in wanted or a.unique_id in wanted]
        missing = wanted - {a.target for a in agents} - {a.unique_id for a in agents}
        for target in sorted(missing):
            console.print(f"[yellow]No pane {target}[/yellow]")
    if not agents:
        raise _fail("Nothing to do", code=1)
    return agents


def _report(results: dict[str, str | None], verb: str) -> None:
    failed = False
    for target, error in results.items():
        if error is None:
            console.print(f"[green]{verb}[/green] {target}")
        else:
            failed = True
            console.print(f"[red]{target}: {error}[/red]")
    if failed:
        raise typer.Exit(1)


@app.command()
def approve(
    ctx: typer.Context,
    targets: Annotated[Optional[list[str]], typer.Argument(help="Targets or unique ids")] = None,
    all_pending: Annotated[bool, typer.Option("--all", help="Every agent awaiting approval")] = False,
) -> None:
    """Send the approve key to agents."""
    _decide(ctx, targets or [], all_pending, approve=True)


@app.command()
def reject(
    ctx: typer.Context,
    targets: Annotated[Optional[list[str]], typer.Argument(help="Targets or unique ids")] = None,
    all_pending: Annotated[bool, typer.Option("--all", help="Every agent awaiting approval")] = False,
) -> None:
    """Send the reject key to agents."""
    _decide(ctx, targets or [], all_pending, approve=False)


@app.command()
def send(
    ctx: typer.Context,
    targets: Annotated[Optional[list[str]], typer.Argument(help="Targets or unique ids")] = None,
    text: Annotated[str, typer.Argument(help="Text to type, e.g. a choice number")] = "",
    enter: Annotated[bool, typer.Option("--enter/--no-enter", help="Press Enter after the text")] = True,
    all_pending: Annotated[bool, typer.Option("--all", help="Every agent awaiting approval")] = False,
) -> None:
    """Type text into agents, e.g. `send main:1.0 2` to pick option 2."""
    if not text:
        raise _fail("Nothing to send")
    config = _config(ctx)
    registry = _registry(config)
    logging_manager = _setup_logging(config)
    try:
        agents = _resolve(config, registry, targets or [], all_pending)
        client = TmuxClient(capture_lines=config.capture_lines)
        results = send_input(client, [a.target for a in agents], text, enter)
    finally:
        logging_manager.close()
    _report(results, "sent to")


@app.command()
def focus(
    ctx: typer.Context,
    target: Annotated[str, typer.Argument(help="Pane target, e.g. main:1.0")],
) -> None:
    """Switch to an agent's pane."""
    try:
        TmuxClient(capture_lines=_config(ctx).capture_lines).focus_pane(target)
    except TransientIoError as e:
        raise _fail(str(e), code=1) from e


def main() -> None:
    app()


if __name__ == "__main__":
    main()
