#!/usr/bin/env python3
"""
Pomodoro CLI - run focus sessions that log into Obsidian daily notes.

Usage:
    pomodoro run "Write spec"            # start (or resume) a session
    pomodoro run --length 50 "Deep work"
    pomodoro check                       # does today's note exist?
    pomodoro status
    pomodoro history --limit 20
    pomodoro config show
    pomodoro config set journal_path ~/vault/Journal

While `run` is active: Ctrl+C stops the session, SIGUSR1/SIGUSR2 add or
remove --adjust-step minutes.
"""

import asyncio
import logging
import signal
from datetime import datetime
from pathlib import Path

import click
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from dotenv import load_dotenv
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from . import __version__
from .clock import TickScheduler
from .config import EDITABLE_KEYS, HOME_ENV_VAR, SettingsStore, coerce_value
from .controller import SessionController
from .events import SessionEvent
from .history import TaskHistoryRepository
from .journal import effective_header, journal_path_for, read_section
from .notify import ConsoleNotifier, DesktopNotifier
from .session import SessionStore
from .timer import MAX_LENGTH_MINUTES, MIN_LENGTH_MINUTES, format_countdown

console = Console()


def _configure_logging(verbose: bool, store: SettingsStore, debug_log: bool) -> None:
    """Rich console logging, plus a pipe-separated debug file when enabled."""
    handlers: list[logging.Handler] = [
        RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
    ]
    if debug_log:
        try:
            store.state_dir.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(store.debug_log_path, encoding="utf-8")
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s|%(funcName)s|%(message)s", datefmt="%Y%m%d %H:%M:%S")
            )
            handlers.append(file_handler)
        except OSError as e:
            click.echo(f"Debug log disabled: {e}", err=True)

    logging.basicConfig(level=logging.DEBUG if (verbose or debug_log) else logging.INFO, format="%(message)s",
                        handlers=handlers, force=True)
    handlers[0].setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)


class CountdownDisplay:
    """Single-line live view of the countdown."""

    def __init__(self, controller: SessionController):
        self.controller = controller
        self.live = None
        controller.subscribe(SessionEvent.TICK, self._refresh)
        controller.subscribe(SessionEvent.OVERRUN_TICK, self._refresh)

    def render(self) -> Text:
        ctl = self.controller
        if ctl.is_overrun:
            text = Text(format_countdown(ctl.overrun_elapsed_s, negative=True), style="bold red")
        else:
            text = Text(format_countdown(ctl.time_left_s), style="bold green")
        if ctl.session and ctl.session.task:
            text.append(f"  {ctl.session.task}", style="dim")
        return text

    def _refresh(self, _value) -> None:
        if self.live is not None:
            self.live.update(self.render())


@click.group()
@click.option(
    "--home",
    type=click.Path(file_okay=False, path_type=Path),
    envvar=HOME_ENV_VAR,
    help="State directory for settings, session and history files",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.version_option(__version__, prog_name="pomodoro")
@click.pass_context
def cli(ctx, home, verbose):
    """Pomodoro for Obsidian - focus sessions logged to your daily note."""
    store = SettingsStore(home)
    settings = store.load()
    _configure_logging(verbose, store, settings.debug_log_enabled)

    ctx.ensure_object(dict)
    ctx.obj["store"] = store
    ctx.obj["settings"] = settings


@cli.command()
@click.argument("task", nargs=-1)
@click.option("--project", default="", help="Secondary label written after the task")
@click.option(
    "--length",
    type=click.IntRange(MIN_LENGTH_MINUTES, MAX_LENGTH_MINUTES),
    help="Session length in minutes (saved as the new default)",
)
@click.option("--adjust-step", default=5, show_default=True, type=click.IntRange(1, 120),
              help="Minutes added/removed on SIGUSR1/SIGUSR2")
@click.option("--desktop/--no-desktop", default=True, help="Use notify-send when available")
@click.pass_context
def run(ctx, task, project, length, adjust_step, desktop):
    """Start a session (or resume an interrupted one) and run until stopped."""
    store = ctx.obj["store"]

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    scheduler = AsyncIOScheduler(event_loop=loop)
    clock = TickScheduler(scheduler, loop)

    notifier = ConsoleNotifier()
    if desktop:
        notifier = DesktopNotifier(loop, fallback=notifier)

    controller = SessionController(
        store,
        clock,
        notifier,
        TaskHistoryRepository(store.task_history_path),
    )
    if length:
        controller.set_length(length)
    display = CountdownDisplay(controller)
    controller.subscribe(SessionEvent.STOPPED, loop.stop)

    scheduler.start()
    try:
        if not controller.resume():
            if not controller.start(" ".join(task) or None, project):
                raise click.ClickException(
                    f"Today's journal does not exist: {controller.journal_file()}"
                )

        for sig, handler, args in (
            (signal.SIGINT, controller.stop, ()),
            (signal.SIGTERM, controller.stop, ()),
            (getattr(signal, "SIGUSR1", None), controller.adjust_length, (adjust_step,)),
            (getattr(signal, "SIGUSR2", None), controller.adjust_length, (-adjust_step,)),
        ):
            if sig is None:
                continue
            try:
                loop.add_signal_handler(sig, handler, *args)
            except (NotImplementedError, RuntimeError):
                pass

        with Live(display.render(), console=console, refresh_per_second=4, transient=True) as live:
            display.live = live
            try:
                loop.run_forever()
            except KeyboardInterrupt:
                controller.stop()
    finally:
        scheduler.shutdown(wait=False)
        pending = asyncio.all_tasks(loop)
        if pending:
            loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.close()
        asyncio.set_event_loop(None)

    console.print(f"[green]v[/green] Session logged to {controller.journal_file()}")


@cli.command()
@click.option("--date", "day", type=click.DateTime(formats=["%Y-%m-%d"]), help="Day to check (default today)")
@click.pass_context
def check(ctx, day):
    """Show the daily note path and its pomodoro entries."""
    settings = ctx.obj["settings"]
    day = (day or datetime.now()).date()
    path = journal_path_for(settings.journal_path, settings.note_date_format, day)

    if not path.exists():
        console.print(f"[red]x[/red] Journal does not exist: {path}")
        console.print("[dim]Open Obsidian and create the note first.[/dim]")
        ctx.exit(1)

    console.print(f"[green]v[/green] Journal exists: {path}")
    header = effective_header(settings.header)
    entries = [line for line in read_section(path, header) if line.strip()]
    console.print(f"{header} ({len(entries)} entries)")
    for line in entries:
        console.print(f"  {line}", markup=False, highlight=False)


@cli.command()
@click.pass_context
def status(ctx):
    """Show the session persisted by a running (or interrupted) process."""
    store = ctx.obj["store"]
    session = SessionStore(store.session_path).load()
    if session is None:
        console.print("[dim]No session in progress.[/dim]")
        return

    elapsed = session.elapsed_s(datetime.now())
    console.print(f"Session {session.timestamp_id}")
    console.print(f"  Task:    {session.task or '-'}")
    console.print(f"  Started: {session.start_time:%Y-%m-%d %H:%M}")
    console.print(f"  Elapsed: {format_countdown(elapsed)}")


@cli.command()
@click.option("--limit", default=10, show_default=True, type=click.IntRange(1, 500))
@click.pass_context
def history(ctx, limit):
    """List recently used tasks."""
    store = ctx.obj["store"]
    entries = TaskHistoryRepository(store.task_history_path).all_tasks()[:limit]
    if not entries:
        console.print("[dim]No task history yet.[/dim]")
        return

    table = Table(title="Task history")
    table.add_column("Task")
    table.add_column("Uses", justify="right")
    table.add_column("Last used")
    for entry in entries:
        table.add_row(entry.task_text, str(entry.usage_count), entry.last_used[:16].replace("T", " "))
    console.print(table)


@cli.group()
def config():
    """Show or change settings."""
    pass


@config.command("show")
@click.pass_context
def config_show(ctx):
    """Print the current settings."""
    store = ctx.obj["store"]
    settings = ctx.obj["settings"]

    table = Table(title=str(store.path))
    table.add_column("Key")
    table.add_column("Value")
    for key, value in settings.model_dump().items():
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


@config.command("set")
@click.argument("key", type=click.Choice(EDITABLE_KEYS))
@click.argument("value")
@click.pass_context
def config_set(ctx, key, value):
    """Change one setting."""
    store = ctx.obj["store"]
    try:
        coerced = coerce_value(key, value)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="value")

    settings = store.load()
    setattr(settings, key, coerced)
    if not store.save(settings):
        raise click.ClickException(f"Could not write {store.path}")
    console.print(f"[green]v[/green] {key} = {coerced}")


def main() -> None:
    """Main entry point."""
    load_dotenv(Path.cwd() / ".env")
    cli()


if __name__ == "__main__":
    main()
