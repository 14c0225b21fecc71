"""Command-line interface for Lockstep Radio."""

from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .config.database import DatabaseHandler
from .config.settings import Settings
from .core.timeline import (
    as_utc,
    check_clock,
    daily_seed,
    elapsed_seconds,
    locate,
    next_midnight,
    rotation_date,
    upcoming,
    utc_now,
)
from .exceptions import LockstepError
from .models.playlist import Playlist
from .utils.logger import setup_logger
from .utils.platform import get_config_dir

app = typer.Typer(help="Lockstep Radio: shared-timeline playback client")
console = Console()

ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to configuration file"
)
AtOption = typer.Option(
    None,
    "--at",
    help="Evaluate at this ISO-8601 instant instead of now (naive means UTC)"
)


def get_settings(config_path: Optional[Path] = None) -> Settings:
    """Load settings from file or defaults."""
    return Settings.from_file_or_default(config_path)


def get_database(settings: Settings) -> DatabaseHandler:
    """Get database handler."""
    return DatabaseHandler(settings.cache.path)


def resolve_instant(at: Optional[str]) -> datetime:
    """Parse ``--at`` or read the clock.

    Raises:
        typer.BadParameter: If the value is not an ISO-8601 instant
    """
    if at is None:
        return utc_now()
    try:
        return as_utc(datetime.fromisoformat(at.replace('Z', '+00:00')))
    except ValueError:
        raise typer.BadParameter(f"Not an ISO-8601 instant: {at}")


def load_shuffled_playlist(settings: Settings, now: datetime) -> Playlist:
    """Fetch the published playlist for ``now``'s day and apply the day's order."""
    # Import here to keep --help fast
    from .service import build_provider

    logger = setup_logger(log_file=None, level="WARNING", console=True)
    provider = build_provider(settings, get_database(settings), logger)
    return provider.fetch(rotation_date(now)).shuffled(daily_seed(now))


def format_offset(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


@app.command()
def start(
    config: Optional[Path] = ConfigOption,
    player: Optional[str] = typer.Option(
        None,
        "--player",
        "-p",
        help="Player backend override: mpv or simulated"
    )
):
    """Start playing the shared timeline."""
    console.print("[cyan]Starting Lockstep Radio...[/cyan]")

    from .service import LockstepService

    try:
        service = LockstepService(config_path=config, player=player)
        service.start()
    except KeyboardInterrupt:
        console.print("\n[yellow]Service stopped by user[/yellow]")
    except Exception as e:
        console.print(f"[red]Service error: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def seed(at: Optional[str] = AtOption):
    """Show the rotation seed for a UTC day."""
    now = resolve_instant(at)
    console.print(f"Rotation date: {rotation_date(now).isoformat()}")
    console.print(f"Daily seed: [bold]{daily_seed(now)}[/bold]")
    console.print(f"Next rotation: {next_midnight(now).isoformat()}")


@app.command()
def now(
    config: Optional[Path] = ConfigOption,
    at: Optional[str] = AtOption
):
    """Show what every client is playing right now.

    Uses the new day's order from UTC midnight on. A running client keeps the
    previous order until the track playing at midnight ends.
    """
    settings = get_settings(config)
    instant = resolve_instant(at)

    try:
        check_clock(instant, settings.clock.earliest_datetime, settings.clock.latest_datetime)
        playlist = load_shuffled_playlist(settings, instant)
        position = locate(playlist, elapsed_seconds(instant))
    except LockstepError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    track = playlist[position.track_index]
    console.print(f"[bold green]{track.display_name}[/bold green]")
    console.print(
        f"Position: {format_offset(position.offset_seconds)} / {format_offset(track.duration)} "
        f"(track {position.track_index + 1} of {len(playlist)})"
    )
    console.print(f"Seed: {daily_seed(instant)}  Playlist version: {playlist.version}")


@app.command()
def schedule(
    config: Optional[Path] = ConfigOption,
    at: Optional[str] = AtOption,
    count: int = typer.Option(10, "--count", "-n", help="Number of tracks to show")
):
    """Show the upcoming tracks in today's order.

    Shortly after UTC midnight a running client may still be finishing a
    track from the previous day's order.
    """
    settings = get_settings(config)
    instant = resolve_instant(at)

    try:
        check_clock(instant, settings.clock.earliest_datetime, settings.clock.latest_datetime)
        playlist = load_shuffled_playlist(settings, instant)
    except LockstepError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Schedule for {rotation_date(instant).isoformat()} (UTC)")
    table.add_column("Starts", style="cyan")
    table.add_column("#", justify="right")
    table.add_column("Track", style="green")
    table.add_column("Length", justify="right")

    for starts_at, index in upcoming(playlist, instant, count):
        track = playlist[index]
        table.add_row(
            starts_at.strftime("%H:%M:%S"),
            str(index + 1),
            track.display_name,
            format_offset(track.duration)
        )

    console.print(table)


@app.command()
def cached(config: Optional[Path] = ConfigOption):
    """List cached playlists."""
    settings = get_settings(config)
    db = get_database(settings)

    rows = db.list_playlists()
    if not rows:
        console.print("[yellow]No playlists cached yet[/yellow]")
        return

    table = Table(title="Cached Playlists")
    table.add_column("Date", style="cyan")
    table.add_column("Version")
    table.add_column("Tracks", justify="right")
    table.add_column("Length", justify="right")
    table.add_column("Fetched")

    for row in rows:
        table.add_row(
            row['rotation_date'],
            row['version'],
            str(row['track_count']),
            format_offset(row['total_duration']),
            row['fetched_at'][:19]
        )

    console.print(table)


@app.command()
def events(
    config: Optional[Path] = ConfigOption,
    limit: int = typer.Option(20, "--limit", "-n", help="Number of events to show")
):
    """Show recent sync state transitions."""
    settings = get_settings(config)
    db = get_database(settings)

    recent = db.get_recent_events(limit)
    counts = db.get_state_counts()

    console.print(f"Config directory: {get_config_dir()}")
    console.print(f"Cache: {settings.cache.path}\n")
    console.print("[bold]Transitions:[/bold]")
    for state, count in counts.items():
        console.print(f"  to {state}: {count}")

    if not recent:
        console.print("\n[yellow]No sync events recorded[/yellow]")
        return

    table = Table(title="Recent Sync Events")
    table.add_column("When", style="cyan")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Detail")

    for event in recent:
        style = "red" if event.to_state.value == "drifted" else "green"
        table.add_row(
            event.occurred_at.strftime("%Y-%m-%d %H:%M:%S"),
            event.from_state.value,
            f"[{style}]{event.to_state.value}[/{style}]",
            event.detail or ""
        )

    console.print(table)


@app.command()
def init_config(
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Output path for config file"
    )
):
    """Initialize a configuration file with defaults."""
    if output is None:
        output = get_config_dir() / 'config.yaml'

    if output.exists():
        overwrite = typer.confirm(
            f"Config file already exists at {output}. Overwrite?",
            default=False
        )
        if not overwrite:
            console.print("[yellow]Cancelled[/yellow]")
            return

    settings = Settings()
    settings.save(output)

    console.print(f"[green]Configuration file created: {output}[/green]")
    console.print("\nSet provider.url or provider.path before running 'start'")


if __name__ == "__main__":
    app()
