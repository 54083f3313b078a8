import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from playdex.config import Config, load_config
from playdex.engine import PlaybackEngine
from playdex.errors import PlaydexError
from playdex.playlist.models import MediaItem, Playlist
from playdex.playlist.utils import format_duration, playlist_summary

console = Console()
logger = logging.getLogger(__name__)

T = TypeVar('T')


def setup_logging(verbosity: int = 0, log_file: Optional[Path] = None):
    """Configure logging based on verbosity level."""
    log_level = logging.WARNING
    if verbosity == 1:
        log_level = logging.INFO
    elif verbosity >= 2:
        log_level = logging.DEBUG

    handlers = [logging.StreamHandler()]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def run_engine(config: Config, action: Callable[[PlaybackEngine], Awaitable[T]]) -> T:
    """Load an engine from the configured storage, run one action, close it."""
    async def runner():
        engine = PlaybackEngine(config.create_gateway(), rng=config.create_rng())
        await engine.load()
        try:
            return await action(engine)
        finally:
            await engine.close()

    try:
        return asyncio.run(runner())
    except PlaydexError as e:
        logger.error(f"Command failed: {e}")
        raise click.ClickException(str(e))


def print_playlist(playlist: Playlist):
    table = Table(title=f"{escape(playlist.name)} ({playlist_summary(playlist)})")
    table.add_column("#", justify="right")
    table.add_column("Entry ID")
    table.add_column("Title")
    table.add_column("Duration", justify="right")
    table.add_column("Plays", justify="right")
    for entry in playlist.entries:
        table.add_row(
            str(entry.position),
            entry.id,
            escape(entry.display_title),
            format_duration(entry.media.duration),
            str(entry.play_count),
        )
    console.print(table)


@click.group()
@click.option('--config', 'config_path', type=click.Path(path_type=Path), help='Path to config file')
@click.option('-v', '--verbose', count=True, help='Increase verbosity')
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], verbose: int):
    """Manage playlists and playback state."""
    try:
        config = load_config(config_path)
    except (FileNotFoundError, PlaydexError) as e:
        raise click.ClickException(str(e))
    setup_logging(verbose, config.log_file)
    ctx.obj = config


@cli.command('list')
@click.pass_obj
def list_playlists(config: Config):
    """List all playlists."""
    async def action(engine: PlaybackEngine):
        return engine.playlists, engine.cursor

    playlists, cursor = run_engine(config, action)
    if not playlists:
        console.print("No playlists")
        return

    table = Table(title="Playlists")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Summary")
    table.add_column("Plays", justify="right")
    table.add_column("Favorite")
    for playlist in playlists:
        name = escape(playlist.name)
        if cursor.playlist_id == playlist.id and cursor.is_active:
            name = f"{name} ({cursor.status.value})"
        table.add_row(
            playlist.id,
            name,
            playlist_summary(playlist),
            str(playlist.play_count),
            "★" if playlist.is_favorite else "",
        )
    console.print(table)


@cli.command()
@click.argument('playlist_id')
@click.pass_obj
def show(config: Config, playlist_id: str):
    """Show the entries of a playlist."""
    async def action(engine: PlaybackEngine):
        return engine.store.require(playlist_id)

    print_playlist(run_engine(config, action))


@cli.command()
@click.argument('name')
@click.option('--description', help='Playlist description')
@click.option('--tag', 'tags', multiple=True, help='Tag (repeatable)')
@click.option('--public', is_flag=True, help='Mark the playlist as public')
@click.pass_obj
def create(config: Config, name: str, description: Optional[str], tags, public: bool):
    """Create an empty playlist."""
    async def action(engine: PlaybackEngine):
        return await engine.create_playlist(name, description=description,
                                            tags=list(tags), is_public=public)

    playlist = run_engine(config, action)
    console.print(f"Created playlist [bold]{escape(playlist.name)}[/bold] ({playlist.id})")


@cli.command()
@click.argument('playlist_id')
@click.pass_obj
def delete(config: Config, playlist_id: str):
    """Delete a playlist."""
    async def action(engine: PlaybackEngine):
        await engine.delete_playlist(playlist_id)

    run_engine(config, action)
    console.print(f"Deleted playlist {playlist_id}")


@cli.command()
@click.argument('playlist_id')
@click.pass_obj
def favorite(config: Config, playlist_id: str):
    """Toggle the favorite flag of a playlist."""
    async def action(engine: PlaybackEngine):
        return await engine.toggle_favorite(playlist_id)

    playlist = run_engine(config, action)
    state = "is now" if playlist.is_favorite else "is no longer"
    console.print(f"{escape(playlist.name)} {state} a favorite")


@cli.command()
@click.argument('playlist_id')
@click.option('--media-id', required=True, help='Identifier of the media item')
@click.option('--title', required=True, help='Media title')
@click.option('--duration', type=float, required=True, help='Duration in seconds')
@click.option('--file-path', help='Path of the media file')
@click.option('--format', 'media_format', help='Container format, e.g. mp4')
@click.pass_obj
def add(config: Config, playlist_id: str, media_id: str, title: str, duration: float,
        file_path: Optional[str], media_format: Optional[str]):
    """Append a media item to a playlist."""
    media = MediaItem(id=media_id, title=title, duration=duration,
                      file_path=file_path, format=media_format)

    async def action(engine: PlaybackEngine):
        return await engine.add_entry(playlist_id, media)

    entry = run_engine(config, action)
    console.print(f"Added {escape(title)} at position {entry.position} ({entry.id})")


@cli.command()
@click.argument('playlist_id')
@click.argument('entry_id')
@click.pass_obj
def remove(config: Config, playlist_id: str, entry_id: str):
    """Remove an entry from a playlist."""
    async def action(engine: PlaybackEngine):
        await engine.remove_entry(playlist_id, entry_id)

    run_engine(config, action)
    console.print(f"Removed {entry_id}")


@cli.command()
@click.argument('playlist_id')
@click.option('--start', 'start_index', type=int, default=0, help='Index to start from')
@click.pass_obj
def play(config: Config, playlist_id: str, start_index: int):
    """Start playing a playlist."""
    async def action(engine: PlaybackEngine):
        return await engine.play(playlist_id, start_index)

    media = run_engine(config, action)
    console.print(f"Now playing: [bold]{escape(media.title)}[/bold]")


@cli.command()
@click.pass_obj
def status(config: Config):
    """Show the playback cursor."""
    async def action(engine: PlaybackEngine):
        return engine.cursor, engine.get_current_item()

    cursor, media = run_engine(config, action)
    console.print(f"Status: {cursor.status.value}")
    console.print(f"Shuffle: {'on' if cursor.shuffle_enabled else 'off'}, repeat: {cursor.repeat_mode.value}")
    if media:
        console.print(f"Current: {escape(media.title)} (index {cursor.current_index})")


@cli.command()
@click.option('--limit', type=int, default=50, help='Number of entries to show')
@click.option('--playlist', 'playlist_id', help='Only show sessions from this playlist')
@click.pass_obj
def history(config: Config, limit: int, playlist_id: Optional[str]):
    """Show recent playback sessions."""
    async def action(engine: PlaybackEngine):
        return engine.get_history(limit, playlist_id=playlist_id)

    entries = run_engine(config, action)
    table = Table(title="Playback history")
    table.add_column("Played at")
    table.add_column("Playlist")
    table.add_column("Title")
    table.add_column("Played", justify="right")
    table.add_column("Complete", justify="right")
    for entry in entries:
        table.add_row(
            entry.played_at.strftime('%Y-%m-%d %H:%M'),
            escape(entry.playlist_name or entry.playlist_id),
            escape(entry.media_title),
            format_duration(entry.duration_played),
            f"{entry.completion_percentage:.0f}%",
        )
    console.print(table)


@cli.command()
@click.pass_obj
def stats(config: Config):
    """Show library statistics."""
    async def action(engine: PlaybackEngine):
        return engine.stats()

    summary = run_engine(config, action)
    console.print(f"Playlists: {summary.total_playlists}")
    console.print(f"Entries: {summary.total_entries}")
    console.print(f"Total duration: {format_duration(summary.total_duration)}")
    if summary.most_played is not None:
        console.print(f"Most played: {escape(summary.most_played.name)} ({summary.most_played.play_count} plays)")
    if summary.favorites:
        console.print(f"Favorites: {', '.join(escape(p.name) for p in summary.favorites)}")


if __name__ == '__main__':
    cli()
