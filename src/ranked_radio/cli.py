"""
Ranked Radio CLI - Entry point

Subcommands manage the ranking, preview queues, configure the radio and
run an interactive playback session on mpv.
"""

import argparse
import json
import sys
import threading
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from ranked_radio.core import (
    Config,
    RankedRadioError,
    ensure_directories,
    init_database,
    load_config,
    setup_logging_from_config,
)
from ranked_radio.core.errors import ValidationError
from ranked_radio.domain.library import SqliteCatalog, Song, insert_songs
from ranked_radio.domain.playback import (
    MpvBackend,
    PlaybackState,
    PlayerStatus,
    check_mpv_available,
    format_time,
)
from ranked_radio.domain.queue import PlayMode, build_queue
from ranked_radio.domain.radio import RadioConfig, RadioScheduler, load_radio_config, save_radio_config
from ranked_radio.domain.ranking import RankingService
from ranked_radio.session import Session

BOOL_WORDS = {"true": True, "on": True, "yes": True, "1": True, "false": False, "off": False, "no": False, "0": False}

INTERACTIVE_HELP = """Commands:
  n / next         next song          p / prev       previous song
  pause / resume   pause or resume    seek SECONDS   jump within the song
  vol 0-100        set volume         mode MODE      change play mode
  reverse          reverse the queue  radio          toggle radio
  gen              pre-generate the next announcement now
  status           show player status q / quit       stop and exit"""


# Songs


def cmd_songs_list(catalog: SqliteCatalog, ranking: RankingService) -> int:
    songs = catalog.list_songs()
    positions = ranking.positions()
    if not songs:
        print("Catalog is empty. Import songs with: ranked-radio songs import FILE.json")
        return 0
    for song in songs:
        position = positions.get(song.id)
        rank = f"#{position}" if position else "-"
        print(f"{song.id:>6}  {rank:>5}  {song.display_name}")
    print(f"\n{len(songs)} songs")
    return 0


def cmd_songs_import(path: Path) -> int:
    """Import a JSON list of song objects into the local catalog snapshot."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: cannot read {path}: {e}", file=sys.stderr)
        return 1
    if not isinstance(data, list):
        print("Error: expected a JSON list of songs", file=sys.stderr)
        return 1

    fields = set(Song._fields) - {"ranking", "rank_position"}
    songs = []
    for item in data:
        if not isinstance(item, dict) or "id" not in item or "title" not in item:
            print(f"Skipping entry without id/title: {item!r}", file=sys.stderr)
            continue
        songs.append(Song(**{k: v for k, v in item.items() if k in fields}))

    count = insert_songs(songs)
    print(f"✓ Imported {count} songs")
    return 0


# Ranking


def cmd_rank_list(ranking: RankingService) -> int:
    songs = ranking.ranked_songs()
    if not songs:
        print("Ranking is empty")
        return 0
    for song in songs:
        print(f"#{song.rank_position:<4} {song.display_name}  [id {song.id}, value {song.ranking}]")
    return 0


def cmd_rank_add(ranking: RankingService, song_id: int, position: Optional[int]) -> int:
    new_position = ranking.add_to_ranking(song_id, position)
    print(f"✓ Song {song_id} ranked #{new_position}")
    return 0


def cmd_rank_move(ranking: RankingService, song_id: int, position: int) -> int:
    new_position = ranking.move_in_ranking(song_id, position)
    print(f"✓ Song {song_id} moved to #{new_position}")
    return 0


def cmd_rank_remove(ranking: RankingService, song_id: int) -> int:
    ranking.remove_from_ranking(song_id)
    print(f"✓ Song {song_id} removed from ranking")
    return 0


# Queue preview


def cmd_queue(
    catalog: SqliteCatalog,
    ranking: RankingService,
    mode: PlayMode,
    reverse: bool,
    seed: Optional[str],
    limit: int,
) -> int:
    queue = build_queue(
        catalog.list_songs(), mode, positions=ranking.positions(), seed=seed, reverse=reverse
    )
    if queue.is_empty:
        print(f"No songs for mode {mode.value}")
        return 0

    header = f"{mode.value}{' (reversed)' if reverse else ''}: {len(queue.song_ids)} songs"
    if queue.seed:
        header += f", seed {queue.seed}"
    print(header)
    for i, song_id in enumerate(queue.song_ids[:limit], start=1):
        print(f"{i:>4}. {catalog.get_song(song_id).display_name}")
    if len(queue.song_ids) > limit:
        print(f"  ... and {len(queue.song_ids) - limit} more")
    return 0


# Radio


def parse_radio_setting(assignment: str) -> tuple[str, Any]:
    """Parse KEY=VALUE into a typed RadioConfig change.

    Raises:
        ValidationError: Malformed assignment or value
    """
    if "=" not in assignment:
        raise ValidationError(f"Expected KEY=VALUE, got '{assignment}'")
    key, raw = (part.strip() for part in assignment.split("=", 1))
    defaults = RadioConfig()
    if not hasattr(defaults, key):
        raise ValidationError(f"Unknown radio setting '{key}'")

    current = getattr(defaults, key)
    if isinstance(current, bool):
        if raw.lower() not in BOOL_WORDS:
            raise ValidationError(f"{key} expects on/off, got '{raw}'")
        return key, BOOL_WORDS[raw.lower()]
    if isinstance(current, int):
        try:
            return key, int(raw)
        except ValueError:
            raise ValidationError(f"{key} expects a number, got '{raw}'")
    if raw.lower() in ("", "none"):
        return key, None
    return key, raw


def _offline_scheduler(config: Config) -> RadioScheduler:
    radio_config, memory = load_radio_config(config.radio)
    return RadioScheduler(
        None,
        song_info=lambda song_id: None,
        config=radio_config,
        memory=memory,
        persist=save_radio_config,
    )


def print_radio_status(scheduler: RadioScheduler) -> None:
    radio = scheduler.config
    print(f"📻 {radio.radio_name}: {'ON' if radio.enabled else 'off'}")
    print(f"  Every {radio.frequency} songs (counter {radio.song_counter}/{radio.frequency})")
    host = f"{radio.host1_name} ({radio.personality}, voice {radio.voice1})"
    if radio.is_dual:
        host += f" + {radio.host2_name} ({radio.personality2}, voice {radio.voice2})"
    print(f"  Hosts: {host}")
    if radio.user_name:
        print(f"  Listener: {radio.user_name}")
    if radio.user_instructions:
        print(f"  Instructions: {radio.user_instructions}")
    print(f"  Announcements this session: {scheduler.memory.announcement_count}")
    identity = scheduler.memory.identity
    if identity is not None:
        print(f"  Session: {identity.session_name} ({identity.vibe})")


def cmd_radio(config: Config, action: str, settings: list[str]) -> int:
    scheduler = _offline_scheduler(config)
    try:
        if action == "toggle":
            enabled = scheduler.toggle()
            print(f"✓ Radio {'enabled' if enabled else 'disabled'}")
        elif action == "set":
            if not settings:
                print("Error: radio set needs KEY=VALUE arguments", file=sys.stderr)
                return 1
            changes = dict(parse_radio_setting(s) for s in settings)
            scheduler.update_config(**changes)
            print(f"✓ Updated {', '.join(sorted(changes))}")
        print_radio_status(scheduler)
    finally:
        scheduler.shutdown()
    return 0


# Playback


def _status_line(session: Session, status: PlayerStatus) -> str:
    if status.state == PlaybackState.ANNOUNCING:
        announcement = session.controller.current_announcement
        length = f" ({announcement.duration:.0f}s)" if announcement else ""
        return f"📻 On air{length}"
    if status.current_song_id is None:
        return f"⏹ {status.state.value}"
    try:
        name = session.catalog.get_song(status.current_song_id).display_name
    except RankedRadioError:
        name = f"song {status.current_song_id}"
    icon = {"playing": "▶", "paused": "⏸", "loading": "…"}.get(status.state.value, "⏹")
    position = f"{format_time(status.position)}/{format_time(status.duration)}"
    return (
        f"{icon} {name}  {position}  vol {status.volume}  "
        f"[{status.mode.value}{' reversed' if status.reversed else ''} "
        f"{status.queue_index + 1}/{status.queue_length}]"
    )


def handle_interactive_command(session: Session, line: str) -> bool:
    """Run one interactive command. Returns False when the user quits."""
    controller = session.controller
    parts = line.strip().split()
    if not parts:
        return True
    command, args = parts[0].lower(), parts[1:]

    if command in ("q", "quit", "exit"):
        controller.stop()
        return False
    if command in ("n", "next"):
        if not controller.next():
            print("End of queue")
    elif command in ("p", "prev", "previous"):
        if not controller.previous():
            print("Start of queue")
    elif command == "pause":
        controller.pause()
    elif command in ("resume", "play"):
        controller.play()
    elif command == "seek" and args:
        target = controller.seek(float(args[0]))
        if target is None:
            print("Nothing to seek in")
    elif command in ("vol", "volume") and args:
        print(f"Volume {controller.set_volume(int(args[0]))}")
    elif command == "mode" and args:
        controller.set_play_mode(PlayMode.parse(args[0]))
    elif command == "reverse":
        print(f"Reversed: {controller.toggle_reverse()}")
    elif command == "radio":
        print(f"Radio {'on' if session.scheduler.toggle() else 'off'}")
    elif command == "gen":
        if session.scheduler.trigger_pregeneration():
            print("Generating announcement...")
        else:
            print("Not generating (radio off, busy, or nothing up next)")
    elif command == "status":
        print(_status_line(session, controller.status()))
        print_radio_status(session.scheduler)
    else:
        print(INTERACTIVE_HELP)
    return True


def cmd_play(
    config: Config,
    mode: Optional[PlayMode],
    reverse: bool,
    seed: Optional[str],
    start_song_id: Optional[int],
) -> int:
    if not check_mpv_available():
        print("Error: mpv is not installed or not on PATH", file=sys.stderr)
        return 1

    backend = MpvBackend(config.player.mpv_socket_path, config.player.volume)
    backend.start()
    session = Session.create(config, SqliteCatalog(), backend)
    session.start()

    finished = threading.Event()
    last_line = [""]

    def on_status(status: PlayerStatus) -> None:
        if status.state == PlaybackState.ENDED:
            finished.set()
        line = _status_line(session, status._replace(position=0.0))
        if line != last_line[0]:
            last_line[0] = line
            print(_status_line(session, status))

    unsubscribe = session.controller.subscribe(on_status)
    try:
        if mode is None and session.restore():
            print("Resuming previous session")
            session.controller.play()
        else:
            session.play(mode or PlayMode.SEQUENTIAL, reverse, start_song_id=start_song_id, seed=seed)

        if session.controller.queue.is_empty:
            print("Nothing to play")
            return 0

        print(INTERACTIVE_HELP)
        while not finished.is_set():
            try:
                line = input()
            except EOFError:
                finished.wait()
                break
            try:
                if not handle_interactive_command(session, line):
                    break
            except (RankedRadioError, ValueError) as e:
                print(f"Error: {e}")
    except KeyboardInterrupt:
        print()
    finally:
        unsubscribe()
        session.close()
        backend.shutdown()

    if session.controller.fatal_error is not None:
        print(f"Error: {session.controller.fatal_error}", file=sys.stderr)
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    mode_names = [mode.value for mode in PlayMode]

    parser = argparse.ArgumentParser(
        prog="ranked-radio",
        description="Ranked Radio - ranked playlists with AI radio announcements",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="subcommand", help="Available commands")

    songs_parser = subparsers.add_parser("songs", help="Inspect or import the catalog")
    songs_sub = songs_parser.add_subparsers(dest="action", required=True)
    songs_sub.add_parser("list", help="List catalog songs")
    import_parser = songs_sub.add_parser("import", help="Import songs from a JSON file")
    import_parser.add_argument("file", type=Path, help="JSON list of songs")

    rank_parser = subparsers.add_parser("rank", help="Manage the song ranking")
    rank_sub = rank_parser.add_subparsers(dest="action", required=True)
    rank_sub.add_parser("list", help="Show the ranking")
    add_parser = rank_sub.add_parser("add", help="Add a song to the ranking")
    add_parser.add_argument("song_id", type=int)
    add_parser.add_argument("--position", type=int, help="Rank position (default: last)")
    move_parser = rank_sub.add_parser("move", help="Move a ranked song")
    move_parser.add_argument("song_id", type=int)
    move_parser.add_argument("position", type=int)
    remove_parser = rank_sub.add_parser("remove", help="Remove a song from the ranking")
    remove_parser.add_argument("song_id", type=int)

    queue_parser = subparsers.add_parser("queue", help="Preview the queue for a play mode")
    queue_parser.add_argument("mode", choices=mode_names)
    queue_parser.add_argument("--reverse", action="store_true", help="Reverse the order")
    queue_parser.add_argument("--seed", help="Shuffle seed (for repeatable shuffles)")
    queue_parser.add_argument("--limit", type=int, default=50, help="Songs to print")

    radio_parser = subparsers.add_parser("radio", help="Radio announcements")
    radio_parser.add_argument("action", choices=["status", "toggle", "set"])
    radio_parser.add_argument("settings", nargs="*", help="KEY=VALUE pairs for 'set'")

    play_parser = subparsers.add_parser("play", help="Play on mpv (resumes when no mode is given)")
    play_parser.add_argument("mode", nargs="?", choices=mode_names)
    play_parser.add_argument("--reverse", action="store_true")
    play_parser.add_argument("--seed")
    play_parser.add_argument("--start", type=int, dest="start_song_id", help="Song id to start with")

    return parser


def run(args: argparse.Namespace, config: Config) -> int:
    catalog = SqliteCatalog()

    if args.subcommand == "songs":
        if args.action == "import":
            return cmd_songs_import(args.file)
        return cmd_songs_list(catalog, RankingService.load(catalog, config.ranking, save=None))

    if args.subcommand == "rank":
        ranking = RankingService.load(catalog, config.ranking)
        if args.action == "add":
            return cmd_rank_add(ranking, args.song_id, args.position)
        if args.action == "move":
            return cmd_rank_move(ranking, args.song_id, args.position)
        if args.action == "remove":
            return cmd_rank_remove(ranking, args.song_id)
        return cmd_rank_list(ranking)

    if args.subcommand == "queue":
        ranking = RankingService.load(catalog, config.ranking, save=None)
        return cmd_queue(catalog, ranking, PlayMode.parse(args.mode), args.reverse, args.seed, args.limit)

    if args.subcommand == "radio":
        return cmd_radio(config, args.action, args.settings)

    if args.subcommand == "play":
        mode = PlayMode.parse(args.mode) if args.mode else None
        return cmd_play(config, mode, args.reverse, args.seed, args.start_song_id)

    return 0


def main() -> None:
    """Main entry point for the ranked-radio command."""
    parser = build_parser()
    args = parser.parse_args()
    if not args.subcommand:
        parser.print_help()
        sys.exit(0)

    config = load_config()
    setup_logging_from_config(config.logging)
    ensure_directories()
    init_database()

    try:
        sys.exit(run(args, config))
    except RankedRadioError as e:
        logger.debug(f"Command failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
