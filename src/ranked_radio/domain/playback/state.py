"""
Playback state types and position persistence for Ranked Radio

Handles the player state machine vocabulary and the snapshot that lets a
session resume where it left off.
"""

import json
from enum import Enum
from typing import NamedTuple, Optional

from loguru import logger

from ranked_radio.core.database import get_db_connection
from ranked_radio.domain.queue import PlayMode


class PlaybackState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    ANNOUNCING = "announcing"
    ENDED = "ended"


class PlayerStatus(NamedTuple):
    """What listeners observe after every change."""

    state: PlaybackState
    current_song_id: Optional[int]
    position: float
    duration: float
    volume: int
    mode: PlayMode
    reversed: bool
    queue_index: int
    queue_length: int


class PositionSnapshot(NamedTuple):
    """Persisted playback position used to resume a session."""

    current_song_id: Optional[int] = None
    position: float = 0.0
    volume: int = 75
    queue_song_ids: tuple[int, ...] = ()
    queue_index: int = -1
    playlist_id: Optional[int] = None
    play_mode: PlayMode = PlayMode.SEQUENTIAL
    reversed: bool = False
    shuffle_seed: Optional[str] = None
    is_playing: bool = False


def save_snapshot(snapshot: PositionSnapshot) -> None:
    """Persist the snapshot. Idempotent: the single row is overwritten."""
    with get_db_connection() as conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO player_state
                (id, current_song_id, position, volume, is_playing, queue_song_ids,
                 queue_index, playlist_id, play_mode, reversed, shuffle_seed, updated_at)
            VALUES (1, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
            """,
            (
                snapshot.current_song_id,
                snapshot.position,
                snapshot.volume,
                snapshot.is_playing,
                json.dumps(list(snapshot.queue_song_ids)),
                snapshot.queue_index,
                snapshot.playlist_id,
                snapshot.play_mode.value,
                snapshot.reversed,
                snapshot.shuffle_seed,
            ),
        )
        conn.commit()


def load_snapshot() -> Optional[PositionSnapshot]:
    """Load the persisted snapshot, or None if nothing was saved."""
    with get_db_connection() as conn:
        row = conn.execute("SELECT * FROM player_state WHERE id = 1").fetchone()

    if row is None:
        return None

    try:
        queue_song_ids = tuple(json.loads(row["queue_song_ids"] or "[]"))
    except json.JSONDecodeError:
        logger.warning("Corrupt queue in saved player state, ignoring queue")
        queue_song_ids = ()

    try:
        mode = PlayMode(row["play_mode"])
    except ValueError:
        mode = PlayMode.SEQUENTIAL

    return PositionSnapshot(
        current_song_id=row["current_song_id"],
        position=row["position"] or 0.0,
        volume=row["volume"] if row["volume"] is not None else 75,
        queue_song_ids=queue_song_ids,
        queue_index=row["queue_index"] if row["queue_index"] is not None else -1,
        playlist_id=row["playlist_id"],
        play_mode=mode,
        reversed=bool(row["reversed"]),
        shuffle_seed=row["shuffle_seed"],
        is_playing=bool(row["is_playing"]),
    )


def clear_snapshot() -> None:
    """Forget the saved position (next session starts fresh)."""
    with get_db_connection() as conn:
        conn.execute("DELETE FROM player_state WHERE id = 1")
        conn.commit()


def format_time(seconds: float) -> str:
    """Format time in seconds to MM:SS format."""
    if seconds < 0:
        return "00:00"

    minutes = int(seconds // 60)
    secs = int(seconds % 60)
    return f"{minutes:02d}:{secs:02d}"
