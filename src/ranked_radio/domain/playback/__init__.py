"""Playback domain - state machine, media backends and position persistence.

This domain handles:
- The playback state machine (idle, loading, playing, paused, announcing, ended)
- MPV integration via JSON IPC
- Periodic position snapshots for session resume
"""

from .controller import PlaybackController, TransitionPolicy
from .media import MediaBackend, MediaEvents, MpvBackend, check_mpv_available
from .snapshot import PositionSnapshotter
from .state import (
    PlaybackState,
    PlayerStatus,
    PositionSnapshot,
    clear_snapshot,
    format_time,
    load_snapshot,
    save_snapshot,
)

__all__ = [
    "PlaybackController",
    "TransitionPolicy",
    "MediaBackend",
    "MediaEvents",
    "MpvBackend",
    "check_mpv_available",
    "PositionSnapshotter",
    "PlaybackState",
    "PlayerStatus",
    "PositionSnapshot",
    "clear_snapshot",
    "format_time",
    "load_snapshot",
    "save_snapshot",
]
