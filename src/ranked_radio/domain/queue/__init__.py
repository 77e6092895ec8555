"""Queue domain - play modes and deterministic queue construction."""

from .builder import (
    MODE_HANDLERS,
    PlaybackQueue,
    Recommender,
    build_queue,
    deterministic_shuffle,
    positions_from_values,
    reshuffle,
)
from .modes import PlayMode

__all__ = [
    "PlayMode",
    "PlaybackQueue",
    "Recommender",
    "MODE_HANDLERS",
    "build_queue",
    "deterministic_shuffle",
    "positions_from_values",
    "reshuffle",
]
