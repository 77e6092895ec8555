"""
Queue construction.

Turns a catalog snapshot, a play mode and the ranking into an ordered
sequence of song ids. The same (songs, mode, ranking, seed, reverse) always
yields the same queue; only an explicit reshuffle picks a new seed.
"""

import hashlib
import random
import secrets
from functools import partial
from typing import Callable, Mapping, NamedTuple, Optional, Protocol, Sequence

from loguru import logger

from ranked_radio.domain.library import Song

from .modes import PlayMode


class Recommender(Protocol):
    """External collaborator behind the ai-suggested mode."""

    def suggest(self, songs: Sequence[Song]) -> Optional[list[int]]:
        """Return song ids in suggested order, or None when unavailable."""
        ...


class PlaybackQueue(NamedTuple):
    """Immutable queue: ordered song ids plus the current index.

    `index` is -1 for an empty queue.
    """

    song_ids: tuple[int, ...] = ()
    index: int = -1
    mode: PlayMode = PlayMode.SEQUENTIAL
    reversed: bool = False
    seed: Optional[str] = None

    @property
    def current_id(self) -> Optional[int]:
        if 0 <= self.index < len(self.song_ids):
            return self.song_ids[self.index]
        return None

    @property
    def upcoming_id(self) -> Optional[int]:
        next_index = self.neighbor_index(1)
        return self.song_ids[next_index] if next_index is not None else None

    def neighbor_index(self, step: int) -> Optional[int]:
        """Index `step` positions away from the current one, if it exists."""
        candidate = self.index + step
        if 0 <= candidate < len(self.song_ids):
            return candidate
        return None

    @property
    def is_empty(self) -> bool:
        return not self.song_ids


def deterministic_shuffle(items: Sequence[int], seed: str) -> list[int]:
    """Shuffle items using a deterministic seed.

    Given the same seed, the same order will always be produced.

    Args:
        items: Song ids to shuffle
        seed: Seed string

    Returns:
        New list with ids in shuffled order
    """
    if not items:
        return []

    # Create a deterministic random state from the seed
    seed_hash = int(hashlib.sha256(seed.encode()).hexdigest(), 16) % (2**32)
    rng = random.Random(seed_hash)

    shuffled = list(items)
    rng.shuffle(shuffled)
    return shuffled


def new_seed() -> str:
    return secrets.token_hex(8)


def positions_from_values(songs: Sequence[Song]) -> dict[int, int]:
    """Derive dense rank positions from the songs' own ranking values."""
    ranked = sorted((s.ranking, s.id) for s in songs if s.ranking is not None)
    return {song_id: i + 1 for i, (_, song_id) in enumerate(ranked)}


class _Inputs(NamedTuple):
    songs: Sequence[Song]
    positions: Mapping[int, int]
    seed: Optional[str]
    recommender: Optional[Recommender]


ModeHandler = Callable[[_Inputs], list[int]]


def _sequential(inputs: _Inputs) -> list[int]:
    return [s.id for s in inputs.songs]


def _shuffle(inputs: _Inputs) -> list[int]:
    return deterministic_shuffle([s.id for s in inputs.songs], inputs.seed or "")


def _by_ranking(inputs: _Inputs, limit: Optional[int] = None) -> list[int]:
    ranked = sorted(
        (inputs.positions[s.id], s.id) for s in inputs.songs if s.id in inputs.positions
    )
    ordered = [song_id for _, song_id in ranked]
    return ordered[:limit] if limit is not None else ordered


def _unranked(inputs: _Inputs) -> list[int]:
    return [s.id for s in inputs.songs if s.id not in inputs.positions]


def _sort_key(value: Optional[str]) -> str:
    return (value or "").casefold()


def _by_artist(inputs: _Inputs) -> list[int]:
    ordered = sorted(inputs.songs, key=lambda s: (_sort_key(s.artist), _sort_key(s.title)))
    return [s.id for s in ordered]


def _by_genre(inputs: _Inputs) -> list[int]:
    ordered = sorted(inputs.songs, key=lambda s: (_sort_key(s.genre), _sort_key(s.title)))
    return [s.id for s in ordered]


def _ai_suggested(inputs: _Inputs) -> list[int]:
    if inputs.recommender is None:
        logger.info("No recommender configured, falling back to sequential order")
        return _sequential(inputs)

    try:
        suggested = inputs.recommender.suggest(list(inputs.songs))
    except Exception:
        logger.exception("Recommender failed, falling back to sequential order")
        return _sequential(inputs)

    known = {s.id for s in inputs.songs}
    ordered: list[int] = []
    seen: set[int] = set()
    for song_id in suggested or []:
        if song_id in known and song_id not in seen:
            ordered.append(song_id)
            seen.add(song_id)

    if not ordered:
        logger.warning("Recommender returned no usable songs, falling back to sequential order")
        return _sequential(inputs)
    return ordered


MODE_HANDLERS: dict[PlayMode, ModeHandler] = {
    PlayMode.SEQUENTIAL: _sequential,
    PlayMode.SHUFFLE: _shuffle,
    PlayMode.BY_RANKING: _by_ranking,
    PlayMode.UNRANKED: _unranked,
    PlayMode.BY_ARTIST: _by_artist,
    PlayMode.BY_GENRE: _by_genre,
    PlayMode.AI_SUGGESTED: _ai_suggested,
}
for _mode in PlayMode:
    if _mode.top_limit is not None:
        MODE_HANDLERS[_mode] = partial(_by_ranking, limit=_mode.top_limit)

_missing = set(PlayMode) - set(MODE_HANDLERS)
if _missing:
    raise RuntimeError(f"Play modes without a queue handler: {sorted(m.value for m in _missing)}")


def build_queue(
    songs: Sequence[Song],
    mode: PlayMode = PlayMode.SEQUENTIAL,
    positions: Optional[Mapping[int, int]] = None,
    seed: Optional[str] = None,
    reverse: bool = False,
    start_song_id: Optional[int] = None,
    recommender: Optional[Recommender] = None,
) -> PlaybackQueue:
    """Build the playback queue for a catalog snapshot and play mode.

    Args:
        songs: Catalog snapshot in native order
        mode: Ordering policy
        positions: song_id -> rank position; derived from the songs'
            ranking values when omitted
        seed: Shuffle seed; a fresh one is drawn for shuffle when omitted
        reverse: Invert the computed sequence (applied last)
        start_song_id: Song to start from. If the mode filters it out it is
            placed in front of the sequence so it keeps playing.
        recommender: Collaborator for the ai-suggested mode

    Returns:
        PlaybackQueue with index 0 (or the start song), -1 when empty
    """
    if positions is None:
        positions = positions_from_values(songs)
    if mode is PlayMode.SHUFFLE and seed is None:
        seed = new_seed()

    inputs = _Inputs(songs=songs, positions=positions, seed=seed, recommender=recommender)
    ordered = MODE_HANDLERS[mode](inputs)

    if reverse:
        ordered.reverse()

    if start_song_id is not None and start_song_id not in ordered:
        if any(s.id == start_song_id for s in songs):
            ordered.insert(0, start_song_id)
        else:
            logger.warning(f"Start song {start_song_id} not in catalog, ignoring")
            start_song_id = None

    if not ordered:
        logger.debug(f"Empty queue for mode {mode.value}")
        return PlaybackQueue(mode=mode, reversed=reverse, seed=seed)

    index = ordered.index(start_song_id) if start_song_id is not None else 0
    logger.debug(
        f"Built {mode.value} queue: {len(ordered)} songs, reversed={reverse}, start={index}"
    )
    return PlaybackQueue(
        song_ids=tuple(ordered), index=index, mode=mode, reversed=reverse, seed=seed
    )


def reshuffle(
    queue: PlaybackQueue,
    songs: Sequence[Song],
    positions: Optional[Mapping[int, int]] = None,
    seed: Optional[str] = None,
) -> PlaybackQueue:
    """Explicit reshuffle: new seed, current song moved to the front."""
    current = queue.current_id
    rebuilt = build_queue(
        songs,
        PlayMode.SHUFFLE,
        positions=positions,
        seed=seed or new_seed(),
        reverse=queue.reversed,
    )
    if current is None or not rebuilt.song_ids:
        return rebuilt
    rest = tuple(song_id for song_id in rebuilt.song_ids if song_id != current)
    return rebuilt._replace(song_ids=(current,) + rest, index=0)
