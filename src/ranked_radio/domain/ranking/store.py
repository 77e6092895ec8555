"""
Gap-based ranking of favorite songs.

Each ranked song carries a sparse integer ordering key ("ranking value").
Inserting between two songs takes the midpoint of their values, so a move
touches a single entry. Only when no integer is left between the
neighbours (or below the first entry) are all values respaced to
multiples of the gap size. Removal never renumbers, gaps just widen.

Rank positions are never stored: they are derived from a sorted index of
(value, song_id) pairs by bisection.
"""

from bisect import bisect_left, insort
from typing import Iterator, Mapping, Optional

from loguru import logger

from ranked_radio.core.errors import NotFoundError

DEFAULT_GAP_SIZE = 1000
DEFAULT_INITIAL_VALUE = 1000


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


class RankingStore:
    """Sparse ranking values with dense 1-based rank positions."""

    def __init__(
        self,
        values: Optional[Mapping[int, int]] = None,
        gap_size: int = DEFAULT_GAP_SIZE,
        initial_value: int = DEFAULT_INITIAL_VALUE,
    ) -> None:
        self.gap_size = gap_size
        self.initial_value = initial_value
        self.renumber_count = 0
        self._values: dict[int, int] = dict(values or {})
        self._order: list[tuple[int, int]] = sorted(
            (value, song_id) for song_id, value in self._values.items()
        )

        # Persisted values with ties would give two songs the same position
        if len(set(self._values.values())) != len(self._values):
            logger.warning("Duplicate ranking values loaded, renumbering")
            self._renumber()

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, song_id: object) -> bool:
        return song_id in self._values

    def __iter__(self) -> Iterator[int]:
        return iter(self.ranked_ids())

    # Queries

    def value_of(self, song_id: int) -> Optional[int]:
        return self._values.get(song_id)

    def rank_position(self, song_id: int) -> Optional[int]:
        """1-based dense rank of a song, or None if it is not ranked.

        Equals 1 + the number of entries with a strictly smaller value.
        """
        value = self._values.get(song_id)
        if value is None:
            return None
        return bisect_left(self._order, (value,)) + 1

    def song_at(self, position: int) -> Optional[int]:
        if 1 <= position <= len(self._order):
            return self._order[position - 1][1]
        return None

    def neighbors(self, position: int) -> tuple[Optional[int], Optional[int]]:
        """Song ids ranked directly before and after `position`."""
        return self.song_at(position - 1), self.song_at(position + 1)

    def ranked_ids(self) -> list[int]:
        """Song ids in rank order (position 1 first)."""
        return [song_id for _, song_id in self._order]

    def positions(self) -> dict[int, int]:
        """Mapping song_id -> rank position for every ranked song."""
        return {song_id: i + 1 for i, (_, song_id) in enumerate(self._order)}

    def snapshot(self) -> dict[int, int]:
        """Copy of the raw song_id -> ranking value mapping."""
        return dict(self._values)

    # Mutations

    def add(self, song_id: int, position: Optional[int] = None) -> int:
        """Insert a song at `position` (default: end of the ranking).

        The position is clamped to [1, count + 1]. Adding a song that is
        already ranked moves it instead.

        Returns:
            The song's rank position after insertion
        """
        if song_id in self._values:
            return self.move_to(song_id, position if position is not None else len(self))

        count = len(self._order)
        target = count + 1 if position is None else clamp(position, 1, count + 1)

        value = self._value_for(target)
        if value is None:
            self._renumber()
            value = self._value_for(target)
            assert value is not None

        self._values[song_id] = value
        insort(self._order, (value, song_id))
        logger.debug(f"Ranked song {song_id} at position {target} (value {value})")
        return target

    def remove(self, song_id: int) -> None:
        """Take a song out of the ranking. Other values are left untouched."""
        value = self._values.pop(song_id, None)
        if value is None:
            raise NotFoundError(song_id, where="ranking")
        index = bisect_left(self._order, (value, song_id))
        del self._order[index]
        logger.debug(f"Removed song {song_id} from ranking (value {value})")

    def move_to(self, song_id: int, position: int) -> int:
        """Move a ranked song to `position`, clamped to [1, count].

        Returns:
            The song's rank position after the move
        """
        if song_id not in self._values:
            raise NotFoundError(song_id, where="ranking")
        target = clamp(position, 1, len(self._order))
        self.remove(song_id)
        return self.add(song_id, target)

    def _value_for(self, position: int) -> Optional[int]:
        """Ranking value that would place a new entry at `position`.

        Returns None when no integer is available there.
        """
        count = len(self._order)
        if count == 0:
            return self.initial_value

        if position == 1:
            first = self._order[0][0]
            value = first - self.gap_size if first > self.gap_size else first // 2
            return value if value > 0 else None

        if position > count:
            return self._order[-1][0] + self.gap_size

        prev_value = self._order[position - 2][0]
        next_value = self._order[position - 1][0]
        if next_value - prev_value <= 1:
            return None
        return prev_value + (next_value - prev_value) // 2

    def _renumber(self) -> None:
        """Respace every entry to (i + 1) * gap_size, keeping the order."""
        logger.info(f"Renumbering {len(self._order)} ranked songs")
        ordered_ids = [song_id for _, song_id in sorted(self._order)]
        self._values = {
            song_id: (i + 1) * self.gap_size for i, song_id in enumerate(ordered_ids)
        }
        self._order = [(value, song_id) for song_id, value in self._values.items()]
        self._order.sort()
        self.renumber_count += 1
