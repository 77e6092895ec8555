"""
Music library domain models.

Contains data structures for representing songs in the catalog.
"""

from datetime import datetime
from typing import NamedTuple, Optional


class Song(NamedTuple):
    """Represents a song (audio or video) in the catalog.

    `ranking` is the sparse ordering key owned by the ranking store, and
    `rank_position` the dense 1-based position derived from it. Both are
    None for songs outside the ranking.
    """

    id: int
    title: str
    artist: Optional[str] = None
    album: Optional[str] = None
    genre: Optional[str] = None
    year: Optional[int] = None
    duration: Optional[float] = None  # in seconds
    file_path: Optional[str] = None
    description: Optional[str] = None
    ranking: Optional[int] = None
    rank_position: Optional[int] = None
    play_count: int = 0
    last_played: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        """'Title - Artist' form used in history and prompts."""
        return f"{self.title or 'Unknown'} - {self.artist or 'Unknown'}"
