"""
Catalog providers.

The catalog itself (scanning, metadata, persistence of songs) lives outside
this application; these providers expose a read snapshot of it and record
plays (play count and last-played time) as songs finish.
"""

import threading
from datetime import datetime
from typing import Iterable, Optional, Protocol

from loguru import logger

from ranked_radio.core.database import get_db_connection
from ranked_radio.core.errors import NotFoundError

from .models import Song


class CatalogProvider(Protocol):
    """Read access to the song catalog, plus play statistics."""

    def list_songs(self) -> list[Song]: ...

    def get_song(self, song_id: int) -> Song: ...

    def filter_songs(
        self,
        genre: Optional[str] = None,
        artist: Optional[str] = None,
        ranked: Optional[bool] = None,
    ) -> list[Song]: ...

    def record_play(self, song_id: int) -> None: ...


def _matches(
    song: Song,
    genre: Optional[str],
    artist: Optional[str],
    ranked: Optional[bool],
) -> bool:
    if genre is not None and (song.genre or "").lower() != genre.lower():
        return False
    if artist is not None and (song.artist or "").lower() != artist.lower():
        return False
    if ranked is not None and (song.ranking is not None) != ranked:
        return False
    return True


class InMemoryCatalog:
    """Catalog backed by a list, in the order given."""

    def __init__(self, songs: Iterable[Song] = ()) -> None:
        self._songs: list[Song] = list(songs)
        self._by_id = {song.id: song for song in self._songs}
        self._lock = threading.Lock()

    def list_songs(self) -> list[Song]:
        return list(self._songs)

    def get_song(self, song_id: int) -> Song:
        song = self._by_id.get(song_id)
        if song is None:
            raise NotFoundError(song_id)
        return song

    def filter_songs(
        self,
        genre: Optional[str] = None,
        artist: Optional[str] = None,
        ranked: Optional[bool] = None,
    ) -> list[Song]:
        return [s for s in self._songs if _matches(s, genre, artist, ranked)]

    def record_play(self, song_id: int) -> None:
        with self._lock:
            song = self._by_id.get(song_id)
            if song is None:
                raise NotFoundError(song_id)
            played = song._replace(play_count=song.play_count + 1, last_played=datetime.now())
            self._by_id[song_id] = played
            self._songs = [played if s.id == song_id else s for s in self._songs]


def _row_to_song(row) -> Song:
    return Song(
        id=row["id"],
        title=row["title"],
        artist=row["artist"],
        album=row["album"],
        genre=row["genre"],
        year=row["year"],
        duration=row["duration"],
        file_path=row["file_path"],
        description=row["description"],
        ranking=row["ranking"],
        play_count=row["play_count"] or 0,
        last_played=row["last_played"],
    )


_SELECT_SONGS = """
    SELECT s.id, s.title, s.artist, s.album, s.genre, s.year, s.duration,
           s.file_path, s.description, s.play_count, s.last_played,
           r.value AS ranking
    FROM songs s
    LEFT JOIN rankings r ON r.song_id = s.id
"""


class SqliteCatalog:
    """Catalog read from the `songs` table, joined with ranking values.

    Native order is ascending song id.
    """

    def list_songs(self) -> list[Song]:
        with get_db_connection() as conn:
            cursor = conn.execute(_SELECT_SONGS + " ORDER BY s.id")
            return [_row_to_song(row) for row in cursor.fetchall()]

    def get_song(self, song_id: int) -> Song:
        with get_db_connection() as conn:
            row = conn.execute(_SELECT_SONGS + " WHERE s.id = ?", (song_id,)).fetchone()
        if row is None:
            raise NotFoundError(song_id)
        return _row_to_song(row)

    def filter_songs(
        self,
        genre: Optional[str] = None,
        artist: Optional[str] = None,
        ranked: Optional[bool] = None,
    ) -> list[Song]:
        return [s for s in self.list_songs() if _matches(s, genre, artist, ranked)]

    def record_play(self, song_id: int) -> None:
        """Increment the play count and stamp the last-played time."""
        with get_db_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE songs
                SET play_count = COALESCE(play_count, 0) + 1, last_played = CURRENT_TIMESTAMP
                WHERE id = ?
                """,
                (song_id,),
            )
            conn.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(song_id)


def insert_songs(songs: Iterable[Song]) -> int:
    """Insert or replace songs in the `songs` table.

    Used to seed the local catalog snapshot (imports, tests).

    Returns:
        Number of rows written
    """
    rows = [
        (
            s.id,
            s.title,
            s.artist,
            s.album,
            s.genre,
            s.year,
            s.duration,
            s.file_path,
            s.description,
            s.play_count,
            s.last_played,
        )
        for s in songs
    ]
    with get_db_connection() as conn:
        conn.executemany(
            """
            INSERT OR REPLACE INTO songs
                (id, title, artist, album, genre, year, duration, file_path,
                 description, play_count, last_played)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )
        conn.commit()
    logger.debug(f"Inserted {len(rows)} songs into catalog")
    return len(rows)
