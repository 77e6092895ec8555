"""
Ranking operations exposed to the UI / automation layer.

Validates song ids against the catalog, applies the change to the
in-memory store and writes the result through to persistence.
"""

import sqlite3
import threading
from typing import Callable, Mapping, Optional

from loguru import logger

from ranked_radio.core.config import RankingConfig
from ranked_radio.core.errors import NotFoundError
from ranked_radio.domain.library import CatalogProvider, Song

from . import database
from .store import RankingStore

SaveFn = Callable[[Mapping[int, int]], None]


class RankingService:
    """Catalog-aware, persisted wrapper around a RankingStore."""

    def __init__(
        self,
        store: RankingStore,
        catalog: CatalogProvider,
        save: Optional[SaveFn] = database.save_rankings,
    ) -> None:
        self.store = store
        self.catalog = catalog
        self._save = save
        self._lock = threading.Lock()
        self._dirty = False

    @classmethod
    def load(
        cls,
        catalog: CatalogProvider,
        config: Optional[RankingConfig] = None,
        load: Callable[[], Mapping[int, int]] = database.load_rankings,
        save: Optional[SaveFn] = database.save_rankings,
    ) -> "RankingService":
        config = config or RankingConfig()
        store = RankingStore(
            load(), gap_size=config.gap_size, initial_value=config.initial_value
        )
        logger.info(f"Loaded ranking with {len(store)} songs")
        return cls(store, catalog, save=save)

    def add_to_ranking(self, song_id: int, position: Optional[int] = None) -> int:
        self.catalog.get_song(song_id)  # NotFoundError if absent
        with self._lock:
            new_position = self.store.add(song_id, position)
            self._persist()
        logger.info(f"Song {song_id} added to ranking at position {new_position}")
        return new_position

    def remove_from_ranking(self, song_id: int) -> None:
        with self._lock:
            self.store.remove(song_id)
            self._persist()
        logger.info(f"Song {song_id} removed from ranking")

    def move_in_ranking(self, song_id: int, new_position: int) -> int:
        with self._lock:
            position = self.store.move_to(song_id, new_position)
            self._persist()
        logger.info(f"Song {song_id} moved to ranking position {position}")
        return position

    def rank_position(self, song_id: int) -> Optional[int]:
        return self.store.rank_position(song_id)

    def neighbors(self, position: int) -> tuple[Optional[int], Optional[int]]:
        return self.store.neighbors(position)

    def positions(self) -> dict[int, int]:
        return self.store.positions()

    def ranked_songs(self) -> list[Song]:
        """Ranked songs in rank order, with ranking/rank_position filled in.

        Ids that are no longer in the catalog are skipped.
        """
        songs = []
        for position, song_id in enumerate(self.store.ranked_ids(), start=1):
            try:
                song = self.catalog.get_song(song_id)
            except NotFoundError:
                logger.warning(f"Ranked song {song_id} missing from catalog, skipping")
                continue
            songs.append(
                song._replace(
                    ranking=self.store.value_of(song_id), rank_position=position
                )
            )
        return songs

    def flush(self) -> bool:
        """Retry a save that failed earlier. Returns True when clean."""
        with self._lock:
            if self._dirty:
                self._persist()
            return not self._dirty

    def _persist(self) -> None:
        if self._save is None:
            return
        try:
            self._save(self.store.snapshot())
            self._dirty = False
        except (sqlite3.Error, OSError) as e:
            # Keep the in-memory change; the next mutation or flush retries
            self._dirty = True
            logger.error(f"Failed to persist ranking: {e}")
