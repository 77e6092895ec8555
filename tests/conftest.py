"""Shared fixtures: temporary database, fake media backend and sample songs."""

from pathlib import Path
from typing import Optional

import pytest

from ranked_radio.domain.library import InMemoryCatalog, Song


@pytest.fixture
def temp_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the database at a fresh file under tmp_path and create the schema."""
    import ranked_radio.core.database as db_module

    db_path = tmp_path / "ranked_radio.db"
    monkeypatch.setattr(db_module, "get_database_path", lambda: db_path)
    db_module.init_database()
    return db_path


class FakeBackend:
    """Media backend that records calls; tests fire events by hand."""

    def __init__(self) -> None:
        self.events = None
        self.loaded: list[tuple[str, int]] = []
        self.announcements: list[tuple[str, int]] = []
        self.calls: list[tuple] = []
        self.reported_position: Optional[float] = None
        self.fail_paths: set[str] = set()

    def attach(self, events) -> None:
        self.events = events

    @property
    def last_token(self) -> int:
        return self.loaded[-1][1]

    def load(self, path: str, token: int) -> None:
        if path in self.fail_paths:
            raise OSError(f"cannot open {path}")
        self.loaded.append((path, token))

    def play_announcement(self, handle: str, token: int) -> None:
        self.announcements.append((handle, token))

    def pause(self) -> None:
        self.calls.append(("pause",))

    def resume(self) -> None:
        self.calls.append(("resume",))

    def seek(self, seconds: float) -> None:
        self.calls.append(("seek", seconds))

    def set_volume(self, volume: int) -> None:
        self.calls.append(("set_volume", volume))

    def stop(self) -> None:
        self.calls.append(("stop",))

    def position(self) -> Optional[float]:
        return self.reported_position


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


def make_song(song_id: int, **overrides) -> Song:
    values = {
        "id": song_id,
        "title": f"Song {song_id}",
        "artist": f"Artist {song_id}",
        "genre": "Rock",
        "file_path": f"/music/song{song_id}.mp3",
    }
    values.update(overrides)
    return Song(**values)


@pytest.fixture
def songs() -> list[Song]:
    return [make_song(i) for i in range(1, 7)]


@pytest.fixture
def catalog(songs: list[Song]) -> InMemoryCatalog:
    return InMemoryCatalog(songs)
