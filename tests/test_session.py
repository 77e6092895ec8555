"""Tests for session wiring."""

from unittest.mock import MagicMock

import pytest

from ranked_radio.core.config import Config
from ranked_radio.domain.library import InMemoryCatalog
from ranked_radio.domain.playback import PlaybackState, PositionSnapshot, load_snapshot, save_snapshot
from ranked_radio.domain.queue import PlayMode
from ranked_radio.domain.radio import (
    GenerationResult,
    RadioConfig,
    SessionIdentity,
    load_radio_config,
    save_radio_config,
)
from ranked_radio.session import Session


@pytest.fixture
def generator() -> MagicMock:
    generator = MagicMock()
    generator.generate.return_value = GenerationResult("/tmp/announcement.mp3", 7.0, "Up next!")
    generator.generate_identity.return_value = SessionIdentity()
    return generator


@pytest.fixture
def session(temp_db, catalog: InMemoryCatalog, backend, generator) -> Session:
    session = Session.create(Config(), catalog, backend, generator=generator)
    yield session
    session.close()


class TestPlay:
    def test_ranked_mode_uses_ranking(self, session: Session, backend) -> None:
        session.ranking.add_to_ranking(4)
        session.ranking.add_to_ranking(2)

        queue = session.play(PlayMode.BY_RANKING)

        assert queue.song_ids == (4, 2)
        assert session.controller.state == PlaybackState.LOADING
        assert backend.loaded[-1][0] == "/music/song4.mp3"

    def test_upcoming_labels(self, session: Session) -> None:
        session.play(PlayMode.SEQUENTIAL)
        assert session.upcoming_labels(2) == [f"Song {i} - Artist {i}" for i in range(3, 7)]
        assert session.upcoming_labels(99) == []

    def test_mode_change_keeps_current_song(self, session: Session, backend) -> None:
        session.play(PlayMode.SEQUENTIAL, start_song_id=3)
        session.controller.media_ready(backend.last_token, 100.0)

        session.controller.set_play_mode(PlayMode.SHUFFLE)

        assert session.controller.current_song_id == 3
        assert session.controller.queue.mode is PlayMode.SHUFFLE
        assert sorted(session.controller.queue.song_ids) == [1, 2, 3, 4, 5, 6]


class TestRadioWiring:
    def test_announcement_context_uses_catalog_and_ranking(
        self, temp_db, catalog, backend, generator
    ) -> None:
        save_radio_config(RadioConfig(enabled=True, frequency=1))
        session = Session.create(Config(), catalog, backend, generator=generator)
        try:
            session.ranking.add_to_ranking(2)
            session.play(PlayMode.SEQUENTIAL)
            session.controller.media_ready(backend.last_token, 100.0)
            assert session.scheduler.wait_for_generation(timeout=5)

            context = generator.generate.call_args.args[0]
            assert context.previous.title == "Song 1"
            assert context.next.rank_position == 1
            assert context.upcoming[0] == "Song 3 - Artist 3"
            assert session.scheduler.cached_announcement.matches(1, 2)
        finally:
            session.close()

    def test_no_generator_without_api_key(self, temp_db, catalog, backend) -> None:
        session = Session.create(Config(), catalog, backend)
        try:
            assert session.scheduler.generator is None
        finally:
            session.close()


class TestRestore:
    def test_nothing_to_restore(self, session: Session) -> None:
        assert session.restore() is False

    def test_unknown_songs_dropped(self, session: Session) -> None:
        save_snapshot(
            PositionSnapshot(
                current_song_id=2,
                position=30.0,
                volume=50,
                queue_song_ids=(1, 99, 2, 3),
                queue_index=2,
            )
        )

        assert session.restore() is True
        assert session.controller.queue.song_ids == (1, 2, 3)
        assert session.controller.current_song_id == 2
        assert session.controller.state == PlaybackState.IDLE
        assert session.controller.volume == 50


def test_close_persists_state(temp_db, catalog, backend, generator) -> None:
    session = Session.create(Config(), catalog, backend, generator=generator)
    session.play(PlayMode.SEQUENTIAL, start_song_id=5)
    session.scheduler.update_config(user_name="Sam")
    session.close()

    snapshot = load_snapshot()
    assert snapshot.current_song_id == 5
    radio_config, _ = load_radio_config()
    assert radio_config.user_name == "Sam"


def test_finished_song_play_recorded(temp_db, catalog, backend, generator) -> None:
    session = Session.create(Config(), catalog, backend, generator=generator)
    session.play(PlayMode.SEQUENTIAL)
    session.controller.media_ready(backend.last_token, 100.0)
    session.controller.natural_end(backend.last_token)
    session.close()

    assert catalog.get_song(1).play_count == 1
    assert catalog.get_song(2).play_count == 0
