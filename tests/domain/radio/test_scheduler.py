"""Tests for the radio scheduler."""

import threading
from concurrent.futures import Executor, Future
from unittest.mock import MagicMock

import pytest

from ranked_radio.core.errors import ExternalServiceError, ValidationError
from ranked_radio.domain.library import InMemoryCatalog
from ranked_radio.domain.playback import PlaybackController, PlaybackState
from ranked_radio.domain.queue import PlaybackQueue
from ranked_radio.domain.radio import (
    GenerationResult,
    RadioConfig,
    RadioMemory,
    RadioScheduler,
    SessionIdentity,
    SongInfo,
)


class SyncExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def submit(self, fn, /, *args, **kwargs):
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as e:
            future.set_exception(e)
        return future


def song_info(song_id: int) -> SongInfo:
    return SongInfo(song_id=song_id, title=f"Song {song_id}", artist="Artist")


def mock_generator() -> MagicMock:
    generator = MagicMock()
    generator.generate_identity.return_value = SessionIdentity(session_name="Late Show")
    return generator


def pair_generator() -> MagicMock:
    """Generator whose audio handle names the pair it was asked for."""
    generator = mock_generator()
    generator.generate.side_effect = lambda ctx: GenerationResult(
        audio_handle=f"/tmp/{ctx.previous.song_id}-{ctx.next.song_id}.mp3",
        duration=12.0,
        script=f"From {ctx.previous.title} to {ctx.next.title}",
    )
    return generator


def make_scheduler(
    generator,
    pair=(1, 2),
    frequency: int = 3,
    enabled: bool = True,
    executor=None,
    persist=None,
) -> tuple[RadioScheduler, dict]:
    current = {"pair": pair}
    scheduler = RadioScheduler(
        generator,
        song_info,
        config=RadioConfig(enabled=enabled, frequency=frequency),
        persist=persist,
        executor=executor or SyncExecutor(),
        writer=SyncExecutor(),
    )
    scheduler.bind(lambda: current["pair"])
    return scheduler, current


class TestBoundaryDecision:
    """on_natural_end follows the counter and the cached pair."""

    def test_frequency_scenario(self) -> None:
        """With frequency 3, one announcement after the third song."""
        generator = pair_generator()
        scheduler, current = make_scheduler(generator, frequency=3)

        announcements = []
        for song_id in (1, 2, 3):
            pair = (song_id, song_id + 1)
            current["pair"] = pair
            scheduler.on_song_started(*pair)
            result = scheduler.on_natural_end(*pair)
            if result is not None:
                announcements.append(result)

        assert len(announcements) == 1
        assert announcements[0].matches(3, 4)
        assert generator.generate.call_count == 1
        assert scheduler.config.song_counter == 0
        assert scheduler.memory.announcement_count == 1

    def test_missed_announcement_keeps_counter(self) -> None:
        scheduler, _ = make_scheduler(None, frequency=2)
        assert scheduler.on_natural_end(1, 2) is None
        assert scheduler.on_natural_end(2, 3) is None
        assert scheduler.on_natural_end(3, 4) is None
        assert scheduler.config.song_counter == 3
        assert scheduler.missed_announcements == 2

    def test_disabled_never_announces(self) -> None:
        generator = pair_generator()
        scheduler, _ = make_scheduler(generator, frequency=1, enabled=False)
        assert scheduler.maybe_pregenerate(1, 2) is False
        assert scheduler.on_natural_end(1, 2) is None
        generator.generate.assert_not_called()

    def test_no_upcoming_song_no_generation(self) -> None:
        generator = pair_generator()
        scheduler, _ = make_scheduler(generator, frequency=1)
        assert scheduler.maybe_pregenerate(5, None) is False

    def test_played_songs_recorded_in_memory(self) -> None:
        scheduler, _ = make_scheduler(None)
        scheduler.on_natural_end(1, 2)
        assert list(scheduler.memory.previous_songs) == ["Song 1 - Artist"]
        assert scheduler.memory.songs_played == 1


class TestGenerationFailure:
    """Generation errors never reach playback."""

    def test_failure_leaves_cache_empty(self) -> None:
        generator = mock_generator()
        generator.generate.side_effect = ExternalServiceError("API down")
        scheduler, _ = make_scheduler(generator, frequency=1)

        assert scheduler.maybe_pregenerate(1, 2) is True
        assert scheduler.cached_announcement is None
        assert scheduler.is_generating is False

        assert scheduler.on_natural_end(1, 2) is None
        assert scheduler.config.song_counter == 1

    def test_failure_still_advances_playback(self, backend, catalog: InMemoryCatalog) -> None:
        generator = mock_generator()
        generator.generate.side_effect = ExternalServiceError("timeout")
        scheduler, _ = make_scheduler(generator, frequency=1)
        controller = PlaybackController(backend, catalog.get_song, policy=scheduler)
        scheduler.bind(controller.current_pair)

        controller.load(PlaybackQueue(song_ids=(1, 2, 3), index=0))
        controller.media_ready(backend.last_token, 100.0)
        controller.natural_end(backend.last_token)

        assert controller.state == PlaybackState.LOADING
        assert controller.current_song_id == 2
        assert scheduler.config.song_counter == 1


class TestSingleFlight:
    """At most one generation runs at a time."""

    def test_second_trigger_is_noop(self) -> None:
        started = threading.Event()
        release = threading.Event()

        def slow_generate(ctx):
            started.set()
            release.wait(5)
            return GenerationResult("/tmp/a.mp3", 5.0, "hello")

        generator = mock_generator()
        generator.generate.side_effect = slow_generate
        # Default single-worker thread pool
        scheduler = RadioScheduler(
            generator, song_info, config=RadioConfig(enabled=True, frequency=1)
        )
        scheduler.bind(lambda: (1, 2))

        try:
            assert scheduler.maybe_pregenerate(1, 2) is True
            assert started.wait(5)
            assert scheduler.is_generating is True
            assert scheduler.maybe_pregenerate(1, 2) is False
            assert scheduler.trigger_pregeneration() is False

            release.set()
            assert scheduler.wait_for_generation(timeout=5)
        finally:
            release.set()
            scheduler.shutdown()

        assert generator.generate.call_count == 1
        assert scheduler.is_generating is False
        assert scheduler.cached_announcement.matches(1, 2)

    def test_valid_cache_suppresses_regeneration(self) -> None:
        generator = pair_generator()
        scheduler, _ = make_scheduler(generator, frequency=1)
        assert scheduler.maybe_pregenerate(1, 2) is True
        assert scheduler.maybe_pregenerate(1, 2) is False
        assert generator.generate.call_count == 1


class TestStaleAnnouncements:
    """Announcements whose pair no longer matches are dropped."""

    def test_skip_discards_cached_pair(self, backend, catalog: InMemoryCatalog) -> None:
        generator = pair_generator()
        scheduler, _ = make_scheduler(generator, frequency=1)
        controller = PlaybackController(backend, catalog.get_song, policy=scheduler)
        scheduler.bind(controller.current_pair)

        controller.load(PlaybackQueue(song_ids=(1, 2, 3, 4, 5, 6), index=1))
        controller.media_ready(backend.last_token, 100.0)
        assert scheduler.cached_announcement.matches(2, 3)

        # User jumps straight to song 4 before song 2 finishes
        controller.load(PlaybackQueue(song_ids=(1, 2, 3, 4, 5, 6), index=3))
        assert scheduler.cached_announcement is None
        assert scheduler.stale_discards == 1

        controller.media_ready(backend.last_token, 100.0)
        controller.natural_end(backend.last_token)

        assert controller.state == PlaybackState.ANNOUNCING
        assert [handle for handle, _ in backend.announcements] == ["/tmp/4-5.mp3"]

    def test_mismatched_boundary_discards(self) -> None:
        generator = pair_generator()
        scheduler, _ = make_scheduler(generator, pair=(2, 3), frequency=1)
        assert scheduler.trigger_pregeneration() is True

        assert scheduler.on_natural_end(4, 5) is None
        assert scheduler.cached_announcement is None
        assert scheduler.stale_discards == 1

    def test_result_for_old_pair_dropped(self) -> None:
        generator = pair_generator()
        scheduler, current = make_scheduler(generator, frequency=1)
        # Queue moved on before the generation finished
        current["pair"] = (7, 8)
        assert scheduler.maybe_pregenerate(1, 2) is True
        assert scheduler.cached_announcement is None
        assert scheduler.stale_discards == 1

    def test_queue_change_invalidates_in_flight(self) -> None:
        release = threading.Event()
        started = threading.Event()

        def slow_generate(ctx):
            started.set()
            release.wait(5)
            return GenerationResult("/tmp/a.mp3", 5.0, "hi")

        generator = mock_generator()
        generator.generate.side_effect = slow_generate
        scheduler = RadioScheduler(
            generator, song_info, config=RadioConfig(enabled=True, frequency=1)
        )
        scheduler.bind(lambda: (1, 2))
        try:
            scheduler.maybe_pregenerate(1, 2)
            assert started.wait(5)
            scheduler.on_queue_changed(4, 5)
            release.set()
            assert scheduler.wait_for_generation(timeout=5)
        finally:
            release.set()
            scheduler.shutdown()

        assert scheduler.cached_announcement is None
        assert scheduler.is_generating is False


class TestConfiguration:
    """toggle and update_config."""

    def test_toggle_resets_session(self) -> None:
        persist = MagicMock()
        generator = pair_generator()
        scheduler, _ = make_scheduler(generator, frequency=1, persist=persist)
        scheduler.maybe_pregenerate(1, 2)
        scheduler.on_natural_end(1, 2)
        scheduler.on_natural_end(2, 3)
        persist.reset_mock()

        assert scheduler.toggle() is False
        assert scheduler.is_enabled is False
        assert scheduler.config.song_counter == 0
        assert scheduler.memory.announcement_count == 0
        assert scheduler.cached_announcement is None
        persist.assert_called_once()

    def test_update_config(self) -> None:
        persist = MagicMock()
        scheduler, _ = make_scheduler(None, persist=persist)
        updated = scheduler.update_config(frequency=5, personality="critic", user_name="Sam")
        assert updated.frequency == 5
        assert scheduler.config.personality == "critic"
        saved_config, saved_memory = persist.call_args.args
        assert saved_config.user_name == "Sam"
        assert isinstance(saved_memory, RadioMemory)

    def test_frequency_floor(self) -> None:
        scheduler, _ = make_scheduler(None)
        assert scheduler.update_config(frequency=0).frequency == 1

    @pytest.mark.parametrize(
        "changes",
        [{"personality": "grumpy"}, {"volume": 3}, {"frequency": "often"}],
    )
    def test_invalid_settings_rejected(self, changes) -> None:
        scheduler, _ = make_scheduler(None)
        with pytest.raises(ValidationError):
            scheduler.update_config(**changes)

    def test_config_is_a_copy(self) -> None:
        scheduler, _ = make_scheduler(None)
        scheduler.config.frequency = 99
        assert scheduler.config.frequency == 3

    def test_persist_failure_is_logged(self) -> None:
        import sqlite3

        persist = MagicMock(side_effect=sqlite3.OperationalError("disk I/O error"))
        scheduler, _ = make_scheduler(None, persist=persist)
        assert scheduler.save() is False

    def test_counter_saved_at_every_boundary(self) -> None:
        persist = MagicMock()
        scheduler, _ = make_scheduler(None, frequency=5, persist=persist)

        scheduler.on_natural_end(1, 2)
        scheduler.on_natural_end(2, 3)

        assert [c.args[0].song_counter for c in persist.call_args_list] == [1, 2]
        assert list(persist.call_args.args[1].previous_songs) == ["Song 1 - Artist", "Song 2 - Artist"]

    def test_boundary_save_failure_does_not_raise(self) -> None:
        import sqlite3

        persist = MagicMock(side_effect=sqlite3.OperationalError("database is locked"))
        scheduler, _ = make_scheduler(None, frequency=5, persist=persist)

        assert scheduler.on_natural_end(1, 2) is None
        assert scheduler.config.song_counter == 1


class TestSessionIdentity:
    """The first generation of a session creates its identity."""

    def test_identity_created_once_and_reused(self) -> None:
        generator = pair_generator()
        scheduler, current = make_scheduler(generator, frequency=1)

        scheduler.maybe_pregenerate(1, 2)
        first = generator.generate.call_args.args[0]
        assert first.identity.session_name == "Late Show"
        assert scheduler.memory.identity == first.identity

        scheduler.on_natural_end(1, 2)
        current["pair"] = (2, 3)
        scheduler.maybe_pregenerate(2, 3)

        generator.generate_identity.assert_called_once()
        assert generator.generate.call_args.args[0].identity.session_name == "Late Show"

    def test_identity_failure_uses_default(self) -> None:
        generator = pair_generator()
        generator.generate_identity.side_effect = ExternalServiceError("rate limited")
        scheduler, _ = make_scheduler(generator, frequency=1)

        assert scheduler.maybe_pregenerate(1, 2) is True

        assert scheduler.memory.identity == SessionIdentity()
        assert scheduler.cached_announcement.matches(1, 2)

    def test_identity_saved_with_memory(self) -> None:
        persist = MagicMock()
        scheduler, _ = make_scheduler(pair_generator(), frequency=1, persist=persist)

        scheduler.maybe_pregenerate(1, 2)

        saved_memory = persist.call_args.args[1]
        assert saved_memory.identity.session_name == "Late Show"

    def test_toggle_starts_new_identity(self) -> None:
        generator = pair_generator()
        scheduler, _ = make_scheduler(generator, frequency=1)
        scheduler.maybe_pregenerate(1, 2)

        scheduler.toggle()
        scheduler.toggle()
        assert scheduler.memory.identity is None

        scheduler.trigger_pregeneration()
        assert generator.generate_identity.call_count == 2
