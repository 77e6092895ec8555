"""Tests for radio models, memory and settings persistence."""

from datetime import datetime, timedelta

import pytest

from ranked_radio.core.config import RadioDefaults
from ranked_radio.domain.radio import (
    Announcement,
    RadioConfig,
    RadioMemory,
    SessionIdentity,
    calculate_transition,
    describe_personality,
    extract_voice_name,
    load_radio_config,
    save_radio_config,
)
from ranked_radio.domain.radio.memory import FIRST_ANNOUNCEMENT_NOTE, MAX_SCRIPT_CHARS, MAX_SONG_HISTORY


class TestTransitionParams:
    @pytest.mark.parametrize(
        "duration,fade_out",
        [(0.0, 2000), (9.9, 2000), (10.0, 3000), (19.9, 3000), (20.0, 4000), (45.0, 4000)],
    )
    def test_fade_out_by_duration(self, duration: float, fade_out: int) -> None:
        params = calculate_transition(duration)
        assert params.fade_out == fade_out
        assert params.pre_silence == 400
        assert params.post_silence == 5000
        assert params.fade_in == 2500


class TestRadioConfig:
    def test_defaults(self) -> None:
        config = RadioConfig()
        assert config.frequency == 3
        assert config.personality == "energetic"
        assert config.voice1 == "af_bella"
        assert config.enabled is False

    def test_round_trip_ignores_unknown_keys(self) -> None:
        config = RadioConfig(enabled=True, user_name="Sam", dual_mode=True, voice2="am_adam")
        data = config.to_dict()
        data["legacy_field"] = 1
        assert RadioConfig.from_dict(data) == config

    def test_host_names_from_voices(self) -> None:
        config = RadioConfig(voice1="af_bella", voice2="am_michael", dual_mode=True)
        assert config.host1_name == "Bella"
        assert config.host2_name == "Michael"
        assert config.is_dual

    def test_explicit_dj_name_wins(self) -> None:
        assert RadioConfig(dj_name1="Max").host1_name == "Max"

    def test_dual_needs_second_voice(self) -> None:
        assert RadioConfig(dual_mode=True).is_dual is False


class TestPersonalities:
    def test_presets(self) -> None:
        assert "ENERGETIC" in describe_personality("energetic")
        assert "NOSTALGIC" in describe_personality("nostalgic")

    def test_custom_text(self) -> None:
        assert describe_personality("custom", "Speak like a pirate.") == "Speak like a pirate."

    def test_unknown_and_empty_custom_fall_back(self) -> None:
        assert describe_personality("custom", "  ") == "You are a friendly radio DJ."
        assert describe_personality("robot") == "You are a friendly radio DJ."

    @pytest.mark.parametrize(
        "voice,name", [("af_bella", "Bella"), ("nova", "Nova"), (None, "DJ"), ("", "DJ")]
    )
    def test_extract_voice_name(self, voice, name) -> None:
        assert extract_voice_name(voice) == name


class TestAnnouncement:
    def test_matches_pair(self) -> None:
        announcement = Announcement("/tmp/a.mp3", 5.0, "hi", previous_song_id=1, next_song_id=2)
        assert announcement.matches(1, 2)
        assert not announcement.matches(2, 1)
        assert not announcement.matches(1, None)


class TestRadioMemory:
    def test_first_announcement_note(self) -> None:
        memory = RadioMemory()
        assert memory.is_first_announcement
        assert memory.formatted_script_history() == FIRST_ANNOUNCEMENT_NOTE

    def test_scripts_trimmed_oldest_first(self) -> None:
        memory = RadioMemory()
        for i in range(10):
            memory.add_script(f"{i}" * 900)
        assert memory.total_script_chars <= MAX_SCRIPT_CHARS
        assert memory.scripts[-1].startswith("9")
        assert not any(s.startswith("0") for s in memory.scripts)
        assert memory.announcement_count == 10

    def test_blank_script_ignored(self) -> None:
        memory = RadioMemory()
        memory.add_script("   ")
        assert memory.announcement_count == 0

    def test_song_history_capped(self) -> None:
        memory = RadioMemory()
        for i in range(MAX_SONG_HISTORY + 5):
            memory.add_played_song(f"Song {i}")
        assert len(memory.previous_songs) == MAX_SONG_HISTORY
        assert memory.previous_songs[0] == "Song 5"
        assert memory.songs_played == MAX_SONG_HISTORY + 5

    def test_formatted_history_numbers_scripts(self) -> None:
        memory = RadioMemory()
        memory.add_script("Hello")
        memory.add_script("Again")
        assert memory.formatted_script_history() == "[Announcement 1]: Hello\n\n[Announcement 2]: Again"

    def test_session_minutes(self) -> None:
        start = datetime(2024, 1, 1, 20, 0)
        memory = RadioMemory(session_start=start)
        assert memory.session_minutes(start + timedelta(minutes=42, seconds=30)) == 42

    def test_reset(self) -> None:
        memory = RadioMemory()
        memory.add_script("x")
        memory.add_played_song("y")
        memory.identity = SessionIdentity()
        memory.reset()
        assert memory.announcement_count == 0
        assert not memory.scripts and not memory.previous_songs
        assert memory.identity is None

    def test_dict_round_trip(self) -> None:
        memory = RadioMemory(session_start=datetime(2024, 5, 1, 12, 0))
        memory.add_script("Hello")
        memory.add_played_song("A - B")
        restored = RadioMemory.from_dict(memory.to_dict())
        assert restored.to_dict() == memory.to_dict()

    def test_identity_persisted(self, temp_db) -> None:
        memory = RadioMemory()
        memory.identity = SessionIdentity("Rock Nights", "loud", "Guitars all night", "punchy")
        save_radio_config(RadioConfig(), memory)

        _, loaded = load_radio_config()
        assert loaded.identity == memory.identity

    def test_bad_identity_ignored(self) -> None:
        memory = RadioMemory.from_dict({"identity": "Rock Nights"})
        assert memory.identity is None


class TestRadioSettings:
    def test_defaults_when_nothing_saved(self, temp_db) -> None:
        config, memory = load_radio_config(RadioDefaults(frequency=4, radio_name="Night FM"))
        assert config.frequency == 4
        assert config.radio_name == "Night FM"
        assert memory.announcement_count == 0

    def test_save_and_load(self, temp_db) -> None:
        memory = RadioMemory()
        memory.add_script("Welcome to the show")
        save_radio_config(RadioConfig(enabled=True, song_counter=2, user_name="Sam"), memory)

        config, loaded_memory = load_radio_config()
        assert config.enabled is True
        assert config.song_counter == 2
        assert config.user_name == "Sam"
        assert list(loaded_memory.scripts) == ["Welcome to the show"]

    def test_corrupt_config_falls_back(self, temp_db) -> None:
        from ranked_radio.core.database import get_db_connection

        with get_db_connection() as conn:
            conn.execute(
                "INSERT INTO radio_config (id, config_json, memory_json) VALUES (1, ?, NULL)",
                ("{not json",),
            )
            conn.commit()

        config, _ = load_radio_config()
        assert config == RadioConfig()
