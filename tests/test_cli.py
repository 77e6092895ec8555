"""Tests for CLI argument handling and the non-interactive commands."""

import json
from argparse import Namespace

import pytest

from ranked_radio.cli import build_parser, parse_radio_setting, run
from ranked_radio.core.config import Config
from ranked_radio.core.errors import NotFoundError, ValidationError
from ranked_radio.domain.library import insert_songs
from ranked_radio.domain.radio import (
    RadioConfig,
    RadioMemory,
    SessionIdentity,
    load_radio_config,
    save_radio_config,
)
from ranked_radio.domain.ranking.database import load_rankings

from conftest import make_song


@pytest.fixture
def seeded_db(temp_db):
    insert_songs([make_song(i) for i in range(1, 5)])
    return temp_db


def run_cli(*argv: str) -> int:
    return run(build_parser().parse_args(list(argv)), Config())


class TestParseRadioSetting:
    def test_bool(self) -> None:
        assert parse_radio_setting("dual_mode=on") == ("dual_mode", True)
        assert parse_radio_setting("enabled = false") == ("enabled", False)

    def test_int(self) -> None:
        assert parse_radio_setting("frequency=5") == ("frequency", 5)

    def test_string_and_none(self) -> None:
        assert parse_radio_setting("user_name=Sam") == ("user_name", "Sam")
        assert parse_radio_setting("voice2=none") == ("voice2", None)

    @pytest.mark.parametrize("assignment", ["frequency", "loudness=3", "frequency=lots", "enabled=maybe"])
    def test_invalid(self, assignment: str) -> None:
        with pytest.raises(ValidationError):
            parse_radio_setting(assignment)


class TestParser:
    def test_play_defaults_to_resume(self) -> None:
        args = build_parser().parse_args(["play"])
        assert args.mode is None
        assert args.reverse is False

    def test_queue_options(self) -> None:
        args = build_parser().parse_args(["queue", "top-50", "--reverse", "--seed", "abc"])
        assert args.mode == "top-50"
        assert args.reverse is True
        assert args.seed == "abc"

    def test_unknown_mode_rejected(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["queue", "loudest"])


class TestCommands:
    def test_rank_add_move_remove(self, seeded_db, capsys) -> None:
        assert run_cli("rank", "add", "1") == 0
        assert run_cli("rank", "add", "2") == 0
        assert run_cli("rank", "add", "3", "--position", "1") == 0
        assert run_cli("rank", "move", "2", "1") == 0
        assert run_cli("rank", "remove", "1") == 0

        values = load_rankings()
        assert sorted(values, key=values.get) == [2, 3]

        run_cli("rank", "list")
        out = capsys.readouterr().out
        assert "#1    Song 2 - Artist 2" in out

    def test_rank_unknown_song(self, seeded_db) -> None:
        with pytest.raises(NotFoundError):
            run_cli("rank", "add", "42")

    def test_queue_preview(self, seeded_db, capsys) -> None:
        assert run_cli("queue", "sequential", "--reverse", "--limit", "2") == 0
        out = capsys.readouterr().out
        assert "sequential (reversed): 4 songs" in out
        assert "1. Song 4 - Artist 4" in out
        assert "... and 2 more" in out

    def test_radio_set_persists(self, temp_db, capsys) -> None:
        assert run_cli("radio", "set", "frequency=2", "user_name=Sam") == 0
        config, _ = load_radio_config()
        assert config.frequency == 2
        assert config.user_name == "Sam"
        assert "Every 2 songs" in capsys.readouterr().out

    def test_radio_toggle(self, temp_db) -> None:
        run_cli("radio", "toggle")
        assert load_radio_config()[0].enabled is True

    def test_radio_status_shows_session_identity(self, temp_db, capsys) -> None:
        memory = RadioMemory()
        memory.identity = SessionIdentity(session_name="Rock Nights", vibe="loud")
        save_radio_config(RadioConfig(enabled=True), memory)

        assert run_cli("radio", "status") == 0
        assert "Session: Rock Nights (loud)" in capsys.readouterr().out

    def test_songs_import(self, temp_db, tmp_path, capsys) -> None:
        path = tmp_path / "songs.json"
        path.write_text(
            json.dumps([{"id": 7, "title": "Imported", "artist": "Someone", "bpm": 120}, {"title": "no id"}])
        )
        assert run_cli("songs", "import", str(path)) == 0
        run_cli("songs", "list")
        out = capsys.readouterr().out
        assert "Imported 1 songs" in out
        assert "Imported - Someone" in out
