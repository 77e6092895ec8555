"""Tests for configuration loading and saving."""

from pathlib import Path

import pytest

from ranked_radio.core.config import (
    Config,
    get_config_path,
    load_config,
    save_config,
)


@pytest.fixture
def config_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate config lookup under tmp_path."""
    config_path = tmp_path / "config" / "config.toml"
    monkeypatch.setenv("RANKED_RADIO_CONFIG", str(config_path))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    return config_path


def test_explicit_config_path(config_env: Path) -> None:
    assert get_config_path() == config_env


def test_creates_default_file(config_env: Path) -> None:
    config = load_config()
    assert config_env.exists()
    assert config == Config()
    assert "[radio]" in config_env.read_text()


def test_reads_values(config_env: Path) -> None:
    config_env.parent.mkdir(parents=True)
    config_env.write_text(
        """
[player]
volume = 140
repeat = true

[ranking]
gap_size = 10

[radio]
radio_name = "Night FM"
frequency = 0

[logging]
level = "debug"
"""
    )
    config = load_config()
    assert config.player.volume == 100
    assert config.player.repeat is True
    assert config.ranking.gap_size == 10
    assert config.radio.radio_name == "Night FM"
    assert config.radio.frequency == 1
    assert config.logging.level == "DEBUG"


def test_invalid_ranking_section_uses_defaults(config_env: Path) -> None:
    config_env.parent.mkdir(parents=True)
    config_env.write_text("[ranking]\ngap_size = 1\n")
    assert load_config().ranking.gap_size == 1000


def test_parse_error_falls_back_to_defaults(config_env: Path) -> None:
    config_env.parent.mkdir(parents=True)
    config_env.write_text("[player\nvolume = ")
    assert load_config() == Config()


def test_env_api_key_overrides(config_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_env.parent.mkdir(parents=True)
    config_env.write_text('[ai]\nopenai_api_key = "from-file"\n')
    monkeypatch.setenv("OPENAI_API_KEY", "from-env")
    assert load_config().ai.openai_api_key == "from-env"


def test_save_round_trip(config_env: Path) -> None:
    config = Config()
    config.player.volume = 30
    config.radio.voice2 = "am_michael"
    config.logging.console_output = True

    assert save_config(config) is True
    loaded = load_config()
    assert loaded.player.volume == 30
    assert loaded.radio.voice2 == "am_michael"
    assert loaded.logging.console_output is True
