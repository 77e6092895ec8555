"""
Configuration management for Ranked Radio
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from loguru import logger


@dataclass
class PlayerConfig:
    """Configuration for playback settings."""

    mpv_socket_path: Optional[str] = None
    volume: int = 75
    repeat: bool = False
    snapshot_interval_seconds: float = 60.0
    max_consecutive_failures: int = 3


@dataclass
class RankingConfig:
    """Configuration for the gap-based ranking."""

    gap_size: int = 1000
    initial_value: int = 1000

    def validate(self) -> None:
        """Validate ranking configuration values.

        Raises:
            ValueError: If configuration values are invalid
        """
        if self.gap_size < 2:
            raise ValueError(f"gap_size must be at least 2, got {self.gap_size}")
        if self.initial_value < 1:
            raise ValueError(
                f"initial_value must be positive, got {self.initial_value}"
            )


@dataclass
class RadioDefaults:
    """Defaults used when no radio configuration has been persisted yet."""

    radio_name: str = "Ranked Radio FM"
    frequency: int = 3
    personality: str = "energetic"
    personality2: str = "casual"
    voice1: str = "af_bella"
    voice2: Optional[str] = None


@dataclass
class AIConfig:
    """Configuration for announcement generation."""

    openai_api_key: Optional[str] = None
    script_model: str = "gpt-4o-mini"
    speech_model: str = "gpt-4o-mini-tts"
    enabled: bool = True


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = None  # default: <data dir>/ranked-radio.log
    rotation: str = "10 MB"
    retention: int = 5
    console_output: bool = False


@dataclass
class Config:
    """Main configuration object."""

    player: PlayerConfig = field(default_factory=PlayerConfig)
    ranking: RankingConfig = field(default_factory=RankingConfig)
    radio: RadioDefaults = field(default_factory=RadioDefaults)
    ai: AIConfig = field(default_factory=AIConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "ranked-radio"
    return Path.home() / ".config" / "ranked-radio"


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. RANKED_RADIO_CONFIG environment variable
    2. Current working directory
    3. XDG_CONFIG_HOME/ranked-radio (or ~/.config/ranked-radio)
    """
    explicit = os.environ.get("RANKED_RADIO_CONFIG")
    if explicit:
        return Path(explicit).expanduser()

    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config

    return get_config_dir() / "config.toml"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "ranked-radio"
    return Path.home() / ".local" / "share" / "ranked-radio"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# Ranked Radio Configuration

[player]
# Path for mpv socket (auto-detected if not specified)
# mpv_socket_path = "/tmp/mpv-socket"

# Default volume (0-100)
volume = 75

# Start over from the top when the queue runs out
repeat = false

# How often the playback position is saved for resume (seconds)
snapshot_interval_seconds = 60.0

# Consecutive media load failures before playback gives up
max_consecutive_failures = 3

[ranking]
# Spacing between ranking values; larger gaps mean fewer renumbering passes
gap_size = 1000
initial_value = 1000

[radio]
radio_name = "Ranked Radio FM"

# Songs between announcements
frequency = 3

# energetic, classic, casual, critic, nostalgic, custom
personality = "energetic"
personality2 = "casual"
voice1 = "af_bella"
# voice2 = "am_michael"

[ai]
# OpenAI API key (OPENAI_API_KEY in the environment or .env takes precedence)
# openai_api_key = "your-api-key-here"
script_model = "gpt-4o-mini"
speech_model = "gpt-4o-mini-tts"
enabled = true

[logging]
# Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
level = "INFO"
# log_file = "/path/to/custom/ranked-radio.log"
rotation = "10 MB"
retention = 5
console_output = false
""".strip()


def _parse_config(toml_data: dict) -> Config:
    config = Config()

    if "player" in toml_data:
        player_data = toml_data["player"]
        config.player = PlayerConfig(
            mpv_socket_path=player_data.get("mpv_socket_path"),
            volume=max(0, min(100, int(player_data.get("volume", config.player.volume)))),
            repeat=player_data.get("repeat", config.player.repeat),
            snapshot_interval_seconds=float(
                player_data.get(
                    "snapshot_interval_seconds", config.player.snapshot_interval_seconds
                )
            ),
            max_consecutive_failures=int(
                player_data.get(
                    "max_consecutive_failures", config.player.max_consecutive_failures
                )
            ),
        )

    if "ranking" in toml_data:
        ranking_data = toml_data["ranking"]
        config.ranking = RankingConfig(
            gap_size=ranking_data.get("gap_size", config.ranking.gap_size),
            initial_value=ranking_data.get(
                "initial_value", config.ranking.initial_value
            ),
        )
        try:
            config.ranking.validate()
        except ValueError as e:
            logger.warning(f"Invalid ranking configuration, using defaults: {e}")
            config.ranking = RankingConfig()

    if "radio" in toml_data:
        radio_data = toml_data["radio"]
        config.radio = RadioDefaults(
            radio_name=radio_data.get("radio_name", config.radio.radio_name),
            frequency=max(1, int(radio_data.get("frequency", config.radio.frequency))),
            personality=radio_data.get("personality", config.radio.personality),
            personality2=radio_data.get("personality2", config.radio.personality2),
            voice1=radio_data.get("voice1", config.radio.voice1),
            voice2=radio_data.get("voice2"),
        )

    if "ai" in toml_data:
        ai_data = toml_data["ai"]
        config.ai = AIConfig(
            openai_api_key=ai_data.get("openai_api_key"),
            script_model=ai_data.get("script_model", config.ai.script_model),
            speech_model=ai_data.get("speech_model", config.ai.speech_model),
            enabled=ai_data.get("enabled", config.ai.enabled),
        )

    if "logging" in toml_data:
        logging_data = toml_data["logging"]
        log_file = logging_data.get("log_file")
        if log_file:
            log_file = str(Path(log_file).expanduser())
        config.logging = LoggingConfig(
            level=logging_data.get("level", config.logging.level).upper(),
            log_file=log_file,
            rotation=logging_data.get("rotation", config.logging.rotation),
            retention=logging_data.get("retention", config.logging.retention),
            console_output=logging_data.get(
                "console_output", config.logging.console_output
            ),
        )

    return config


def load_config() -> Config:
    """Load configuration from file or create default.

    Environment variables override TOML values:
    - OPENAI_API_KEY
    """
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = get_config_path()

    if not config_path.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_default_config())
        logger.info(f"Created default configuration at: {config_path}")
        config = Config()
    else:
        try:
            with open(config_path, "rb") as f:
                toml_data = tomllib.load(f)
            config = _parse_config(toml_data)
        except (tomllib.TOMLDecodeError, OSError, TypeError, ValueError) as e:
            logger.warning(f"Error loading configuration from {config_path}: {e}")
            logger.warning("Using default configuration.")
            config = Config()

    api_key = os.environ.get("OPENAI_API_KEY")
    if api_key:
        config.ai.openai_api_key = api_key

    return config


def save_config(config: Config) -> bool:
    """Save configuration to file."""
    config_path = get_config_path()

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)

        toml_content = f"""# Ranked Radio Configuration

[player]
volume = {config.player.volume}
repeat = {str(config.player.repeat).lower()}
snapshot_interval_seconds = {config.player.snapshot_interval_seconds}
max_consecutive_failures = {config.player.max_consecutive_failures}"""

        if config.player.mpv_socket_path:
            toml_content += f'\nmpv_socket_path = "{config.player.mpv_socket_path}"'

        toml_content += f"""

[ranking]
gap_size = {config.ranking.gap_size}
initial_value = {config.ranking.initial_value}

[radio]
radio_name = "{config.radio.radio_name}"
frequency = {config.radio.frequency}"""

        toml_content += f'\npersonality = "{config.radio.personality}"'
        toml_content += f'\npersonality2 = "{config.radio.personality2}"'
        toml_content += f'\nvoice1 = "{config.radio.voice1}"'
        if config.radio.voice2:
            toml_content += f'\nvoice2 = "{config.radio.voice2}"'

        toml_content += f"""

[ai]
script_model = "{config.ai.script_model}"
speech_model = "{config.ai.speech_model}"
enabled = {str(config.ai.enabled).lower()}"""

        toml_content += f"""

[logging]
level = "{config.logging.level}"
rotation = "{config.logging.rotation}"
retention = {config.logging.retention}
console_output = {str(config.logging.console_output).lower()}"""

        if config.logging.log_file:
            toml_content += f'\nlog_file = "{config.logging.log_file}"'

        toml_content += "\n"

        with open(config_path, "w", encoding="utf-8") as f:
            f.write(toml_content)

        return True

    except OSError as e:
        logger.error(f"Error saving configuration to {config_path}: {e}")
        return False


def ensure_directories() -> None:
    """Ensure all necessary directories exist."""
    get_config_dir().mkdir(parents=True, exist_ok=True)
    get_data_dir().mkdir(parents=True, exist_ok=True)
