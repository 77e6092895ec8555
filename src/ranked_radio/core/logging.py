"""
Centralized logging configuration for Ranked Radio
"""

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from .config import LoggingConfig, get_data_dir

LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{line} | {message}"


def get_log_file_path() -> Path:
    """Get the path to the log file."""
    return get_data_dir() / "ranked-radio.log"


def setup_logging(
    level: str = "INFO",
    log_file_path: Optional[Path] = None,
    rotation: str = "10 MB",
    retention: int = 5,
    console_output: bool = False,
) -> None:
    """
    Configure loguru for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file_path: Custom log file path (default: ~/.local/share/ranked-radio/ranked-radio.log)
        rotation: Size or interval at which the log file rotates
        retention: Number of rotated files to keep
        console_output: Whether to also output logs to stderr
    """
    log_file = log_file_path if log_file_path else get_log_file_path()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    # Remove default handler to avoid duplicates
    logger.remove()

    logger.add(
        log_file,
        rotation=rotation,
        retention=retention,
        level=level.upper(),
        format=LOG_FORMAT,
        enqueue=True,  # background threads log too
    )

    if console_output:
        logger.add(sys.stderr, level=level.upper(), format="{level}: {message}")

    logger.info(
        f"Logging initialized: {log_file} (level={level}, rotation={rotation}, retention={retention})"
    )


def setup_logging_from_config(config: LoggingConfig) -> None:
    """Configure logging from the [logging] config section."""
    setup_logging(
        level=config.level,
        log_file_path=Path(config.log_file) if config.log_file else None,
        rotation=config.rotation,
        retention=config.retention,
        console_output=config.console_output,
    )
