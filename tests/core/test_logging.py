"""Tests for loguru setup."""

from loguru import logger

from ranked_radio.core.config import LoggingConfig
from ranked_radio.core.logging import setup_logging_from_config


def test_file_sink_receives_messages(tmp_path) -> None:
    log_file = tmp_path / "logs" / "radio.log"
    setup_logging_from_config(LoggingConfig(level="debug", log_file=str(log_file)))
    try:
        logger.debug("snapshot saved")
        logger.complete()
    finally:
        logger.remove()

    text = log_file.read_text()
    assert "Logging initialized" in text
    assert "| DEBUG    |" in text
    assert "snapshot saved" in text
