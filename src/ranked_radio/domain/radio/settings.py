"""
Persistence for radio configuration and session memory (singleton row).
"""

import json
from typing import Optional

from loguru import logger

from ranked_radio.core.config import RadioDefaults
from ranked_radio.core.database import get_db_connection

from .memory import RadioMemory
from .models import RadioConfig


def default_radio_config(defaults: Optional[RadioDefaults] = None) -> RadioConfig:
    """Fresh RadioConfig seeded from the [radio] section of config.toml."""
    defaults = defaults or RadioDefaults()
    return RadioConfig(
        frequency=defaults.frequency,
        personality=defaults.personality,
        personality2=defaults.personality2,
        voice1=defaults.voice1,
        voice2=defaults.voice2,
        radio_name=defaults.radio_name,
    )


def load_radio_config(
    defaults: Optional[RadioDefaults] = None,
) -> tuple[RadioConfig, RadioMemory]:
    """Load persisted radio settings, falling back to defaults when absent or corrupt."""
    with get_db_connection() as conn:
        row = conn.execute(
            "SELECT config_json, memory_json FROM radio_config WHERE id = 1"
        ).fetchone()

    if row is None:
        return default_radio_config(defaults), RadioMemory()

    try:
        config = RadioConfig.from_dict(json.loads(row["config_json"]))
    except (json.JSONDecodeError, TypeError, ValueError) as e:
        logger.warning(f"Corrupt radio config, using defaults: {e}")
        config = default_radio_config(defaults)

    memory = RadioMemory()
    if row["memory_json"]:
        try:
            memory = RadioMemory.from_dict(json.loads(row["memory_json"]))
        except (json.JSONDecodeError, TypeError, ValueError) as e:
            logger.warning(f"Corrupt radio memory, starting fresh: {e}")

    return config, memory


def save_radio_config(config: RadioConfig, memory: Optional[RadioMemory] = None) -> None:
    memory_json = json.dumps(memory.to_dict()) if memory is not None else None
    with get_db_connection() as conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO radio_config (id, config_json, memory_json, updated_at)
            VALUES (1, ?, ?, CURRENT_TIMESTAMP)
            """,
            (json.dumps(config.to_dict()), memory_json),
        )
        conn.commit()
    logger.debug(
        f"Saved radio config: enabled={config.enabled}, frequency={config.frequency}, "
        f"counter={config.song_counter}"
    )
