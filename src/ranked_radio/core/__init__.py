"""Core infrastructure layer - no business logic dependencies.

This module provides foundation-level services:
- Configuration management (TOML)
- Database operations (SQLite)
- Logging (Loguru)
- Error taxonomy

Clean architecture principle: The core layer has no dependencies on
domain or application layers.
"""

# Configuration
from .config import (
    Config,
    load_config,
    save_config,
    get_config_dir,
    get_config_path,
    get_data_dir,
    create_default_config,
    ensure_directories,
)

# Database
from .database import (
    get_database_path,
    get_db_connection,
    init_database,
)

# Errors
from .errors import (
    RankedRadioError,
    ValidationError,
    NotFoundError,
    ExternalServiceError,
    ExhaustedQueueError,
)

# Logging
from .logging import setup_logging, setup_logging_from_config

__all__ = [
    # Config
    "Config",
    "load_config",
    "save_config",
    "get_config_dir",
    "get_config_path",
    "get_data_dir",
    "create_default_config",
    "ensure_directories",
    # Database
    "get_database_path",
    "get_db_connection",
    "init_database",
    # Errors
    "RankedRadioError",
    "ValidationError",
    "NotFoundError",
    "ExternalServiceError",
    "ExhaustedQueueError",
    # Logging
    "setup_logging",
    "setup_logging_from_config",
]
