"""
estate_config -- single public entrypoint for runtime configuration.

Responsibility:
    ``get_active_config()`` is the only way services obtain settings.  It
    reads the YAML file named by the ``ESTATE_CONFIG`` environment variable,
    or the packaged ``defaults.yaml`` when the variable is unset.

Architecture position:
    Sits above ``estate_kernel`` and ``estate_ingestion``.  The kernel never
    imports from ``estate_config``; ``ClosingSettings.to_policy`` bridges
    settings into the kernel's ClosingPolicy.

Failure modes:
    - ``FileNotFoundError`` -- ESTATE_CONFIG names a missing file.
    - ``ConfigurationError`` -- a value is invalid.
"""

from __future__ import annotations

import os
from pathlib import Path

from estate_config.loader import load_config
from estate_config.schema import (
    AppConfig,
    ClosingSettings,
    ConfigurationError,
    DatabaseSettings,
    ImportSettings,
    LoggingSettings,
)
from estate_kernel.logging_config import get_logger

logger = get_logger("config")

CONFIG_ENV_VAR = "ESTATE_CONFIG"
DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | None = None) -> AppConfig:
    """Load the active configuration (explicit path, ESTATE_CONFIG, or defaults)."""
    if path is None:
        env_path = os.environ.get(CONFIG_ENV_VAR)
        path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
    config = load_config(path)
    logger.info(
        "config_loaded",
        extra={
            "config_path": str(path),
            "database_dialect": config.database.url.split(":", 1)[0],
            "auto_close": config.closing.auto_close,
        },
    )
    return config


__all__ = [
    "AppConfig",
    "ClosingSettings",
    "ConfigurationError",
    "DatabaseSettings",
    "ImportSettings",
    "LoggingSettings",
    "get_active_config",
    "load_config",
]
