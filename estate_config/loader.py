"""
Configuration loader (``estate_config.loader``).

Loads a YAML file and parses it into the frozen dataclasses of
``estate_config.schema``.  Unknown keys and wrongly typed values raise
ConfigurationError; absent keys keep their defaults.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ConfigurationError``.
"""

from __future__ import annotations

from dataclasses import fields
from pathlib import Path
from typing import Any

import yaml

from estate_config.schema import (
    AppConfig,
    ClosingSettings,
    ConfigurationError,
    DatabaseSettings,
    ImportSettings,
    LoggingSettings,
)

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top level must be a mapping")
    return data


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigurationError(name, "must be a mapping")
    return value


def _check_keys(section: str, data: dict[str, Any], cls: type) -> None:
    known = {f.name for f in fields(cls)}
    for key in data:
        if key not in known:
            raise ConfigurationError(f"{section}.{key}", "unknown key")


def _int(section: str, data: dict[str, Any], key: str, default: int, minimum: int = 1) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{section}.{key}", f"expected an integer, got {value!r}")
    if value < minimum:
        raise ConfigurationError(f"{section}.{key}", f"must be >= {minimum}")
    return value


def _bool(section: str, data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ConfigurationError(f"{section}.{key}", f"expected true or false, got {value!r}")
    return value


def parse_imports(data: dict[str, Any]) -> ImportSettings:
    _check_keys("imports", data, ImportSettings)
    defaults = ImportSettings()
    delimiters = data.get("csv_delimiters", defaults.csv_delimiters)
    if (
        not isinstance(delimiters, (list, tuple))
        or not delimiters
        or any(not isinstance(d, str) or len(d) != 1 for d in delimiters)
    ):
        raise ConfigurationError("imports.csv_delimiters", "expected a list of single characters")
    return ImportSettings(
        max_file_bytes=_int("imports", data, "max_file_bytes", defaults.max_file_bytes),
        max_rows=_int("imports", data, "max_rows", defaults.max_rows),
        csv_delimiters=tuple(delimiters),
        validation_chunk_size=_int("imports", data, "validation_chunk_size", defaults.validation_chunk_size),
        commit_batch_size=_int("imports", data, "commit_batch_size", defaults.commit_batch_size),
        journal_issue_limit=_int("imports", data, "journal_issue_limit", defaults.journal_issue_limit, 0),
    )


def parse_closing(data: dict[str, Any]) -> ClosingSettings:
    _check_keys("closing", data, ClosingSettings)
    defaults = ClosingSettings()
    day = _int("closing", data, "auto_close_day", defaults.auto_close_day)
    if day > 31:
        raise ConfigurationError("closing.auto_close_day", "must be between 1 and 31")
    reopen_hours = data.get("default_reopen_hours")
    if reopen_hours is not None:
        reopen_hours = _int("closing", data, "default_reopen_hours", 1)
    return ClosingSettings(
        auto_close=_bool("closing", data, "auto_close", defaults.auto_close),
        auto_close_day=day,
        allow_reopen=_bool("closing", data, "allow_reopen", defaults.allow_reopen),
        justification_required=_bool(
            "closing", data, "justification_required", defaults.justification_required
        ),
        notify=_bool("closing", data, "notify", defaults.notify),
        notice_days=_int("closing", data, "notice_days", defaults.notice_days, 0),
        default_reopen_hours=reopen_hours,
    )


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    _check_keys("database", data, DatabaseSettings)
    defaults = DatabaseSettings()
    url = data.get("url", defaults.url)
    if not isinstance(url, str) or not url:
        raise ConfigurationError("database.url", "expected a non-empty string")
    return DatabaseSettings(
        url=url,
        echo=_bool("database", data, "echo", defaults.echo),
        pool_size=_int("database", data, "pool_size", defaults.pool_size),
        max_overflow=_int("database", data, "max_overflow", defaults.max_overflow, 0),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    _check_keys("logging", data, LoggingSettings)
    level = str(data.get("level", LoggingSettings().level)).upper()
    if level not in _LEVELS:
        raise ConfigurationError("logging.level", f"unknown level {level!r}")
    return LoggingSettings(level=level)


def parse_config(data: dict[str, Any]) -> AppConfig:
    """Parse a whole configuration mapping into an AppConfig."""
    for key in data:
        if key not in ("imports", "closing", "database", "logging"):
            raise ConfigurationError(key, "unknown section")
    return AppConfig(
        imports=parse_imports(_section(data, "imports")),
        closing=parse_closing(_section(data, "closing")),
        database=parse_database(_section(data, "database")),
        logging=parse_logging(_section(data, "logging")),
    )


def load_config(path: Path) -> AppConfig:
    return parse_config(load_yaml_file(path))
