"""
Configuration schema -- frozen dataclasses parsed from YAML.

  AppConfig
  +-- ImportSettings    parser limits, validation chunking, journal caps
  +-- ClosingSettings   period closing policy
  +-- DatabaseSettings  SQLAlchemy URL and pool options
  +-- LoggingSettings   level of the ``estate`` logger hierarchy

Bridges to kernel types (``ClosingSettings.to_policy``) live here so the
kernel never imports from ``estate_config``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from estate_ingestion.adapters.base import ParseOptions
from estate_kernel.domain.periods import ClosingPolicy


class ConfigurationError(ValueError):
    """A configuration value is missing, of the wrong type or out of range."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration value {key!r}: {reason}")


@dataclass(frozen=True)
class ImportSettings:
    max_file_bytes: int = 10 * 1024 * 1024
    max_rows: int = 50_000
    csv_delimiters: tuple[str, ...] = (";", ",", "\t", "|")
    validation_chunk_size: int = 500
    commit_batch_size: int = 100
    journal_issue_limit: int = 50

    def parse_options(self) -> ParseOptions:
        return ParseOptions(
            max_file_bytes=self.max_file_bytes,
            max_rows=self.max_rows,
            csv_delimiters=self.csv_delimiters,
        )


@dataclass(frozen=True)
class ClosingSettings:
    auto_close: bool = True
    auto_close_day: int = 15
    allow_reopen: bool = True
    justification_required: bool = True
    notify: bool = True
    notice_days: int = 3
    default_reopen_hours: int | None = None

    def to_policy(self) -> ClosingPolicy:
        return ClosingPolicy(
            auto_close=self.auto_close,
            auto_close_day=self.auto_close_day,
            allow_reopen=self.allow_reopen,
            justification_required=self.justification_required,
            notify=self.notify,
            notice_days=self.notice_days,
            default_reopen_hours=self.default_reopen_hours,
        )


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite:///estate.db"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class AppConfig:
    imports: ImportSettings = field(default_factory=ImportSettings)
    closing: ClosingSettings = field(default_factory=ClosingSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
