"""Configuration loading, validation and bridges to runtime types."""

from pathlib import Path

import pytest
import yaml

from estate_config import (
    AppConfig,
    ConfigurationError,
    get_active_config,
    load_config,
)
from estate_config.loader import parse_config
from estate_kernel.domain.periods import ClosingPolicy


def _write(tmp_path: Path, data) -> Path:
    path = tmp_path / "estate.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestDefaults:

    def test_packaged_defaults_match_dataclass_defaults(self, monkeypatch):
        monkeypatch.delenv("ESTATE_CONFIG", raising=False)
        assert get_active_config() == AppConfig()

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config(path) == AppConfig()

    def test_load_is_logged(self, monkeypatch, captured_logs):
        monkeypatch.delenv("ESTATE_CONFIG", raising=False)
        get_active_config()
        (record,) = [r for r in captured_logs() if r["message"] == "config_loaded"]
        assert record["database_dialect"] == "sqlite"


class TestOverrides:

    def test_env_var_selects_file(self, tmp_path, monkeypatch):
        path = _write(tmp_path, {"closing": {"auto_close_day": 10, "notice_days": 5}})
        monkeypatch.setenv("ESTATE_CONFIG", str(path))

        config = get_active_config()
        assert config.closing.auto_close_day == 10
        assert config.closing.notice_days == 5
        assert config.closing.allow_reopen is True

    def test_explicit_path_wins_over_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ESTATE_CONFIG", str(tmp_path / "missing.yaml"))
        path = _write(tmp_path, {"logging": {"level": "debug"}})
        assert get_active_config(path).logging.level == "DEBUG"

    def test_missing_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ESTATE_CONFIG", str(tmp_path / "missing.yaml"))
        with pytest.raises(FileNotFoundError):
            get_active_config()

    def test_partial_sections_keep_defaults(self):
        config = parse_config({"imports": {"max_rows": 10}})
        assert config.imports.max_rows == 10
        assert config.imports.commit_batch_size == 100
        assert config.database.url == "sqlite:///estate.db"


class TestInvalidValues:

    @pytest.mark.parametrize(
        "data, key",
        [
            ({"importz": {}}, "importz"),
            ({"imports": {"max_rows": 0}}, "imports.max_rows"),
            ({"imports": {"max_rows": "many"}}, "imports.max_rows"),
            ({"imports": {"max_rows": True}}, "imports.max_rows"),
            ({"imports": {"csv_delimiters": []}}, "imports.csv_delimiters"),
            ({"imports": {"csv_delimiters": [";;"]}}, "imports.csv_delimiters"),
            ({"imports": {"colour": "red"}}, "imports.colour"),
            ({"closing": {"auto_close_day": 32}}, "closing.auto_close_day"),
            ({"closing": {"auto_close": "yes"}}, "closing.auto_close"),
            ({"closing": {"default_reopen_hours": 0}}, "closing.default_reopen_hours"),
            ({"closing": {"notice_days": -1}}, "closing.notice_days"),
            ({"database": {"url": ""}}, "database.url"),
            ({"logging": {"level": "LOUD"}}, "logging.level"),
            ({"logging": ["INFO"]}, "logging"),
        ],
    )
    def test_rejected(self, data, key):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_config(data)
        assert exc_info.value.key == key

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_config({"closing": {"auto_close_day": 0}})

    def test_zero_limits_allowed_where_meaningful(self):
        config = parse_config({"imports": {"journal_issue_limit": 0}, "closing": {"notice_days": 0}})
        assert config.imports.journal_issue_limit == 0
        assert config.closing.notice_days == 0

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError):
            load_config(path)


class TestBridges:

    def test_closing_policy(self):
        config = parse_config(
            {"closing": {"auto_close_day": 5, "allow_reopen": False, "default_reopen_hours": 24}}
        )
        assert config.closing.to_policy() == ClosingPolicy(
            auto_close_day=5, allow_reopen=False, default_reopen_hours=24
        )

    def test_parse_options(self):
        config = parse_config(
            {"imports": {"max_file_bytes": 1024, "max_rows": 20, "csv_delimiters": [";"]}}
        )
        options = config.imports.parse_options()
        assert options.max_file_bytes == 1024
        assert options.max_rows == 20
        assert options.csv_delimiters == (";",)
