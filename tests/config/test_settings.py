"""
Tests for stock_config -- YAML sets, validation and the active-config entrypoint.
"""

from dataclasses import replace

import pytest
import yaml

from stock_config import LedgerSettings, compute_checksum, get_active_config
from stock_config.loader import load_settings, parse_settings
from stock_kernel.domain.alerts import AlertThresholds


def write_set(tmp_path, data) -> str:
    path = tmp_path / "ledger.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestBundledSet:

    def test_default_set_loads(self, monkeypatch):
        monkeypatch.delenv("STOCK_LEDGER_CONFIG", raising=False)
        monkeypatch.delenv("DATABASE_URL", raising=False)
        settings = get_active_config()
        assert settings.config_id == "STOCK-LEDGER-DEFAULT"
        assert settings.default_minimum_level == 5
        assert settings.expiry_window_days == 7
        assert settings.verify_replay_on_write is True
        assert settings.checksum == compute_checksum(settings)

    def test_logs_load(self, monkeypatch, captured_logs):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        get_active_config()
        loaded = [r for r in captured_logs() if r["message"] == "stock_config_loaded"]
        assert loaded and loaded[0]["config_id"] == "STOCK-LEDGER-DEFAULT"


class TestOverrides:

    def test_env_selects_set(self, tmp_path, monkeypatch):
        path = write_set(tmp_path, {"config_id": "OUTLETS-NORTH", "alerts": {"expiry_window_days": 14}})
        monkeypatch.setenv("STOCK_LEDGER_CONFIG", path)
        monkeypatch.delenv("DATABASE_URL", raising=False)
        settings = get_active_config()
        assert settings.config_id == "OUTLETS-NORTH"
        assert settings.expiry_window_days == 14
        assert settings.default_minimum_level == 5

    def test_database_url_env_wins(self, tmp_path, monkeypatch):
        path = write_set(tmp_path, {"database": {"url": "sqlite:///a.db"}})
        monkeypatch.setenv("DATABASE_URL", "postgresql://stock@localhost/stock")
        assert get_active_config(path).database_url == "postgresql://stock@localhost/stock"

    def test_thresholds_follow_settings(self):
        settings = LedgerSettings(default_minimum_level=12, expiry_window_days=3)
        thresholds = AlertThresholds.from_settings(settings)
        assert (thresholds.default_minimum_level, thresholds.expiry_window_days) == (12, 3)


class TestValidation:

    def test_unknown_section_rejected(self):
        with pytest.raises(ValueError, match="Unknown configuration sections"):
            parse_settings({"alert": {"default_minimum_level": 5}})

    @pytest.mark.parametrize(
        "field, value",
        [
            ("default_minimum_level", -1),
            ("expiry_window_days", -1),
            ("max_conflict_retries", 0),
            ("conflict_backoff_seconds", -0.1),
            ("lock_timeout_seconds", 0),
            ("database_url", ""),
            ("log_level", "CHATTY"),
        ],
    )
    def test_out_of_range_rejected(self, field, value):
        with pytest.raises(ValueError):
            LedgerSettings(**{field: value})

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_settings(tmp_path / "absent.yaml")

    def test_checksum_tracks_content(self):
        base = LedgerSettings()
        assert compute_checksum(base) == compute_checksum(replace(base, checksum="x"))
        assert compute_checksum(base) != compute_checksum(replace(base, expiry_window_days=8))
