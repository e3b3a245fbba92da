"""Tests for YAML configuration loading (pos_config)."""

from decimal import Decimal

import pytest
import yaml

from pos_config import (
    CONFIG_PATH_ENV,
    DATABASE_URL_ENV,
    DEFAULT_CONFIG_PATH,
    get_active_config,
)
from pos_config.loader import compute_checksum, parse_config, parse_decimal

MINIMAL = {
    "database": {"url": "sqlite:///x.db"},
    "register": {"bills": [20, 10, 5, 1], "coins": ["0.25", "0.10", "0.05", "0.01"]},
}


def write_config(tmp_path, data) -> str:
    path = tmp_path / "register.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestDefaultConfig:

    def test_packaged_default_loads(self, monkeypatch):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
        config = get_active_config()
        assert config.source == str(DEFAULT_CONFIG_PATH)
        assert config.store.currency == "USD"
        assert config.register.bills[0] == Decimal("100")
        assert Decimal("0.01") in config.register.coins
        assert config.receipts.prefix == "REC-"
        assert len(config.checksum) == 64

    def test_load_is_logged(self, monkeypatch, captured_logs):
        monkeypatch.delenv(CONFIG_PATH_ENV, raising=False)
        get_active_config()
        loaded = [r for r in captured_logs() if r["message"] == "config_loaded"]
        assert loaded[0]["ladder_canonical"] is True


class TestResolution:

    def test_env_path(self, tmp_path, monkeypatch):
        monkeypatch.setenv(CONFIG_PATH_ENV, write_config(tmp_path, MINIMAL))
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
        assert get_active_config().database.url == "sqlite:///x.db"

    def test_database_url_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv(DATABASE_URL_ENV, "postgresql://pos@db/pos")
        config = get_active_config(write_config(tmp_path, MINIMAL))
        assert config.database.url == "postgresql://pos@db/pos"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml")


class TestParsing:

    def test_defaults_filled_in(self):
        config = parse_config(MINIMAL)
        assert config.store.currency == "USD"
        assert config.database.pool_size == 5
        assert config.logging.level == "INFO"

    def test_missing_database_url(self):
        with pytest.raises(KeyError):
            parse_config({**MINIMAL, "database": {}})

    def test_unknown_currency(self):
        with pytest.raises(ValueError):
            parse_config({**MINIMAL, "store": {"currency": "XXY"}})

    def test_ladder_must_descend(self):
        with pytest.raises(ValueError, match="descending"):
            parse_config({**MINIMAL, "register": {"bills": [1, 5], "coins": ["0.01"]}})

    def test_bad_log_level(self):
        with pytest.raises(ValueError):
            parse_config({**MINIMAL, "logging": {"level": "LOUD"}})

    def test_float_read_through_str(self):
        assert parse_decimal(0.1) == Decimal("0.1")

    def test_checksum_tracks_content(self):
        a = parse_config(MINIMAL)
        b = parse_config({**MINIMAL, "receipts": {"prefix": "T2-"}})
        assert a.checksum == compute_checksum(a)
        assert a.checksum != b.checksum
        assert parse_config(MINIMAL, source="elsewhere").checksum == a.checksum

    def test_non_canonical_ladder_warns(self, tmp_path, monkeypatch, captured_logs):
        monkeypatch.delenv(DATABASE_URL_ENV, raising=False)
        data = {**MINIMAL, "register": {"bills": [4, 3], "coins": ["0.01"]}}
        get_active_config(write_config(tmp_path, data))
        assert any(
            r["message"] == "denomination_ladder_not_canonical" for r in captured_logs()
        )
