"""
Configuration loading tests.

Verifies:
- The packaged default set loads with the documented values
- MFG_CONFIG_PATH and an explicit path select another set
- DATABASE_URL replaces database.url
- Invalid sections are rejected at parse time
- The checksum identifies the content of a set
"""

import textwrap

import pytest

from mfg_config import get_active_config
from mfg_config.loader import compute_checksum, parse_config
from mfg_config.schema import MRPConfig


def _write(tmp_path, body: str):
    path = tmp_path / "set.yaml"
    path.write_text(textwrap.dedent(body))
    return path


class TestDefaultSet:

    def test_loads(self, monkeypatch):
        monkeypatch.delenv("MFG_CONFIG_PATH", raising=False)
        monkeypatch.delenv("DATABASE_URL", raising=False)

        config = get_active_config()

        assert config.config_id == "MFG-DEFAULT"
        assert config.version == 1
        assert config.mrp.default_horizon_days == 30
        assert config.mrp.open_order_statuses == ("draft", "scheduled", "in_progress")
        assert config.mrp.run_number_prefix == "MRP"
        assert config.mrp.pr_number_prefix == "PR-MRP"
        assert config.database.url.startswith("sqlite")
        assert len(config.checksum) == 64

    def test_database_url_override(self, monkeypatch):
        monkeypatch.delenv("MFG_CONFIG_PATH", raising=False)
        monkeypatch.setenv("DATABASE_URL", "postgresql://mfg@localhost/mfg")

        config = get_active_config()

        assert config.database.url == "postgresql://mfg@localhost/mfg"
        assert config.database.pool_size == 10


class TestPathResolution:

    def test_env_path(self, tmp_path, monkeypatch):
        path = _write(tmp_path, """
            config_id: PLANT-2
            version: 3
            mrp:
              default_horizon_days: 14
        """)
        monkeypatch.setenv("MFG_CONFIG_PATH", str(path))
        monkeypatch.delenv("DATABASE_URL", raising=False)

        config = get_active_config()

        assert config.config_id == "PLANT-2"
        assert config.mrp.default_horizon_days == 14
        assert config.mrp.max_horizon_days == 365

    def test_explicit_path_wins(self, tmp_path, monkeypatch):
        path = _write(tmp_path, """
            config_id: EXPLICIT
            version: 1
        """)
        monkeypatch.setenv("MFG_CONFIG_PATH", str(tmp_path / "missing.yaml"))

        assert get_active_config(path).config_id == "EXPLICIT"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "nope.yaml")


class TestValidation:

    def test_missing_identity(self):
        with pytest.raises(KeyError):
            parse_config({"version": 1})

    @pytest.mark.parametrize("mrp", [
        {"default_horizon_days": 0},
        {"default_horizon_days": 400},
        {"max_horizon_days": 0},
        {"open_order_statuses": ["scheduled", "completed"]},
        {"open_order_statuses": ["released"]},
        {"open_order_statuses": []},
        {"run_number_prefix": ""},
    ])
    def test_invalid_mrp_section(self, mrp):
        with pytest.raises(ValueError):
            parse_config({"config_id": "X", "version": 1, "mrp": mrp})

    def test_invalid_pool_size(self):
        with pytest.raises(ValueError):
            parse_config({"config_id": "X", "version": 1, "database": {"pool_size": 0}})

    def test_invalid_log_level(self):
        with pytest.raises(ValueError):
            parse_config({"config_id": "X", "version": 1, "logging": {"level": "LOUD"}})

    def test_schema_defaults_valid(self):
        assert MRPConfig().default_horizon_days == 30


class TestChecksum:

    def test_key_order_irrelevant(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_content_sensitive(self):
        base = {"config_id": "X", "version": 1}
        changed = {"config_id": "X", "version": 2}

        assert parse_config(base).checksum != parse_config(changed).checksum
