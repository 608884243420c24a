"""
Tests for configuration loading.
"""

import json

import pytest

from franchise_ledger.logic import config_manager
from franchise_ledger.logic.config_manager import LedgerConfig, load_config
from franchise_ledger.logic.exceptions import ConfigurationError

ENV_KEYS = [
    "GOOGLE_SHEETS_SPREADSHEET_ID",
    "GOOGLE_SERVICE_ACCOUNT_EMAIL",
    "GOOGLE_PRIVATE_KEY",
    "LOG_LEVEL",
    "SERVER_PORT",
    "CORS_ALLOWED_ORIGINS",
    "FRANCHISE_LEDGER_CONFIG",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    return monkeypatch


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "ledger.json"
    path.write_text(json.dumps({
        "_comment": "test config",
        "spreadsheet_id": "sheet-from-file",
        "sheet_names": {"Orders_Header": "Orders"},
        "server_port": 9000,
    }), encoding="utf-8")
    return path


class TestLoadConfig:
    """Test the file and environment layers."""

    def test_file_values(self, clean_env, config_file):
        config = load_config(config_file)

        assert config["spreadsheet_id"] == "sheet-from-file"
        assert config["sheet_names"] == {"Orders_Header": "Orders"}
        assert config["server_port"] == 9000
        assert config["_comment"] != "test config"

    def test_defaults_kept(self, clean_env, config_file):
        config = load_config(config_file)
        assert config["log_level"] == "INFO"
        assert "wing shack co" in config["brand_store_urls"]

    def test_environment_wins(self, clean_env, config_file):
        clean_env.setenv("GOOGLE_SHEETS_SPREADSHEET_ID", "sheet-from-env")
        clean_env.setenv("LOG_LEVEL", "debug")

        config = load_config(config_file)

        assert config["spreadsheet_id"] == "sheet-from-env"
        assert config["log_level"] == "debug"

    def test_unreadable_file(self, clean_env, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_config(path)


class TestLedgerConfig:
    """Test resolving the loaded dict."""

    def test_from_dict(self):
        config = LedgerConfig.from_dict({
            "spreadsheet_id": " abc ",
            "private_key": "-----BEGIN-----\\nKEY\\n-----END-----",
            "server_port": "9001",
            "log_level": "warning",
            "cors_allowed_origins": "http://a.test, http://b.test,",
        })

        assert config.spreadsheet_id == "abc"
        assert config.private_key == "-----BEGIN-----\nKEY\n-----END-----"
        assert config.server_port == 9001
        assert config.log_level == "WARNING"
        assert config.cors_allowed_origins == ["http://a.test", "http://b.test"]

    def test_unknown_sheet_override(self):
        with pytest.raises(ConfigurationError) as exc_info:
            LedgerConfig.from_dict({"sheet_names": {"Sales_Import": "Imports"}})
        assert exc_info.value.details["unknown"] == ["Sales_Import"]

    def test_sheet_name_override(self):
        config = LedgerConfig.from_dict({"sheet_names": {"Orders_Header": "Orders"}})
        assert config.sheet_names == {"Orders_Header": "Orders"}

    @pytest.mark.parametrize("brand", ["Wing Shack Co", "wingshackco", "wing-shack-co", " WING SHACK CO "])
    def test_store_url_spellings(self, config, brand):
        assert config.store_url_for_brand(brand) == "https://wingshackco.store/"

    def test_store_url_unknown(self, config):
        assert config.store_url_for_brand("Pop Up Pizza") == ""
        assert config.store_url_for_brand("") == ""

    def test_require_credentials(self):
        config = LedgerConfig(spreadsheet_id="abc")

        with pytest.raises(ConfigurationError) as exc_info:
            config.require_credentials()
        assert exc_info.value.details["missing"] == ["GOOGLE_SERVICE_ACCOUNT_EMAIL", "GOOGLE_PRIVATE_KEY"]

    def test_credentials_present(self):
        LedgerConfig(spreadsheet_id="abc", service_account_email="svc@x.iam", private_key="k").require_credentials()


class TestGetConfig:
    def test_cached_until_reset(self, clean_env, config_file):
        clean_env.setenv("FRANCHISE_LEDGER_CONFIG", str(config_file))
        config_manager.reset_config()

        first = config_manager.get_config()
        assert first.spreadsheet_id == "sheet-from-file"
        assert config_manager.get_config() is first

        config_manager.reset_config()
        assert config_manager.get_config() is not first
        config_manager.reset_config()
