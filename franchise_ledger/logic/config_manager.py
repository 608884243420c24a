"""
Configuration Manager for Franchise Ledger

Handles loading the spreadsheet connection settings.

Sources, lowest to highest precedence:
1. DEFAULT_CONFIG below
2. config.json (first file found, see get_config_paths)
3. .env file (loaded with python-dotenv)
4. Process environment variables

Google credentials are never written to config.json by this module;
they normally come from the environment.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .sheet_schemas import SCHEMAS

logger = logging.getLogger(__name__)

# Default configuration template
DEFAULT_CONFIG: Dict[str, Any] = {
    "_comment": "Franchise Ledger Configuration - spreadsheet id and sheet name overrides",
    "spreadsheet_id": "",
    "service_account_email": "",
    "private_key": "",
    "sheet_names": {},
    "brand_store_urls": {
        "smsh bn": "https://fax0ch-it.myshopify.com/",
        "eggs n stuff": "https://kebuxd-ca.myshopify.com/",
        "wing shack co": "https://wingshackco.store/",
    },
    "log_level": "INFO",
    "server_port": 8000,
    "cors_allowed_origins": [],
}

# config key -> environment variable
ENV_MAPPINGS = {
    "spreadsheet_id": "GOOGLE_SHEETS_SPREADSHEET_ID",
    "service_account_email": "GOOGLE_SERVICE_ACCOUNT_EMAIL",
    "private_key": "GOOGLE_PRIVATE_KEY",
    "log_level": "LOG_LEVEL",
    "server_port": "SERVER_PORT",
    "cors_allowed_origins": "CORS_ALLOWED_ORIGINS",
}


def get_config_paths() -> List[Path]:
    """Get list of possible config file locations, in priority order."""
    paths = []

    explicit = os.environ.get("FRANCHISE_LEDGER_CONFIG")
    if explicit:
        paths.append(Path(explicit))

    paths.append(Path.cwd() / "config.json")
    paths.append(Path.home() / ".config" / "franchise-ledger" / "config.json")

    # Next to the package (development)
    paths.append(Path(__file__).parent.parent.parent / "config.json")

    return paths


def find_config_file() -> Optional[Path]:
    """Find the first existing config file."""
    for path in get_config_paths():
        if path.exists():
            logger.info(f"Found config file: {path}")
            return path
    return None


def load_config(config_path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load configuration from file and environment.

    Keys starting with '_' in config.json are comments and are skipped.
    A config file that cannot be parsed is a ConfigurationError; a missing
    one is not.
    """
    config = json.loads(json.dumps(DEFAULT_CONFIG))

    path = config_path or find_config_file()
    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                file_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Could not read config file {path}: {e}") from e

        for key, value in file_config.items():
            if not key.startswith("_"):
                config[key] = value
        logger.info(f"Loaded config from: {path}")

    load_dotenv()
    for config_key, env_key in ENV_MAPPINGS.items():
        env_value = os.environ.get(env_key)
        if env_value:
            config[config_key] = env_value
            logger.debug(f"Using {env_key} from environment")

    return config


def _brand_key(brand: Any) -> str:
    return re.sub(r"[^a-z0-9]", "", str(brand or "").lower())


def _parse_origins(value: Any) -> List[str]:
    if isinstance(value, str):
        return [origin.strip() for origin in value.split(",") if origin.strip()]
    return list(value or [])


@dataclass
class LedgerConfig:
    """Resolved settings for one spreadsheet."""
    spreadsheet_id: str = ""
    service_account_email: str = ""
    private_key: str = ""
    sheet_names: Dict[str, str] = field(default_factory=dict)
    brand_store_urls: Dict[str, str] = field(default_factory=dict)
    log_level: str = "INFO"
    server_port: int = 8000
    cors_allowed_origins: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> "LedgerConfig":
        unknown = set(config.get("sheet_names") or {}) - set(SCHEMAS)
        if unknown:
            raise ConfigurationError(
                "sheet_names overrides unknown sheets",
                {"unknown": sorted(unknown)},
            )
        return cls(
            spreadsheet_id=str(config.get("spreadsheet_id") or "").strip(),
            service_account_email=str(config.get("service_account_email") or "").strip(),
            # .env files carry the key on one line with literal "\n" escapes
            private_key=str(config.get("private_key") or "").replace("\\n", "\n"),
            sheet_names=dict(config.get("sheet_names") or {}),
            brand_store_urls={
                str(k).strip().lower(): str(v)
                for k, v in (config.get("brand_store_urls") or {}).items()
            },
            log_level=str(config.get("log_level") or "INFO").upper(),
            server_port=int(config.get("server_port") or 8000),
            cors_allowed_origins=_parse_origins(config.get("cors_allowed_origins")),
        )

    def store_url_for_brand(self, brand: str) -> str:
        """
        Shop URL for a brand.

        "Wing Shack Co", "wingshackco" and "wing-shack-co" are the same
        brand. Unknown brands get ''.
        """
        key = _brand_key(brand)
        if not key:
            return ""
        for known, url in self.brand_store_urls.items():
            if _brand_key(known) == key:
                return url
        return ""

    def require_credentials(self) -> None:
        """Raise ConfigurationError unless the Sheets API can be reached."""
        missing = []
        if not self.service_account_email:
            missing.append(ENV_MAPPINGS["service_account_email"])
        if not self.private_key:
            missing.append(ENV_MAPPINGS["private_key"])
        if not self.spreadsheet_id:
            missing.append(ENV_MAPPINGS["spreadsheet_id"])
        if missing:
            raise ConfigurationError(
                "Google Sheets API credentials not configured",
                {"missing": missing},
            )


# Singleton config instance
_config: Optional[LedgerConfig] = None


def get_config() -> LedgerConfig:
    """Get the current config (loads if not already loaded)."""
    global _config
    if _config is None:
        _config = LedgerConfig.from_dict(load_config())
        logger.info(
            f"Config initialized - spreadsheet: "
            f"{'configured' if _config.spreadsheet_id else 'NOT CONFIGURED'}"
        )
    return _config


def reset_config() -> None:
    global _config
    _config = None
