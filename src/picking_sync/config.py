"""Application configuration — loads .env, then overrides from settings.json."""

import json
import os
from pathlib import Path

from dotenv import load_dotenv

# Find the project root (where .env lives)
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# Runtime settings file for in-app configuration
_SETTINGS_FILE = _PROJECT_ROOT / "data" / "settings.json"


def _load_settings() -> dict:
    """Load saved runtime settings from JSON file."""
    if _SETTINGS_FILE.exists():
        try:
            return json.loads(_SETTINGS_FILE.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            pass
    return {}


def _save_settings(settings: dict):
    """Persist runtime settings to JSON file."""
    _SETTINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    _SETTINGS_FILE.write_text(
        json.dumps(settings, indent=2), encoding="utf-8"
    )


def _parse_id_list(raw) -> list[int]:
    """Accept a JSON list or a comma-separated string of company ids."""
    if isinstance(raw, list):
        values = raw
    else:
        values = [v for v in str(raw or "").split(",") if v.strip()]
    ids = []
    for value in values:
        try:
            ids.append(int(value))
        except (TypeError, ValueError):
            continue
    return ids


def _optional_int(raw):
    try:
        return int(raw) if raw not in (None, "") else None
    except (TypeError, ValueError):
        return None


# Load saved settings once at import time
_runtime = _load_settings()


class Config:
    """Central configuration: .env defaults, settings.json overrides."""

    # Paths
    PROJECT_ROOT: Path = _PROJECT_ROOT
    DATABASE_PATH: Path = Path(
        os.getenv("DATABASE_PATH", str(_PROJECT_ROOT / "data" / "picking_cache.db"))
    )
    BACKUP_PATH: Path = Path(
        os.getenv("DATABASE_BACKUP_PATH", str(_PROJECT_ROOT / "data" / "backups"))
    )

    # Odoo server (settings.json overrides .env)
    ODOO_URL: str = _runtime.get(
        "odoo_url",
        os.getenv("ODOO_URL", ""),
    ).rstrip("/")
    ODOO_DB: str = _runtime.get(
        "odoo_db",
        os.getenv("ODOO_DB", ""),
    )
    ODOO_VERSION: int = int(_runtime.get(
        "odoo_version",
        os.getenv("ODOO_VERSION", "17"),
    ))

    # Credentials never leave the environment
    ODOO_LOGIN: str = os.getenv("ODOO_LOGIN", "")
    ODOO_PASSWORD: str = os.getenv("ODOO_PASSWORD", "")

    # Company selection
    COMPANY_ID = _optional_int(_runtime.get(
        "company_id",
        os.getenv("ODOO_COMPANY_ID", ""),
    ))
    ALLOWED_COMPANY_IDS: list = _parse_id_list(_runtime.get(
        "allowed_company_ids",
        os.getenv("ODOO_ALLOWED_COMPANY_IDS", ""),
    ))

    # Network
    REQUEST_TIMEOUT: float = float(_runtime.get(
        "request_timeout",
        os.getenv("REQUEST_TIMEOUT", "30"),
    ))
    PROBE_TIMEOUT: float = float(_runtime.get(
        "probe_timeout",
        os.getenv("PROBE_TIMEOUT", "5"),
    ))

    # Lists
    PAGE_SIZE: int = int(_runtime.get(
        "page_size",
        os.getenv("PAGE_SIZE", "40"),
    ))

    # Sync bookkeeping
    LAST_SYNC_TIMESTAMP: str = _runtime.get("last_sync_timestamp", "")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    @classmethod
    def update_server_settings(cls, url: str, db: str):
        """Update the Odoo server address and database, then persist."""
        cls.ODOO_URL = url.rstrip("/")
        cls.ODOO_DB = db

        settings = _load_settings()
        settings["odoo_url"] = cls.ODOO_URL
        settings["odoo_db"] = db
        _save_settings(settings)

    @classmethod
    def update_company_selection(cls, company_id: int,
                                 allowed_company_ids: list[int]):
        """Switch the active company and persist the selection.

        The selected company is always part of the allowed list.
        """
        allowed = list(dict.fromkeys(int(c) for c in allowed_company_ids))
        if company_id not in allowed:
            allowed.append(company_id)
        cls.COMPANY_ID = company_id
        cls.ALLOWED_COMPANY_IDS = allowed

        settings = _load_settings()
        settings["company_id"] = company_id
        settings["allowed_company_ids"] = allowed
        _save_settings(settings)

    @classmethod
    def update_last_sync(cls, timestamp: str):
        """Record when the last successful sync finished."""
        cls.LAST_SYNC_TIMESTAMP = timestamp
        settings = _load_settings()
        settings["last_sync_timestamp"] = timestamp
        _save_settings(settings)
