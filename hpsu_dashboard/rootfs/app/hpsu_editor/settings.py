from __future__ import annotations

import os
from pathlib import Path


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


CONFIG_DIR = Path(os.environ.get("HASS_CONFIG_DIR", "/config"))
HPSU_DIR = CONFIG_DIR / ".hpsu"
CARD_CONFIG_PATH = Path(os.environ.get("HPSU_CARD_CONFIG_PATH", str(HPSU_DIR / "card.yaml")))
BUNDLED_CATALOG_PATH = Path(__file__).resolve().parent / "svg_items.yaml"
CATALOG_PATH = Path(os.environ.get("HPSU_CATALOG_PATH", str(BUNDLED_CATALOG_PATH)))
DEFAULT_LANGUAGE = os.environ.get("HPSU_DEFAULT_LANGUAGE", "en")
LABEL_FALLBACK_LANGUAGE = os.environ.get("HPSU_LABEL_FALLBACK_LANGUAGE") or None
STRICT_LABELS = _env_flag("HPSU_STRICT_LABELS")
LOG_LEVEL = os.environ.get("HPSU_LOG_LEVEL", "INFO").upper()
SUPERVISOR_URL = os.environ.get("HPSU_SUPERVISOR_URL", "http://supervisor/core")
MISSING_LABEL = "<missing>"
