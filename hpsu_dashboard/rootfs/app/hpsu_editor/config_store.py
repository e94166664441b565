from __future__ import annotations

import logging
from typing import Any

import yaml

from . import settings
from .config_sync import CardConfig, ConfigValidationError, config_to_dict
from .fs_utils import read_text, write_yaml_atomic

_LOGGER = logging.getLogger(__name__)


class ConfigStoreError(Exception):
    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


def ensure_hpsu_dirs() -> None:
    settings.CARD_CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)


def load_card_config() -> dict[str, Any] | None:
    """Return the persisted raw card config, or ``None`` if nothing is stored yet."""
    try:
        text = read_text(settings.CARD_CONFIG_PATH)
    except OSError as exc:
        raise ConfigStoreError(f"Cannot read {settings.CARD_CONFIG_PATH}: {exc}") from exc
    if not text.strip():
        return None
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid {settings.CARD_CONFIG_PATH.name}: {exc}") from exc
    return data


def save_card_config(config: CardConfig) -> bool:
    try:
        ensure_hpsu_dirs()
        changed = write_yaml_atomic(settings.CARD_CONFIG_PATH, config_to_dict(config))
    except OSError as exc:
        raise ConfigStoreError(f"Cannot write {settings.CARD_CONFIG_PATH}: {exc}") from exc
    if changed:
        _LOGGER.debug("Wrote card configuration to %s", settings.CARD_CONFIG_PATH)
    return changed
