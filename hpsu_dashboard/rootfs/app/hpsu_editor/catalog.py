from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml

from . import settings
from .fs_utils import read_text

_LOGGER = logging.getLogger(__name__)

SLOT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
DEFAULT_CATEGORY: Mapping[str, str] = {"en": "Other", "de": "Sonstige"}
UI_TEXT_KEYS = ("devices_header", "can_device_placeholder", "uart_device_placeholder")


class CatalogError(Exception):
    def __init__(self, message: str, status_code: int = 500) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class Device(str, Enum):
    NONE = "NONE"
    CAN = "CAN"
    UART = "UART"


@dataclass(frozen=True)
class SlotDefinition:
    """One bindable point of the schematic.

    ``unit`` holds every accepted unit of measurement. ``None`` inside the set
    stands for "no unit attribute at all". ``category`` is ``None`` when the
    slot inherits the category of the slot before it.
    """

    id: str
    device: Device = Device.NONE
    domain: str | None = None
    unit: frozenset[str | None] = frozenset({None})
    category: Mapping[str, str] | None = None
    texts: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Catalog:
    slots: tuple[SlotDefinition, ...]
    languages: tuple[str, ...]
    ui_texts: Mapping[str, Mapping[str, str]] = field(default_factory=dict)

    def slot_ids(self) -> list[str]:
        return [slot.id for slot in self.slots]

    def get(self, slot_id: str) -> SlotDefinition | None:
        for slot in self.slots:
            if slot.id == slot_id:
                return slot
        return None

    def __contains__(self, slot_id: object) -> bool:
        return any(slot.id == slot_id for slot in self.slots)


def _normalize_label_map(value: Any, what: str) -> dict[str, str]:
    if not isinstance(value, dict):
        raise CatalogError(f"{what} must be a map of language to text.")
    labels: dict[str, str] = {}
    for lang, text in value.items():
        if not isinstance(lang, str) or not isinstance(text, str):
            raise CatalogError(f"{what} must be a map of language to text.")
        labels[lang] = text
    return labels


def _normalize_unit(value: Any, slot_id: str) -> frozenset[str | None]:
    if value is None:
        return frozenset({None})
    if isinstance(value, str):
        return frozenset({value})
    if isinstance(value, list):
        if not value:
            raise CatalogError(f"Item {slot_id}: unit list must not be empty.")
        if not all(isinstance(entry, str) for entry in value):
            raise CatalogError(f"Item {slot_id}: unit must be a string or a list of strings.")
        return frozenset(value)
    raise CatalogError(f"Item {slot_id}: unit must be a string or a list of strings.")


def _normalize_slot(raw: Any) -> SlotDefinition:
    if not isinstance(raw, dict):
        raise CatalogError("Catalog items must be maps.")
    slot_id = raw.get("id")
    if not isinstance(slot_id, str) or not slot_id:
        raise CatalogError("Catalog item is missing an id.")
    if not SLOT_ID_PATTERN.match(slot_id):
        raise CatalogError(f"Invalid catalog item id: {slot_id!r}")
    device_raw = raw.get("device") or Device.NONE.value
    try:
        device = Device(str(device_raw).upper())
    except ValueError as exc:
        raise CatalogError(f"Item {slot_id}: unknown device {device_raw!r}.") from exc
    domain = raw.get("domain")
    if domain is not None and not isinstance(domain, str):
        raise CatalogError(f"Item {slot_id}: domain must be a string.")
    category = raw.get("category")
    if category is not None:
        category = _normalize_label_map(category, f"Item {slot_id}: category")
    return SlotDefinition(
        id=slot_id,
        device=device,
        domain=domain,
        unit=_normalize_unit(raw.get("unit"), slot_id),
        category=category,
        texts=_normalize_label_map(raw.get("texts") or {}, f"Item {slot_id}: texts"),
    )


def build_catalog(data: Any) -> Catalog:
    if not isinstance(data, dict):
        raise CatalogError("Catalog must be a map.")
    if data.get("schema_version", 1) != 1:
        raise CatalogError("Unsupported catalog schema_version.")
    languages = data.get("languages") or [settings.DEFAULT_LANGUAGE]
    if not isinstance(languages, list) or not all(isinstance(lang, str) for lang in languages):
        raise CatalogError("languages must be a list of strings.")
    items = data.get("items")
    if not isinstance(items, list):
        raise CatalogError("Catalog items must be a list.")
    slots: list[SlotDefinition] = []
    seen: set[str] = set()
    for raw in items:
        slot = _normalize_slot(raw)
        if slot.id in seen:
            raise CatalogError(f"Duplicate catalog item id: {slot.id}")
        seen.add(slot.id)
        slots.append(slot)
    ui_raw = data.get("ui") or {}
    if not isinstance(ui_raw, dict):
        raise CatalogError("ui texts must be a map.")
    ui_texts = {key: _normalize_label_map(ui_raw.get(key) or {}, f"ui.{key}") for key in UI_TEXT_KEYS}
    if slots and slots[0].category is None:
        _LOGGER.warning("First catalog item %s has no category; leading items use the default group", slots[0].id)
    return Catalog(slots=tuple(slots), languages=tuple(languages), ui_texts=ui_texts)


def missing_labels(catalog: Catalog) -> list[str]:
    problems: list[str] = []
    if catalog.slots and catalog.slots[0].category is None:
        for lang in catalog.languages:
            if lang not in DEFAULT_CATEGORY:
                problems.append(f"default category has no '{lang}' label")
    for slot in catalog.slots:
        for lang in catalog.languages:
            if slot.category is not None and lang not in slot.category:
                problems.append(f"{slot.id}: category has no '{lang}' label")
            if lang not in slot.texts:
                problems.append(f"{slot.id}: texts have no '{lang}' label")
    return problems


def load_catalog(path: Path | None = None, strict: bool | None = None) -> Catalog:
    path = path or settings.CATALOG_PATH
    strict = settings.STRICT_LABELS if strict is None else strict
    if not path.exists():
        raise CatalogError(f"Catalog not found: {path}")
    try:
        data = yaml.safe_load(read_text(path))
    except yaml.YAMLError as exc:
        raise CatalogError(f"Invalid catalog {path.name}: {exc}") from exc
    catalog = build_catalog(data)
    if strict:
        problems = missing_labels(catalog)
        if problems:
            raise CatalogError("Catalog labels incomplete: " + "; ".join(problems))
    _LOGGER.info("Loaded %d SVG items from %s", len(catalog.slots), path)
    return catalog
