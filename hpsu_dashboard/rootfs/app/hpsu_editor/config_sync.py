from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Iterable, Mapping, Union

from .catalog import SLOT_ID_PATTERN, Catalog
from .entity_filter import DeviceBindings

_LOGGER = logging.getLogger(__name__)

CONFIG_KEYS = {"type", "canDevice", "uartDevice", "entities"}
ENTITY_ID_PATTERN = re.compile(r"^[a-z0-9_]+\.[a-z0-9_]+$")

CAN_SELECTOR_ID = "can-device-selector"
UART_SELECTOR_ID = "uart-device-selector"


class ConfigValidationError(Exception):
    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class EditError(Exception):
    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class Bound:
    entity_id: str


@dataclass(frozen=True)
class Unbound:
    pass


Binding = Union[Bound, Unbound]


class DeviceTarget(str, Enum):
    CAN_DEVICE = CAN_SELECTOR_ID
    UART_DEVICE = UART_SELECTOR_ID


@dataclass(frozen=True)
class SlotTarget:
    slot_id: str


EditTarget = Union[DeviceTarget, SlotTarget]


@dataclass(frozen=True)
class CardConfig:
    card_type: str | None = None
    can_device: str | None = None
    uart_device: str | None = None
    entities: tuple[tuple[str, Binding], ...] = field(default_factory=tuple)

    @property
    def devices(self) -> DeviceBindings:
        return DeviceBindings(can=self.can_device, uart=self.uart_device)

    def binding(self, slot_id: str) -> Binding | None:
        for key, binding in self.entities:
            if key == slot_id:
                return binding
        return None

    def entity_keys(self) -> list[str]:
        return [key for key, _ in self.entities]


def binding_from_value(value: str | None) -> Binding:
    return Bound(value) if value else Unbound()


def binding_value(binding: Binding | None) -> str | None:
    return binding.entity_id if isinstance(binding, Bound) else None


def parse_edit_target(selector_id: str) -> EditTarget:
    try:
        return DeviceTarget(selector_id)
    except ValueError:
        return SlotTarget(selector_id)


def _validate_optional_string(raw: Mapping[str, Any], key: str) -> str | None:
    value = raw.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigValidationError(f"{key} must be a string.")
    return value or None


def _validate_entities(raw: Any) -> tuple[tuple[str, Binding], ...]:
    if raw is None:
        return ()
    if not isinstance(raw, dict):
        raise ConfigValidationError("entities must be a map of SVG item id to entity id.")
    entries: list[tuple[str, Binding]] = []
    for slot_id, entity_id in raw.items():
        if not isinstance(slot_id, str) or not SLOT_ID_PATTERN.match(slot_id):
            raise ConfigValidationError(f"Invalid SVG item id: {slot_id!r}")
        if entity_id is None or entity_id == "":
            entries.append((slot_id, Unbound()))
            continue
        if not isinstance(entity_id, str) or not ENTITY_ID_PATTERN.match(entity_id):
            raise ConfigValidationError(f"Invalid entity id for {slot_id}: {entity_id!r}")
        entries.append((slot_id, Bound(entity_id)))
    return tuple(entries)


def validate_config(raw: Any) -> CardConfig:
    if raw is None:
        raise ConfigValidationError("Card configuration is missing.")
    if not isinstance(raw, dict):
        raise ConfigValidationError("Card configuration must be a map.")
    unknown = sorted(str(key) for key in raw if key not in CONFIG_KEYS)
    if unknown:
        raise ConfigValidationError(f"Unsupported config keys: {', '.join(unknown)}")
    return CardConfig(
        card_type=_validate_optional_string(raw, "type"),
        can_device=_validate_optional_string(raw, "canDevice"),
        uart_device=_validate_optional_string(raw, "uartDevice"),
        entities=_validate_entities(raw.get("entities")),
    )


def sort_by_catalog_order(
    entities: Iterable[tuple[str, Binding]],
    catalog: Catalog,
) -> tuple[tuple[str, Binding], ...]:
    """Rebuild the binding list in catalog order, dropping unknown ids."""
    data = dict(entities)
    ordered = tuple((slot_id, data[slot_id]) for slot_id in catalog.slot_ids() if slot_id in data)
    if len(ordered) != len(data):
        dropped = sorted(set(data) - {slot_id for slot_id, _ in ordered})
        _LOGGER.info("Dropping bindings for unknown SVG items: %s", ", ".join(dropped))
    return ordered


def canonicalize(config: CardConfig, catalog: Catalog) -> CardConfig:
    return replace(config, entities=sort_by_catalog_order(config.entities, catalog))


def apply_edit(config: CardConfig, target: EditTarget, value: str | None, catalog: Catalog) -> CardConfig:
    value = value or None
    if target is DeviceTarget.CAN_DEVICE:
        updated = replace(config, can_device=value)
    elif target is DeviceTarget.UART_DEVICE:
        updated = replace(config, uart_device=value)
    elif isinstance(target, SlotTarget):
        if target.slot_id not in catalog:
            raise EditError(f"Unknown SVG item: {target.slot_id}")
        if value is not None and not ENTITY_ID_PATTERN.match(value):
            raise EditError(f"Invalid entity id: {value!r}")
        entities = dict(config.entities)
        entities[target.slot_id] = binding_from_value(value)
        updated = replace(config, entities=tuple(entities.items()))
    else:
        raise EditError(f"Unsupported edit target: {target!r}")
    _LOGGER.debug("Applied edit %s=%r", target, value)
    return canonicalize(updated, catalog)


def config_to_dict(config: CardConfig) -> dict[str, Any]:
    data: dict[str, Any] = {}
    if config.card_type is not None:
        data["type"] = config.card_type
    data["canDevice"] = config.can_device
    data["uartDevice"] = config.uart_device
    data["entities"] = {slot_id: binding_value(binding) for slot_id, binding in config.entities}
    return data
