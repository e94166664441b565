from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from .catalog import Device, SlotDefinition

SELECT_DOMAIN = "select"


@dataclass(frozen=True)
class EntityState:
    entity_id: str
    unit: str | None = None
    device_id: str | None = None

    @property
    def domain(self) -> str:
        return entity_domain(self.entity_id)


@dataclass(frozen=True)
class DeviceBindings:
    can: str | None = None
    uart: str | None = None

    def for_device(self, device: Device) -> str | None:
        if device is Device.CAN:
            return self.can
        if device is Device.UART:
            return self.uart
        return None


EntitySnapshot = Mapping[str, EntityState]


def entity_domain(entity_id: str) -> str:
    return entity_id.split(".", 1)[0] if "." in entity_id else ""


def build_snapshot(
    states: Iterable[Mapping[str, Any]],
    device_map: Mapping[str, str | None] | None = None,
) -> dict[str, EntityState]:
    """Build a snapshot from a Home Assistant ``/api/states`` payload.

    ``device_map`` maps entity ids to the device they are registered under.
    Entities missing from it are treated as unregistered.
    """
    device_map = device_map or {}
    snapshot: dict[str, EntityState] = {}
    for state in states:
        entity_id = state.get("entity_id")
        if not isinstance(entity_id, str) or not entity_id:
            continue
        attributes = state.get("attributes") or {}
        unit = attributes.get("unit_of_measurement") if isinstance(attributes, Mapping) else None
        snapshot[entity_id] = EntityState(
            entity_id=entity_id,
            unit=unit if isinstance(unit, str) else None,
            device_id=device_map.get(entity_id) or None,
        )
    return snapshot


def is_eligible(slot: SlotDefinition, devices: DeviceBindings, entity: EntityState) -> bool:
    if slot.device is not Device.NONE:
        target_device = devices.for_device(slot.device)
        if not target_device or entity.device_id != target_device:
            return False
    domain = entity.domain
    if slot.domain is not None and slot.domain != domain:
        return False
    if domain != SELECT_DOMAIN and entity.unit not in slot.unit:
        return False
    return True


def eligible_entities(slot: SlotDefinition, devices: DeviceBindings, snapshot: EntitySnapshot) -> list[str]:
    """Entity ids that may be bound to ``slot``, in snapshot order."""
    return [entity_id for entity_id, entity in snapshot.items() if is_eligible(slot, devices, entity)]
