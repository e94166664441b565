import importlib.machinery
import importlib.util
import os
import sys
import uuid
from pathlib import Path

import pytest

yaml = pytest.importorskip("yaml")

REPO_ROOT = Path(__file__).resolve().parents[2]
APP_PATH = REPO_ROOT / "hpsu_dashboard/rootfs/app/main.py"


def load_main(tmp_path: Path):
    config_dir = tmp_path / "config"
    config_dir.mkdir(parents=True, exist_ok=True)

    os.environ["HASS_CONFIG_DIR"] = str(config_dir)
    os.environ.pop("HPSU_STRICT_LABELS", None)
    os.environ.pop("SUPERVISOR_TOKEN", None)

    for module_name in list(sys.modules):
        if module_name.startswith("hpsu_editor"):
            sys.modules.pop(module_name, None)

    module_name = f"hpsu_main_{uuid.uuid4().hex}"
    loader = importlib.machinery.SourceFileLoader(module_name, str(APP_PATH))
    spec = importlib.util.spec_from_loader(loader.name, loader)
    module = importlib.util.module_from_spec(spec)
    loader.exec_module(module)
    return module, config_dir


def get_filter_module():
    return sys.modules["hpsu_editor.entity_filter"]


def get_catalog_module():
    return sys.modules["hpsu_editor.catalog"]


def make_snapshot(entity_filter):
    states = [
        {"entity_id": "sensor.hpsu_t_flow", "state": "35.2", "attributes": {"unit_of_measurement": "°C"}},
        {"entity_id": "sensor.hpsu_pump", "state": "60", "attributes": {"unit_of_measurement": "%"}},
        {"entity_id": "select.hpsu_mode", "state": "heating", "attributes": {}},
        {"entity_id": "sensor.uart_valve", "state": "100", "attributes": {"unit_of_measurement": "%"}},
        {"entity_id": "sensor.kitchen_temp", "state": "21.0", "attributes": {"unit_of_measurement": "°C"}},
        {"entity_id": "binary_sensor.hpsu_compressor", "state": "on", "attributes": {}},
    ]
    devices = {
        "sensor.hpsu_t_flow": "can_dev",
        "sensor.hpsu_pump": "can_dev",
        "select.hpsu_mode": "can_dev",
        "sensor.uart_valve": "uart_dev",
        "binary_sensor.hpsu_compressor": "uart_dev",
    }
    return entity_filter.build_snapshot(states, devices)


def test_device_slot_without_bound_device_has_no_candidates(tmp_path: Path) -> None:
    load_main(tmp_path)
    entity_filter = get_filter_module()
    catalog = get_catalog_module()
    snapshot = make_snapshot(entity_filter)

    can_slot = catalog.SlotDefinition(id="t_flow", device=catalog.Device.CAN, domain="sensor", unit=frozenset({"°C"}))
    uart_slot = catalog.SlotDefinition(id="valve", device=catalog.Device.UART, domain="sensor", unit=frozenset({"%"}))

    assert entity_filter.eligible_entities(can_slot, entity_filter.DeviceBindings(), snapshot) == []
    assert entity_filter.eligible_entities(can_slot, entity_filter.DeviceBindings(uart="uart_dev"), snapshot) == []
    assert entity_filter.eligible_entities(uart_slot, entity_filter.DeviceBindings(can="can_dev"), snapshot) == []

    bound = entity_filter.DeviceBindings(can="can_dev", uart="uart_dev")
    assert entity_filter.eligible_entities(can_slot, bound, snapshot) == ["sensor.hpsu_t_flow"]
    assert entity_filter.eligible_entities(uart_slot, bound, snapshot) == ["sensor.uart_valve"]


def test_slot_without_device_ignores_registry(tmp_path: Path) -> None:
    load_main(tmp_path)
    entity_filter = get_filter_module()
    catalog = get_catalog_module()
    snapshot = make_snapshot(entity_filter)

    slot = catalog.SlotDefinition(id="t_any", domain="sensor", unit=frozenset({"°C"}))
    result = entity_filter.eligible_entities(slot, entity_filter.DeviceBindings(), snapshot)
    assert result == ["sensor.hpsu_t_flow", "sensor.kitchen_temp"]


def test_select_domain_skips_unit_check(tmp_path: Path) -> None:
    load_main(tmp_path)
    entity_filter = get_filter_module()
    catalog = get_catalog_module()
    snapshot = make_snapshot(entity_filter)
    bound = entity_filter.DeviceBindings(can="can_dev")

    mode_slot = catalog.SlotDefinition(id="mode", device=catalog.Device.CAN, domain="select", unit=frozenset({"°C"}))
    assert entity_filter.eligible_entities(mode_slot, bound, snapshot) == ["select.hpsu_mode"]

    any_domain = catalog.SlotDefinition(id="percent", device=catalog.Device.CAN, unit=frozenset({"%"}))
    assert entity_filter.eligible_entities(any_domain, bound, snapshot) == ["sensor.hpsu_pump", "select.hpsu_mode"]


def test_unit_must_match_one_of_accepted_units(tmp_path: Path) -> None:
    load_main(tmp_path)
    entity_filter = get_filter_module()
    catalog = get_catalog_module()
    snapshot = make_snapshot(entity_filter)
    bound = entity_filter.DeviceBindings(can="can_dev", uart="uart_dev")

    multi = catalog.SlotDefinition(id="multi", device=catalog.Device.CAN, domain="sensor", unit=frozenset({"°C", "%"}))
    assert entity_filter.eligible_entities(multi, bound, snapshot) == ["sensor.hpsu_t_flow", "sensor.hpsu_pump"]

    unitless = catalog.SlotDefinition(id="compressor", device=catalog.Device.UART)
    assert entity_filter.eligible_entities(unitless, bound, snapshot) == ["binary_sensor.hpsu_compressor"]


def test_eligible_entities_is_deterministic(tmp_path: Path) -> None:
    load_main(tmp_path)
    entity_filter = get_filter_module()
    catalog = get_catalog_module()
    snapshot = make_snapshot(entity_filter)
    bound = entity_filter.DeviceBindings(can="can_dev")
    slot = catalog.SlotDefinition(id="t_flow", device=catalog.Device.CAN, domain="sensor", unit=frozenset({"°C", "%"}))

    first = entity_filter.eligible_entities(slot, bound, snapshot)
    assert first == entity_filter.eligible_entities(slot, bound, snapshot)
    assert entity_filter.eligible_entities(slot, bound, {}) == []


def test_build_snapshot_reads_units_and_devices(tmp_path: Path) -> None:
    load_main(tmp_path)
    entity_filter = get_filter_module()
    snapshot = make_snapshot(entity_filter)

    assert list(snapshot)[0] == "sensor.hpsu_t_flow"
    assert snapshot["sensor.hpsu_t_flow"].unit == "°C"
    assert snapshot["sensor.hpsu_t_flow"].domain == "sensor"
    assert snapshot["select.hpsu_mode"].unit is None
    assert snapshot["sensor.kitchen_temp"].device_id is None
