from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping

from . import settings
from .catalog import Catalog
from .config_sync import (
    CAN_SELECTOR_ID,
    UART_SELECTOR_ID,
    CardConfig,
    EditTarget,
    apply_edit,
    binding_value,
    canonicalize,
    parse_edit_target,
    validate_config,
)
from .entity_filter import EntitySnapshot, eligible_entities
from .grouping import group_by_category
from .language import normalize_language

_LOGGER = logging.getLogger(__name__)

ConfigListener = Callable[[CardConfig], None]


class EditorStateError(Exception):
    def __init__(self, message: str, status_code: int = 409) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


class EditorState(str, Enum):
    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"


@dataclass(frozen=True)
class HostContext:
    """Resolved host capabilities handed to the editor on load."""

    snapshot_provider: Callable[[], EntitySnapshot]

    def snapshot(self) -> EntitySnapshot:
        return self.snapshot_provider()


@dataclass(frozen=True)
class Picker:
    slot_id: str
    placeholder: str
    candidates: tuple[str, ...]
    value: str | None


@dataclass(frozen=True)
class DevicePanel:
    header: str
    can_placeholder: str
    can_device: str | None
    uart_placeholder: str
    uart_device: str | None


@dataclass(frozen=True)
class EditorView:
    language: str
    devices: DevicePanel
    groups: tuple[tuple[str, tuple[Picker, ...]], ...] = field(default_factory=tuple)

    def as_dict(self) -> dict[str, Any]:
        return {
            "language": self.language,
            "devices": {
                "header": self.devices.header,
                "pickers": [
                    {
                        "id": CAN_SELECTOR_ID,
                        "placeholder": self.devices.can_placeholder,
                        "value": self.devices.can_device,
                    },
                    {
                        "id": UART_SELECTOR_ID,
                        "placeholder": self.devices.uart_placeholder,
                        "value": self.devices.uart_device,
                    },
                ],
            },
            "groups": [
                {
                    "label": label,
                    "pickers": [
                        {
                            "slot_id": picker.slot_id,
                            "placeholder": picker.placeholder,
                            "candidates": list(picker.candidates),
                            "value": picker.value,
                        }
                        for picker in pickers
                    ],
                }
                for label, pickers in self.groups
            ],
        }


class EditorController:
    def __init__(
        self,
        catalog: Catalog,
        *,
        default_language: str | None = None,
        fallback_language: str | None = None,
        strict_labels: bool | None = None,
    ) -> None:
        self.catalog = catalog
        self.default_language = default_language or settings.DEFAULT_LANGUAGE
        self.fallback_language = fallback_language if fallback_language is not None else settings.LABEL_FALLBACK_LANGUAGE
        self.strict_labels = settings.STRICT_LABELS if strict_labels is None else strict_labels
        self.language = self.default_language
        self._config: CardConfig | None = None
        self._context: HostContext | None = None
        self._listeners: list[ConfigListener] = []

    @property
    def state(self) -> EditorState:
        return EditorState.CONFIGURED if self._config is not None else EditorState.UNCONFIGURED

    @property
    def config(self) -> CardConfig | None:
        return self._config

    def add_listener(self, listener: ConfigListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def load_configuration(self, raw: Any, context: HostContext) -> CardConfig:
        config = canonicalize(validate_config(raw), self.catalog)
        self._context = context
        self._config = config
        _LOGGER.info("Loaded card configuration with %d bindings", len(config.entities))
        return config

    def set_language(self, code: str | None) -> str:
        self.language = normalize_language(code, self.catalog.languages, self.default_language)
        return self.language

    def _require_config(self) -> CardConfig:
        if self._config is None:
            raise EditorStateError("Editor has no configuration loaded.")
        return self._config

    def apply_edit(self, target: EditTarget, value: str | None) -> CardConfig:
        previous = self._require_config()
        config = apply_edit(previous, target, value, self.catalog)
        self._config = config
        try:
            for listener in list(self._listeners):
                listener(config)
        except Exception:
            self._config = previous
            _LOGGER.error("Edit of %s rolled back, a change listener failed", target)
            raise
        return config

    def handle_value_changed(self, selector_id: str, value: str | None) -> CardConfig:
        return self.apply_edit(parse_edit_target(selector_id), value)

    def binding_for(self, slot_id: str) -> str | None:
        config = self._require_config()
        return binding_value(config.binding(slot_id))

    def _ui_text(self, key: str) -> str:
        labels: Mapping[str, str] = self.catalog.ui_texts.get(key, {})
        return labels.get(self.language) or labels.get(self.default_language) or settings.MISSING_LABEL

    def render(self, snapshot: EntitySnapshot | None = None) -> EditorView | None:
        if self._config is None:
            return None
        config = self._config
        if snapshot is None:
            snapshot = self._context.snapshot() if self._context is not None else {}
        groups = group_by_category(
            self.catalog.slots,
            self.language,
            fallback_language=self.fallback_language,
            strict=self.strict_labels,
        )
        devices = config.devices
        rendered_groups = []
        for label, slots in groups.items():
            pickers = tuple(
                Picker(
                    slot_id=slot.id,
                    placeholder=slot.texts.get(self.language) or settings.MISSING_LABEL,
                    candidates=tuple(eligible_entities(slot, devices, snapshot)),
                    value=binding_value(config.binding(slot.id)),
                )
                for slot in slots
            )
            rendered_groups.append((label, pickers))
        return EditorView(
            language=self.language,
            devices=DevicePanel(
                header=self._ui_text("devices_header"),
                can_placeholder=self._ui_text("can_device_placeholder"),
                can_device=config.can_device,
                uart_placeholder=self._ui_text("uart_device_placeholder"),
                uart_device=config.uart_device,
            ),
            groups=tuple(rendered_groups),
        )

    def resolved_category(self, slot_id: str) -> str | None:
        groups = group_by_category(
            self.catalog.slots,
            self.language,
            fallback_language=self.fallback_language,
            strict=self.strict_labels,
        )
        for label, slots in groups.items():
            if any(slot.id == slot_id for slot in slots):
                return label
        return None
