from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, FastAPI, HTTPException
from fastapi.responses import JSONResponse

from . import catalog, config_store, ha_services
from .config_store import ConfigStoreError
from .config_sync import CardConfig, ConfigValidationError, EditError, canonicalize, config_to_dict, validate_config
from .editor import EditorController, EditorStateError, HostContext
from .entity_filter import EntityState, build_snapshot
from .grouping import MissingCategoryLabel

_LOGGER = logging.getLogger(__name__)

CATALOG = catalog.load_catalog()
controller = EditorController(CATALOG)
snapshot_holder: dict[str, Any] = {"snapshot": {}}


def current_snapshot() -> dict[str, EntityState]:
    return snapshot_holder["snapshot"]


def persist_config(config: CardConfig) -> None:
    config_store.save_card_config(config)


controller.add_listener(persist_config)


async def resolve_context() -> HostContext:
    try:
        fetched = await ha_services.fetch_snapshot()
    except ha_services.HostUnavailableError as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    if fetched is not None:
        snapshot_holder["snapshot"] = fetched
    return HostContext(snapshot_provider=current_snapshot)


@asynccontextmanager
async def lifespan(_: FastAPI):
    try:
        raw = config_store.load_card_config()
        if raw is not None:
            context = await resolve_context()
            controller.load_configuration(raw, context)
    except (ConfigValidationError, ConfigStoreError, HTTPException) as exc:
        _LOGGER.error("Stored card configuration not loaded: %s", exc)
    yield


app = FastAPI(lifespan=lifespan)


def _status_payload() -> dict[str, Any]:
    config = controller.config
    return {
        "state": controller.state.value,
        "language": controller.language,
        "config": config_to_dict(config) if config is not None else None,
    }


@app.get("/api/catalog")
async def api_catalog() -> JSONResponse:
    items = [
        {
            "id": slot.id,
            "device": slot.device.value,
            "domain": slot.domain,
            "unit": sorted(unit for unit in slot.unit if unit is not None),
            "category": dict(slot.category) if slot.category is not None else None,
            "texts": dict(slot.texts),
        }
        for slot in CATALOG.slots
    ]
    return JSONResponse({"languages": list(CATALOG.languages), "items": items})


@app.get("/api/config")
async def api_config() -> JSONResponse:
    return JSONResponse(_status_payload())


@app.post("/api/config")
async def api_load_config(payload: Any = Body(...)) -> JSONResponse:
    context = await resolve_context()
    try:
        config_store.save_card_config(canonicalize(validate_config(payload), CATALOG))
        controller.load_configuration(payload, context)
    except (ConfigValidationError, ConfigStoreError) as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return JSONResponse({"status": "loaded", **_status_payload()})


@app.post("/api/snapshot")
async def api_snapshot(payload: dict[str, Any] = Body(...)) -> JSONResponse:
    states = payload.get("states")
    devices = payload.get("devices") or {}
    if not isinstance(states, list):
        raise HTTPException(status_code=400, detail="states must be a list")
    if not isinstance(devices, dict):
        raise HTTPException(status_code=400, detail="devices must be a map")
    snapshot_holder["snapshot"] = build_snapshot(states, devices)
    return JSONResponse({"status": "updated", "entities": len(snapshot_holder["snapshot"])})


@app.post("/api/language")
async def api_language(payload: dict[str, Any] = Body(...)) -> JSONResponse:
    language = payload.get("language")
    if language is not None and not isinstance(language, str):
        raise HTTPException(status_code=400, detail="language must be a string")
    return JSONResponse({"language": controller.set_language(language)})


@app.post("/api/edit")
async def api_edit(payload: dict[str, Any] = Body(...)) -> JSONResponse:
    target = payload.get("target")
    value = payload.get("value")
    if not isinstance(target, str) or not target:
        raise HTTPException(status_code=400, detail="target is required")
    if value is not None and not isinstance(value, str):
        raise HTTPException(status_code=400, detail="value must be a string or null")
    try:
        config = controller.handle_value_changed(target, value)
    except (EditError, EditorStateError, ConfigStoreError) as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return JSONResponse({"status": "updated", "config": config_to_dict(config)})


@app.get("/api/editor")
async def api_editor() -> JSONResponse:
    try:
        view = controller.render(current_snapshot())
    except MissingCategoryLabel as exc:
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc
    return JSONResponse(
        {
            "state": controller.state.value,
            "view": view.as_dict() if view is not None else None,
        }
    )
