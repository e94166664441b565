from __future__ import annotations

import json
import logging
import os
from typing import Any

import httpx

from . import settings
from .entity_filter import EntityState, build_snapshot

_LOGGER = logging.getLogger(__name__)

DEVICE_MAP_TEMPLATE = (
    "{% set ns = namespace(devices={}) %}"
    "{% for state in states %}"
    "{% set ns.devices = dict(ns.devices, **{state.entity_id: device_id(state.entity_id)}) %}"
    "{% endfor %}"
    "{{ ns.devices | tojson }}"
)


class HostUnavailableError(Exception):
    def __init__(self, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        return self.message


def _headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def fetch_states(client: httpx.AsyncClient, token: str) -> list[dict[str, Any]]:
    response = await client.get(f"{settings.SUPERVISOR_URL}/api/states", headers=_headers(token))
    response.raise_for_status()
    return response.json()


async def fetch_device_map(client: httpx.AsyncClient, token: str) -> dict[str, str | None]:
    response = await client.post(
        f"{settings.SUPERVISOR_URL}/api/template",
        headers=_headers(token),
        json={"template": DEVICE_MAP_TEMPLATE},
    )
    response.raise_for_status()
    try:
        data = json.loads(response.text)
    except json.JSONDecodeError as exc:
        raise HostUnavailableError(f"Unexpected device map response: {exc}") from exc
    if not isinstance(data, dict):
        raise HostUnavailableError("Unexpected device map response.")
    return data


async def fetch_snapshot() -> dict[str, EntityState] | None:
    token = os.environ.get("SUPERVISOR_TOKEN")
    if not token:
        return None
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            states = await fetch_states(client, token)
            device_map = await fetch_device_map(client, token)
    except httpx.HTTPError as exc:
        raise HostUnavailableError(f"Home Assistant is not reachable: {exc}") from exc
    snapshot = build_snapshot(states, device_map)
    _LOGGER.debug("Fetched %d entity states from Home Assistant", len(snapshot))
    return snapshot
