"""
Areas: the organizational units projects belong to and move between.

The /areas endpoint is not consistent about its envelope: the list may come
back as data.areas, as data, or as the bare body. list_areas() accepts all
three and always returns a list.
"""

from __future__ import annotations

import logging

from teamtime.integrations.api_gateway import api_gateway
from teamtime.models.area import Area
from teamtime.models.base import Id
from teamtime.utils.helpers import read_or_default, require_confirmation

logger = logging.getLogger(__name__)


def _area_rows(body) -> list:
    if isinstance(body, dict):
        data = body.get("data", body)
        if isinstance(data, dict):
            data = data.get("areas")
        body = data
    return body if isinstance(body, list) else []


def list_areas() -> list[Area]:
    result = api_gateway.get("/areas")
    if not result.ok:
        return read_or_default(result, [], "areas")
    return [Area.from_dict(row) for row in _area_rows(result.data)]


def get_area(area_id: Id) -> Area:
    result = api_gateway.get(f"/areas/{area_id}")
    return Area.from_dict(result.raise_for_error(resource="Area", resource_id=area_id).payload({}))


def create_area(area: Area | dict) -> Area:
    if isinstance(area, dict):
        area = Area.from_dict(area)
    area.validate()
    result = api_gateway.post("/areas", area.to_dict())
    created = Area.from_dict(result.raise_for_error(resource="Area").payload({}))
    logger.info("Area created id=%s name=%s", created.id, created.name, extra={"area_id": created.id})
    return created


def update_area(area_id: Id, changes: dict) -> Area:
    result = api_gateway.put(f"/areas/{area_id}", changes)
    return Area.from_dict(result.raise_for_error(resource="Area", resource_id=area_id).payload({}))


def delete_area(area_id: Id, *, confirm: bool = False) -> dict:
    """Delete an area. Returns the response envelope."""
    require_confirmation(confirm, "delete area")
    result = api_gateway.delete(f"/areas/{area_id}")
    result.raise_for_error(resource="Area", resource_id=area_id)
    logger.info("Area deleted id=%s", area_id, extra={"area_id": area_id})
    return result.data or {}


def get_area_statistics(area_id: Id) -> dict:
    result = api_gateway.get(f"/areas/{area_id}/statistics")
    return read_or_default(result, {}, f"statistics of area {area_id}")
