"""
Staging review & transfer client.

Lists provisionally imported projects, lets a reviewer correct and
re-validate them, and promotes VALIDATED records to live projects.

Promotion is at-most-once per staging id within this process: while a
transfer of an id is in flight, or after it succeeded, a second attempt is
refused locally with ConflictError and never reaches the server. A failed
transfer releases the id so the reviewer can retry by hand. There is no
automatic retry.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from teamtime.core.exceptions import ConflictError, ValidationError
from teamtime.integrations.api_gateway import api_gateway
from teamtime.models.base import Id, as_int, pick
from teamtime.models.staging import (
    STAGING_STATUSES,
    StagingProject,
    normalize_validation_errors,
)
from teamtime.utils.helpers import read_or_default, require_confirmation

logger = logging.getLogger(__name__)

ALL_STATUSES = "ALL"


class TransferGuard:
    """Tracks staging ids whose promotion is in flight or already done."""

    def __init__(self) -> None:
        self.in_flight: set[str] = set()
        self.transferred: set[str] = set()

    def blocked(self, staging_ids: Iterable[Id]) -> list[Id]:
        return [
            sid for sid in staging_ids
            if str(sid) in self.in_flight or str(sid) in self.transferred
        ]

    def acquire(self, staging_ids: Iterable[Id]) -> None:
        ids = list(staging_ids)
        blocked = self.blocked(ids)
        if blocked:
            raise ConflictError(
                f"Transfer already in progress or completed for staging id(s): "
                f"{', '.join(str(b) for b in blocked)}",
                resource="StagingProject",
                resource_id=blocked[0] if len(blocked) == 1 else None,
            )
        self.in_flight.update(str(sid) for sid in ids)

    def complete(self, staging_id: Id) -> None:
        self.in_flight.discard(str(staging_id))
        self.transferred.add(str(staging_id))

    def release(self, staging_id: Id) -> None:
        self.in_flight.discard(str(staging_id))

    def clear(self) -> None:
        self.in_flight.clear()
        self.transferred.clear()


transfer_guard = TransferGuard()


def _check_status(status: str) -> str:
    status = str(status).upper()
    if status not in STAGING_STATUSES:
        raise ValidationError(
            f"Unknown staging status '{status}'",
            details={"status": sorted(STAGING_STATUSES)},
        )
    return status


# ── Reads ─────────────────────────────────────────────────────────────────────


def get_staging_projects_by_area(
    area_id: Id,
    status: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict:
    """Return {"projects": [StagingProject], "pagination": {...}}.

    `status` None or "ALL" lists every status.
    """
    if status and str(status).upper() != ALL_STATUSES:
        status = _check_status(status)
    else:
        status = None
    result = api_gateway.get(
        "/staging",
        params={"sourceAreaId": area_id, "page": page, "limit": limit, "status": status},
    )
    payload = read_or_default(result, {}, f"staging projects of area {area_id}")
    rows = payload if isinstance(payload, list) else payload.get("projects") or []
    pagination = dict(payload.get("pagination") or {}) if isinstance(payload, dict) else {}
    pagination.setdefault("page", page)
    pagination.setdefault("limit", limit)
    pagination.setdefault("total", len(rows))
    pagination.setdefault("pages", 1 if rows else 0)
    return {
        "projects": [StagingProject.from_dict(row) for row in rows],
        "pagination": pagination,
    }


def get_staging_project(staging_id: Id) -> StagingProject:
    result = api_gateway.get(f"/staging/{staging_id}")
    return StagingProject.from_dict(
        result.raise_for_error(resource="StagingProject", resource_id=staging_id).payload({})
    )


def get_validation_errors(staging_id: Id) -> list[dict]:
    """Always a list of {"field", "message"} dicts, possibly empty."""
    result = api_gateway.get(f"/staging/{staging_id}/validation-errors")
    payload = result.raise_for_error(resource="StagingProject", resource_id=staging_id).payload()
    if isinstance(payload, dict) and "validationErrors" in payload:
        payload = payload["validationErrors"]
    return normalize_validation_errors(payload)


def get_staging_statistics(area_id: Id | None = None) -> dict:
    result = api_gateway.get("/staging/statistics", params={"sourceAreaId": area_id})
    return read_or_default(result, {}, "staging statistics")


def transferable_ids(projects: Iterable[StagingProject]) -> list[Id]:
    """Ids of the records a batch transfer may include (status VALIDATED)."""
    return [p.id for p in projects if p.is_transferable]


# ── Review ────────────────────────────────────────────────────────────────────


def update_staging_project(staging_id: Id, changes: dict) -> StagingProject:
    result = api_gateway.put(f"/staging/{staging_id}", changes)
    return StagingProject.from_dict(
        result.raise_for_error(resource="StagingProject", resource_id=staging_id).payload({})
    )


def update_staging_project_status(
    staging_id: Id,
    status: str,
    notes: str | None = None,
) -> StagingProject:
    status = _check_status(status)
    result = api_gateway.patch(
        f"/staging/{staging_id}/status", {"status": status, "notes": notes}
    )
    return StagingProject.from_dict(
        result.raise_for_error(resource="StagingProject", resource_id=staging_id).payload({})
    )


def validate_staging_project(staging_id: Id) -> dict:
    """Re-run server validation; returns {"is_valid", "errors", "project"}."""
    result = api_gateway.post(f"/staging/{staging_id}/validate")
    payload = result.raise_for_error(resource="StagingProject", resource_id=staging_id).payload({})
    project = payload.get("project") if isinstance(payload.get("project"), dict) else None
    errors = normalize_validation_errors(
        pick(payload, "errors", "validationErrors", default=(project or {}).get("validationErrors"))
    )
    is_valid = pick(payload, "isValid", "valid")
    if is_valid is None:
        is_valid = not errors
    return {
        "is_valid": bool(is_valid),
        "errors": errors,
        "project": StagingProject.from_dict(project) if project else None,
    }


def delete_staging_project(staging_id: Id, *, confirm: bool = False) -> dict:
    """Hard delete. Returns the response envelope."""
    require_confirmation(confirm, "delete staging project")
    result = api_gateway.delete(f"/staging/{staging_id}")
    result.raise_for_error(resource="StagingProject", resource_id=staging_id)
    logger.info("Staging project deleted id=%s", staging_id, extra={"staging_id": staging_id})
    return result.data or {}


# ── Promotion to live ─────────────────────────────────────────────────────────


def transfer_to_active(staging_id: Id) -> dict:
    """Promote one staging record to a live project.

    Raises:
        ConflictError: The id is already being transferred, or already was.
    """
    transfer_guard.acquire([staging_id])
    try:
        result = api_gateway.post(f"/staging/{staging_id}/transfer")
        payload = result.raise_for_error(
            resource="StagingProject", resource_id=staging_id
        ).payload({})
    except Exception:
        transfer_guard.release(staging_id)
        raise
    transfer_guard.complete(staging_id)
    logger.info(
        "Staging project transferred id=%s", staging_id, extra={"staging_id": staging_id}
    )
    return payload


def _ids_from(items) -> list[str]:
    ids = []
    for item in items or []:
        if isinstance(item, dict):
            item = pick(item, "stagingId", "stagingProjectId", "id")
        if item is not None:
            ids.append(str(item))
    return ids


def batch_transfer_to_active(staging_ids: list[Id]) -> dict:
    """Promote several records in one request.

    The whole batch is refused if any id is in flight or already
    transferred. Returns the server's {"successful", "failed", ...} summary.
    """
    ids = list(dict.fromkeys(staging_ids))
    if not ids:
        raise ValidationError("No staging projects selected", details={"projectIds": "required"})
    transfer_guard.acquire(ids)
    try:
        result = api_gateway.post("/staging/batch/transfer", {"projectIds": ids})
        payload = result.raise_for_error(resource="StagingProject").payload({})
    except Exception:
        for sid in ids:
            transfer_guard.release(sid)
        raise

    successful = payload.get("successful")
    failed = _ids_from(payload.get("failed")) if isinstance(payload.get("failed"), list) else []
    if isinstance(successful, list):
        done = set(_ids_from(successful))
    elif isinstance(payload.get("failed"), list):
        done = {str(sid) for sid in ids} - set(failed)
    elif as_int(payload.get("failed"), default=0) > 0:
        # Counts only: the failed ids are unknown, so none are marked done.
        done = set()
    else:
        done = {str(sid) for sid in ids}
    for sid in ids:
        if str(sid) in done:
            transfer_guard.complete(sid)
        else:
            transfer_guard.release(sid)

    logger.info(
        "Batch transfer finished requested=%d successful=%s failed=%s",
        len(ids),
        as_int(successful) if not isinstance(successful, list) else len(successful),
        len(failed) if failed else payload.get("failed"),
    )
    return payload
