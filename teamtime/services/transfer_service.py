"""
Transfer client: moves an existing project from one area to another.

Every move is checked against the configured area flows first
(area_flow_service.validate_transfer). An edge the flow graph does not
allow is refused with the server's reason unless the caller explicitly
asks for an exception, which is then flagged on the request.

A transfer that has left PENDING is final; approve/reject/cancel are
refused locally for it.
"""

from __future__ import annotations

import logging

from teamtime.core.exceptions import ConflictError, ValidationError
from teamtime.integrations.api_gateway import api_gateway
from teamtime.models.area import AreaFlow
from teamtime.models.base import Id, pick
from teamtime.models.transfer import TRANSFER_DIRECTIONS, Transfer
from teamtime.services import area_flow_service
from teamtime.utils.helpers import date_param, read_or_default, require_confirmation

logger = logging.getLogger(__name__)

TRANSFER_PRIORITIES = ("LOW", "NORMAL", "HIGH", "URGENT")


def _page(payload, page: int, limit: int) -> dict:
    rows = payload if isinstance(payload, list) else pick(payload, "transfers", "items", default=[])
    pagination = payload.get("pagination") if isinstance(payload, dict) else None
    return {
        "transfers": [Transfer.from_dict(row) for row in rows],
        "pagination": pagination or {"page": page, "limit": limit, "total": len(rows)},
    }


def _ensure_open(transfer: Transfer, action: str) -> None:
    if transfer.is_final:
        raise ConflictError(
            f"Cannot {action} transfer {transfer.id}: already {transfer.status}",
            resource="Transfer",
            resource_id=transfer.id,
        )


def transfer_project(
    project_id: Id,
    from_area_id: Id,
    to_area_id: Id,
    notes: str | None = None,
    *,
    priority: str = "NORMAL",
    allow_exception: bool = False,
) -> Transfer:
    """Request the move of a project along one edge.

    Raises:
        ValidationError: The flow graph does not allow the edge and
            allow_exception is False.
    """
    if str(from_area_id) == str(to_area_id):
        raise ValidationError(
            "A project cannot be transferred to its current area",
            details={"toAreaId": "must differ from fromAreaId"},
        )
    priority = str(priority).upper()
    if priority not in TRANSFER_PRIORITIES:
        raise ValidationError(f"Unknown priority '{priority}'", details={"priority": TRANSFER_PRIORITIES})

    check = area_flow_service.validate_transfer(project_id, from_area_id, to_area_id)
    if not check["is_valid"] and not allow_exception:
        raise ValidationError(
            check["reason"] or f"No flow allows area {from_area_id} -> {to_area_id}",
            details={"fromAreaId": from_area_id, "toAreaId": to_area_id},
        )

    body = {
        "projectId": project_id,
        "fromAreaId": from_area_id,
        "toAreaId": to_area_id,
        "notes": notes,
        "priority": priority,
    }
    if not check["is_valid"]:
        body["isException"] = True
        logger.warning(
            "Transfer of project %s outside configured flows %s -> %s",
            project_id, from_area_id, to_area_id,
            extra={"area_id": from_area_id},
        )

    result = api_gateway.post("/transfers", body)
    transfer = Transfer.from_dict(
        result.raise_for_error(resource="Project", resource_id=project_id).payload({})
    )
    logger.info(
        "Transfer requested id=%s project=%s %s -> %s",
        transfer.id, project_id, from_area_id, to_area_id,
        extra={"transfer_id": transfer.id},
    )
    return transfer


# ── Reads ─────────────────────────────────────────────────────────────────────


def get_project_transfers(project_id: Id, page: int = 1, limit: int = 20) -> dict:
    result = api_gateway.get(
        f"/transfers/project/{project_id}", params={"page": page, "limit": limit}
    )
    return _page(read_or_default(result, [], f"transfers of project {project_id}"), page, limit)


def get_transfers_by_area(
    area_id: Id,
    direction: str = "outgoing",
    page: int = 1,
    limit: int = 20,
) -> dict:
    if direction not in TRANSFER_DIRECTIONS:
        raise ValueError(f"direction must be one of {sorted(TRANSFER_DIRECTIONS)}")
    result = api_gateway.get(
        f"/transfers/area/{area_id}",
        params={"type": direction, "page": page, "limit": limit},
    )
    return _page(read_or_default(result, [], f"{direction} transfers of area {area_id}"), page, limit)


def get_pending_approvals(page: int = 1, limit: int = 20) -> dict:
    result = api_gateway.get("/transfers/pending", params={"page": page, "limit": limit})
    return _page(read_or_default(result, [], "pending transfer approvals"), page, limit)


def get_transfer_history(project_id: Id) -> list[Transfer]:
    """Every transfer of a project, oldest first."""
    result = api_gateway.get(f"/transfers/history/{project_id}")
    payload = read_or_default(result, [], f"transfer history of project {project_id}")
    rows = payload if isinstance(payload, list) else pick(payload, "history", "transfers", default=[])
    history = [Transfer.from_dict(row) for row in rows]
    return sorted(history, key=lambda t: t.created_at or "")


def get_available_next_steps(from_area_id: Id) -> list[AreaFlow]:
    result = api_gateway.get(f"/transfers/next-steps/{from_area_id}")
    rows = read_or_default(result, [], f"next steps from area {from_area_id}")
    flows = [AreaFlow.from_dict(row) for row in rows]
    return [f for f in flows if f.is_active and not f.is_self_loop]


def get_transfer_statistics(area_id: Id | None = None, date_from=None, date_to=None) -> dict:
    result = api_gateway.get(
        "/transfers/statistics",
        params={
            "areaId": area_id,
            "dateFrom": date_param(date_from),
            "dateTo": date_param(date_to),
        },
    )
    return read_or_default(result, {}, "transfer statistics")


# ── Writes ────────────────────────────────────────────────────────────────────


def process_transfer_approval(
    transfer: Transfer,
    approved: bool,
    notes: str | None = None,
) -> Transfer:
    """Approve or reject a PENDING transfer."""
    _ensure_open(transfer, "approve" if approved else "reject")
    result = api_gateway.post(
        f"/transfers/{transfer.id}/approve", {"approved": bool(approved), "notes": notes}
    )
    updated = Transfer.from_dict(
        result.raise_for_error(resource="Transfer", resource_id=transfer.id).payload({})
    )
    logger.info(
        "Transfer %s %s", transfer.id, "approved" if approved else "rejected",
        extra={"transfer_id": transfer.id},
    )
    return updated


def cancel_transfer(transfer: Transfer, reason: str, *, confirm: bool = False) -> dict:
    """Cancel a PENDING transfer. Returns the response envelope."""
    require_confirmation(confirm, "cancel transfer")
    if not (reason or "").strip():
        raise ValidationError("A reason is required to cancel a transfer", details={"reason": "required"})
    _ensure_open(transfer, "cancel")
    result = api_gateway.post(f"/transfers/{transfer.id}/cancel", {"reason": reason.strip()})
    result.raise_for_error(resource="Transfer", resource_id=transfer.id)
    logger.info("Transfer %s cancelled", transfer.id, extra={"transfer_id": transfer.id})
    return result.data or {}


def batch_transfer(data: dict) -> dict:
    """Several projects along the same edge: {"projectIds", "toAreaId", ...}."""
    if not data.get("projectIds"):
        raise ValidationError("No projects selected", details={"projectIds": "required"})
    result = api_gateway.post("/transfers/batch", data)
    return result.raise_for_error(resource="Transfer").payload({})
