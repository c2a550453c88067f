"""
Area-Flow client.

Fetches and edits the graph of permitted transfers between areas and
answers "what are the valid next steps from area X". Precedence and cycle
rules live on the server; the client only filters and orders edges.

Functions:
    - get_flow_configuration:         Per-area outgoing edges (degrades to [])
    - get_available_flows_from_area:  Active outgoing edges of one area
    - select_next_step:               Lowest-order required edge (pure)
    - select_alternatives:            Non-required edges (pure)
    - get_next_flow_step:             select_next_step over the live edges
    - get_alternative_flows:          select_alternatives over the live edges
    - get_flow_between_areas:         Edge joining two areas, if any
    - validate_transfer:              Server legality check for one project
    - create_area_flow / update_area_flow / delete_area_flow (soft delete)
    - get_flow_statistics / get_flow_diagram
    - export_flow_configuration / import_flow_configuration

All outbound HTTP: delegated to `teamtime.integrations.api_gateway.api_gateway`.
"""

from __future__ import annotations

import logging

from teamtime.integrations.api_gateway import api_gateway
from teamtime.models.area import Area, AreaFlow
from teamtime.models.base import Id, as_bool, pick
from teamtime.utils.helpers import read_or_default, require_confirmation

logger = logging.getLogger(__name__)


def _flows_from(rows) -> list[AreaFlow]:
    """Parse edges, dropping self-loops and deactivated edges."""
    flows = []
    for row in rows or []:
        flow = AreaFlow.from_dict(row)
        if flow.is_self_loop:
            logger.warning(
                "Ignoring self-loop area flow id=%s area=%s", flow.id, flow.from_area_id,
                extra={"area_id": flow.from_area_id},
            )
            continue
        if not flow.is_active:
            continue
        flows.append(flow)
    return sorted(flows, key=lambda f: f.flow_order)


# ── Reads ─────────────────────────────────────────────────────────────────────


def get_flow_configuration() -> list[dict]:
    """Return every area with its outgoing edges.

    Returns:
        List of {"area": Area | None, "flows": [AreaFlow, ...]} entries.
        Empty list when the backend cannot be reached; the caller renders
        an empty state instead of failing.
    """
    result = api_gateway.get("/area-flows/configuration")
    rows = read_or_default(result, [], "flow configuration")
    if isinstance(rows, dict):
        rows = rows.get("areas") or rows.get("configuration") or []

    configuration = []
    for row in rows:
        area_payload = row.get("area") if isinstance(row.get("area"), dict) else row
        edges = pick(row, "flows", "outgoingFlows", "fromFlows", default=[])
        configuration.append({
            "area": Area.from_dict(area_payload) if area_payload.get("id") is not None else None,
            "flows": _flows_from(edges),
        })
    return configuration


def get_available_flows_from_area(from_area_id: Id) -> list[AreaFlow]:
    """Return the active outgoing edges of one area, ordered by flow_order."""
    result = api_gateway.get(f"/area-flows/from/{from_area_id}")
    return _flows_from(read_or_default(result, [], f"flows from area {from_area_id}"))


def select_next_step(flows: list[AreaFlow]) -> AreaFlow | None:
    """Return the required edge with the lowest flow_order, or None.

    Ties on flow_order keep server order.
    """
    required = [f for f in flows if f.is_required and f.is_active and not f.is_self_loop]
    if not required:
        return None
    return min(required, key=lambda f: f.flow_order)


def select_alternatives(flows: list[AreaFlow]) -> list[AreaFlow]:
    """Return every optional edge, ordered by flow_order."""
    optional = [f for f in flows if not f.is_required and f.is_active and not f.is_self_loop]
    return sorted(optional, key=lambda f: f.flow_order)


def get_next_flow_step(from_area_id: Id) -> AreaFlow | None:
    """Return the single next mandatory edge out of `from_area_id`, or None."""
    return select_next_step(get_available_flows_from_area(from_area_id))


def get_alternative_flows(from_area_id: Id) -> list[AreaFlow]:
    """Return the non-mandatory edges out of `from_area_id`."""
    return select_alternatives(get_available_flows_from_area(from_area_id))


def get_flow_between_areas(from_area_id: Id, to_area_id: Id) -> AreaFlow | None:
    """Return the edge joining two areas, or None if no such edge exists."""
    result = api_gateway.get(
        "/area-flows/between",
        params={"fromAreaId": from_area_id, "toAreaId": to_area_id},
    )
    if result.status_code == 404:
        return None
    payload = result.raise_for_error(resource="AreaFlow").payload()
    return AreaFlow.from_dict(payload) if payload else None


def validate_transfer(project_id: Id, from_area_id: Id, to_area_id: Id) -> dict:
    """Ask the server whether `project_id` may move along from → to.

    Returns:
        {"is_valid": bool, "reason": str | None, "flow": AreaFlow | None,
         "requires_approval": bool, "raw": dict}
    """
    result = api_gateway.post(
        "/area-flows/validate",
        {"projectId": project_id, "fromAreaId": from_area_id, "toAreaId": to_area_id},
    )
    payload = result.raise_for_error(resource="Project", resource_id=project_id).payload({})
    is_valid = as_bool(pick(payload, "isValid", "valid", "is_valid"))
    flow = payload.get("flow")
    return {
        "is_valid": is_valid,
        "reason": None if is_valid else pick(payload, "reason", "message", "error"),
        "flow": AreaFlow.from_dict(flow) if isinstance(flow, dict) else None,
        "requires_approval": as_bool(pick(payload, "requiresApproval", "requires_approval")),
        "raw": payload,
    }


def get_flow_statistics() -> dict:
    result = api_gateway.get("/area-flows/statistics")
    return read_or_default(result, {}, "flow statistics")


def get_flow_diagram() -> dict:
    """Nodes and edges for drawing the flow graph."""
    result = api_gateway.get("/area-flows/diagram")
    return read_or_default(result, {}, "flow diagram")


# ── Administrator writes ─────────────────────────────────────────────────────


def create_area_flow(flow: AreaFlow | dict) -> AreaFlow:
    """Create a new edge after a local sanity check (distinct areas, order ≥ 1).

    Raises:
        ValidationError: If the edge is a self-loop or the server rejects it.
    """
    if isinstance(flow, dict):
        flow = AreaFlow.from_dict(flow)
    flow.validate()
    body = flow.to_dict()
    body.pop("id", None)
    result = api_gateway.post("/area-flows", body)
    created = AreaFlow.from_dict(result.raise_for_error(resource="AreaFlow").payload({}))
    logger.info(
        "Area flow created id=%s %s -> %s", created.id, flow.from_area_id, flow.to_area_id,
        extra={"area_id": flow.from_area_id},
    )
    return created


def update_area_flow(flow_id: Id, changes: dict) -> AreaFlow:
    """Update an existing edge; `changes` uses the server's camelCase keys."""
    from_id = changes.get("fromAreaId")
    to_id = changes.get("toAreaId")
    if from_id is not None and to_id is not None and str(from_id) == str(to_id):
        AreaFlow(id=flow_id, from_area_id=from_id, to_area_id=to_id).validate()
    result = api_gateway.put(f"/area-flows/{flow_id}", changes)
    return AreaFlow.from_dict(
        result.raise_for_error(resource="AreaFlow", resource_id=flow_id).payload({})
    )


def delete_area_flow(flow_id: Id, *, confirm: bool = False) -> AreaFlow | None:
    """Deactivate an edge (soft delete).

    Returns the deactivated edge when the server echoes it, else None.
    """
    require_confirmation(confirm, "delete area flow")
    result = api_gateway.delete(f"/area-flows/{flow_id}")
    payload = result.raise_for_error(resource="AreaFlow", resource_id=flow_id).payload()
    logger.info("Area flow deactivated id=%s", flow_id)
    if isinstance(payload, dict) and pick(payload, "fromAreaId", "from_area_id", "fromArea"):
        return AreaFlow.from_dict(payload)
    return None


# ── Bulk configuration ───────────────────────────────────────────────────────


def export_flow_configuration() -> dict:
    result = api_gateway.get("/area-flows/export")
    return result.raise_for_error().payload({})


def import_flow_configuration(areas: list[dict]) -> dict:
    """Replay an exported configuration on this environment."""
    result = api_gateway.post("/area-flows/import", {"areas": areas})
    return result.raise_for_error().payload({})
