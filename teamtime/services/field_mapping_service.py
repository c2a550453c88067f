"""
Field-Mapping client.

A mapping ties one spreadsheet column (sourceField) to one persisted field
(targetField) for a given source area. The server applies transformations
and validation rules during import; here they are opaque strings.

Functions:
    - get_field_mappings:               Mappings of an area, by order_index
    - get_available_transformations / get_available_validation_rules
    - create_field_mapping / update_field_mapping / delete_field_mapping
    - update_mapping_order:             One PUT with the re-sequenced order
    - clone_mappings:                   Server-side copy between two areas
    - test_mapping:                     Dry-run a sample record
    - export_mappings / import_mappings
    - build_mappings_document / write_mappings_document / read_mappings_document
    - export_mappings_xlsx:             Styled workbook for offline review
"""

from __future__ import annotations

import io
import json
import logging
from datetime import datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from teamtime.core.exceptions import ValidationError
from teamtime.integrations.api_gateway import api_gateway
from teamtime.models.base import Id
from teamtime.models.mapping import FieldMapping
from teamtime.utils.helpers import read_or_default, require_confirmation

logger = logging.getLogger(__name__)

MAPPINGS_FORMAT_VERSION = 1

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

XLSX_COLUMNS = [
    ("Order", "order_index", 8),
    ("Source column", "source_field", 28),
    ("Target field", "target_field", 28),
    ("Target table", "target_table", 20),
    ("Required", "is_required", 10),
    ("Transformation", "transformation", 20),
    ("Validation rule", "validation_rule", 24),
    ("Default", "default_value", 16),
]


def _as_mapping(mapping: FieldMapping | dict) -> FieldMapping:
    return FieldMapping.from_dict(mapping) if isinstance(mapping, dict) else mapping


# ── Reads ─────────────────────────────────────────────────────────────────────


def get_field_mappings(area_id: Id) -> list[FieldMapping]:
    """Return the mappings of one source area ordered by order_index."""
    result = api_gateway.get(f"/field-mappings/area/{area_id}")
    rows = read_or_default(result, [], f"field mappings of area {area_id}")
    mappings = [FieldMapping.from_dict(row) for row in rows]
    return sorted(mappings, key=lambda m: m.order_index)


def get_available_transformations() -> list:
    result = api_gateway.get("/field-mappings/transformations")
    return read_or_default(result, [], "mapping transformations")


def get_available_validation_rules() -> list:
    result = api_gateway.get("/field-mappings/validation-rules")
    return read_or_default(result, [], "mapping validation rules")


# ── Writes ────────────────────────────────────────────────────────────────────


def create_field_mapping(mapping: FieldMapping | dict) -> FieldMapping:
    mapping = _as_mapping(mapping)
    mapping.validate()
    body = mapping.to_dict()
    body.pop("id", None)
    result = api_gateway.post("/field-mappings", body)
    created = FieldMapping.from_dict(result.raise_for_error(resource="FieldMapping").payload({}))
    logger.info(
        "Field mapping created id=%s %s -> %s",
        created.id, mapping.source_field, mapping.target_field,
        extra={"area_id": mapping.source_area_id},
    )
    return created


def update_field_mapping(mapping_id: Id, changes: dict) -> FieldMapping:
    for key in ("sourceField", "targetField"):
        if key in changes and not str(changes[key] or "").strip():
            raise ValidationError("Invalid field mapping", details={key: "required"})
    result = api_gateway.put(f"/field-mappings/{mapping_id}", changes)
    return FieldMapping.from_dict(
        result.raise_for_error(resource="FieldMapping", resource_id=mapping_id).payload({})
    )


def delete_field_mapping(mapping_id: Id, *, confirm: bool = False) -> dict:
    """Delete one mapping. Returns the response envelope."""
    require_confirmation(confirm, "delete field mapping")
    result = api_gateway.delete(f"/field-mappings/{mapping_id}")
    result.raise_for_error(resource="FieldMapping", resource_id=mapping_id)
    logger.info("Field mapping deleted id=%s", mapping_id)
    return result.data or {}


def update_mapping_order(mappings: list[FieldMapping | dict]) -> dict:
    """Persist a new order in one call.

    The given order is authoritative: items are re-sequenced 1..n and sent
    as [{id, orderIndex}]. Returns the response envelope.
    """
    order = []
    for position, mapping in enumerate(mappings, start=1):
        mapping = _as_mapping(mapping)
        if mapping.id is None:
            raise ValidationError("Cannot reorder a mapping that has not been saved")
        order.append({"id": mapping.id, "orderIndex": position})
    result = api_gateway.put("/field-mappings/order", {"mappings": order})
    result.raise_for_error(resource="FieldMapping")
    return result.data or {}


def clone_mappings(source_area_id: Id, target_area_id: Id) -> list[FieldMapping]:
    """Ask the server to copy every mapping of one area onto another.

    Existing mappings of the target are left to the server; the client never
    deletes anything on the target area.

    Returns:
        The target area's mappings after the copy. When the server answers
        with a summary instead of the rows they are read back with one GET.
    """
    if str(source_area_id) == str(target_area_id):
        raise ValidationError(
            "Source and target area must differ",
            details={"targetAreaId": "must differ from sourceAreaId"},
        )
    result = api_gateway.post(
        "/field-mappings/clone",
        {"sourceAreaId": source_area_id, "targetAreaId": target_area_id},
    )
    payload = result.raise_for_error(resource="Area", resource_id=source_area_id).payload({})
    logger.info(
        "Field mappings cloned from area %s to area %s", source_area_id, target_area_id,
        extra={"area_id": target_area_id},
    )
    rows = payload if isinstance(payload, list) else payload.get("mappings")
    if not isinstance(rows, list):
        return get_field_mappings(target_area_id)
    return sorted((FieldMapping.from_dict(row) for row in rows), key=lambda m: m.order_index)


def test_mapping(area_id: Id, sample_record: dict) -> dict:
    """Run one sample record through the area's mappings on the server."""
    result = api_gateway.post(
        "/field-mappings/test", {"sourceAreaId": area_id, "testData": sample_record}
    )
    return result.raise_for_error(resource="Area", resource_id=area_id).payload({})


def export_mappings(area_id: Id) -> dict:
    result = api_gateway.get(f"/field-mappings/area/{area_id}/export")
    return result.raise_for_error(resource="Area", resource_id=area_id).payload({})


def import_mappings(area_id: Id, mappings: list[FieldMapping | dict]) -> dict:
    rows = []
    for mapping in mappings:
        mapping = _as_mapping(mapping)
        mapping.validate()
        body = mapping.to_dict()
        body.pop("id", None)
        body["sourceAreaId"] = area_id
        rows.append(body)
    result = api_gateway.post("/field-mappings/import", {"sourceAreaId": area_id, "mappings": rows})
    return result.raise_for_error(resource="Area", resource_id=area_id).payload({})


# ── Portable documents ───────────────────────────────────────────────────────


def build_mappings_document(area_id: Id, mappings: list[FieldMapping]) -> dict:
    """Serialisable snapshot of an area's mappings, without server ids."""
    rows = []
    for mapping in sorted(mappings, key=lambda m: m.order_index):
        body = mapping.to_dict()
        body.pop("id", None)
        body.pop("sourceAreaId", None)
        rows.append(body)
    return {
        "format_version": MAPPINGS_FORMAT_VERSION,
        "area_id": area_id,
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "mappings": rows,
    }


def write_mappings_document(document: dict, path: str) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(document, fh, indent=2, ensure_ascii=False)


def read_mappings_document(path: str) -> list[FieldMapping]:
    """Load a document written by write_mappings_document().

    Raises:
        ValidationError: Unknown format_version or an invalid row.
    """
    with open(path, encoding="utf-8") as fh:
        document = json.load(fh)
    version = document.get("format_version")
    if version != MAPPINGS_FORMAT_VERSION:
        raise ValidationError(
            f"Unsupported mappings document version: {version!r}",
            details={"format_version": version},
        )
    mappings = [FieldMapping.from_dict(row) for row in document.get("mappings") or []]
    for mapping in mappings:
        mapping.validate()
    return mappings


def export_mappings_xlsx(mappings: list[FieldMapping], title: str = "Field mappings") -> io.BytesIO:
    """
    Render mappings as a styled workbook.
    Returns a BytesIO buffer positioned at 0.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Mappings"

    ws["A1"] = title
    ws["A1"].font = Font(size=14, bold=True)
    ws["A2"] = f"Generated: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M UTC')}"
    ws["A2"].font = Font(size=10, italic=True, color="666666")

    header_row = 4
    for col, (header, _, width) in enumerate(XLSX_COLUMNS, 1):
        cell = ws.cell(row=header_row, column=col, value=header)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        ws.column_dimensions[get_column_letter(col)].width = width

    for offset, mapping in enumerate(sorted(mappings, key=lambda m: m.order_index), 1):
        for col, (_, attr, _) in enumerate(XLSX_COLUMNS, 1):
            value = getattr(mapping, attr)
            if isinstance(value, bool):
                value = "Yes" if value else "No"
            cell = ws.cell(row=header_row + offset, column=col, value=value)
            cell.border = THIN_BORDER

    output = io.BytesIO()
    wb.save(output)
    output.seek(0)
    return output
