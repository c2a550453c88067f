"""
FieldMapping — one spreadsheet column mapped onto one persisted field,
scoped to a source area.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from teamtime.core.exceptions import ValidationError
from teamtime.models.base import Id, as_bool, as_int, pick, split_known

DEFAULT_TARGET_TABLE = "staging_projects"

_MAPPING_KEYS = {
    "id", "sourceAreaId", "source_area_id", "sourceField", "source_field",
    "targetField", "target_field", "targetTable", "target_table",
    "isRequired", "is_required", "transformation", "validationRule",
    "validation_rule", "defaultValue", "default_value", "orderIndex",
    "order_index",
}


@dataclass
class FieldMapping:
    source_field: str
    target_field: str
    id: Id | None = None
    source_area_id: Id | None = None
    target_table: str = DEFAULT_TARGET_TABLE
    is_required: bool = False
    transformation: str | None = None
    validation_rule: str | None = None
    default_value: Any = None
    order_index: int = 0
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: dict) -> "FieldMapping":
        return cls(
            id=payload.get("id"),
            source_area_id=pick(payload, "sourceAreaId", "source_area_id"),
            source_field=pick(payload, "sourceField", "source_field", default=""),
            target_field=pick(payload, "targetField", "target_field", default=""),
            target_table=pick(payload, "targetTable", "target_table", default=DEFAULT_TARGET_TABLE),
            is_required=as_bool(pick(payload, "isRequired", "is_required")),
            transformation=payload.get("transformation") or None,
            validation_rule=pick(payload, "validationRule", "validation_rule") or None,
            default_value=pick(payload, "defaultValue", "default_value"),
            order_index=as_int(pick(payload, "orderIndex", "order_index"), default=0),
            extra=split_known(payload, _MAPPING_KEYS),
        )

    def to_dict(self) -> dict:
        body = {
            "sourceAreaId": self.source_area_id,
            "sourceField": self.source_field,
            "targetField": self.target_field,
            "targetTable": self.target_table,
            "isRequired": self.is_required,
            "transformation": self.transformation,
            "validationRule": self.validation_rule,
            "defaultValue": self.default_value,
            "orderIndex": self.order_index,
        }
        if self.id is not None:
            body["id"] = self.id
        return body

    @property
    def signature(self) -> tuple[str, str, str | None]:
        """(sourceField, targetField, transformation) — what a clone must carry over."""
        return (self.source_field, self.target_field, self.transformation)

    def validate(self) -> None:
        errors = {}
        if not (self.source_field or "").strip():
            errors["sourceField"] = "required"
        if not (self.target_field or "").strip():
            errors["targetField"] = "required"
        if errors:
            raise ValidationError("Invalid field mapping", details=errors)
