"""
StagingProject — a provisionally imported project awaiting review.

Lifecycle: created by an import batch → PENDING → VALIDATED | ERROR →
TRANSFERRED (removed from staging, now a live Project) or hard-deleted.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from teamtime.models.base import Id, pick

STAGING_STATUSES = {"PENDING", "VALIDATED", "ERROR", "TRANSFERRED"}
TRANSFERABLE_STATUS = "VALIDATED"

_STAGING_KEYS = {
    "id", "status", "sourceAreaId", "source_area_id", "validationErrors",
    "validation_errors", "importLogId", "import_log_id", "createdAt",
    "created_at", "updatedAt", "updated_at",
}


def normalize_validation_errors(raw) -> list[dict]:
    """Coerce whatever the server sent into a list of {field, message} dicts.

    Accepts a list of dicts, a list of strings, a {field: message} mapping,
    a {field: [messages]} mapping, or a single string.
    """
    if not raw:
        return []
    if isinstance(raw, str):
        return [{"field": None, "message": raw}]
    if isinstance(raw, dict):
        if "errors" in raw:
            return normalize_validation_errors(raw["errors"])
        errors = []
        for name, messages in raw.items():
            if isinstance(messages, (list, tuple)):
                errors.extend({"field": name, "message": str(m)} for m in messages)
            else:
                errors.append({"field": name, "message": str(messages)})
        return errors
    errors = []
    for item in raw:
        if isinstance(item, dict):
            errors.append({
                "field": pick(item, "field", "path", "column"),
                "message": str(pick(item, "message", "error", "msg", default="")),
            })
        else:
            errors.append({"field": None, "message": str(item)})
    return errors


@dataclass
class StagingProject:
    id: Id
    status: str = "PENDING"
    source_area_id: Id | None = None
    validation_errors: list[dict] = field(default_factory=list)
    import_log_id: Id | None = None
    created_at: str | None = None
    updated_at: str | None = None
    data: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: dict) -> "StagingProject":
        return cls(
            id=payload.get("id"),
            status=str(payload.get("status") or "PENDING").upper(),
            source_area_id=pick(payload, "sourceAreaId", "source_area_id"),
            validation_errors=normalize_validation_errors(
                pick(payload, "validationErrors", "validation_errors")
            ),
            import_log_id=pick(payload, "importLogId", "import_log_id"),
            created_at=pick(payload, "createdAt", "created_at"),
            updated_at=pick(payload, "updatedAt", "updated_at"),
            data={k: v for k, v in payload.items() if k not in _STAGING_KEYS},
        )

    def to_dict(self) -> dict:
        return {
            **self.data,
            "id": self.id,
            "status": self.status,
            "sourceAreaId": self.source_area_id,
            "validationErrors": self.validation_errors,
        }

    @property
    def is_transferable(self) -> bool:
        return self.status == TRANSFERABLE_STATUS
