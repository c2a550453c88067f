"""
Transfer — one project moving from one area to another.

History per project is append-only: once a transfer leaves PENDING it is
final and the client refuses to approve, reject or cancel it again.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from teamtime.models.area import Area
from teamtime.models.base import Id, pick

TRANSFER_STATUSES = {"PENDING", "APPROVED", "REJECTED", "COMPLETED", "CANCELLED"}
OPEN_TRANSFER_STATUS = "PENDING"

TRANSFER_DIRECTIONS = {"outgoing", "incoming"}

_TRANSFER_KEYS = {
    "id", "projectId", "project_id", "fromAreaId", "from_area_id",
    "toAreaId", "to_area_id", "status", "notes", "reason", "createdAt",
    "created_at", "fromArea", "toArea",
}


@dataclass
class Transfer:
    id: Id | None
    project_id: Id
    from_area_id: Id
    to_area_id: Id
    status: str = OPEN_TRANSFER_STATUS
    notes: str | None = None
    reason: str | None = None
    created_at: str | None = None
    from_area: Area | None = None
    to_area: Area | None = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: dict) -> "Transfer":
        from_area = payload.get("fromArea")
        to_area = payload.get("toArea")
        return cls(
            id=payload.get("id"),
            project_id=pick(payload, "projectId", "project_id"),
            from_area_id=pick(payload, "fromAreaId", "from_area_id",
                              default=(from_area or {}).get("id")),
            to_area_id=pick(payload, "toAreaId", "to_area_id",
                            default=(to_area or {}).get("id")),
            status=str(payload.get("status") or OPEN_TRANSFER_STATUS).upper(),
            notes=payload.get("notes"),
            reason=payload.get("reason"),
            created_at=pick(payload, "createdAt", "created_at"),
            from_area=Area.from_dict(from_area) if isinstance(from_area, dict) else None,
            to_area=Area.from_dict(to_area) if isinstance(to_area, dict) else None,
            extra={k: v for k, v in payload.items() if k not in _TRANSFER_KEYS},
        )

    def to_dict(self) -> dict:
        body = {
            "projectId": self.project_id,
            "fromAreaId": self.from_area_id,
            "toAreaId": self.to_area_id,
            "status": self.status,
            "notes": self.notes,
        }
        if self.id is not None:
            body["id"] = self.id
        return body

    @property
    def is_final(self) -> bool:
        return self.status != OPEN_TRANSFER_STATUS
