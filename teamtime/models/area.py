"""
Area and AreaFlow — organizational units and the permitted edges between them.

An AreaFlow is a directed edge from one Area to another. Edges are never
hard-deleted: the backend deactivates them (is_active=False) and the
client ignores inactive edges when answering "what comes next".
"""

from __future__ import annotations

from dataclasses import dataclass, field

from teamtime.core.exceptions import ValidationError
from teamtime.models.base import Id, as_bool, as_int, pick, split_known

_AREA_KEYS = {"id", "name", "color", "code", "description", "isActive", "is_active"}

_FLOW_KEYS = {
    "id", "fromAreaId", "from_area_id", "toAreaId", "to_area_id",
    "flowOrder", "flow_order", "isRequired", "is_required",
    "requiresApproval", "requires_approval", "canSkip", "can_skip",
    "description", "conditions", "isActive", "is_active",
    "fromArea", "toArea",
}


@dataclass
class Area:
    id: Id | None
    name: str
    color: str | None = None
    code: str | None = None
    description: str | None = None
    is_active: bool = True
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: dict) -> "Area":
        return cls(
            id=payload.get("id"),
            name=payload.get("name") or "",
            color=payload.get("color"),
            code=payload.get("code"),
            description=payload.get("description"),
            is_active=as_bool(pick(payload, "isActive", "is_active"), default=True),
            extra=split_known(payload, _AREA_KEYS),
        )

    def to_dict(self) -> dict:
        body = {
            "name": self.name,
            "color": self.color,
            "code": self.code,
            "description": self.description,
            "isActive": self.is_active,
        }
        if self.id is not None:
            body["id"] = self.id
        return body

    def validate(self) -> None:
        if not self.name.strip():
            raise ValidationError("Area name is required", details={"name": "required"})


@dataclass
class AreaFlow:
    id: Id | None
    from_area_id: Id
    to_area_id: Id
    flow_order: int = 1
    is_required: bool = False
    requires_approval: bool = True
    can_skip: bool = False
    description: str | None = None
    conditions: dict = field(default_factory=dict)
    is_active: bool = True
    from_area: Area | None = None
    to_area: Area | None = None
    extra: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: dict) -> "AreaFlow":
        from_area = payload.get("fromArea")
        to_area = payload.get("toArea")
        from_area_id = pick(payload, "fromAreaId", "from_area_id")
        to_area_id = pick(payload, "toAreaId", "to_area_id")
        if from_area_id is None and isinstance(from_area, dict):
            from_area_id = from_area.get("id")
        if to_area_id is None and isinstance(to_area, dict):
            to_area_id = to_area.get("id")
        return cls(
            id=payload.get("id"),
            from_area_id=from_area_id,
            to_area_id=to_area_id,
            flow_order=as_int(pick(payload, "flowOrder", "flow_order"), default=1),
            is_required=as_bool(pick(payload, "isRequired", "is_required")),
            requires_approval=as_bool(
                pick(payload, "requiresApproval", "requires_approval"), default=True
            ),
            can_skip=as_bool(pick(payload, "canSkip", "can_skip")),
            description=payload.get("description"),
            conditions=payload.get("conditions") or {},
            is_active=as_bool(pick(payload, "isActive", "is_active"), default=True),
            from_area=Area.from_dict(from_area) if isinstance(from_area, dict) else None,
            to_area=Area.from_dict(to_area) if isinstance(to_area, dict) else None,
            extra=split_known(payload, _FLOW_KEYS),
        )

    def to_dict(self) -> dict:
        body = {
            "fromAreaId": self.from_area_id,
            "toAreaId": self.to_area_id,
            "flowOrder": self.flow_order,
            "isRequired": self.is_required,
            "requiresApproval": self.requires_approval,
            "canSkip": self.can_skip,
            "description": self.description,
            "conditions": self.conditions,
            "isActive": self.is_active,
        }
        if self.id is not None:
            body["id"] = self.id
        return body

    @property
    def is_self_loop(self) -> bool:
        return str(self.from_area_id) == str(self.to_area_id)

    def validate(self) -> None:
        """Business rule: an edge joins two distinct areas in a positive order."""
        errors = {}
        if self.from_area_id in (None, ""):
            errors["fromAreaId"] = "required"
        if self.to_area_id in (None, ""):
            errors["toAreaId"] = "required"
        if not errors and self.is_self_loop:
            errors["toAreaId"] = "must differ from fromAreaId"
        if self.flow_order is None or self.flow_order < 1:
            errors["flowOrder"] = "must be a positive integer"
        if errors:
            raise ValidationError("Invalid area flow", details=errors)
