"""
Role-based capability table for the import/transfer workflow.

The backend enforces authorization on every request; this table lets a
front end decide up-front which actions to offer, and lets the CLI refuse
a command before a round-trip that would end in 403.

Usage:
    from teamtime.services.permission import check_capability, PermissionDenied

    # Raises PermissionDenied if not allowed
    check_capability(session.role, "staging_transfer")

    # Boolean check
    if has_capability(session.role, "flow_manage"):
        ...
"""

from teamtime.core.exceptions import PermissionDenied

ROLE_ADMIN = "ADMINISTRADOR"
ROLE_COORDINATOR = "COORDINADOR"
ROLE_COLLABORATOR = "COLABORADOR"

ROLES = (ROLE_ADMIN, ROLE_COORDINATOR, ROLE_COLLABORATOR)

ALL_ACTIONS = frozenset({
    "area_manage",
    "flow_view",
    "flow_manage",
    "mapping_view",
    "mapping_manage",
    "import_run",
    "import_history_view",
    "staging_view",
    "staging_review",
    "staging_transfer",
    "staging_delete",
    "transfer_view",
    "transfer_request",
    "transfer_approve",
})

CAPABILITY_MATRIX: dict[str, frozenset[str]] = {
    ROLE_ADMIN: ALL_ACTIONS,
    ROLE_COORDINATOR: frozenset({
        "flow_view",
        "mapping_view",
        "import_history_view",
        "staging_view",
        "transfer_view",
        "transfer_request",
    }),
    ROLE_COLLABORATOR: frozenset({
        "flow_view",
        "transfer_view",
    }),
}


def has_capability(role: str | None, action: str) -> bool:
    """True if `role` may perform `action`. Unknown roles may do nothing."""
    if action not in ALL_ACTIONS:
        raise ValueError(f"Unknown action '{action}'")
    return action in CAPABILITY_MATRIX.get((role or "").upper(), frozenset())


def check_capability(role: str | None, action: str) -> None:
    """
    Assert the role may perform the action.

    Raises:
        PermissionDenied: If the role lacks the capability.
    """
    if not has_capability(role, action):
        raise PermissionDenied(
            f"Role {role or 'anonymous'} does not have permission for '{action}'",
            status_code=403,
        )


def get_capabilities(role: str | None) -> frozenset[str]:
    return CAPABILITY_MATRIX.get((role or "").upper(), frozenset())
