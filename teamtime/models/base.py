"""
Shared helpers for the client-side entity copies.

The backend speaks camelCase JSON; the dataclasses use snake_case
attributes. `pick()` reads whichever spelling the server sent and
`split_known()` keeps any keys the model does not declare so a
round-trip through from_dict()/to_dict() never drops server data.
"""

from __future__ import annotations

from typing import Any

Id = int | str


def pick(payload: dict, *keys: str, default: Any = None) -> Any:
    """Return the first present, non-None value among `keys`."""
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return value
    return default


def as_bool(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def as_int(value: Any, default: int | None = None) -> int | None:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def split_known(payload: dict, known: set[str]) -> dict:
    """Return the keys of `payload` that are not in `known`."""
    return {k: v for k, v in payload.items() if k not in known}
