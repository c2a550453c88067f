"""Shared utility functions used by every service module.

read_or_default:       list/stat reads that degrade instead of failing
require_confirmation:  guard for destructive calls
parse_date:            lenient date parsing for query filters
date_param:            date → ISO string for query params
"""
import logging
from datetime import date, datetime
from typing import Any

from teamtime.core.exceptions import ConfirmationRequired
from teamtime.integrations.api_gateway import GatewayResult

logger = logging.getLogger(__name__)


def read_or_default(result: GatewayResult, default: Any, what: str) -> Any:
    """Return the envelope payload, or `default` when the read can degrade.

    Network failures and unimplemented endpoints are logged and turned into
    `default` so the caller renders an empty state. Any other failure
    (validation, permission, not found) is raised.

    Usage::

        result = api_gateway.get("/area-flows/configuration")
        rows = read_or_default(result, [], "flow configuration")
    """
    if result.ok:
        return result.payload(default)
    if result.degradable:
        reason = "backend not available" if result.unavailable else result.error
        logger.warning("Could not load %s (%s); using empty result", what, reason)
        return default
    result.raise_for_error()
    return default


def require_confirmation(confirm: bool, action: str) -> None:
    """Raise ConfirmationRequired unless the caller explicitly confirmed.

    Destructive calls (delete area, delete mapping, delete staging record)
    have no undo on the server, so they refuse to issue the request
    without confirm=True.
    """
    if not confirm:
        raise ConfirmationRequired(action)


def parse_date(value):
    """Parse a date string (ISO or DD/MM/YYYY) to a date object.

    Returns None for empty/invalid input. Supports:
    - YYYY-MM-DD (ISO format)
    - YYYY-MM-DDTHH:MM:SS (datetime ISO → .date())
    - DD/MM/YYYY (format used by the SPA date inputs)
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        pass
    try:
        return datetime.fromisoformat(str(value)).date()
    except (ValueError, TypeError):
        pass
    try:
        return datetime.strptime(str(value), "%d/%m/%Y").date()
    except (ValueError, TypeError):
        return None


def date_param(value) -> str | None:
    """Render a date filter as YYYY-MM-DD, raising ValueError on bad input."""
    if value in (None, ""):
        return None
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"Invalid date '{value}'. Use YYYY-MM-DD or DD/MM/YYYY.")
    return parsed.isoformat()
