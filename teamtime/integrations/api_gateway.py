"""
TeamTime backend API gateway.

All outbound HTTP calls to the TeamTime REST API go through this class.
Direct `requests` calls in services are FORBIDDEN.

Behaviour:
  - Bearer token injected from the session manager (token_provider)
  - JSON bodies for ordinary calls, multipart form data for uploads
  - Timeout: 30 s by default, 300 s for Excel uploads
  - No retry and no backoff: every failure is surfaced once
  - 401 notifies the session manager (on_unauthorized) so it can clear itself

Every call returns a GatewayResult and never raises. Services decide per
call whether a failure degrades (list reads) or raises (writes) via
GatewayResult.raise_for_error().

Testability: pass a mock `session` to ApiGateway() in tests instead of
letting it create a real requests.Session internally.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import time
from typing import Any, Callable

import requests

from teamtime.core.exceptions import (
    ApiError,
    AuthenticationError,
    ConflictError,
    EndpointUnavailableError,
    NotFoundError,
    PermissionDenied,
    TransportError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# ── Default request timeouts ──────────────────────────────────────────────
_DEFAULT_TIMEOUT = 30
_UPLOAD_TIMEOUT = 300              # 5 minutes for large Excel files

_UNAVAILABLE_STATUSES = (405, 501)


class GatewayResult:
    """Structured return value from ApiGateway calls.

    Attributes:
        ok:             True if the call succeeded (HTTP 2xx + no exception).
        status_code:    HTTP status code (None if network-level failure).
        data:           Parsed JSON body (dict or list), raw bytes for
                        downloads, else None.
        error:          Human-readable error message or None.
        duration_ms:    Round-trip latency in milliseconds.
        payload_hash:   SHA-256 of the serialised request payload (hex).
    """

    __slots__ = ("ok", "status_code", "data", "error", "duration_ms", "payload_hash")

    def __init__(
        self,
        *,
        ok: bool,
        status_code: int | None,
        data: dict | list | bytes | None,
        error: str | None,
        duration_ms: int,
        payload_hash: str | None = None,
    ) -> None:
        self.ok = ok
        self.status_code = status_code
        self.data = data
        self.error = error
        self.duration_ms = duration_ms
        self.payload_hash = payload_hash

    @property
    def transport_failed(self) -> bool:
        """True when no response was received at all."""
        return not self.ok and self.status_code is None

    @property
    def unavailable(self) -> bool:
        """True when the backend does not implement the endpoint."""
        return self.status_code in _UNAVAILABLE_STATUSES

    @property
    def degradable(self) -> bool:
        """Failures a list read may turn into an empty value."""
        return self.transport_failed or self.unavailable

    def payload(self, default: Any = None) -> Any:
        """Return the envelope's `data` member (or the whole body if unwrapped)."""
        body = self.data
        if isinstance(body, dict) and "data" in body:
            body = body["data"]
        return default if body is None else body

    def raise_for_error(
        self,
        resource: str | None = None,
        resource_id: int | str | None = None,
    ) -> "GatewayResult":
        """Raise the exception matching this failure; return self on success."""
        if self.ok:
            return self

        message = self.error or "Request failed"
        details = self.data if isinstance(self.data, dict) else {}
        status = self.status_code

        if status is None:
            raise TransportError(message)
        if status in (400, 422):
            raise ValidationError(message, details=details, status_code=status)
        if status == 401:
            raise AuthenticationError(message, status_code=status)
        if status == 403:
            raise PermissionDenied(message, status_code=status)
        if status == 404:
            raise NotFoundError(resource or "Resource", resource_id, message=message)
        if status == 409:
            raise ConflictError(message, resource=resource, resource_id=resource_id)
        if status in _UNAVAILABLE_STATUSES:
            raise EndpointUnavailableError(message, status_code=status)
        raise ApiError(message, status_code=status, details=details)

    def to_log_dict(self) -> dict:
        """Structured representation for logging. Never includes the token."""
        return {
            "ok": self.ok,
            "status": self.status_code,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "payload_hash": self.payload_hash,
        }


def _error_message(resp: requests.Response, body: Any) -> str:
    """Pick the server's own message out of an error body, verbatim."""
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if body.get(key):
                return str(body[key])
    return f"HTTP {resp.status_code}: {resp.text[:500]}"


class ApiGateway:
    """TeamTime REST API gateway.

    Instantiate once at module level (module-level singleton pattern) and
    bind it at startup with configure(). Pass a custom `session` in tests to
    intercept HTTP calls without making real network requests.

    Usage:
        from teamtime.integrations.api_gateway import api_gateway
        result = api_gateway.get("/area-flows/configuration")
    """

    def __init__(
        self,
        base_url: str | None = None,
        session: requests.Session | None = None,
        timeout: int = _DEFAULT_TIMEOUT,
        upload_timeout: int = _UPLOAD_TIMEOUT,
        token_provider: Callable[[], str | None] | None = None,
        on_unauthorized: Callable[[], None] | None = None,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.upload_timeout = upload_timeout
        self.token_provider = token_provider
        self.on_unauthorized = on_unauthorized
        # Inject custom session for testing; create real one lazily otherwise.
        self._session: requests.Session | None = session

    def configure(
        self,
        *,
        base_url: str | None = None,
        timeout: int | None = None,
        upload_timeout: int | None = None,
        token_provider: Callable[[], str | None] | None = None,
        on_unauthorized: Callable[[], None] | None = None,
    ) -> None:
        """Rebind the singleton to a config and session manager."""
        if base_url is not None:
            self.base_url = base_url.rstrip("/")
        if timeout is not None:
            self.timeout = timeout
        if upload_timeout is not None:
            self.upload_timeout = upload_timeout
        if token_provider is not None:
            self.token_provider = token_provider
        if on_unauthorized is not None:
            self.on_unauthorized = on_unauthorized

    # ── HTTP session ─────────────────────────────────────────────────────────

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    def url_for(self, path: str) -> str:
        if not self.base_url:
            raise RuntimeError("ApiGateway has no base_url; call teamtime.init_client() first")
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        token = self.token_provider() if self.token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _compute_payload_hash(self, payload: dict | list | None) -> str | None:
        """Return SHA-256 hex digest of the JSON-serialised payload."""
        if payload is None:
            return None
        raw = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
        return hashlib.sha256(raw).hexdigest()

    # ── Core request dispatcher ───────────────────────────────────────────────

    def request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict | list | None = None,
        params: dict | None = None,
        files: dict | None = None,
        data: dict | None = None,
        timeout: int | None = None,
        raw: bool = False,
    ) -> GatewayResult:
        """Execute one request against the backend. Never raises.

        Args:
            method:     HTTP verb ("GET", "POST", "PUT", "PATCH", "DELETE").
            path:       Path below the API base URL, e.g. "/staging/12".
            json_body:  JSON-serialisable request body (optional).
            params:     Query params; None values are dropped.
            files:      Multipart files (uploads only).
            data:       Multipart form fields (uploads only).
            timeout:    Per-request timeout in seconds.
            raw:        Return the response bytes instead of parsed JSON.

        Returns:
            GatewayResult — callers check .ok or call .raise_for_error().
        """
        timeout = timeout or self.timeout
        url = self.url_for(path)
        payload_hash = self._compute_payload_hash(json_body)

        kwargs: dict[str, Any] = {"headers": self._headers(), "timeout": timeout}
        if json_body is not None:
            kwargs["json"] = json_body
        if params:
            kwargs["params"] = {k: v for k, v in params.items() if v is not None}
        if files:
            kwargs["files"] = files
        if data:
            kwargs["data"] = data

        t0 = time.perf_counter()
        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.Timeout:
            logger.warning(
                "API request timed out after %ss: %s %s", timeout, method, path,
                extra={"method": method, "path": path},
            )
            return GatewayResult(
                ok=False,
                status_code=None,
                data=None,
                error=f"Request timed out after {timeout}s",
                duration_ms=int(timeout * 1000),
                payload_hash=payload_hash,
            )
        except requests.RequestException as exc:
            logger.warning(
                "API network error: %s %s error=%s", method, path, str(exc)[:500],
                extra={"method": method, "path": path},
            )
            return GatewayResult(
                ok=False,
                status_code=None,
                data=None,
                error=str(exc)[:500] or "Network error",
                duration_ms=int((time.perf_counter() - t0) * 1000),
                payload_hash=payload_hash,
            )

        duration_ms = int((time.perf_counter() - t0) * 1000)
        log_extra = {
            "method": method,
            "path": path,
            "status": resp.status_code,
            "duration_ms": duration_ms,
        }

        if resp.ok and raw:
            logger.debug("API %s %s -> %s", method, path, resp.status_code, extra=log_extra)
            return GatewayResult(
                ok=True,
                status_code=resp.status_code,
                data=resp.content,
                error=None,
                duration_ms=duration_ms,
                payload_hash=payload_hash,
            )

        try:
            body = resp.json() if resp.content else {}
        except ValueError:
            body = {}

        if resp.ok:
            logger.debug("API %s %s -> %s", method, path, resp.status_code, extra=log_extra)
            return GatewayResult(
                ok=True,
                status_code=resp.status_code,
                data=body,
                error=None,
                duration_ms=duration_ms,
                payload_hash=payload_hash,
            )

        if resp.status_code == 401 and self.on_unauthorized is not None:
            self.on_unauthorized()

        error = _error_message(resp, body)
        logger.warning(
            "API request failed: %s %s status=%d error=%s",
            method, path, resp.status_code, error,
            extra=log_extra,
        )
        return GatewayResult(
            ok=False,
            status_code=resp.status_code,
            data=body or None,
            error=error,
            duration_ms=duration_ms,
            payload_hash=payload_hash,
        )

    # ── Shorthands ────────────────────────────────────────────────────────────

    def get(self, path: str, params: dict | None = None, **kwargs) -> GatewayResult:
        return self.request("GET", path, params=params, **kwargs)

    def post(self, path: str, json_body: dict | list | None = None, **kwargs) -> GatewayResult:
        return self.request("POST", path, json_body=json_body, **kwargs)

    def put(self, path: str, json_body: dict | list | None = None, **kwargs) -> GatewayResult:
        return self.request("PUT", path, json_body=json_body, **kwargs)

    def patch(self, path: str, json_body: dict | list | None = None, **kwargs) -> GatewayResult:
        return self.request("PATCH", path, json_body=json_body, **kwargs)

    def delete(self, path: str, **kwargs) -> GatewayResult:
        return self.request("DELETE", path, **kwargs)

    def upload(
        self,
        path: str,
        file_path: str,
        fields: dict | None = None,
        timeout: int | None = None,
    ) -> GatewayResult:
        """POST a file as multipart form data under the `file` field.

        No chunking and no resume: an interrupted upload must be restarted.
        """
        form = {k: str(v) for k, v in (fields or {}).items() if v is not None}
        with open(file_path, "rb") as fh:
            return self.request(
                "POST", path,
                files={"file": (os.path.basename(file_path), fh)},
                data=form,
                timeout=timeout or self.upload_timeout,
            )

    def download(self, path: str, params: dict | None = None) -> GatewayResult:
        """GET a binary resource (e.g. an Excel template)."""
        return self.request("GET", path, params=params, raw=True)


# Module-level singleton; services import this instance.
# Bound to the active config by teamtime.init_client(). In tests, inject a
# mock session via:
#   gw_module.api_gateway._session = MagicMock()
api_gateway = ApiGateway()
