"""
Session manager — the one owner of (token, user, expiry) for this process.

Claims are decoded with PyJWT WITHOUT signature verification: the client
has no signing key and the backend re-checks every request. Decoding is
only used to read `exp` so an expired persisted token is discarded at
startup instead of producing a 401 on the first call.

The session is persisted as JSON in SESSION_FILE (mode 0600). When
ENCRYPTION_KEY is set the token is stored Fernet-encrypted.

Wiring (done by teamtime.init_client()):
    api_gateway.configure(
        token_provider=session.token_provider,
        on_unauthorized=session.handle_unauthorized,
    )
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Callable

import jwt
from cryptography.fernet import InvalidToken

from teamtime.core.exceptions import ApiError, AuthenticationError, ValidationError
from teamtime.integrations.api_gateway import api_gateway
from teamtime.utils.crypto import decrypt_secret, encrypt_secret, encryption_enabled

logger = logging.getLogger(__name__)

SUPPORTED_LANGUAGES = ("es", "en")
DEFAULT_LANGUAGE = "es"


def decode_claims(token: str) -> dict:
    """Read a JWT's claims without verifying its signature.

    Returns {} for anything that is not a well-formed JWT.
    """
    try:
        return jwt.decode(token, options={"verify_signature": False, "verify_exp": False})
    except jwt.PyJWTError:
        return {}


def token_expiry(token: str) -> datetime | None:
    exp = decode_claims(token).get("exp")
    if exp is None:
        return None
    try:
        return datetime.fromtimestamp(int(exp), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


class SessionStore:
    """JSON file holding {token, user, language}; None path = memory only."""

    def __init__(self, path: str | None) -> None:
        self.path = os.path.expanduser(path) if path else None

    def load(self) -> dict:
        if not self.path or not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, exc)
            return {}

        token = data.get("token")
        if token and data.get("encrypted"):
            try:
                data["token"] = decrypt_secret(token)
            except (RuntimeError, InvalidToken):
                logger.warning("Stored session token cannot be decrypted; discarding it")
                data["token"] = None
        return data

    def save(self, data: dict) -> None:
        if not self.path:
            return
        record = dict(data)
        record["encrypted"] = False
        if record.get("token") and encryption_enabled():
            record["token"] = encrypt_secret(record["token"])
            record["encrypted"] = True
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(record, fh, indent=2)

    def clear(self) -> None:
        if self.path and os.path.exists(self.path):
            os.remove(self.path)


class SessionManager:
    """Holds the authenticated user and notifies subscribers on change."""

    def __init__(self, store: SessionStore | None = None) -> None:
        self.store = store or SessionStore(None)
        self.token: str | None = None
        self.user: dict | None = None
        self.expires_at: datetime | None = None
        self.language: str = DEFAULT_LANGUAGE
        self._listeners: list[Callable[["SessionManager"], None]] = []

    # ── State ────────────────────────────────────────────────────────────────

    @property
    def is_authenticated(self) -> bool:
        if not self.token:
            return False
        if self.expires_at and self.expires_at <= datetime.now(timezone.utc):
            return False
        return True

    @property
    def role(self) -> str | None:
        return (self.user or {}).get("role")

    def _set(self, token: str | None, user: dict | None) -> None:
        self.token = token
        self.user = user
        self.expires_at = token_expiry(token) if token else None

    def _persist(self) -> None:
        if self.token:
            self.store.save({"token": self.token, "user": self.user, "language": self.language})
        else:
            self.store.clear()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def init(self) -> "SessionManager":
        """Restore a persisted session, dropping it if the token has expired."""
        data = self.store.load()
        self.language = data.get("language") or DEFAULT_LANGUAGE
        token, user = data.get("token"), data.get("user")
        if token and user:
            self._set(token, user)
            if not self.is_authenticated:
                logger.info("Stored session expired at %s; clearing it", self.expires_at)
                self._set(None, None)
                self.store.clear()
        self._notify()
        return self

    def login(self, email: str, password: str) -> dict:
        """Authenticate and persist the session. Returns the user dict."""
        if not email or not password:
            raise ValidationError("Email and password are required")
        result = api_gateway.post("/auth/login", {"email": email, "password": password})
        payload = result.raise_for_error(resource="User").payload({})
        token, user = payload.get("token"), payload.get("user")
        if not token or not isinstance(user, dict):
            raise AuthenticationError("Login response did not include a token and user")
        self._set(token, user)
        self._persist()
        logger.info("Logged in as %s (%s)", user.get("email", email), user.get("role"))
        self._notify()
        return user

    def logout(self) -> None:
        """Best-effort server logout; local state is cleared regardless."""
        try:
            if self.token:
                api_gateway.post("/auth/logout").raise_for_error()
        except ApiError as exc:
            logger.warning("Server logout failed: %s", exc.message)
        finally:
            self._set(None, None)
            self.store.clear()
            self._notify()

    def update_user(self, changes: dict) -> dict:
        """Merge `changes` into the local user record (no server call)."""
        if self.user is None:
            raise AuthenticationError("Not logged in")
        self.user = {**self.user, **changes}
        self._persist()
        self._notify()
        return self.user

    def set_language(self, language: str) -> None:
        if language not in SUPPORTED_LANGUAGES:
            raise ValidationError(
                f"Unsupported language '{language}'",
                details={"language": list(SUPPORTED_LANGUAGES)},
            )
        self.language = language
        self._persist()
        self._notify()

    # ── Observers ────────────────────────────────────────────────────────────

    def subscribe(self, listener: Callable[["SessionManager"], None]) -> Callable[[], None]:
        """Register a change listener; returns the matching unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def teardown(self) -> None:
        self._listeners.clear()

    # ── Gateway hooks ────────────────────────────────────────────────────────

    def token_provider(self) -> str | None:
        return self.token if self.is_authenticated else None

    def handle_unauthorized(self) -> None:
        """Called by the gateway on any 401: the token is no longer accepted."""
        if self.token is None:
            return
        logger.warning("Backend rejected the session token; signing out locally")
        self._set(None, None)
        self.store.clear()
        self._notify()
