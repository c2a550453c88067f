"""
Fernet symmetric encryption for the persisted session token.

`encrypt_secret` / `decrypt_secret` use Fernet (AES-128-CBC + HMAC-SHA256)
keyed by the ENCRYPTION_KEY environment variable. When the variable is not
set, encryption_enabled() is False and the session store keeps the token
in plain text in a file readable only by the user.

ENCRYPTION_KEY must be a 32-byte URL-safe base64 key, e.g. the output of
`Fernet.generate_key()`. Keep it in the environment, never in the session
file itself.
"""

import os

from cryptography.fernet import Fernet


def encryption_enabled() -> bool:
    return bool(os.getenv("ENCRYPTION_KEY"))


def _get_fernet() -> Fernet:
    """Return a Fernet instance keyed by the ENCRYPTION_KEY env var.

    Raises RuntimeError if ENCRYPTION_KEY is not set.
    """
    raw_key = os.getenv("ENCRYPTION_KEY")
    if not raw_key:
        raise RuntimeError("ENCRYPTION_KEY environment variable is not set")
    return Fernet(raw_key.encode() if isinstance(raw_key, str) else raw_key)


def encrypt_secret(plaintext: str) -> str:
    """Encrypt a plaintext secret and return URL-safe base64 ciphertext.

    Raises:
        RuntimeError: If ENCRYPTION_KEY is not set.
    """
    return _get_fernet().encrypt(plaintext.encode("utf-8")).decode("utf-8")


def decrypt_secret(ciphertext: str) -> str:
    """Decrypt a value previously returned by encrypt_secret().

    Raises:
        RuntimeError: If ENCRYPTION_KEY is not set.
        cryptography.fernet.InvalidToken: Tampered ciphertext or another key.
    """
    return _get_fernet().decrypt(ciphertext.encode("utf-8")).decode("utf-8")
