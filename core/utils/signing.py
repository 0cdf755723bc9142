"""
Request Signing Helpers

HMAC-SHA256 primitives shared by the per-exchange handlers, plus the
credential checks every signing handler performs before touching a secret.
"""

import base64
import hashlib
import hmac
from typing import Optional

from pydantic import SecretStr

from core.errors import (
    BuildAuthError,
    InvalidCharacterInApiKeyError,
    MissingPubkeyError,
    MissingSecretError,
)


def hmac_sha256(secret: str, message: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).digest()


def sign_hex(secret: str, message: str) -> str:
    """HMAC-SHA256 of message keyed by secret, lowercase hex."""
    return hmac_sha256(secret, message).hex()


def sign_base64(secret: str, message: str) -> str:
    """HMAC-SHA256 of message keyed by secret, standard base64."""
    return base64.b64encode(hmac_sha256(secret, message)).decode("ascii")


def require_pubkey(pubkey: Optional[str]) -> str:
    """
    Return the public key, ready to be used as a header value.

    Raises:
        BuildAuthError: wrapping MissingPubkeyError or InvalidCharacterInApiKeyError
    """
    if pubkey is None:
        raise BuildAuthError(MissingPubkeyError())
    # header values must be visible ASCII
    for char in pubkey:
        if not (0x20 <= ord(char) < 0x7F):
            raise BuildAuthError(InvalidCharacterInApiKeyError(pubkey))
    return pubkey


def require_secret(secret: Optional[SecretStr]) -> str:
    """
    Unwrap the secret for signing.

    Raises:
        BuildAuthError: wrapping MissingSecretError
    """
    if secret is None:
        raise BuildAuthError(MissingSecretError())
    return secret.get_secret_value()
