"""
Identifier generation and secret handling utilities.
"""

import hashlib
import hmac
import json
import secrets
import uuid
from typing import Any

from devhub.core.config import settings


def generate_request_id() -> str:
    """
    Generate a unique request ID for tracing.

    Returns:
        A random 8-byte hex string prefixed with 'req_'
    """
    return f"req_{secrets.token_hex(8)}"


def generate_id() -> str:
    """Generate a primary key for persisted records."""
    return str(uuid.uuid4())


def canonical_credentials(auth_data: Any) -> str:
    """Serialise credential material the same way regardless of key order."""
    return json.dumps(auth_data, sort_keys=True, separators=(",", ":"), default=str)


def hash_secret(value: str) -> str:
    """
    Hash credential material before it is stored.

    The digest is keyed with the application secret so that identical
    credentials on two deployments never hash the same.

    Args:
        value: Raw secret (password, token, private key)

    Returns:
        Hex HMAC-SHA256 digest
    """
    return hmac.new(
        settings.security.secret_key.encode(),
        value.encode(),
        hashlib.sha256,
    ).hexdigest()


def verify_secret(value: str, digest: str) -> bool:
    """
    Check raw credential material against a stored digest.

    Args:
        value: Raw secret supplied by the caller
        digest: Digest produced by hash_secret

    Returns:
        True if they match
    """
    return hmac.compare_digest(hash_secret(value), digest)

