"""Identity key derivation for rate limiting.

Keys are namespaced per dimension (``IP_``, ``TOKEN_``) so an IP and a
token with the same text can never share a counter.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

IP_PREFIX = "IP_"
TOKEN_PREFIX = "TOKEN_"
BLOCK_SUFFIX = "_block"


@dataclass(frozen=True)
class RequestIdentity:
    """The request attributes limiters derive identity keys from.

    Attributes:
        remote_address: Client address, with or without a ``:port`` suffix.
        api_key: Value of the API token header, if any.
    """

    remote_address: str
    api_key: str | None = None


def _strip_port(address: str) -> str:
    # "[::1]:8080" -> "::1", "10.0.0.1:5555" -> "10.0.0.1", "::1" stays as is
    if address.startswith("["):
        return address[1:].split("]", 1)[0]
    if address.count(":") == 1:
        return address.split(":", 1)[0]
    return address


def ip_identity(identity: RequestIdentity) -> str:
    """Derive the IP dimension key. Always non-empty."""

    return IP_PREFIX + _strip_port(identity.remote_address)


def token_identity(identity: RequestIdentity) -> str:
    """Derive the token dimension key, or ``""`` when no token was sent."""

    if not identity.api_key:
        return ""
    return TOKEN_PREFIX + identity.api_key


def block_key(key: str) -> str:
    """Return the key of the block-marker series for an identity key."""

    return key + BLOCK_SUFFIX


def hash_key(key: str) -> str:
    """Hash a limiter key for logging without exposing tokens."""

    return hashlib.sha256(key.encode()).hexdigest()[:16]
