"""
API key generation, hashing and scope checks.

Keys look like ``tvsk_<32 base62 characters>``. Only the SHA-256 hash is
stored; the display prefix (first 12 characters) and hint (last 4) are kept
so the dashboard can tell keys apart.
"""
import hashlib
import re
import secrets
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional

KEY_PREFIX = "tvsk_"
BASE62_CHARS = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"
RANDOM_BYTES = 32

_ALPHANUMERIC = re.compile(r"^[a-zA-Z0-9]+$")

WILDCARD_SCOPE = "*"

API_KEY_SCOPES = {
    "ALL": "*",
    "AGENTS_READ": "agents:read",
    "AGENTS_WRITE": "agents:write",
    "CALLS_READ": "calls:read",
    "CALLS_WRITE": "calls:write",
    "WIDGET_CONFIG": "widget:config",
    "ORG_READ": "org:read",
}

SCOPE_PRESETS = {
    "FULL_ACCESS": ["*"],
    "READ_ONLY": ["agents:read", "calls:read", "org:read"],
    "AGENTS_ONLY": ["agents:read", "agents:write"],
    "CALLS_ONLY": ["calls:read"],
    "WIDGET_INTEGRATION": ["agents:read", "widget:config"],
}

SCOPE_DESCRIPTIONS = {
    "*": "Full access to all resources",
    "agents:read": "View agents and their configurations",
    "agents:write": "Create, update, and delete agents",
    "calls:read": "View call logs and transcripts",
    "calls:write": "Manage call data",
    "widget:config": "Configure widget settings",
    "org:read": "View organization information",
}


@dataclass(frozen=True)
class GeneratedApiKey:
    raw_key: str
    key_hash: str
    key_prefix: str
    key_hint: str


def hash_api_key(raw_key: str) -> str:
    """SHA-256 hex digest of the raw key."""
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key() -> GeneratedApiKey:
    """Generate a new key. The raw value must be shown to the caller once and then discarded."""
    random_part = "".join(BASE62_CHARS[byte % 62] for byte in secrets.token_bytes(RANDOM_BYTES))
    raw_key = f"{KEY_PREFIX}{random_part}"
    return GeneratedApiKey(
        raw_key=raw_key,
        key_hash=hash_api_key(raw_key),
        key_prefix=raw_key[:12],
        key_hint=raw_key[-4:],
    )


def is_valid_key_format(key: Optional[str]) -> bool:
    """Cheap syntactic check done before any database lookup."""
    if not key or not key.startswith(KEY_PREFIX):
        return False
    if len(key) < len(KEY_PREFIX) + RANDOM_BYTES:
        return False
    return bool(_ALPHANUMERIC.match(key[len(KEY_PREFIX):]))


def has_scope(scopes: Iterable[str], required_scope: str) -> bool:
    """
    ``*`` grants everything, an exact match grants the scope and
    ``<resource>:write`` also grants ``<resource>:read``.
    """
    granted = set(scopes or [])
    if WILDCARD_SCOPE in granted or required_scope in granted:
        return True
    if required_scope.endswith(":read"):
        return f"{required_scope[:-len(':read')]}:write" in granted
    return False


def invalid_scopes(scopes: Iterable[str]) -> List[str]:
    known = set(API_KEY_SCOPES.values())
    return [scope for scope in scopes if scope not in known]


def extract_api_key(headers: Mapping[str, str]) -> Optional[str]:
    """
    Read a key from ``Authorization: Bearer <key>``, a bare ``Authorization``
    value carrying the key prefix, or the ``X-API-Key`` header.
    """
    auth_header = headers.get("authorization")
    if auth_header:
        if auth_header.lower().startswith("bearer "):
            return auth_header[7:].strip()
        if auth_header.startswith(KEY_PREFIX):
            return auth_header.strip()

    api_key_header = headers.get("x-api-key")
    if api_key_header and api_key_header.startswith(KEY_PREFIX):
        return api_key_header.strip()

    return None


def mask_api_key(key_prefix: str, key_hint: str) -> str:
    return f"{key_prefix}...{key_hint}"


def get_scope_description(scope: str) -> str:
    return SCOPE_DESCRIPTIONS.get(scope, scope)
