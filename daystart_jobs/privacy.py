"""Helpers for keeping raw user identifiers out of logs."""

import hashlib


def hash_user_id(user_id: str) -> str:
    """Return a stable SHA-256 hex digest of a user identifier."""
    return hashlib.sha256(str(user_id).encode("utf-8")).hexdigest()
