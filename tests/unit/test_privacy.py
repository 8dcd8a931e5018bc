"""Unit tests for user id hashing."""

import hashlib

from daystart_jobs.privacy import hash_user_id


def test_hash_user_id_is_sha256_hex():
    """Test that the hash is the SHA-256 hex digest."""
    assert hash_user_id("user-123") == hashlib.sha256(b"user-123").hexdigest()
    assert len(hash_user_id("user-123")) == 64


def test_hash_user_id_is_stable_and_distinct():
    """Test stable output per user and distinct output across users."""
    assert hash_user_id("user-123") == hash_user_id("user-123")
    assert hash_user_id("user-123") != hash_user_id("user-124")
    assert "user-123" not in hash_user_id("user-123")
