"""
Deterministic HMAC-SHA256 helpers for pseudonymizing email addresses.

Used wherever an email has to appear outside the users table: cache keys
and log fields. The raw address never leaves transient memory.
"""

from __future__ import annotations

import hashlib
import hmac

from nudge.config import settings

SECRET_MIN_LENGTH = 16  # keep configurable but catch obvious misconfiguration

__all__ = [
    "compute_hmac",
    "email_log_ref",
    "hash_email",
    "normalize_email",
]


class HashingError(RuntimeError):
    """Raised when hashing prerequisites are not satisfied."""


def _secret_bytes() -> bytes:
    secret = getattr(settings, "HASHING_SECRET", None)
    if not secret:
        raise HashingError("HASHING_SECRET is not configured")
    if len(secret) < SECRET_MIN_LENGTH:
        raise HashingError("HASHING_SECRET is too short; please rotate it")
    return secret.encode("utf-8")


def compute_hmac(value: str, *, namespace: str) -> str:
    """
    Compute a namespaced hex HMAC-SHA256 digest.

    Args:
        value: Raw string value to hash (will be normalized by caller).
        namespace: Logical namespace/salt to avoid cross-field collisions.
    """
    payload = value or ""
    scoped = f"{namespace}:{payload}"
    digest = hmac.new(_secret_bytes(), scoped.encode("utf-8"), hashlib.sha256)
    return digest.hexdigest()


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def hash_email(email: str | None) -> str:
    """Deterministically hash a single email address."""
    return compute_hmac(normalize_email(email), namespace="email")


def email_log_ref(email: str | None) -> str:
    """Short, non-reversible reference to an email for log fields."""
    try:
        return hash_email(email)[:12]
    except HashingError:
        return "unhashed"
