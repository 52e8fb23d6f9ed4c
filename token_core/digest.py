"""
One-way digests used in claims and logs. Raw identifiers never leave this module.
"""
import hashlib

_LOG_HASH_CHARS = 16


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def email_domain(email: str) -> str:
    """Domain part of an email address, or 'unknown' when the address has no single '@'."""
    parts = email.split("@")
    return parts[1].lower() if len(parts) == 2 and parts[1] else "unknown"


def truncate(digest: str | None) -> str:
    """Short prefix of a hash, safe for log lines."""
    return (digest or "")[:_LOG_HASH_CHARS]
