"""
Concierge - Opaque identifiers.

Rules (shared with session ids):
- Never encode meaning (no user ID, no timestamps)
- Cryptographically random
- URL-safe, so keys can travel in cookies and query strings
"""

from __future__ import annotations

import secrets

USER_KEY_BYTES = 16  # 22 url-safe characters
SESSION_ID_BYTES = 32
SESSION_ID_PREFIX = "sess_"


def generate_user_key() -> str:
    """Return a fresh external user key."""
    return secrets.token_urlsafe(USER_KEY_BYTES)


def generate_guest_id() -> str:
    """Return an internal id for a guest, independent of its user key."""
    return f"guest_{secrets.token_urlsafe(USER_KEY_BYTES)}"


def generate_session_id() -> str:
    return f"{SESSION_ID_PREFIX}{secrets.token_urlsafe(SESSION_ID_BYTES)}"
