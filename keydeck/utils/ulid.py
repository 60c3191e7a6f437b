"""ULID generation utility for KeyDeck.

Provides a single `generate_ulid()` function that returns a 26-character ULID
used as the per-request correlation id (X-Request-ID header and the
``request_id`` field bound into every structured log line) and as the id of
rows created by the SQLite and in-memory stores.

Uses the `python-ulid` library (see pyproject.toml).
"""

from __future__ import annotations

from ulid import ULID


def generate_ulid() -> str:
    """Generate a new ULID as a 26-character uppercase string.

    Returns:
        str: Crockford Base32 string, exactly 26 chars
             (e.g. ``"01KJ0JRVHYA7KX32VPN5ZSCTMV"``).
    """
    return str(ULID())
