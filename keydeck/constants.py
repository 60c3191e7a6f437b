"""Shared constants for KeyDeck.

Timeouts, key format and display constants used across modules are defined
here. No magic numbers in other modules — import from here.
"""

# ─── Record Store ─────────────────────────────────────────────────────────────

# Default name of the hosted table holding key records.
DEFAULT_TABLE_NAME: str = "api_keys"

# Bounded wait for the list round trip (and the connection probe).
# A stalled store surfaces as ConnectivityError after this many seconds.
LIST_TIMEOUT_S: float = 10.0

# ─── Key format ───────────────────────────────────────────────────────────────

# Recognisable prefix of every generated secret.
KEY_PREFIX: str = "tvly-"

# Number of random characters following KEY_PREFIX.
KEY_RANDOM_LENGTH: int = 32

# Base-36 alphabet the random part is drawn from.
KEY_ALPHABET: str = "0123456789abcdefghijklmnopqrstuvwxyz"

# ─── Masked display ───────────────────────────────────────────────────────────

# Visible prefix length of a masked secret (matches len(KEY_PREFIX)).
MASK_VISIBLE_CHARS: int = 5

# Fixed run of mask characters appended after the visible prefix.
MASK_LENGTH: int = 32
MASK_CHAR: str = "•"

# ─── Permissions ──────────────────────────────────────────────────────────────

VALID_PERMISSIONS: frozenset[str] = frozenset({"read", "write", "admin"})
DEFAULT_PERMISSION: str = "read"

# ─── Rich-schema defaults (fields the slim table does not store) ─────────────

DEFAULT_MONTHLY_LIMIT: int = 1000

# ─── Validation playground ────────────────────────────────────────────────────

# Artificial latency before the playground reports a result.
DEFAULT_VALIDATION_DELAY_MS: int = 800
