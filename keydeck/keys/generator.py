"""Toy bearer-token generator.

Format: ``tvly-`` followed by 32 characters drawn from ``[0-9a-z]``.

WARNING: uses the ``random`` module, which is NOT cryptographically secure.
The dashboard only stores these strings and checks membership; nothing
authenticates with them. Do not reuse this for real credentials
(``secrets.token_urlsafe`` is the right tool there).
"""

from __future__ import annotations

import random
from typing import Optional

from keydeck.constants import KEY_ALPHABET, KEY_PREFIX, KEY_RANDOM_LENGTH


def generate_secret(rng: Optional[random.Random] = None) -> str:
    """Return a new ``tvly-…`` secret. Pass ``rng`` for reproducible output in tests."""
    source = rng if rng is not None else random
    return KEY_PREFIX + "".join(source.choices(KEY_ALPHABET, k=KEY_RANDOM_LENGTH))
