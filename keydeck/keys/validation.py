"""Validation Flow — check a candidate key against the loaded key set.

The lookup is a plain equality scan over the records the controller already
holds; nothing is re-fetched from the store. A fixed artificial delay runs
before the answer on every non-blank candidate.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Optional

from keydeck.constants import DEFAULT_VALIDATION_DELAY_MS
from keydeck.keys.models import KeyRecord, ValidationResult, mask_secret
from keydeck.utils.logger import get_logger

logger = get_logger(__name__)

MSG_MISSING = "No API key provided."
MSG_VALID = "API key is valid and active."
MSG_INVALID = "API key not found or invalid."


async def validate_candidate(
    candidate: Optional[str],
    records: Iterable[KeyRecord],
    delay_s: float = DEFAULT_VALIDATION_DELAY_MS / 1000.0,
) -> ValidationResult:
    """Return valid with the matching record, or invalid with a reason.

    A missing or blank candidate is rejected immediately, without the delay.
    """
    if candidate is None or not candidate.strip():
        logger.info("key_validation_rejected", reason="missing")
        return ValidationResult(status="invalid", message=MSG_MISSING)

    candidate = candidate.strip()
    if delay_s > 0:
        await asyncio.sleep(delay_s)

    for record in records:
        if record.secret == candidate:
            logger.info("key_validation_passed", key_id=record.id)
            return ValidationResult(status="valid", message=MSG_VALID, record=record)

    logger.info("key_validation_failed", masked_candidate=mask_secret(candidate))
    return ValidationResult(status="invalid", message=MSG_INVALID)
