"""
Acceptance rules for activity blocks.

Rules are applied in order and the first failure wins:

a. details are one of the two known variants (drilling, standby)
b. required fields are present and well-typed
c. end time is not earlier than start time
d. drilling covers a positive depth interval and names a drill bit

Depth continuity with the previous drilling block is *not* a rule here; the
ledger only offers it as a default start depth.
"""

import logging
import math
from datetime import datetime
from typing import Any, Sequence

from .errors import ValidationError
from .models import STANDBY_REASONS, ActivityBlock, BlockCandidate, DrillingDetails, StandbyDetails

logger = logging.getLogger(__name__)


def _is_depth(val: Any) -> bool:
    if isinstance(val, bool) or not isinstance(val, (int, float)):
        return False
    return math.isfinite(val) and val >= 0


def _check_fields(candidate: BlockCandidate) -> None:
    for name in ("start_time", "end_time"):
        if not isinstance(getattr(candidate, name), datetime):
            raise ValidationError(name, "a start and end time are required")
    if (candidate.start_time.tzinfo is None) != (candidate.end_time.tzinfo is None):
        raise ValidationError("end_time", "start and end time must both carry a timezone or neither")

    details = candidate.details
    if isinstance(details, DrillingDetails):
        for name in ("start_depth", "end_depth"):
            if not _is_depth(getattr(details, name)):
                raise ValidationError(name, "depth must be a non-negative number of meters")
        if details.drill_bit_id is not None and not isinstance(details.drill_bit_id, str):
            raise ValidationError("drill_bit_id", "drill bit reference must be an identifier")
        return

    reason = details.reason
    if not isinstance(reason, str) or not reason.strip():
        raise ValidationError("standby_reason", "a standby reason is required")
    if reason not in STANDBY_REASONS:
        raise ValidationError("standby_reason", f"unknown standby reason: {reason!r}")


def validate_block(candidate: BlockCandidate, prior_blocks: Sequence[ActivityBlock]) -> None:
    """Raise ValidationError if `candidate` may not be appended after `prior_blocks`.

    Pure: neither argument is modified and nothing is persisted.
    """
    try:
        if not isinstance(candidate.details, (DrillingDetails, StandbyDetails)):
            raise ValidationError("activity_type", "activity type must be DRILLING or STANDBY")

        _check_fields(candidate)

        if candidate.end_time < candidate.start_time:
            raise ValidationError("end_time", "end time cannot be earlier than start time")

        details = candidate.details
        if isinstance(details, DrillingDetails):
            if details.end_depth <= details.start_depth:
                raise ValidationError("end_depth", "end depth must be greater than start depth")
            if not details.drill_bit_id or not details.drill_bit_id.strip():
                raise ValidationError("drill_bit_id", "a drill bit is required for drilling")
    except ValidationError as e:
        logger.debug("block rejected after %d prior blocks: %s", len(prior_blocks), e)
        raise
