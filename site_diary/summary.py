"""
End-of-shift and running totals.

Totals are always derived from the full block list; nothing is cached between
calls, so a summary can never drift from the ledger it was computed from.
"""

import math
from dataclasses import dataclass
from typing import Iterable

from .models import ActivityBlock, DrillingDetails, StandbyDetails


@dataclass(frozen=True)
class ShiftSummary:
    total_meters_drilled: float = 0.0
    drilling_minutes: int = 0
    standby_minutes: int = 0
    total_minutes: int = 0
    block_count: int = 0


def block_minutes(block: ActivityBlock) -> int:
    """Duration rounded to the nearest whole minute, halves rounded up."""
    seconds = (block.end_time - block.start_time).total_seconds()
    return int(math.floor(seconds / 60 + 0.5))


def summarize(blocks: Iterable[ActivityBlock]) -> ShiftSummary:
    blocks = list(blocks)
    meters = 0.0
    drilling = 0
    standby = 0
    for b in blocks:
        if isinstance(b.details, DrillingDetails):
            meters += b.details.meters
            drilling += block_minutes(b)
        elif isinstance(b.details, StandbyDetails):
            standby += block_minutes(b)
    return ShiftSummary(
        total_meters_drilled=meters,
        drilling_minutes=drilling,
        standby_minutes=standby,
        total_minutes=drilling + standby,
        block_count=len(blocks),
    )


def format_duration(minutes: int) -> str:
    hours, mins = divmod(int(minutes), 60)
    if hours > 0:
        return f"{hours}h {mins}m"
    return f"{mins}m"
