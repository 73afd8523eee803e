"""
Append-only activity ledger for one shift.

Blocks are numbered 1..N in acceptance order. There is no edit or delete:
a mistake is corrected by appending a compensating block.
"""

import logging
from datetime import datetime
from types import ModuleType
from typing import Any, List, Optional, Sequence, Union

from . import storage
from .errors import store_call
from .models import ActivityBlock, BlockCandidate, DrillingDetails
from .summary import ShiftSummary, summarize
from .validator import validate_block

logger = logging.getLogger(__name__)


def start_depth_after(blocks: Sequence[ActivityBlock]) -> float:
    """End depth of the latest drilling block, 0.0 when none has been logged."""
    for b in reversed(blocks):
        if isinstance(b.details, DrillingDetails):
            return b.details.end_depth
    return 0.0


def start_time_after(blocks: Sequence[ActivityBlock]) -> Optional[datetime]:
    return blocks[-1].end_time if blocks else None


class ActivityLedger:
    def __init__(self, store: Union[ModuleType, Any] = storage):
        self.store = store

    def list(self, shift_id: str) -> List[ActivityBlock]:
        """Accepted blocks in sequence order. Always a fresh list."""
        rows = store_call(self.store, "list_blocks", shift_id)
        blocks = [ActivityBlock.from_record(r) for r in rows]
        blocks.sort(key=lambda b: b.sequence_order)
        return blocks

    def append(self, shift_id: str, candidate: BlockCandidate) -> ActivityBlock:
        existing = self.list(shift_id)
        validate_block(candidate, existing)
        # The store enforces (shift_id, sequence_order) uniqueness, so the
        # number and the write land together or not at all.
        sequence_order = len(existing) + 1
        row = store_call(self.store, "insert_block", shift_id, sequence_order, candidate.to_record())
        block = ActivityBlock.from_record(row)
        logger.info(
            "shift %s: accepted block #%d (%s)", shift_id, block.sequence_order, block.activity_type.value
        )
        return block

    def next_start_depth(self, shift_id: str) -> float:
        """Default start depth for the next drilling block."""
        return start_depth_after(self.list(shift_id))

    def next_start_time(self, shift_id: str) -> Optional[datetime]:
        return start_time_after(self.list(shift_id))

    def summary(self, shift_id: str) -> ShiftSummary:
        return summarize(self.list(shift_id))
