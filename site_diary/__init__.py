"""
Site diary core: shift activity ledger and lifecycle controller.

- models: shifts, activity blocks (drilling / standby), reference catalog types
- validator: acceptance rules for a candidate block
- ledger: append-only, sequence-numbered blocks per shift
- summary: totals derived from the ledger on every read
- lifecycle: Created -> SafetyVerified -> Logging -> Submitted
- storage: sqlite / Snowflake record store
"""

from .errors import (
    ChecklistIncompleteError,
    ConfirmationRequiredError,
    DiaryError,
    ShiftNotFoundError,
    StateError,
    StoreError,
    ValidationError,
)
from .ledger import ActivityLedger
from .lifecycle import LifecycleState, ShiftLifecycle, ShiftSession
from .models import (
    SAFETY_CHECKLIST,
    STANDBY_REASONS,
    ActivityBlock,
    ActivityType,
    BlockCandidate,
    DrillingDetails,
    Shift,
    ShiftStatus,
    StandbyDetails,
    candidate_from_form,
)
from .summary import ShiftSummary, format_duration, summarize
from .validator import validate_block

__all__ = [
    "ActivityBlock",
    "ActivityLedger",
    "ActivityType",
    "BlockCandidate",
    "ChecklistIncompleteError",
    "ConfirmationRequiredError",
    "DiaryError",
    "DrillingDetails",
    "LifecycleState",
    "SAFETY_CHECKLIST",
    "STANDBY_REASONS",
    "Shift",
    "ShiftLifecycle",
    "ShiftNotFoundError",
    "ShiftSession",
    "ShiftStatus",
    "ShiftSummary",
    "StandbyDetails",
    "StateError",
    "StoreError",
    "ValidationError",
    "candidate_from_form",
    "format_duration",
    "summarize",
    "validate_block",
]
