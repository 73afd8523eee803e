"""
Shift lifecycle: Created -> SafetyVerified -> Logging -> Submitted.

The caller owns a ``ShiftSession`` and passes it into every operation; each
transition returns a new session. Nothing is remembered here between calls
other than what the store persists (safety flag, status).
"""

import logging
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from types import ModuleType
from typing import Any, List, Mapping, Optional, Union

from . import storage
from .errors import (
    ChecklistIncompleteError,
    ConfirmationRequiredError,
    ShiftNotFoundError,
    StateError,
    ValidationError,
    store_call,
)
from .ledger import ActivityLedger
from .models import SAFETY_CHECKLIST, ActivityBlock, BlockCandidate, Shift, ShiftStatus
from .summary import ShiftSummary

logger = logging.getLogger(__name__)


class LifecycleState(str, Enum):
    CREATED = "Created"
    SAFETY_VERIFIED = "SafetyVerified"
    LOGGING = "Logging"
    SUBMITTED = "Submitted"


@dataclass(frozen=True)
class ShiftSession:
    shift: Shift
    state: LifecycleState

    @property
    def shift_id(self) -> str:
        return self.shift.id


def state_of(shift: Shift) -> LifecycleState:
    """Lifecycle state implied by a persisted shift record.

    Logging is never persisted on its own; a verified shift resumes as
    SafetyVerified and re-enters Logging through ``start_logging``.
    """
    if shift.status is ShiftStatus.SUBMITTED:
        return LifecycleState.SUBMITTED
    if shift.safety_check_completed:
        return LifecycleState.SAFETY_VERIFIED
    return LifecycleState.CREATED


def missing_checklist_items(checklist: Mapping[str, bool]) -> List[str]:
    return [item.key for item in SAFETY_CHECKLIST if checklist.get(item.key) is not True]


class ShiftLifecycle:
    def __init__(self, store: Union[ModuleType, Any] = storage, ledger: Optional[ActivityLedger] = None):
        self.store = store
        self.ledger = ledger or ActivityLedger(store)

    def _require(self, session: Optional[ShiftSession], operation: str, *allowed: LifecycleState) -> ShiftSession:
        if session is None:
            raise ShiftNotFoundError(None)
        if session.state not in allowed:
            raise StateError(operation, session.state, allowed)
        return session

    def _reload(self, shift_id: str) -> Shift:
        row = store_call(self.store, "get_shift", shift_id)
        if not row:
            raise ShiftNotFoundError(shift_id)
        return Shift.from_record(row)

    def _stored_logging(self, session: ShiftSession, operation: str) -> Shift:
        """Re-read the shift and refuse when the store no longer allows logging on it."""
        shift = self._reload(session.shift_id)
        if shift.submitted or not shift.safety_check_completed:
            raise StateError(operation, state_of(shift), (LifecycleState.LOGGING,))
        return shift

    def start_shift(self, shift_date: date, rig_id: str, crew_member_id: str) -> ShiftSession:
        if not rig_id or not str(rig_id).strip():
            raise ValidationError("rig_id", "select a rig")
        if not crew_member_id or not str(crew_member_id).strip():
            raise ValidationError("crew_member_id", "select a lead driller")
        row = store_call(self.store, "create_shift", shift_date, rig_id, crew_member_id)
        shift = Shift.from_record(row)
        logger.info("shift %s created for %s (rig=%s, crew=%s)", shift.id, shift_date, rig_id, crew_member_id)
        return ShiftSession(shift=shift, state=LifecycleState.CREATED)

    def resume(self, shift_id: Optional[str]) -> ShiftSession:
        if not shift_id:
            raise ShiftNotFoundError(None)
        shift = self._reload(shift_id)
        return ShiftSession(shift=shift, state=state_of(shift))

    def verify_safety(self, session: Optional[ShiftSession], checklist: Mapping[str, bool]) -> ShiftSession:
        session = self._require(session, "verify_safety", LifecycleState.CREATED)
        missing = missing_checklist_items(checklist)
        if missing:
            raise ChecklistIncompleteError(missing)
        if not store_call(self.store, "set_safety_verified", session.shift_id):
            raise ShiftNotFoundError(session.shift_id)
        logger.info("shift %s: safety check completed", session.shift_id)
        return ShiftSession(
            shift=replace(session.shift, safety_check_completed=True),
            state=LifecycleState.SAFETY_VERIFIED,
        )

    def start_logging(self, session: Optional[ShiftSession]) -> ShiftSession:
        session = self._require(session, "start_logging", LifecycleState.SAFETY_VERIFIED)
        logger.info("shift %s: logging started", session.shift_id)
        return replace(session, state=LifecycleState.LOGGING)

    def append_block(self, session: Optional[ShiftSession], candidate: BlockCandidate) -> ActivityBlock:
        session = self._require(session, "append_block", LifecycleState.LOGGING)
        self._stored_logging(session, "append_block")
        return self.ledger.append(session.shift_id, candidate)

    def running_summary(self, session: Optional[ShiftSession]) -> ShiftSummary:
        if session is None:
            raise ShiftNotFoundError(None)
        return self.ledger.summary(session.shift_id)

    def submit(self, session: Optional[ShiftSession], confirmed: bool) -> ShiftSession:
        session = self._require(session, "submit", LifecycleState.LOGGING)
        if confirmed is not True:
            raise ConfirmationRequiredError()
        shift = self._stored_logging(session, "submit")
        if not store_call(self.store, "set_submitted", session.shift_id):
            raise ShiftNotFoundError(session.shift_id)
        logger.info("shift %s: submitted", session.shift_id)
        return ShiftSession(
            shift=replace(shift, status=ShiftStatus.SUBMITTED),
            state=LifecycleState.SUBMITTED,
        )
