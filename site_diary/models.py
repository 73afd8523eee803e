"""
Shared data types for the site diary.

Records cross the store boundary as plain dicts (``to_record`` / ``from_record``).
Activity block details are a tagged union: a block carries either
``DrillingDetails`` or ``StandbyDetails``, never a mix of both field sets.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .errors import ValidationError


class ActivityType(str, Enum):
    DRILLING = "DRILLING"
    STANDBY = "STANDBY"


class ShiftStatus(str, Enum):
    IN_PROGRESS = "In Progress"
    SUBMITTED = "Submitted"


class DrillBitStatus(str, Enum):
    AVAILABLE = "Available"
    IN_USE = "In Use"
    RETIRED = "Retired"


STANDBY_REASONS: Tuple[str, ...] = (
    "Weather Delay",
    "Client Delay",
    "Equipment Maintenance",
    "Safety Issue",
    "Waiting on Materials",
    "Break Time",
)


@dataclass(frozen=True)
class ChecklistItem:
    key: str
    label: str
    sublabel: str


SAFETY_CHECKLIST: Tuple[ChecklistItem, ...] = (
    ChecklistItem("ppe", "PPE Equipment Worn", "Hard hat, gloves, safety boots, hi-vis"),
    ChecklistItem("equipment", "Equipment Inspected", "Rig systems operational and safe"),
    ChecklistItem("hazards", "Hazards Identified", "Work area assessed for risks"),
    ChecklistItem("emergency", "Emergency Procedures Known", "Exit routes and first aid location confirmed"),
)


def _ts(val: Union[datetime, str]) -> datetime:
    return val if isinstance(val, datetime) else datetime.fromisoformat(str(val))


def _iso(dt: datetime) -> str:
    return dt.isoformat(timespec="seconds")


# ---------------- Reference catalog ----------------
@dataclass(frozen=True)
class Rig:
    id: str
    name: str

    @classmethod
    def from_record(cls, r: Mapping[str, Any]) -> "Rig":
        return cls(id=str(r["id"]), name=str(r["name"]))


@dataclass(frozen=True)
class CrewMember:
    id: str
    name: str
    role: str = ""

    @classmethod
    def from_record(cls, r: Mapping[str, Any]) -> "CrewMember":
        return cls(id=str(r["id"]), name=str(r["name"]), role=str(r.get("role") or ""))


@dataclass(frozen=True)
class DrillBit:
    id: str
    serial_number: str
    bit_type: str = ""
    status: DrillBitStatus = DrillBitStatus.AVAILABLE

    @classmethod
    def from_record(cls, r: Mapping[str, Any]) -> "DrillBit":
        return cls(
            id=str(r["id"]),
            serial_number=str(r["serial_number"]),
            bit_type=str(r.get("bit_type") or r.get("type") or ""),
            status=DrillBitStatus(r.get("status") or DrillBitStatus.AVAILABLE.value),
        )


# ---------------- Shift ----------------
@dataclass(frozen=True)
class Shift:
    id: str
    shift_date: date
    rig_id: str
    crew_member_id: str
    safety_check_completed: bool = False
    status: ShiftStatus = ShiftStatus.IN_PROGRESS

    @property
    def submitted(self) -> bool:
        return self.status is ShiftStatus.SUBMITTED

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "shift_date": self.shift_date.isoformat(),
            "rig_id": self.rig_id,
            "crew_member_id": self.crew_member_id,
            "safety_check_completed": self.safety_check_completed,
            "status": self.status.value,
        }

    @classmethod
    def from_record(cls, r: Mapping[str, Any]) -> "Shift":
        d = r["shift_date"]
        if isinstance(d, datetime):
            d = d.date()
        elif not isinstance(d, date):
            d = date.fromisoformat(str(d)[:10])
        return cls(
            id=str(r["id"]),
            shift_date=d,
            rig_id=str(r["rig_id"]),
            crew_member_id=str(r["crew_member_id"]),
            safety_check_completed=bool(r.get("safety_check_completed")),
            status=ShiftStatus(r.get("status") or ShiftStatus.IN_PROGRESS.value),
        )


# ---------------- Activity blocks ----------------
@dataclass(frozen=True)
class DrillingDetails:
    start_depth: float
    end_depth: float
    drill_bit_id: str

    activity_type = ActivityType.DRILLING

    @property
    def meters(self) -> float:
        return self.end_depth - self.start_depth


@dataclass(frozen=True)
class StandbyDetails:
    reason: str

    activity_type = ActivityType.STANDBY


BlockDetails = Union[DrillingDetails, StandbyDetails]


def _details_record(details: BlockDetails) -> Dict[str, Any]:
    if isinstance(details, DrillingDetails):
        return {
            "activity_type": ActivityType.DRILLING.value,
            "start_depth": details.start_depth,
            "end_depth": details.end_depth,
            "drill_bit_id": details.drill_bit_id,
            "standby_reason": None,
        }
    return {
        "activity_type": ActivityType.STANDBY.value,
        "start_depth": None,
        "end_depth": None,
        "drill_bit_id": None,
        "standby_reason": details.reason,
    }


def _details_from_record(r: Mapping[str, Any]) -> BlockDetails:
    kind = ActivityType(r["activity_type"])
    if kind is ActivityType.DRILLING:
        return DrillingDetails(
            start_depth=float(r["start_depth"]),
            end_depth=float(r["end_depth"]),
            drill_bit_id=str(r["drill_bit_id"]),
        )
    return StandbyDetails(reason=str(r["standby_reason"]))


@dataclass(frozen=True)
class BlockCandidate:
    """An activity block that has not been accepted yet (no id, no sequence order)."""

    start_time: datetime
    end_time: datetime
    details: BlockDetails

    @property
    def activity_type(self) -> Optional[ActivityType]:
        return getattr(self.details, "activity_type", None)

    def to_record(self) -> Dict[str, Any]:
        out = {"start_time": _iso(self.start_time), "end_time": _iso(self.end_time)}
        out.update(_details_record(self.details))
        return out


@dataclass(frozen=True)
class ActivityBlock:
    id: str
    shift_id: str
    sequence_order: int
    start_time: datetime
    end_time: datetime
    details: BlockDetails

    @property
    def activity_type(self) -> ActivityType:
        return self.details.activity_type

    def to_record(self) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "shift_id": self.shift_id,
            "sequence_order": self.sequence_order,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
        }
        out.update(_details_record(self.details))
        return out

    @classmethod
    def from_record(cls, r: Mapping[str, Any]) -> "ActivityBlock":
        return cls(
            id=str(r["id"]),
            shift_id=str(r["shift_id"]),
            sequence_order=int(r["sequence_order"]),
            start_time=_ts(r["start_time"]),
            end_time=_ts(r["end_time"]),
            details=_details_from_record(r),
        )


def _form_depth(data: Mapping[str, Any], key: str) -> Any:
    val = data.get(key)
    if isinstance(val, str):
        try:
            return float(val.strip())
        except ValueError:
            raise ValidationError(key, f"not a number: {val!r}")
    return val


def _form_time(data: Mapping[str, Any], key: str) -> Any:
    val = data.get(key)
    if isinstance(val, str):
        try:
            return datetime.fromisoformat(val.strip())
        except ValueError:
            raise ValidationError(key, f"not a timestamp: {val!r}")
    return val


def candidate_from_form(data: Mapping[str, Any]) -> BlockCandidate:
    """Build a candidate from loosely typed form values.

    Only the fields of the chosen activity type are read; the other
    variant's fields are dropped. Type checking of the values themselves is
    left to the validator.
    """
    raw_type = data.get("activity_type")
    try:
        kind = ActivityType(getattr(raw_type, "value", raw_type))
    except ValueError:
        raise ValidationError("activity_type", f"unknown activity type: {raw_type!r}")

    details: BlockDetails
    if kind is ActivityType.DRILLING:
        details = DrillingDetails(
            start_depth=_form_depth(data, "start_depth"),
            end_depth=_form_depth(data, "end_depth"),
            drill_bit_id=data.get("drill_bit_id") or "",
        )
    else:
        details = StandbyDetails(reason=data.get("standby_reason") or "")
    return BlockCandidate(
        start_time=_form_time(data, "start_time"),
        end_time=_form_time(data, "end_time"),
        details=details,
    )
