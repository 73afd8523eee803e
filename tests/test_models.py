from datetime import date

import pytest

from conftest import at, drilling, standby
from site_diary.errors import ValidationError
from site_diary.models import (
    ActivityBlock,
    ActivityType,
    DrillBit,
    DrillingDetails,
    Shift,
    ShiftStatus,
    StandbyDetails,
    candidate_from_form,
)


def test_candidate_from_drilling_form():
    c = candidate_from_form({
        "activity_type": "DRILLING",
        "start_time": "2025-03-14T07:00:00",
        "end_time": at(8),
        "start_depth": "12.5",
        "end_depth": 20.0,
        "drill_bit_id": "bit-c221",
        "standby_reason": "Weather Delay",
    })
    assert c.activity_type is ActivityType.DRILLING
    assert c.start_time == at(7)
    assert c.details == DrillingDetails(12.5, 20.0, "bit-c221")


def test_candidate_from_standby_form_drops_drilling_fields():
    c = candidate_from_form({
        "activity_type": ActivityType.STANDBY,
        "start_time": at(8),
        "end_time": at(9),
        "start_depth": 5.0,
        "standby_reason": "Break Time",
    })
    assert c.details == StandbyDetails("Break Time")
    record = c.to_record()
    assert record["start_depth"] is None
    assert record["drill_bit_id"] is None


@pytest.mark.parametrize(
    "form, field",
    [
        ({"activity_type": "CORING"}, "activity_type"),
        ({"activity_type": None}, "activity_type"),
        ({"activity_type": "DRILLING", "start_depth": "ten"}, "start_depth"),
        ({"activity_type": "STANDBY", "start_time": "7am"}, "start_time"),
    ],
)
def test_candidate_from_bad_form(form, field):
    with pytest.raises(ValidationError) as exc:
        candidate_from_form(form)
    assert exc.value.field == field


def test_candidate_record_uses_iso_seconds():
    record = drilling(at(7, 5, 30), at(8), 0.0, 1.5).to_record()
    assert record["start_time"] == "2025-03-14T07:05:30"
    assert record["activity_type"] == "DRILLING"
    assert record["standby_reason"] is None


def test_block_record_round_trip():
    block = ActivityBlock("b1", "s1", 3, at(8), at(9), StandbyDetails("Client Delay"))
    again = ActivityBlock.from_record(block.to_record())
    assert again == block
    assert again.activity_type is ActivityType.STANDBY


def test_block_from_store_row_coerces_types():
    row = dict(standby(at(8), at(9)).to_record(), id="b1", shift_id="s1", sequence_order="2")
    row.update(activity_type="DRILLING", start_depth=1, end_depth="3.5", drill_bit_id="bit-b555", standby_reason=None)
    block = ActivityBlock.from_record(row)
    assert block.sequence_order == 2
    assert block.details.meters == pytest.approx(2.5)


def test_shift_from_record():
    shift = Shift.from_record({
        "id": "s1",
        "shift_date": "2025-03-14",
        "rig_id": "rig-001",
        "crew_member_id": "crew-001",
        "safety_check_completed": 1,
        "status": "Submitted",
    })
    assert shift.shift_date == date(2025, 3, 14)
    assert shift.safety_check_completed is True
    assert shift.status is ShiftStatus.SUBMITTED
    assert shift.submitted
    assert Shift.from_record(shift.to_record()) == shift


def test_drill_bit_defaults_to_available():
    bit = DrillBit.from_record({"id": "bit-x", "serial_number": "SN-X", "type": "PDC"})
    assert bit.bit_type == "PDC"
    assert bit.status.value == "Available"
