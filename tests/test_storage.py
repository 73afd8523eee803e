"""
Tests for the sqlite backend of the record store, and the core running on top of it.
"""

import sqlite3

import pytest

from conftest import SHIFT_DATE, at, drilling, standby
from site_diary.errors import StoreError
from site_diary.ledger import ActivityLedger
from site_diary.lifecycle import LifecycleState, ShiftLifecycle
from site_diary.models import SAFETY_CHECKLIST, Shift, ShiftStatus


def test_backend_is_sqlite_without_snowflake(sqlite_store):
    assert sqlite_store.backend() == "sqlite"


def test_catalog_is_sorted_by_name(sqlite_store):
    rigs = sqlite_store.list_rigs()
    crew = sqlite_store.list_crew_members()

    assert [r["id"] for r in rigs] == ["rig-001", "rig-002", "rig-003"]
    assert [c["name"] for c in crew] == sorted(c["name"] for c in crew)
    assert {c["role"] for c in crew} == {"Lead Driller", "Second Man", "Supervisor"}


def test_only_available_bits_are_listed(sqlite_store, catalog):
    bits = [dict(b) for b in catalog["drill_bits"]]
    bits[0]["status"] = "Retired"
    sqlite_store.upsert_reference_data([], [], bits)

    listed = sqlite_store.list_available_drill_bits()
    assert "bit-b555" not in [b["id"] for b in listed]
    assert [b["serial_number"] for b in listed] == ["SN-B556", "SN-C221", "SN-C222", "SN-D100"]


def test_upsert_reference_data_is_repeatable(sqlite_store, catalog):
    sqlite_store.upsert_reference_data(catalog["rigs"], catalog["crew_members"], catalog["drill_bits"])
    assert len(sqlite_store.list_rigs()) == len(catalog["rigs"])


def test_create_and_get_shift(sqlite_store):
    row = sqlite_store.create_shift(SHIFT_DATE, "rig-002", "crew-004")
    shift = Shift.from_record(sqlite_store.get_shift(row["id"]))

    assert shift.shift_date == SHIFT_DATE
    assert shift.rig_id == "rig-002"
    assert shift.status is ShiftStatus.IN_PROGRESS
    assert not shift.safety_check_completed


def test_create_shift_requires_fields(sqlite_store):
    with pytest.raises(ValueError):
        sqlite_store.create_shift(SHIFT_DATE, "", "crew-001")


def test_get_unknown_shift(sqlite_store):
    assert sqlite_store.get_shift("nope") is None


def test_shift_flags(sqlite_store):
    shift_id = sqlite_store.create_shift(SHIFT_DATE, "rig-001", "crew-001")["id"]

    assert sqlite_store.set_safety_verified(shift_id) is True
    assert sqlite_store.set_submitted(shift_id) is True
    row = sqlite_store.get_shift(shift_id)
    assert row["safety_check_completed"] == 1
    assert row["status"] == "Submitted"

    assert sqlite_store.set_safety_verified("nope") is False
    assert sqlite_store.set_submitted("nope") is False


def test_insert_and_list_blocks(sqlite_store):
    shift_id = sqlite_store.create_shift(SHIFT_DATE, "rig-001", "crew-001")["id"]
    sqlite_store.insert_block(shift_id, 1, drilling(at(7), at(8), 0.0, 50.0).to_record())
    sqlite_store.insert_block(shift_id, 2, standby(at(8), at(8, 20)).to_record())

    rows = sqlite_store.list_blocks(shift_id)
    assert [r["sequence_order"] for r in rows] == [1, 2]
    assert rows[0]["activity_type"] == "DRILLING"
    assert rows[0]["standby_reason"] is None
    assert rows[1]["start_depth"] is None
    assert rows[1]["standby_reason"] == "Weather Delay"
    assert rows[1]["start_time"] == "2025-03-14T08:00:00"


@pytest.mark.parametrize("seq", [1, 3])
def test_stale_sequence_order_is_refused(sqlite_store, seq):
    shift_id = sqlite_store.create_shift(SHIFT_DATE, "rig-001", "crew-001")["id"]
    sqlite_store.insert_block(shift_id, 1, standby(at(7), at(8)).to_record())

    with pytest.raises(sqlite3.IntegrityError):
        sqlite_store.insert_block(shift_id, seq, standby(at(8), at(9)).to_record())
    assert len(sqlite_store.list_blocks(shift_id)) == 1


def test_insert_block_requires_times(sqlite_store):
    record = standby(at(7), at(8)).to_record()
    record["end_time"] = None
    with pytest.raises(ValueError):
        sqlite_store.insert_block("any", 1, record)


def test_ledger_wraps_sqlite_failures(sqlite_store):
    ledger = ActivityLedger(sqlite_store)
    # Unknown shift: the foreign key rejects the row.
    with pytest.raises(StoreError) as exc:
        ledger.append("nope", standby(at(7), at(8)))
    assert isinstance(exc.value.__cause__, sqlite3.IntegrityError)


def test_full_shift_over_sqlite(sqlite_store):
    lifecycle = ShiftLifecycle(sqlite_store)
    session = lifecycle.start_shift(SHIFT_DATE, "rig-001", "crew-001")
    session = lifecycle.verify_safety(session, {item.key: True for item in SAFETY_CHECKLIST})
    session = lifecycle.start_logging(session)

    lifecycle.append_block(session, drilling(at(7), at(8), 0.0, 50.0))
    lifecycle.append_block(session, standby(at(8), at(8, 20), "Weather Delay"))

    resumed = lifecycle.resume(session.shift_id)
    assert resumed.state is LifecycleState.SAFETY_VERIFIED
    resumed = lifecycle.start_logging(resumed)
    block = lifecycle.append_block(resumed, drilling(at(8, 20), at(9), 50.0, 61.5))
    assert block.sequence_order == 3

    totals = lifecycle.running_summary(resumed)
    assert totals.block_count == 3
    assert totals.total_meters_drilled == pytest.approx(61.5)
    assert totals.drilling_minutes == 100
    assert totals.standby_minutes == 20

    submitted = lifecycle.submit(resumed, confirmed=True)
    assert submitted.state is LifecycleState.SUBMITTED
    assert lifecycle.resume(session.shift_id).state is LifecycleState.SUBMITTED
