"""Pytest configuration and fixtures."""

import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, List

import pytest

from site_diary import storage
from site_diary.ledger import ActivityLedger
from site_diary.lifecycle import ShiftLifecycle
from site_diary.models import BlockCandidate, DrillingDetails, StandbyDetails

SHIFT_DATE = date(2025, 3, 14)


def at(hour: int, minute: int = 0, second: int = 0) -> datetime:
    return datetime(SHIFT_DATE.year, SHIFT_DATE.month, SHIFT_DATE.day, hour, minute, second)


def drilling(start, end, start_depth, end_depth, bit="bit-b555") -> BlockCandidate:
    return BlockCandidate(start_time=start, end_time=end, details=DrillingDetails(start_depth, end_depth, bit))


def standby(start, end, reason="Weather Delay") -> BlockCandidate:
    return BlockCandidate(start_time=start, end_time=end, details=StandbyDetails(reason))


class FakeStore:
    """In-memory stand-in for the storage module.

    `fail` names operations that should raise; `reverse_blocks` makes
    list_blocks return rows newest first.
    """

    def __init__(self, reverse_blocks: bool = False):
        self.shifts: Dict[str, Dict[str, Any]] = {}
        self.blocks: List[Dict[str, Any]] = []
        self.fail: set = set()
        self.reverse_blocks = reverse_blocks
        self.calls: List[str] = []

    def _enter(self, op: str) -> None:
        self.calls.append(op)
        if op in self.fail:
            raise ConnectionError(f"{op}: store unavailable")

    def create_shift(self, shift_date, rig_id, crew_member_id):
        self._enter("create_shift")
        shift_id = f"shift-{len(self.shifts) + 1}"
        self.shifts[shift_id] = {
            "id": shift_id,
            "shift_date": shift_date.isoformat(),
            "rig_id": rig_id,
            "crew_member_id": crew_member_id,
            "safety_check_completed": 0,
            "status": "In Progress",
        }
        return dict(self.shifts[shift_id])

    def get_shift(self, shift_id):
        self._enter("get_shift")
        row = self.shifts.get(shift_id)
        return dict(row) if row else None

    def set_safety_verified(self, shift_id):
        self._enter("set_safety_verified")
        if shift_id not in self.shifts:
            return False
        self.shifts[shift_id]["safety_check_completed"] = 1
        return True

    def set_submitted(self, shift_id):
        self._enter("set_submitted")
        if shift_id not in self.shifts:
            return False
        self.shifts[shift_id]["status"] = "Submitted"
        return True

    def insert_block(self, shift_id, sequence_order, record):
        self._enter("insert_block")
        existing = [b for b in self.blocks if b["shift_id"] == shift_id]
        if sequence_order != len(existing) + 1:
            raise RuntimeError("stale sequence_order")
        row = dict(record, id=f"block-{len(self.blocks) + 1}", shift_id=shift_id, sequence_order=sequence_order)
        self.blocks.append(row)
        return dict(row)

    def list_blocks(self, shift_id):
        self._enter("list_blocks")
        rows = [dict(b) for b in self.blocks if b["shift_id"] == shift_id]
        rows.sort(key=lambda r: r["sequence_order"], reverse=self.reverse_blocks)
        return rows


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def ledger(fake_store: FakeStore) -> ActivityLedger:
    return ActivityLedger(fake_store)


@pytest.fixture
def lifecycle(fake_store: FakeStore) -> ShiftLifecycle:
    return ShiftLifecycle(fake_store)


@pytest.fixture
def catalog() -> Dict[str, Any]:
    path = Path(__file__).parent.parent / "config" / "catalog.json"
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def sqlite_store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, catalog: Dict[str, Any]):
    """The real storage module, backed by a fresh sqlite file."""
    monkeypatch.setattr(storage, "DB_PATH", str(tmp_path / "data" / "site_diary.db"))
    monkeypatch.setattr(storage, "_try_get_sf_session", lambda: None)
    storage.init_storage()
    storage.upsert_reference_data(catalog["rigs"], catalog["crew_members"], catalog["drill_bits"])
    return storage
