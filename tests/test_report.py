from io import BytesIO

import pandas as pd
import pytest

from conftest import SHIFT_DATE, at
from site_diary.models import ActivityBlock, DrillingDetails, Shift, StandbyDetails
from site_diary.report import BLOCK_COLUMNS, blocks_frame, summary_excel_bytes, summary_rows
from site_diary.summary import summarize


@pytest.fixture
def blocks():
    return [
        ActivityBlock("b2", "s1", 2, at(8), at(8, 20), StandbyDetails("Weather Delay")),
        ActivityBlock("b1", "s1", 1, at(7), at(8), DrillingDetails(0.0, 50.0, "bit-b555")),
    ]


def test_blocks_frame_rows_follow_sequence(blocks):
    df = blocks_frame(blocks, {"bit-b555": "SN-B555"})

    assert list(df.columns) == BLOCK_COLUMNS
    assert df["#"].tolist() == [1, 2]
    assert df["Type"].tolist() == ["DRILLING", "STANDBY"]
    assert df.loc[0, "Drill bit"] == "SN-B555"
    assert df.loc[0, "Meters"] == 50.0
    assert df.loc[1, "Standby reason"] == "Weather Delay"
    assert df["Minutes"].tolist() == [60, 20]
    assert df.loc[0, "Start"] == "07:00"


def test_blocks_frame_empty():
    df = blocks_frame([])
    assert df.empty
    assert list(df.columns) == BLOCK_COLUMNS


def test_summary_rows(blocks):
    values = {r["Metric"]: r["Value"] for r in summary_rows(summarize(blocks))}
    assert values == {
        "Total Hours": "1h 20m",
        "Total Meters Drilled": "50.0m",
        "Drilling Time": "1h 0m",
        "Total Standby": "20m",
        "Activity Blocks": "2",
    }


def test_summary_excel_has_both_sheets(blocks):
    shift = Shift("s1", SHIFT_DATE, "rig-001", "crew-001", safety_check_completed=True)
    data = summary_excel_bytes(shift, blocks, summarize(blocks), rig_name="Rig 001 (Comacchio)", crew_name="John Smith")

    sheets = pd.read_excel(BytesIO(data), sheet_name=None, engine="openpyxl")
    assert set(sheets) == {"Summary", "Activity Blocks"}

    summary = dict(zip(sheets["Summary"]["Metric"], sheets["Summary"]["Value"]))
    assert summary["Rig"] == "Rig 001 (Comacchio)"
    assert summary["Lead Driller"] == "John Smith"
    assert summary["Total Hours"] == "1h 20m"
    assert len(sheets["Activity Blocks"]) == 2
