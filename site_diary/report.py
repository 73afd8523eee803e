from io import BytesIO
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from .models import ActivityBlock, DrillingDetails, Shift
from .summary import ShiftSummary, block_minutes, format_duration

BLOCK_COLUMNS = [
    "#",
    "Start",
    "End",
    "Type",
    "Start depth (m)",
    "End depth (m)",
    "Meters",
    "Drill bit",
    "Standby reason",
    "Minutes",
]


def blocks_frame(blocks: Iterable[ActivityBlock], bit_labels: Optional[Mapping[str, str]] = None) -> pd.DataFrame:
    """One row per block, in sequence order. `bit_labels` maps drill bit id to a display serial."""
    bit_labels = bit_labels or {}
    rows: List[Dict[str, Any]] = []
    for b in sorted(blocks, key=lambda x: x.sequence_order):
        d = b.details
        drilling = isinstance(d, DrillingDetails)
        rows.append({
            "#": b.sequence_order,
            "Start": b.start_time.strftime("%H:%M"),
            "End": b.end_time.strftime("%H:%M"),
            "Type": b.activity_type.value,
            "Start depth (m)": d.start_depth if drilling else None,
            "End depth (m)": d.end_depth if drilling else None,
            "Meters": round(d.meters, 1) if drilling else None,
            "Drill bit": bit_labels.get(d.drill_bit_id, d.drill_bit_id) if drilling else None,
            "Standby reason": None if drilling else d.reason,
            "Minutes": block_minutes(b),
        })
    return pd.DataFrame(rows, columns=BLOCK_COLUMNS)


def summary_rows(summary: ShiftSummary) -> List[Dict[str, Any]]:
    return [
        {"Metric": "Total Hours", "Value": format_duration(summary.total_minutes)},
        {"Metric": "Total Meters Drilled", "Value": f"{summary.total_meters_drilled:.1f}m"},
        {"Metric": "Drilling Time", "Value": format_duration(summary.drilling_minutes)},
        {"Metric": "Total Standby", "Value": format_duration(summary.standby_minutes)},
        {"Metric": "Activity Blocks", "Value": str(summary.block_count)},
    ]


def summary_excel_bytes(
    shift: Shift,
    blocks: Iterable[ActivityBlock],
    summary: ShiftSummary,
    rig_name: str = "",
    crew_name: str = "",
    bit_labels: Optional[Mapping[str, str]] = None,
) -> bytes:
    buf = BytesIO()
    header = [
        {"Metric": "Date", "Value": shift.shift_date.isoformat()},
        {"Metric": "Rig", "Value": rig_name or shift.rig_id},
        {"Metric": "Lead Driller", "Value": crew_name or shift.crew_member_id},
        {"Metric": "Status", "Value": shift.status.value},
    ]
    with pd.ExcelWriter(buf, engine="openpyxl") as writer:
        pd.DataFrame(header + summary_rows(summary)).to_excel(writer, sheet_name="Summary", index=False)
        blocks_frame(blocks, bit_labels).to_excel(writer, sheet_name="Activity Blocks", index=False)
    return buf.getvalue()
