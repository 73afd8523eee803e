import json
import logging
from datetime import date as date_cls, datetime, timedelta, time as time_cls
from pathlib import Path
from typing import Any, Dict, List, Optional

import streamlit as st
import plotly.express as px

from site_diary import (
    SAFETY_CHECKLIST,
    STANDBY_REASONS,
    ActivityType,
    ChecklistIncompleteError,
    LifecycleState,
    ShiftLifecycle,
    ShiftNotFoundError,
    ShiftSession,
    StateError,
    StoreError,
    ValidationError,
    candidate_from_form,
    format_duration,
    storage,
    summarize,
)
from site_diary.ledger import start_depth_after, start_time_after
from site_diary.report import blocks_frame, summary_excel_bytes

CONFIG = Path("config")
TYPE_COLORS = {
    "DRILLING": "#EAB308",
    "STANDBY": "#64748B",
}
THEMES = {
    "dark": {
        "bg": "#0F172A",
        "card": "#1E293B",
        "muted": "#94A3B8",
        "text": "#F8FAFC",
        "accent": "#EAB308",
        "border": "rgba(255,255,255,0.12)",
        "shadow": "0 18px 38px rgba(0,0,0,0.45)",
    },
    "light": {
        "bg": "#F4F6FA",
        "card": "#FFFFFF",
        "muted": "#5B6572",
        "text": "#0A1220",
        "accent": "#CA8A04",
        "border": "rgba(0,0,0,0.08)",
        "shadow": "0 10px 24px rgba(0,0,0,0.08)",
    },
}
VERSION = "Prototype v0.2.0"
TIME_STEP_MINUTES = 5
DEPTH_STEP = 0.1
SESSION_KEYS = ["diary_session", "view", "checklist", "confirmed", "block_type_select", "act_start_iso", "act_end_iso"]

logger = logging.getLogger(__name__)


def jload(path: Path, default: Any) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except Exception:
        return default


def load_catalog() -> Dict[str, Any]:
    data = jload(CONFIG / "catalog.json", {})
    if not isinstance(data, dict):
        data = {}
    return {
        "rigs": [r for r in data.get("rigs", []) if isinstance(r, dict) and r.get("id")],
        "crew_members": [c for c in data.get("crew_members", []) if isinstance(c, dict) and c.get("id")],
        "drill_bits": [b for b in data.get("drill_bits", []) if isinstance(b, dict) and b.get("id")],
    }


def ensure_theme():
    if "theme" not in st.session_state:
        st.session_state.theme = "dark"


def toggle_theme():
    st.session_state.theme = "light" if st.session_state.get("theme") == "dark" else "dark"


def dt_on(d: date_cls, t: time_cls) -> datetime:
    return datetime(d.year, d.month, d.day, t.hour, t.minute)


def time_options(shift_date: date_cls, hours: float = 36, step_minutes: int = TIME_STEP_MINUTES) -> List[datetime]:
    """Pickable instants from midnight of the shift date, covering shifts that run past midnight."""
    base = dt_on(shift_date, time_cls(0, 0))
    end = base + timedelta(hours=hours)
    opts = []
    cur = base
    while cur <= end:
        opts.append(cur)
        cur += timedelta(minutes=step_minutes)
    return opts


def format_time(dt: datetime, shift_date: Optional[date_cls] = None) -> str:
    if shift_date is not None and dt.date() != shift_date:
        return dt.strftime("%H:%M (+1d)")
    return dt.strftime("%H:%M")


def snap(options: List[datetime], target: datetime) -> datetime:
    return min(options, key=lambda x: abs((x - target).total_seconds()))


def style(theme: str):
    palette = THEMES.get(theme, THEMES["dark"])
    try:
        import plotly.io as pio  # type: ignore
        pio.templates.default = "plotly_dark" if theme == "dark" else "plotly_white"
    except Exception:
        pass
    st.markdown(
        f"""
        <style>
          :root {{
            --rsk-accent: {palette["accent"]};
            --rsk-bg: {palette["bg"]};
            --rsk-card: {palette["card"]};
            --rsk-muted: {palette["muted"]};
            --rsk-text: {palette["text"]};
            --rsk-border: {palette["border"]};
            --rsk-shadow: {palette["shadow"]};
          }}
          body {{background: var(--rsk-bg); color: var(--rsk-text);}}
          .block-container {{padding-top: 3.8rem; padding-bottom: 3rem; max-width: 960px;}}
          .card {{background: var(--rsk-card); border:1px solid var(--rsk-border); border-radius: 14px; padding: 16px; box-shadow: var(--rsk-shadow);}}
          .pill {{border-radius: 999px; padding: 6px 12px; font-size: 0.9rem; display: inline-block; margin-right: 6px; margin-bottom: 6px; color: var(--rsk-muted); border: 1px solid var(--rsk-border);}}
          .muted {{opacity:0.82; color: var(--rsk-muted);}}
          .title-lg {{font-size: 1.8rem; font-weight: 900; text-transform: uppercase; letter-spacing: 0.04em;}}
          .title-md {{font-size: 1.1rem; font-weight: 700; line-height: 1.1; margin:0;}}
          /* Glove-sized touch targets */
          .block-container .stButton>button,
          .block-container button[kind] {{
            min-height: 64px;
            font-size: 1.1rem;
            font-weight: 800;
            text-transform: uppercase;
            border-radius: 10px;
          }}
          .block-container button[kind="primary"] {{
            background: var(--rsk-accent);
            color: #000;
            border: none;
          }}
          .tight-row {{display:flex; gap:10px; flex-wrap:wrap;}}
        </style>
        """,
        unsafe_allow_html=True,
    )


@st.cache_resource
def boot(catalog: Dict[str, Any]):
    storage.init_storage()
    storage.upsert_reference_data(catalog["rigs"], catalog["crew_members"], catalog["drill_bits"])
    return True


def controller() -> ShiftLifecycle:
    return ShiftLifecycle(storage)


def current_session() -> Optional[ShiftSession]:
    return st.session_state.get("diary_session")


def set_session(session: ShiftSession, view: str):
    st.session_state.diary_session = session
    st.session_state.view = view


def restart(message: Optional[str] = None):
    for k in SESSION_KEYS:
        st.session_state.pop(k, None)
    if message:
        st.session_state.flash = message
    st.rerun()


def show_store_error(e: StoreError):
    logger.warning("store failure during %s", e.operation)
    st.error("Could not reach the diary database. Nothing was saved; please try again.")


def shift_card(session: ShiftSession, rigs: Dict[str, Dict[str, Any]], crew: Dict[str, Dict[str, Any]]):
    sh = session.shift
    rig = rigs.get(sh.rig_id, {}).get("name", sh.rig_id)
    lead = crew.get(sh.crew_member_id, {}).get("name", sh.crew_member_id)
    st.markdown(
        f"""
        <div class="card">
          <div class="title-md">{sh.shift_date.strftime('%A %d %B %Y')}</div>
          <div class="tight-row" style="margin-top:8px;">
            <span class="pill">Rig: {rig}</span>
            <span class="pill">Lead driller: {lead}</span>
            <span class="pill">Status: {session.state.value}</span>
          </div>
        </div>
        """,
        unsafe_allow_html=True,
    )


def setup_view(rigs: Dict[str, Dict[str, Any]], crew: Dict[str, Dict[str, Any]]):
    st.markdown("<div class='title-lg'>RSK Digital Site Diary</div>", unsafe_allow_html=True)
    st.caption("Ruggedized shift logging. Choose the rig and lead driller to start a shift.")
    if not rigs or not crew:
        st.warning("The reference catalog is empty. Add rigs and crew members to config/catalog.json.")
        return

    with st.form("setup_form"):
        shift_date = st.date_input("Shift date", value=date_cls.today())
        rig_ids = list(rigs.keys())
        rig_id = st.radio("Rig", rig_ids, format_func=lambda r: rigs[r]["name"])
        crew_ids = list(crew.keys())
        crew_id = st.radio(
            "Lead driller",
            crew_ids,
            format_func=lambda c: f"{crew[c]['name']} — {crew[c].get('role', '')}",
        )
        ok = st.form_submit_button("Start shift", type="primary", use_container_width=True)
        if not ok:
            return

    try:
        session = controller().start_shift(shift_date, rig_id, crew_id)
    except ValidationError as e:
        st.error(e.message)
        return
    except StoreError as e:
        show_store_error(e)
        return
    st.session_state.checklist = {item.key: False for item in SAFETY_CHECKLIST}
    set_session(session, "safety")
    st.rerun()


def safety_view(session: ShiftSession):
    st.markdown("## Safety check")
    st.caption("Complete all checks before starting the shift.")
    checklist = st.session_state.setdefault("checklist", {item.key: False for item in SAFETY_CHECKLIST})
    for item in SAFETY_CHECKLIST:
        checklist[item.key] = st.toggle(item.label, value=bool(checklist.get(item.key)), key=f"chk_{item.key}", help=item.sublabel)
        st.caption(item.sublabel)

    if st.button("Proceed to log", type="primary", use_container_width=True):
        lc = controller()
        try:
            verified = lc.verify_safety(session, checklist)
            set_session(lc.start_logging(verified), "log")
        except ChecklistIncompleteError as e:
            labels = {item.key: item.label for item in SAFETY_CHECKLIST}
            st.error("Still to complete: " + ", ".join(labels.get(k, k) for k in e.missing))
            return
        except StoreError as e:
            show_store_error(e)
            return
        st.rerun()


def block_timeline(blocks: List[Any]):
    """Single-lane timeline of the accepted blocks, coloured by activity type."""
    rows = []
    for b in blocks:
        if b.end_time <= b.start_time:
            continue
        rows.append({
            "Lane": "Shift",
            "Start": b.start_time,
            "End": b.end_time,
            "Type": b.activity_type.value,
            "Label": f"#{b.sequence_order}",
        })
    if not rows:
        st.info("No timed blocks to display.")
        return
    fig = px.timeline(
        rows,
        x_start="Start",
        x_end="End",
        y="Lane",
        color="Type",
        text="Label",
        color_discrete_map=TYPE_COLORS,
    )
    fig.update_yaxes(visible=False, showticklabels=False)
    fig.update_layout(height=160, margin=dict(l=10, r=10, t=10, b=10), xaxis_title=None, hovermode="x")
    fig.update_xaxes(tickformat="%H:%M", showgrid=True, griddash="dot")
    fig.update_traces(textposition="inside", insidetextanchor="middle", marker_line_width=0)
    st.plotly_chart(fig, use_container_width=True, theme="streamlit")


def add_block_form(session: ShiftSession, blocks: List[Any], bits: Dict[str, Dict[str, Any]]):
    lc = controller()
    shift_date = session.shift.shift_date
    options = time_options(shift_date)
    option_ids = [o.isoformat() for o in options]

    # Choose the type outside the form so the fields re-render immediately
    type_choice = st.radio(
        "Activity",
        [t.value for t in ActivityType],
        horizontal=True,
        key="block_type_select",
    )

    next_start = start_time_after(blocks)
    default_start = snap(options, next_start or datetime.now().replace(second=0, microsecond=0))
    default_end = snap(options, default_start + timedelta(minutes=30))

    with st.form("block_form", clear_on_submit=False):
        start_default_id = st.session_state.get("act_start_iso")
        end_default_id = st.session_state.get("act_end_iso")
        if not start_default_id or start_default_id not in option_ids:
            start_default_id = default_start.isoformat()
        if not end_default_id or end_default_id not in option_ids:
            end_default_id = default_end.isoformat()
        c1, c2 = st.columns(2)
        with c1:
            start_id = st.selectbox(
                "Start",
                option_ids,
                format_func=lambda s: format_time(datetime.fromisoformat(s), shift_date),
                index=option_ids.index(start_default_id),
            )
        with c2:
            end_id = st.selectbox(
                "End",
                option_ids,
                format_func=lambda s: format_time(datetime.fromisoformat(s), shift_date),
                index=option_ids.index(end_default_id),
            )

        form: Dict[str, Any] = {"activity_type": type_choice, "start_time": start_id, "end_time": end_id}
        if type_choice == ActivityType.DRILLING.value:
            start_depth_default = start_depth_after(blocks)
            d1, d2 = st.columns(2)
            with d1:
                form["start_depth"] = st.number_input("Start depth (m)", min_value=0.0, value=float(start_depth_default), step=DEPTH_STEP, format="%.1f")
            with d2:
                form["end_depth"] = st.number_input("End depth (m)", min_value=0.0, value=float(start_depth_default), step=DEPTH_STEP, format="%.1f")
            bit_ids = list(bits.keys())
            form["drill_bit_id"] = st.radio(
                "Drill bit",
                bit_ids,
                format_func=lambda b: f"{bits[b]['serial_number']} — {bits[b].get('bit_type', '')}",
                index=None,
            ) if bit_ids else None
        else:
            form["standby_reason"] = st.radio("Standby reason", list(STANDBY_REASONS), index=None)

        ok = st.form_submit_button("Log activity", type="primary", use_container_width=True)
        if not ok:
            return

    try:
        block = lc.append_block(session, candidate_from_form(form))
    except ValidationError as e:
        st.error(e.message)
        return
    except StoreError as e:
        show_store_error(e)
        return
    st.session_state.act_start_iso = block.end_time.isoformat()
    st.session_state.act_end_iso = (block.end_time + timedelta(minutes=30)).isoformat()
    st.success(f"Block #{block.sequence_order} logged.")
    st.rerun()


def log_view(session: ShiftSession, bits: Dict[str, Dict[str, Any]]):
    lc = controller()
    try:
        blocks = lc.ledger.list(session.shift_id)
    except StoreError as e:
        show_store_error(e)
        return
    totals = summarize(blocks)

    m1, m2, m3, m4 = st.columns(4)
    m1.metric("Meters drilled", f"{totals.total_meters_drilled:.1f}m")
    m2.metric("Drilling", format_duration(totals.drilling_minutes))
    m3.metric("Standby", format_duration(totals.standby_minutes))
    m4.metric("Blocks", totals.block_count)

    st.markdown("#### Activity timeline")
    block_timeline(blocks)

    st.divider()
    st.markdown("## Log activity")
    add_block_form(session, blocks, bits)

    st.divider()
    st.markdown("## Activity blocks")
    if not blocks:
        st.info("No activity blocks yet.")
    else:
        labels = {k: v.get("serial_number", k) for k, v in bits.items()}
        st.dataframe(blocks_frame(blocks, labels), hide_index=True, use_container_width=True)
        st.caption("Blocks cannot be edited or removed. Log a correcting block instead.")

    if st.button("End shift", use_container_width=True):
        st.session_state.view = "end"
        st.rerun()


def end_shift_view(session: ShiftSession, rigs: Dict[str, Dict[str, Any]], crew: Dict[str, Dict[str, Any]], bits: Dict[str, Dict[str, Any]]):
    lc = controller()
    try:
        blocks = lc.ledger.list(session.shift_id)
    except StoreError as e:
        show_store_error(e)
        return
    totals = summarize(blocks)

    st.markdown("## End shift")
    st.markdown("### Shift summary")
    c1, c2 = st.columns(2)
    c1.metric("Total hours", format_duration(totals.total_minutes))
    c2.metric("Total meters drilled", f"{totals.total_meters_drilled:.1f}m")
    c3, c4, c5 = st.columns(3)
    c3.metric("Drilling time", format_duration(totals.drilling_minutes))
    c4.metric("Total standby", format_duration(totals.standby_minutes))
    c5.metric("Activity blocks", totals.block_count)

    labels = {k: v.get("serial_number", k) for k, v in bits.items()}
    st.download_button(
        "Download summary (Excel)",
        data=summary_excel_bytes(
            session.shift,
            blocks,
            totals,
            rig_name=rigs.get(session.shift.rig_id, {}).get("name", ""),
            crew_name=crew.get(session.shift.crew_member_id, {}).get("name", ""),
            bit_labels=labels,
        ),
        file_name=f"shift_{session.shift.shift_date.isoformat()}.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        use_container_width=True,
    )

    confirmed = st.toggle("I confirm this record is accurate ground truth", key="confirmed")
    b1, b2 = st.columns(2)
    if b1.button("Back to log", type="secondary", use_container_width=True):
        st.session_state.view = "log"
        st.rerun()
    if b2.button("Submit report", type="primary", use_container_width=True, disabled=not confirmed):
        try:
            lc.submit(session, confirmed)
        except ValidationError as e:
            st.error(e.message)
            return
        except StoreError as e:
            show_store_error(e)
            return
        restart("Shift submitted.")


def main():
    st.set_page_config(page_title="RSK Site Diary", layout="centered")
    ensure_theme()
    style(st.session_state.theme)

    catalog = load_catalog()
    boot(catalog)

    try:
        rigs = {r["id"]: r for r in storage.list_rigs()}
        crew = {c["id"]: c for c in storage.list_crew_members()}
        bits = {b["id"]: b for b in storage.list_available_drill_bits()}
    except Exception:
        logger.exception("could not load the reference catalog")
        st.error("Could not load rigs, crew and drill bits. Please retry.")
        return

    flash = st.session_state.pop("flash", None)
    if flash:
        st.success(flash)

    view = st.session_state.get("view", "setup")
    session = current_session()
    if view == "setup":
        setup_view(rigs, crew)
        return

    # Every later step needs a live shift; without one, go back to setup.
    if session is None:
        restart("Shift context was lost. Please start the shift again.")
    try:
        session = controller().resume(session.shift_id)
    except ShiftNotFoundError:
        restart("Shift could not be found. Please start the shift again.")
    except StoreError as e:
        show_store_error(e)
        return
    if session.state is LifecycleState.SAFETY_VERIFIED:
        session = controller().start_logging(session)
    st.session_state.diary_session = session

    shift_card(session, rigs, crew)
    st.divider()
    try:
        if session.state is LifecycleState.CREATED:
            safety_view(session)
        elif session.state is LifecycleState.SUBMITTED:
            restart("That shift has already been submitted.")
        elif view == "end":
            end_shift_view(session, rigs, crew, bits)
        else:
            log_view(session, bits)
    except StateError as e:
        logger.error("lifecycle sequencing error: %s", e)
        st.error(str(e))

    st.divider()
    label = "Light mode" if st.session_state.theme == "dark" else "Dark mode"
    st.button(label, on_click=toggle_theme, use_container_width=True)
    st.markdown(f"<div style='text-align:center; color:var(--rsk-muted);'>{VERSION}</div>", unsafe_allow_html=True)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    main()
