import logging
import os
import sqlite3
import time
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

DB_PATH = os.path.join("data", "site_diary.db")

BLOCK_COLS = [
    "id",
    "shift_id",
    "sequence_order",
    "start_time",
    "end_time",
    "activity_type",
    "start_depth",
    "end_depth",
    "drill_bit_id",
    "standby_reason",
    "created_at",
]


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _generate_id() -> str:
    return str(uuid.uuid4())


def _date_str(d: date | str) -> str:
    return d.isoformat() if isinstance(d, date) else str(d)


def _try_get_sf_session():
    try:
        from snowflake.snowpark.context import get_active_session  # type: ignore
        return get_active_session()
    except Exception:
        return None


def backend() -> str:
    return "snowflake" if _try_get_sf_session() is not None else "sqlite"


def _sf_rows(rows) -> List[Dict[str, Any]]:
    out = []
    for r in rows:
        d = {k.lower(): v for k, v in r.as_dict().items()}
        for fld in ("shift_date", "start_time", "end_time", "created_at", "updated_at"):
            if isinstance(d.get(fld), datetime):
                d[fld] = d[fld].isoformat(timespec="seconds")
            elif isinstance(d.get(fld), date):
                d[fld] = d[fld].isoformat()
        out.append(d)
    return out


# ---------------- SQLITE ----------------
def _sqlite_conn() -> sqlite3.Connection:
    os.makedirs(os.path.dirname(DB_PATH) or ".", exist_ok=True)
    conn = sqlite3.connect(DB_PATH, timeout=30, isolation_level=None, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA busy_timeout=30000;")
    conn.execute("PRAGMA foreign_keys=ON;")
    # Enable WAL with retries in case another process briefly locks
    for i in range(30):
        try:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            break
        except sqlite3.OperationalError as e:
            if "locked" in str(e).lower():
                time.sleep(0.15 * (i + 1))
                continue
            raise
    return conn


def _retry_locked(fn, retries: int = 30):
    for i in range(retries):
        try:
            return fn()
        except sqlite3.OperationalError as e:
            if "locked" in str(e).lower():
                time.sleep(0.1 * (i + 1))
                continue
            raise
    raise sqlite3.OperationalError("database is locked (retry exhausted)")


def _sqlite_all(sql: str, params: tuple = ()) -> List[Dict[str, Any]]:
    conn = _sqlite_conn()
    try:
        return [dict(r) for r in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()


def _sqlite_one(conn: sqlite3.Connection, sql: str, params: tuple) -> Optional[Dict[str, Any]]:
    row = conn.execute(sql, params).fetchone()
    return dict(row) if row else None


def _init_sqlite() -> None:
    c = _sqlite_conn()

    c.execute(
        """
        CREATE TABLE IF NOT EXISTS rigs(
          id TEXT PRIMARY KEY,
          name TEXT NOT NULL
        );
        """
    )

    c.execute(
        """
        CREATE TABLE IF NOT EXISTS crew_members(
          id TEXT PRIMARY KEY,
          name TEXT NOT NULL,
          role TEXT
        );
        """
    )

    c.execute(
        """
        CREATE TABLE IF NOT EXISTS drill_bits(
          id TEXT PRIMARY KEY,
          serial_number TEXT NOT NULL,
          bit_type TEXT,
          status TEXT NOT NULL DEFAULT 'Available'
        );
        """
    )

    c.execute(
        """
        CREATE TABLE IF NOT EXISTS shifts(
          id TEXT PRIMARY KEY,
          shift_date TEXT NOT NULL,
          rig_id TEXT NOT NULL,
          crew_member_id TEXT NOT NULL,
          safety_check_completed INTEGER NOT NULL DEFAULT 0,
          status TEXT NOT NULL DEFAULT 'In Progress',
          created_at TEXT NOT NULL,
          updated_at TEXT NOT NULL
        );
        """
    )

    c.execute(
        """
        CREATE TABLE IF NOT EXISTS activity_blocks(
          id TEXT PRIMARY KEY,
          shift_id TEXT NOT NULL,
          sequence_order INTEGER NOT NULL,
          start_time TEXT NOT NULL,
          end_time TEXT NOT NULL,
          activity_type TEXT NOT NULL,
          start_depth REAL,
          end_depth REAL,
          drill_bit_id TEXT,
          standby_reason TEXT,
          created_at TEXT NOT NULL,
          FOREIGN KEY(shift_id) REFERENCES shifts(id) ON DELETE CASCADE
        );
        """
    )

    c.execute("CREATE UNIQUE INDEX IF NOT EXISTS uq_blocks_shift_seq ON activity_blocks(shift_id, sequence_order);")
    c.execute("CREATE INDEX IF NOT EXISTS idx_shifts_date ON shifts(shift_date);")
    c.execute("CREATE INDEX IF NOT EXISTS idx_bits_status ON drill_bits(status, serial_number);")
    c.close()


def init_storage() -> None:
    if backend() == "snowflake":
        s = _try_get_sf_session()
        assert s is not None
        s.sql("CREATE TABLE IF NOT EXISTS DIARY_RIGS(ID STRING, NAME STRING, UPDATED_AT TIMESTAMP_NTZ);").collect()
        s.sql(
            "CREATE TABLE IF NOT EXISTS DIARY_CREW_MEMBERS(ID STRING, NAME STRING, ROLE STRING, UPDATED_AT TIMESTAMP_NTZ);"
        ).collect()
        s.sql(
            """
            CREATE TABLE IF NOT EXISTS DIARY_DRILL_BITS(
              ID STRING, SERIAL_NUMBER STRING, BIT_TYPE STRING, STATUS STRING, UPDATED_AT TIMESTAMP_NTZ
            );
            """
        ).collect()
        s.sql(
            """
            CREATE TABLE IF NOT EXISTS DIARY_SHIFTS(
              ID STRING, SHIFT_DATE DATE, RIG_ID STRING, CREW_MEMBER_ID STRING,
              SAFETY_CHECK_COMPLETED BOOLEAN, STATUS STRING,
              CREATED_AT TIMESTAMP_NTZ, UPDATED_AT TIMESTAMP_NTZ
            );
            """
        ).collect()
        s.sql(
            """
            CREATE TABLE IF NOT EXISTS DIARY_ACTIVITY_BLOCKS(
              ID STRING, SHIFT_ID STRING, SEQUENCE_ORDER NUMBER,
              START_TIME TIMESTAMP_NTZ, END_TIME TIMESTAMP_NTZ, ACTIVITY_TYPE STRING,
              START_DEPTH FLOAT, END_DEPTH FLOAT, DRILL_BIT_ID STRING, STANDBY_REASON STRING,
              CREATED_AT TIMESTAMP_NTZ
            );
            """
        ).collect()
        return

    _init_sqlite()


def upsert_reference_data(
    rigs: List[Dict[str, Any]],
    crew_members: List[Dict[str, Any]],
    drill_bits: List[Dict[str, Any]],
) -> None:
    if backend() == "snowflake":
        s = _try_get_sf_session()
        assert s is not None
        ts = datetime.now()
        tables = (
            ("DIARY_RIGS", rigs, lambda r: {"ID": str(r.get("id", "")), "NAME": str(r.get("name", ""))}),
            (
                "DIARY_CREW_MEMBERS",
                crew_members,
                lambda r: {"ID": str(r.get("id", "")), "NAME": str(r.get("name", "")), "ROLE": str(r.get("role", ""))},
            ),
            (
                "DIARY_DRILL_BITS",
                drill_bits,
                lambda r: {
                    "ID": str(r.get("id", "")),
                    "SERIAL_NUMBER": str(r.get("serial_number", "")),
                    "BIT_TYPE": str(r.get("bit_type") or r.get("type") or ""),
                    "STATUS": str(r.get("status") or "Available"),
                },
            ),
        )
        for table, items, to_row in tables:
            if not items:
                continue
            s.sql(f"DELETE FROM {table};").collect()
            rows = [dict(to_row(r), UPDATED_AT=ts) for r in items]
            s.create_dataframe(rows).write.save_as_table(table, mode="append")
        return

    conn = _sqlite_conn()
    try:
        for r in rigs or []:
            _retry_locked(
                lambda: conn.execute(
                    "INSERT INTO rigs(id, name) VALUES(?,?) ON CONFLICT(id) DO UPDATE SET name=excluded.name;",
                    (r.get("id"), r.get("name")),
                )
            )
        for r in crew_members or []:
            _retry_locked(
                lambda: conn.execute(
                    """
                    INSERT INTO crew_members(id, name, role) VALUES(?,?,?)
                    ON CONFLICT(id) DO UPDATE SET name=excluded.name, role=excluded.role;
                    """,
                    (r.get("id"), r.get("name"), r.get("role")),
                )
            )
        for r in drill_bits or []:
            _retry_locked(
                lambda: conn.execute(
                    """
                    INSERT INTO drill_bits(id, serial_number, bit_type, status) VALUES(?,?,?,?)
                    ON CONFLICT(id) DO UPDATE SET
                      serial_number=excluded.serial_number,
                      bit_type=excluded.bit_type,
                      status=excluded.status;
                    """,
                    (r.get("id"), r.get("serial_number"), r.get("bit_type") or r.get("type"), r.get("status") or "Available"),
                )
            )
    finally:
        conn.close()


# ---------------- Reference catalog ----------------
def list_rigs() -> List[Dict[str, Any]]:
    if backend() == "snowflake":
        s = _try_get_sf_session()
        assert s is not None
        return _sf_rows(s.sql("SELECT ID, NAME FROM DIARY_RIGS ORDER BY NAME ASC, ID ASC").collect())
    return _sqlite_all("SELECT id, name FROM rigs ORDER BY name ASC, id ASC;")


def list_crew_members() -> List[Dict[str, Any]]:
    if backend() == "snowflake":
        s = _try_get_sf_session()
        assert s is not None
        return _sf_rows(s.sql("SELECT ID, NAME, ROLE FROM DIARY_CREW_MEMBERS ORDER BY NAME ASC, ID ASC").collect())
    return _sqlite_all("SELECT id, name, role FROM crew_members ORDER BY name ASC, id ASC;")


def list_available_drill_bits() -> List[Dict[str, Any]]:
    if backend() == "snowflake":
        s = _try_get_sf_session()
        assert s is not None
        rows = s.sql(
            "SELECT ID, SERIAL_NUMBER, BIT_TYPE, STATUS FROM DIARY_DRILL_BITS "
            "WHERE STATUS='Available' ORDER BY SERIAL_NUMBER ASC, ID ASC"
        ).collect()
        return _sf_rows(rows)
    return _sqlite_all(
        "SELECT id, serial_number, bit_type, status FROM drill_bits "
        "WHERE status='Available' ORDER BY serial_number ASC, id ASC;"
    )


# ---------------- Shifts ----------------
def create_shift(shift_date: date | str, rig_id: str, crew_member_id: str) -> Dict[str, Any]:
    for name, val in (("rig_id", rig_id), ("crew_member_id", crew_member_id)):
        if not str(val or "").strip():
            raise ValueError(f"Missing required field: {name}")

    shift_id = _generate_id()
    dt_str = _date_str(shift_date)

    if backend() == "snowflake":
        s = _try_get_sf_session()
        assert s is not None
        s.sql(
            """
            INSERT INTO DIARY_SHIFTS(
              ID, SHIFT_DATE, RIG_ID, CREW_MEMBER_ID, SAFETY_CHECK_COMPLETED, STATUS, CREATED_AT, UPDATED_AT
            ) VALUES(?, TO_DATE(?), ?, ?, FALSE, 'In Progress', CURRENT_TIMESTAMP(), CURRENT_TIMESTAMP());
            """,
            params=[shift_id, dt_str, rig_id, crew_member_id],
        ).collect()
        out = get_shift(shift_id)
        assert out is not None
        return out

    ts = _now()
    conn = _sqlite_conn()
    try:
        _retry_locked(
            lambda: conn.execute(
                """
                INSERT INTO shifts(id, shift_date, rig_id, crew_member_id, safety_check_completed, status, created_at, updated_at)
                VALUES(?,?,?,?,0,'In Progress',?,?);
                """,
                (shift_id, dt_str, rig_id, crew_member_id, ts, ts),
            )
        )
        out = _sqlite_one(conn, "SELECT * FROM shifts WHERE id=?;", (shift_id,))
    finally:
        conn.close()
    assert out is not None
    return out


def get_shift(shift_id: str) -> Optional[Dict[str, Any]]:
    if backend() == "snowflake":
        s = _try_get_sf_session()
        assert s is not None
        rows = s.sql("SELECT * FROM DIARY_SHIFTS WHERE ID=? LIMIT 1", params=[shift_id]).collect()
        out = _sf_rows(rows)
        return out[0] if out else None

    conn = _sqlite_conn()
    try:
        return _sqlite_one(conn, "SELECT * FROM shifts WHERE id=?;", (shift_id,))
    finally:
        conn.close()


def _update_shift(shift_id: str, sf_set: str, sqlite_set: str) -> bool:
    """Apply a SET clause to one shift. Returns False when the shift does not exist."""
    if backend() == "snowflake":
        s = _try_get_sf_session()
        assert s is not None
        rows = s.sql(
            f"UPDATE DIARY_SHIFTS SET {sf_set}, UPDATED_AT=CURRENT_TIMESTAMP() WHERE ID=?;",
            params=[shift_id],
        ).collect()
        return bool(rows) and int(rows[0][0]) > 0

    conn = _sqlite_conn()
    try:
        cur = _retry_locked(
            lambda: conn.execute(f"UPDATE shifts SET {sqlite_set}, updated_at=? WHERE id=?;", (_now(), shift_id))
        )
        return cur.rowcount > 0
    finally:
        conn.close()


def set_safety_verified(shift_id: str) -> bool:
    return _update_shift(shift_id, "SAFETY_CHECK_COMPLETED=TRUE", "safety_check_completed=1")


def set_submitted(shift_id: str) -> bool:
    return _update_shift(shift_id, "STATUS='Submitted'", "status='Submitted'")


# ---------------- Activity blocks ----------------
def list_blocks(shift_id: str) -> List[Dict[str, Any]]:
    if backend() == "snowflake":
        s = _try_get_sf_session()
        assert s is not None
        rows = s.sql(
            "SELECT * FROM DIARY_ACTIVITY_BLOCKS WHERE SHIFT_ID=? ORDER BY SEQUENCE_ORDER ASC",
            params=[shift_id],
        ).collect()
        return _sf_rows(rows)
    return _sqlite_all(
        "SELECT * FROM activity_blocks WHERE shift_id=? ORDER BY sequence_order ASC;",
        (shift_id,),
    )


def insert_block(shift_id: str, sequence_order: int, a: Dict[str, Any]) -> Dict[str, Any]:
    """Insert one block numbered `sequence_order`.

    The insert only happens if exactly `sequence_order - 1` blocks exist for the
    shift, so a stale number never lands in the table.
    """
    for name in ("start_time", "end_time", "activity_type"):
        val = a.get(name)
        if val is None or (isinstance(val, str) and not val.strip()):
            raise ValueError(f"Missing activity field: {name}")

    block_id = _generate_id()
    values = [
        block_id,
        shift_id,
        int(sequence_order),
        a.get("start_time"),
        a.get("end_time"),
        a.get("activity_type"),
        a.get("start_depth"),
        a.get("end_depth"),
        a.get("drill_bit_id"),
        a.get("standby_reason"),
    ]

    if backend() == "snowflake":
        s = _try_get_sf_session()
        assert s is not None
        rows = s.sql(
            """
            INSERT INTO DIARY_ACTIVITY_BLOCKS(
              ID, SHIFT_ID, SEQUENCE_ORDER, START_TIME, END_TIME, ACTIVITY_TYPE,
              START_DEPTH, END_DEPTH, DRILL_BIT_ID, STANDBY_REASON, CREATED_AT
            )
            SELECT ?, ?, ?, TO_TIMESTAMP_NTZ(?), TO_TIMESTAMP_NTZ(?), ?, ?, ?, ?, ?, CURRENT_TIMESTAMP()
            WHERE (SELECT COUNT(*) FROM DIARY_ACTIVITY_BLOCKS WHERE SHIFT_ID=?) = ?;
            """,
            params=values + [shift_id, int(sequence_order) - 1],
        ).collect()
        if not rows or int(rows[0][0]) == 0:
            raise RuntimeError(f"sequence_order {sequence_order} is stale for shift {shift_id}")
        out = _sf_rows(s.sql("SELECT * FROM DIARY_ACTIVITY_BLOCKS WHERE ID=?", params=[block_id]).collect())
        assert out
        return out[0]

    conn = _sqlite_conn()
    try:
        cur = _retry_locked(
            lambda: conn.execute(
                f"""
                INSERT INTO activity_blocks({','.join(BLOCK_COLS)})
                SELECT ?,?,?,?,?,?,?,?,?,?,?
                WHERE (SELECT COUNT(*) FROM activity_blocks WHERE shift_id=?) = ?;
                """,
                tuple(values) + (_now(), shift_id, int(sequence_order) - 1),
            )
        )
        if cur.rowcount == 0:
            raise sqlite3.IntegrityError(f"sequence_order {sequence_order} is stale for shift {shift_id}")
        out = _sqlite_one(conn, "SELECT * FROM activity_blocks WHERE id=?;", (block_id,))
    finally:
        conn.close()
    assert out is not None
    logger.debug("stored block %s (#%d) for shift %s", block_id, sequence_order, shift_id)
    return out
