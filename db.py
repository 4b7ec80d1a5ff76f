"""Database operations for the time tracker - self-contained."""

import logging
import os
import sqlite3
import sys
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Optional, List, Dict, Any, Iterator
from pathlib import Path

from errors import StorageFailure

logger = logging.getLogger(__name__)

DB_FILE_NAME = "time_tracker.db"
BUSY_TIMEOUT_SECONDS = 5.0
HOME_ENV_VAR = "TIMETRACKER_HOME"

# Serializes every mutation (entries, active timer, invoices).
write_lock = threading.RLock()


def get_app_dir() -> Path:
    """Get the application directory."""
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override)
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    else:
        return Path(__file__).parent


def get_data_dir() -> Path:
    """Get the data directory (creates if needed)."""
    data_dir = get_app_dir() / "data"
    data_dir.mkdir(parents=True, exist_ok=True)
    return data_dir


def get_invoices_dir() -> Path:
    """Get the invoices directory (creates if needed)."""
    invoices_dir = get_app_dir() / "invoices"
    invoices_dir.mkdir(parents=True, exist_ok=True)
    return invoices_dir


DB_PATH = None


def get_db_path() -> Path:
    """Get the database path."""
    global DB_PATH
    if DB_PATH is None:
        DB_PATH = get_data_dir() / DB_FILE_NAME
    return DB_PATH


def get_connection() -> sqlite3.Connection:
    """Get database connection with row factory.

    Connections run in autocommit mode; transactions are opened explicitly
    by transaction() and snapshot().
    """
    try:
        conn = sqlite3.connect(
            get_db_path(),
            timeout=BUSY_TIMEOUT_SECONDS,
            isolation_level=None,
            check_same_thread=False,
        )
    except (sqlite3.Error, OSError) as e:
        raise StorageFailure(f"Cannot open database: {e}") from e
    conn.row_factory = sqlite3.Row
    return conn


@contextmanager
def transaction() -> Iterator[sqlite3.Connection]:
    """Run a serialized write transaction.

    Commits when the block finishes, rolls back when it raises. Database
    errors surface as StorageFailure.
    """
    with write_lock:
        conn = get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            _safe_rollback(conn)
            raise StorageFailure(str(e)) from e
        except BaseException:
            _safe_rollback(conn)
            raise
        finally:
            conn.close()


@contextmanager
def snapshot() -> Iterator[sqlite3.Connection]:
    """Read-only block that sees one consistent committed state."""
    conn = get_connection()
    try:
        conn.execute("BEGIN")
        yield conn
    except sqlite3.Error as e:
        raise StorageFailure(str(e)) from e
    finally:
        _safe_rollback(conn)
        conn.close()


def _safe_rollback(conn: sqlite3.Connection):
    if not conn.in_transaction:
        return
    try:
        conn.rollback()
    except sqlite3.Error as e:
        logger.error(f"Rollback failed: {e}")


def init_db():
    """Initialize all database tables."""
    with write_lock:
        conn = get_connection()
        try:
            _create_schema(conn)
        except sqlite3.Error as e:
            raise StorageFailure(f"Cannot initialize database: {e}") from e
        finally:
            conn.close()
    logger.debug(f"Database ready at {get_db_path()}")


def _create_schema(conn: sqlite3.Connection):
    cursor = conn.cursor()

    # WAL lets readers keep a snapshot while a writer commits
    cursor.execute("PRAGMA journal_mode=WAL")

    cursor.execute("BEGIN IMMEDIATE")

    # Time entries
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS time_entries (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            project_name TEXT NOT NULL,
            start_time INTEGER NOT NULL,
            end_time INTEGER NOT NULL,
            duration INTEGER NOT NULL,
            hourly_rate REAL NOT NULL DEFAULT 0,
            amount REAL NOT NULL DEFAULT 0,
            CHECK (end_time > start_time),
            CHECK (duration = end_time - start_time)
        )
    """)
    # Add rate columns if not present (for migration from old schema)
    cursor.execute("PRAGMA table_info(time_entries)")
    entry_cols = [row[1] for row in cursor.fetchall()]
    if 'hourly_rate' not in entry_cols:
        cursor.execute("ALTER TABLE time_entries ADD COLUMN hourly_rate REAL NOT NULL DEFAULT 0")
    if 'amount' not in entry_cols:
        cursor.execute("ALTER TABLE time_entries ADD COLUMN amount REAL NOT NULL DEFAULT 0")
    cursor.execute(
        "CREATE INDEX IF NOT EXISTS idx_time_entries_start ON time_entries (start_time)"
    )

    # Active timer state (crash recovery)
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS active_timer (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            project_name TEXT NOT NULL,
            hourly_rate REAL NOT NULL DEFAULT 0,
            start_time INTEGER NOT NULL
        )
    """)

    # Invoices
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS invoices (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            created_at INTEGER NOT NULL,
            period_start INTEGER,
            period_end INTEGER,
            business_info TEXT NOT NULL,
            bill_to_info TEXT NOT NULL,
            total_hours REAL NOT NULL,
            total_amount REAL NOT NULL,
            entry_count INTEGER NOT NULL,
            file_path TEXT NOT NULL DEFAULT ''
        )
    """)
    cursor.execute("PRAGMA table_info(invoices)")
    inv_cols = [row[1] for row in cursor.fetchall()]
    if 'period_start' not in inv_cols:
        cursor.execute("ALTER TABLE invoices ADD COLUMN period_start INTEGER")
    if 'period_end' not in inv_cols:
        cursor.execute("ALTER TABLE invoices ADD COLUMN period_end INTEGER")

    # Settings
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
    """)

    # Insert default settings if not exist
    defaults = {
        'quick_task_name': 'Quick Task',
        'default_hourly_rate': '0',
    }
    for key, value in defaults.items():
        cursor.execute(
            "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?)",
            (key, value)
        )

    conn.commit()


# === Settings ===

def get_setting(key: str, default: str = '') -> str:
    """Get a setting value."""
    with snapshot() as conn:
        row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
    return row['value'] if row else default


def set_setting(key: str, value: str):
    """Set a setting value."""
    with transaction() as conn:
        conn.execute(
            "INSERT OR REPLACE INTO settings (key, value) VALUES (?, ?)",
            (key, value)
        )


# === Time Entries ===

ENTRY_COLUMNS = "id, project_name, start_time, end_time, duration, hourly_rate, amount"


def insert_time_entry(
    conn: sqlite3.Connection,
    project_name: str,
    start_time: int,
    end_time: int,
    duration: int,
    hourly_rate: float,
    amount: float
) -> int:
    """Insert a time entry, return ID."""
    cursor = conn.execute("""
        INSERT INTO time_entries
        (project_name, start_time, end_time, duration, hourly_rate, amount)
        VALUES (?, ?, ?, ?, ?, ?)
    """, (project_name, start_time, end_time, duration, hourly_rate, amount))
    return cursor.lastrowid


def fetch_time_entry(conn: sqlite3.Connection, entry_id: int) -> Optional[Dict]:
    """Get a single time entry by ID."""
    row = conn.execute(
        f"SELECT {ENTRY_COLUMNS} FROM time_entries WHERE id = ?", (entry_id,)
    ).fetchone()
    return dict(row) if row else None


def update_time_entry_row(
    conn: sqlite3.Connection,
    entry_id: int,
    project_name: str,
    end_time: int,
    duration: int,
    hourly_rate: float,
    amount: float
) -> bool:
    """Overwrite the editable columns of a time entry. Returns True if a row changed."""
    cursor = conn.execute("""
        UPDATE time_entries
        SET project_name = ?, end_time = ?, duration = ?, hourly_rate = ?, amount = ?
        WHERE id = ?
    """, (project_name, end_time, duration, hourly_rate, amount, entry_id))
    return cursor.rowcount > 0


def delete_time_entry_row(conn: sqlite3.Connection, entry_id: int) -> bool:
    """Delete a time entry. Returns True if deleted."""
    cursor = conn.execute("DELETE FROM time_entries WHERE id = ?", (entry_id,))
    return cursor.rowcount > 0


def query_entries_between(conn: sqlite3.Connection, start_time: int, end_time: int) -> List[Dict]:
    """Get entries whose interval intersects [start_time, end_time), oldest first.

    An empty window (start_time == end_time) matches nothing.
    """
    rows = conn.execute(f"""
        SELECT {ENTRY_COLUMNS} FROM time_entries
        WHERE start_time < ? AND end_time > ? AND ? < ?
        ORDER BY start_time ASC, id ASC
    """, (end_time, start_time, start_time, end_time)).fetchall()
    return [dict(row) for row in rows]


def query_overlapping(
    conn: sqlite3.Connection,
    start_time: int,
    end_time: int,
    exclude_id: Optional[int] = None
) -> List[Dict]:
    """Get entries intersecting [start_time, end_time), other than exclude_id."""
    query = f"""
        SELECT {ENTRY_COLUMNS} FROM time_entries
        WHERE start_time < ? AND end_time > ? AND ? < ?
    """
    params: List[Any] = [end_time, start_time, start_time, end_time]
    if exclude_id is not None:
        query += " AND id != ?"
        params.append(exclude_id)
    query += " ORDER BY start_time ASC, id ASC"
    rows = conn.execute(query, params).fetchall()
    return [dict(row) for row in rows]


def get_last_hourly_rate(conn: sqlite3.Connection) -> Optional[float]:
    """Get the hourly rate of the most recently started entry."""
    row = conn.execute(
        "SELECT hourly_rate FROM time_entries ORDER BY start_time DESC, id DESC LIMIT 1"
    ).fetchone()
    return row['hourly_rate'] if row else None


# === Active Timer (crash recovery) ===

def save_active_timer(conn: sqlite3.Connection, project_name: str, hourly_rate: float, start_time: int):
    """Save active timer state for crash recovery."""
    conn.execute("""
        INSERT OR REPLACE INTO active_timer
        (id, project_name, hourly_rate, start_time)
        VALUES (1, ?, ?, ?)
    """, (project_name, hourly_rate, start_time))


def get_active_timer(conn: sqlite3.Connection) -> Optional[Dict]:
    """Get active timer state if exists."""
    row = conn.execute(
        "SELECT project_name, hourly_rate, start_time FROM active_timer WHERE id = 1"
    ).fetchone()
    return dict(row) if row else None


def clear_active_timer(conn: sqlite3.Connection):
    """Clear active timer state."""
    conn.execute("DELETE FROM active_timer WHERE id = 1")


# === Invoices ===

INVOICE_COLUMNS = (
    "id, created_at, period_start, period_end, business_info, bill_to_info, "
    "total_hours, total_amount, entry_count, file_path"
)


def insert_invoice(
    conn: sqlite3.Connection,
    created_at: int,
    period_start: int,
    period_end: int,
    business_info: str,
    bill_to_info: str,
    total_hours: float,
    total_amount: float,
    entry_count: int
) -> int:
    """Insert an invoice row without a file path yet, return ID."""
    cursor = conn.execute("""
        INSERT INTO invoices
        (created_at, period_start, period_end, business_info, bill_to_info,
         total_hours, total_amount, entry_count, file_path)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, '')
    """, (created_at, period_start, period_end, business_info, bill_to_info,
          total_hours, total_amount, entry_count))
    return cursor.lastrowid


def set_invoice_file_path(conn: sqlite3.Connection, invoice_id: int, file_path: str):
    """Record where the rendered invoice document lives."""
    conn.execute("UPDATE invoices SET file_path = ? WHERE id = ?", (file_path, invoice_id))


def fetch_invoice(conn: sqlite3.Connection, invoice_id: int) -> Optional[Dict]:
    """Get invoice by ID."""
    row = conn.execute(
        f"SELECT {INVOICE_COLUMNS} FROM invoices WHERE id = ?", (invoice_id,)
    ).fetchone()
    return dict(row) if row else None


def fetch_invoices(conn: sqlite3.Connection) -> List[Dict]:
    """Get all invoices, newest first."""
    rows = conn.execute(
        f"SELECT {INVOICE_COLUMNS} FROM invoices ORDER BY created_at DESC, id DESC"
    ).fetchall()
    return [dict(row) for row in rows]


def delete_invoice_row(conn: sqlite3.Connection, invoice_id: int) -> bool:
    """Delete an invoice row. Returns True if deleted."""
    cursor = conn.execute("DELETE FROM invoices WHERE id = ?", (invoice_id,))
    return cursor.rowcount > 0


# === Helpers ===

def format_currency(amount: float) -> str:
    """Format amount as currency."""
    return f"${amount:,.2f}"


def format_date_display(timestamp: int) -> str:
    """Format a Unix timestamp for display (Month DD, YYYY) in local time."""
    dt = datetime.fromtimestamp(timestamp)
    return dt.strftime("%B %d, %Y")
