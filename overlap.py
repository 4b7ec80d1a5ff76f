"""Overlap detection between time entries.

Intervals are half-open: an entry ending exactly when another starts does
not overlap it.
"""

import sqlite3
from typing import List, Optional

import db
from models import TimeEntry


def intervals_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> bool:
    """True if [a_start, a_end) and [b_start, b_end) intersect. Empty intervals never do."""
    return a_start < a_end and b_start < b_end and a_start < b_end and a_end > b_start


def find_overlapping(
    start_time: int,
    end_time: int,
    exclude_id: Optional[int] = None,
    conn: Optional[sqlite3.Connection] = None
) -> List[TimeEntry]:
    """Return every stored entry intersecting [start_time, end_time).

    Pass conn to run inside the caller's transaction; otherwise a read
    snapshot is opened.
    """
    if conn is not None:
        rows = db.query_overlapping(conn, start_time, end_time, exclude_id)
    else:
        with db.snapshot() as read_conn:
            rows = db.query_overlapping(read_conn, start_time, end_time, exclude_id)
    return [TimeEntry.from_row(row) for row in rows]
