"""Durable store of completed time entries.

Every mutation runs in a single serialized transaction, so an entry is
either fully written with consistent duration/amount or not written at all.
Overlapping entries are allowed; edits report them as an advisory.
"""

import logging
import math
import numbers
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

import db
import overlap
from errors import InvalidInput, InvalidRange, NotFound
from models import TimeEntry, Totals, OverlapWarning, UpdateResult, calculate_amount

logger = logging.getLogger(__name__)


# === Validation ===

def clean_project_name(project_name) -> str:
    """Trim a project name, rejecting empty ones."""
    if not isinstance(project_name, str):
        raise InvalidInput("Project name must be a string")
    name = project_name.strip()
    if not name:
        raise InvalidInput("Project name cannot be empty")
    return name


def clean_hourly_rate(hourly_rate) -> float:
    """Validate an hourly rate: a finite, non-negative number."""
    if isinstance(hourly_rate, bool) or not isinstance(hourly_rate, (numbers.Real, Decimal)):
        raise InvalidInput("Hourly rate must be a number")
    try:
        rate = float(hourly_rate)
    except (ValueError, OverflowError) as e:
        raise InvalidInput(f"Hourly rate cannot be converted: {e}") from e
    if not math.isfinite(rate):
        raise InvalidInput("Hourly rate must be a finite number")
    if rate < 0:
        raise InvalidInput("Hourly rate cannot be negative")
    return rate


def _require_timestamp(value, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"{label} must be an integer Unix timestamp")
    return value


def _require_range(start_time, end_time, allow_empty: bool = True) -> Tuple[int, int]:
    start = _require_timestamp(start_time, "Start time")
    end = _require_timestamp(end_time, "End time")
    if end < start or (end == start and not allow_empty):
        raise InvalidRange("End time must be after start time")
    return start, end


def day_bounds(now: Optional[datetime] = None) -> Tuple[int, int]:
    """Unix timestamps of local midnight today and tomorrow."""
    if now is None:
        now = datetime.now()
    today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    tomorrow_start = today_start + timedelta(days=1)
    return int(today_start.timestamp()), int(tomorrow_start.timestamp())


# === Mutations ===

def create_entry(
    project_name: str,
    start_time: int,
    end_time: int,
    hourly_rate: float = 0.0
) -> TimeEntry:
    """Create a time entry for a completed interval."""
    start, end = _require_range(start_time, end_time, allow_empty=False)
    name = clean_project_name(project_name)
    rate = clean_hourly_rate(hourly_rate)

    with db.transaction() as conn:
        entry = insert_entry(conn, name, start, end, rate)
        overlapping = overlap.find_overlapping(start, end, exclude_id=entry.id, conn=conn)

    if overlapping:
        logger.warning(
            f"Entry {entry.id} ({name}) overlaps entries "
            f"{[e.id for e in overlapping]}"
        )
    logger.info(f"Created entry {entry.id}: {name}, {entry.duration}s at {rate}/h")
    return entry


def insert_entry(conn, project_name: str, start_time: int, end_time: int, hourly_rate: float) -> TimeEntry:
    """Insert an already-validated entry inside the caller's transaction."""
    duration = end_time - start_time
    amount = calculate_amount(duration, hourly_rate)
    entry_id = db.insert_time_entry(
        conn, project_name, start_time, end_time, duration, hourly_rate, amount
    )
    return TimeEntry(
        id=entry_id,
        project_name=project_name,
        start_time=start_time,
        end_time=end_time,
        duration=duration,
        hourly_rate=hourly_rate,
        amount=amount,
    )


def update_entry(
    entry_id: int,
    project_name: Optional[str] = None,
    hourly_rate: Optional[float] = None,
    duration_seconds: Optional[int] = None
) -> UpdateResult:
    """Edit an entry's project, rate and/or duration.

    The start time never changes; end time and amount are recomputed. None
    keeps the current value. Entries that would overlap the edited interval
    are returned in overlap_warning, the edit is saved regardless.
    """
    name = clean_project_name(project_name) if project_name is not None else None
    rate = clean_hourly_rate(hourly_rate) if hourly_rate is not None else None
    if duration_seconds is not None:
        if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, int):
            raise InvalidInput("Duration must be a whole number of seconds")
        if duration_seconds <= 0:
            raise InvalidInput("Duration must be greater than zero")

    with db.transaction() as conn:
        row = db.fetch_time_entry(conn, entry_id)
        if row is None:
            raise NotFound(f"Time entry {entry_id} not found")
        current = TimeEntry.from_row(row)

        new_name = name if name is not None else current.project_name
        new_rate = rate if rate is not None else current.hourly_rate
        new_duration = duration_seconds if duration_seconds is not None else current.duration
        new_end = current.start_time + new_duration
        new_amount = calculate_amount(new_duration, new_rate)

        overlapping = overlap.find_overlapping(
            current.start_time, new_end, exclude_id=entry_id, conn=conn
        )

        db.update_time_entry_row(
            conn, entry_id, new_name, new_end, new_duration, new_rate, new_amount
        )

    entry = TimeEntry(
        id=entry_id,
        project_name=new_name,
        start_time=current.start_time,
        end_time=new_end,
        duration=new_duration,
        hourly_rate=new_rate,
        amount=new_amount,
    )
    logger.info(f"Updated entry {entry_id}: {new_name}, {new_duration}s at {new_rate}/h")

    warning = None
    if overlapping:
        warning = OverlapWarning(overlapping_entries=overlapping)
        logger.warning(
            f"Entry {entry_id} now overlaps entries {[e.id for e in overlapping]}"
        )
    return UpdateResult(entry=entry, overlap_warning=warning)


def delete_entry(entry_id: int):
    """Delete a time entry. Invoices already generated are unaffected."""
    with db.transaction() as conn:
        if not db.delete_time_entry_row(conn, entry_id):
            raise NotFound(f"Time entry {entry_id} not found")
    logger.info(f"Deleted entry {entry_id}")


# === Queries ===

def get_entry(entry_id: int) -> TimeEntry:
    """Get a single entry by ID."""
    with db.snapshot() as conn:
        row = db.fetch_time_entry(conn, entry_id)
    if row is None:
        raise NotFound(f"Time entry {entry_id} not found")
    return TimeEntry.from_row(row)


def list_for_range(start_time: int, end_time: int, conn=None) -> List[TimeEntry]:
    """Entries whose interval intersects [start_time, end_time), oldest first."""
    start, end = _require_range(start_time, end_time)
    if conn is not None:
        rows = db.query_entries_between(conn, start, end)
    else:
        with db.snapshot() as read_conn:
            rows = db.query_entries_between(read_conn, start, end)
    return [TimeEntry.from_row(row) for row in rows]


def summarize(entries: List[TimeEntry]) -> Totals:
    """Sum durations and amounts of a list of entries."""
    return Totals(
        total_seconds=sum(e.duration for e in entries),
        total_amount=sum(e.amount for e in entries),
    )


def totals_for_range(start_time: int, end_time: int) -> Totals:
    """Total seconds and amount over list_for_range(start_time, end_time)."""
    return summarize(list_for_range(start_time, end_time))


def list_today(now: Optional[datetime] = None) -> List[TimeEntry]:
    """Entries touching the current local day."""
    return list_for_range(*day_bounds(now))


def totals_today(now: Optional[datetime] = None) -> Totals:
    """Totals for the current local day."""
    return totals_for_range(*day_bounds(now))


def last_used_hourly_rate() -> float:
    """Rate of the most recently started entry, 0 when there are none."""
    with db.snapshot() as conn:
        rate = db.get_last_hourly_rate(conn)
    return rate if rate is not None else 0.0
