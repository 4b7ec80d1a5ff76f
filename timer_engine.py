"""Timer engine with stopwatch logic and crash recovery."""

import logging
import time
from typing import Optional, Callable, NamedTuple

import db
import entry_store
from errors import AlreadyRunning
from events import EventNotifier
from models import TimeEntry, TimerStatus

logger = logging.getLogger(__name__)


def current_unix_timestamp() -> int:
    """Wall-clock time in whole seconds."""
    return int(time.time())


class ActiveTimer(NamedTuple):
    project_name: str
    hourly_rate: float
    start_time: int


class TimerEngine:
    """Manages the single active timer and its persistence.

    The active timer is mirrored in the active_timer table so a crash or
    restart resumes it. The persisted record is read exactly once, here in
    the constructor, before start/stop can be called.
    """

    def __init__(self, notifier: Optional[EventNotifier] = None,
                 clock: Optional[Callable[[], int]] = None):
        self.notifier = notifier if notifier is not None else EventNotifier()
        self.clock = clock if clock is not None else current_unix_timestamp
        self._active: Optional[ActiveTimer] = None
        self.recovered = self._recover_from_crash()

    # === State ===

    @property
    def state(self) -> str:
        return 'running' if self._active is not None else 'stopped'

    @property
    def project_name(self) -> Optional[str]:
        active = self._active
        return active.project_name if active else None

    @property
    def hourly_rate(self) -> Optional[float]:
        active = self._active
        return active.hourly_rate if active else None

    @property
    def start_time(self) -> Optional[int]:
        active = self._active
        return active.start_time if active else None

    def status(self) -> TimerStatus:
        """Current state, with live elapsed seconds when running."""
        active = self._active
        if active is None:
            return TimerStatus.idle()
        return TimerStatus.running(
            active.project_name, active.hourly_rate, active.start_time, self.clock()
        )

    def get_elapsed_seconds(self) -> int:
        """Get elapsed seconds of the running timer, 0 when stopped."""
        active = self._active
        if active is None:
            return 0
        return max(0, self.clock() - active.start_time)

    # === Transitions ===

    def start(self, project_name: str, hourly_rate: float) -> TimerStatus:
        """Start the timer for a project."""
        name = entry_store.clean_project_name(project_name)
        rate = entry_store.clean_hourly_rate(hourly_rate)

        with db.write_lock:
            if self._active is not None:
                raise AlreadyRunning(
                    f"A timer is already running for {self._active.project_name}"
                )

            active = ActiveTimer(name, rate, self.clock())
            # Persist first so a failed write leaves the timer idle
            with db.transaction() as conn:
                # Another engine or process may own the persisted timer
                persisted = db.get_active_timer(conn)
                if persisted is not None:
                    raise AlreadyRunning(
                        f"A timer is already running for {persisted['project_name']}"
                    )
                db.save_active_timer(conn, active.project_name, active.hourly_rate, active.start_time)
            self._active = active

            logger.info(f"Timer started: {name} at {rate}/h")
            status = self.status()
            self.notifier.publish(status)
        return status

    def start_quick(self) -> TimerStatus:
        """Start a timer with the default task name and the last used rate."""
        name = db.get_setting('quick_task_name', 'Quick Task') or 'Quick Task'
        return self.start(name, max(0.0, entry_store.last_used_hourly_rate()))

    def stop(self) -> Optional[TimeEntry]:
        """Stop the timer and save the entry.

        Returns the new entry, or None when no timer was running or the
        interval was shorter than one second.
        """
        with db.write_lock:
            active = self._active
            if active is None:
                return None

            end_time = self.clock()
            entry = None
            with db.transaction() as conn:
                if end_time - active.start_time >= 1:
                    entry = entry_store.insert_entry(
                        conn, active.project_name, active.start_time, end_time, active.hourly_rate
                    )
                db.clear_active_timer(conn)
            self._active = None

            if entry is None:
                logger.warning(
                    f"Timer for {active.project_name} stopped after less than a second; "
                    f"no entry saved"
                )
            else:
                logger.info(
                    f"Timer stopped: {active.project_name}, {entry.duration}s -> entry {entry.id}"
                )
            self.notifier.publish(self.status())
        return entry

    def cancel(self) -> bool:
        """Discard the running timer without saving an entry."""
        with db.write_lock:
            active = self._active
            if active is None:
                return False
            with db.transaction() as conn:
                db.clear_active_timer(conn)
            self._active = None

            logger.info(f"Timer cancelled: {active.project_name}")
            self.notifier.publish(self.status())
        return True

    # === Crash recovery ===

    def _recover_from_crash(self) -> bool:
        """Restore a timer left running by a previous process."""
        with db.write_lock:
            with db.snapshot() as conn:
                row = db.get_active_timer(conn)
            if not row:
                return False

            self._active = ActiveTimer(row['project_name'], row['hourly_rate'], row['start_time'])
            status = self.status()
            logger.info(
                f"Recovered running timer: {status.project_name}, "
                f"{status.elapsed_seconds}s elapsed"
            )
            self.notifier.publish(status)
        return True


def format_seconds(seconds: int) -> str:
    """Format seconds as HH:MM:SS."""
    seconds = max(0, seconds)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"


def format_hours(hours: float) -> str:
    """Format hours as X.XX hrs."""
    return f"{hours:.2f} hrs"


def format_currency(amount: float) -> str:
    """Format amount as currency."""
    return db.format_currency(amount)
