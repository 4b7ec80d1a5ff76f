"""Tests for timer engine."""

import sqlite3

import pytest

import db
import entry_store
import timer_engine
from errors import AlreadyRunning, InvalidInput, StorageFailure
from events import EventNotifier


@pytest.fixture
def notifier():
    return EventNotifier()


@pytest.fixture
def published(notifier):
    statuses = []
    notifier.subscribe(statuses.append)
    return statuses


@pytest.fixture
def engine(temp_db, notifier, clock):
    """Create a timer engine for testing."""
    return timer_engine.TimerEngine(notifier=notifier, clock=clock)


def active_row():
    with db.snapshot() as conn:
        return db.get_active_timer(conn)


class TestTimerEngine:
    """Test timer engine operations."""

    def test_initial_state(self, engine):
        """Test engine starts in stopped state."""
        assert engine.state == 'stopped'
        assert engine.project_name is None
        assert engine.start_time is None
        assert engine.status().is_running is False
        assert engine.recovered is False

    def test_start_timer(self, engine, clock, published):
        """Test starting the timer."""
        status = engine.start("  Website ", 30)

        assert engine.state == 'running'
        assert status.is_running
        assert status.project_name == "Website"
        assert status.hourly_rate == 30
        assert status.start_time == clock.now
        assert status.elapsed_seconds == 0
        assert published == [status]

    def test_start_persists_active_timer(self, engine, clock):
        """Test the running timer is saved for crash recovery."""
        engine.start("Website", 30)
        assert active_row() == {'project_name': "Website", 'hourly_rate': 30.0, 'start_time': clock.now}

    def test_start_while_running_rejected(self, engine, clock, published):
        """Test a second start does not overwrite the running timer."""
        engine.start("First", 10)
        clock.advance(100)

        with pytest.raises(AlreadyRunning):
            engine.start("Second", 20)

        assert engine.project_name == "First"
        assert engine.start_time == 1000
        assert active_row()['project_name'] == "First"
        assert len(published) == 1

    def test_second_engine_cannot_overwrite(self, engine, clock):
        """Test a timer persisted by another engine blocks a new start."""
        other = timer_engine.TimerEngine(clock=clock)
        engine.start("A", 10)
        clock.advance(100)

        with pytest.raises(AlreadyRunning):
            other.start("B", 20)

        assert other.state == 'stopped'
        assert active_row() == {'project_name': "A", 'hourly_rate': 10.0, 'start_time': 1000}
        entry = engine.stop()
        assert entry.project_name == "A"
        assert entry.duration == 100

    @pytest.mark.parametrize("name,rate", [("", 10), ("   ", 10), ("A", -1)])
    def test_start_invalid_input(self, engine, name, rate, published):
        """Test bad names and rates leave the timer idle."""
        with pytest.raises(InvalidInput):
            engine.start(name, rate)
        assert engine.state == 'stopped'
        assert active_row() is None
        assert published == []

    def test_start_persist_failure_stays_idle(self, engine, monkeypatch, published):
        """Test a failed write leaves the timer idle."""
        def failing_save(*args, **kwargs):
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(db, 'save_active_timer', failing_save)

        with pytest.raises(StorageFailure):
            engine.start("A", 10)
        assert engine.state == 'stopped'
        assert published == []

    def test_status_elapsed(self, engine, clock):
        """Test elapsed time is live."""
        engine.start("A", 10)
        clock.advance(42)
        assert engine.status().elapsed_seconds == 42
        assert engine.get_elapsed_seconds() == 42

    def test_stop_timer_creates_entry(self, engine, clock, published):
        """Test stopping timer creates time entry."""
        engine.start("A", 60)
        clock.advance(3600)

        entry = engine.stop()

        assert entry is not None
        assert entry.project_name == "A"
        assert entry.start_time == 1000
        assert entry.end_time == 4600
        assert entry.duration == 3600
        assert entry.amount == pytest.approx(60.0)
        assert engine.state == 'stopped'
        assert active_row() is None
        assert entry_store.get_entry(entry.id) == entry
        assert published[-1].is_running is False

    def test_stop_idle_is_benign(self, engine, published):
        """Test stopping a stopped timer returns None and stays idle."""
        assert engine.stop() is None
        assert engine.stop() is None
        assert engine.state == 'stopped'
        assert published == []

    def test_stop_within_same_second_saves_nothing(self, engine, published):
        """Test a sub-second interval goes idle without an entry."""
        engine.start("A", 10)

        assert engine.stop() is None

        assert engine.state == 'stopped'
        assert active_row() is None
        assert entry_store.list_for_range(0, 10_000) == []
        assert published[-1].is_running is False

    def test_stop_one_second(self, engine, clock):
        """Test a one second interval is kept."""
        engine.start("A", 3600)
        clock.advance(1)
        entry = engine.stop()
        assert entry.duration == 1
        assert entry.amount == pytest.approx(1.0)

    def test_stop_failure_keeps_running(self, engine, clock, monkeypatch):
        """Test a failed write keeps the timer and its record."""
        engine.start("A", 10)
        clock.advance(600)

        def failing_insert(*args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(db, 'insert_time_entry', failing_insert)

        with pytest.raises(StorageFailure):
            engine.stop()
        assert engine.state == 'running'
        assert active_row()['project_name'] == "A"

        monkeypatch.undo()
        entry = engine.stop()
        assert entry.duration == 600
        assert len(entry_store.list_for_range(0, 10_000)) == 1

    def test_cancel(self, engine, clock, published):
        """Test cancelling discards the interval."""
        engine.start("A", 10)
        clock.advance(300)

        assert engine.cancel() is True

        assert engine.state == 'stopped'
        assert active_row() is None
        assert entry_store.list_for_range(0, 10_000) == []
        assert published[-1].is_running is False

    def test_cancel_idle(self, engine):
        """Test cancelling with nothing running."""
        assert engine.cancel() is False

    def test_start_quick(self, engine):
        """Test quick start uses the default name and last rate."""
        entry_store.create_entry("Earlier", 0, 100, 45)
        status = engine.start_quick()
        assert status.project_name == "Quick Task"
        assert status.hourly_rate == 45

    def test_start_quick_custom_name(self, engine):
        """Test the quick task name comes from settings."""
        db.set_setting('quick_task_name', 'Misc')
        status = engine.start_quick()
        assert status.project_name == "Misc"
        assert status.hourly_rate == 0


class TestCrashRecovery:
    """Test crash recovery functionality."""

    def test_recover_running_timer(self, temp_db, clock):
        """Test a timer started before a restart is resumed with its elapsed time."""
        first = timer_engine.TimerEngine(clock=clock)
        first.start("A", 30)
        del first  # simulated crash

        clock.now = 1500
        notifier = EventNotifier()
        seen = []
        notifier.subscribe(seen.append)
        restarted = timer_engine.TimerEngine(notifier=notifier, clock=clock)

        status = restarted.status()
        assert restarted.recovered is True
        assert status.is_running
        assert status.project_name == "A"
        assert status.hourly_rate == 30
        assert status.start_time == 1000
        assert status.elapsed_seconds == 500
        assert seen == [status]

    def test_recovered_timer_can_stop(self, temp_db, clock):
        """Test stopping a recovered timer saves the full interval."""
        timer_engine.TimerEngine(clock=clock).start("A", 60)
        clock.advance(1800)

        entry = timer_engine.TimerEngine(clock=clock).stop()

        assert entry.start_time == 1000
        assert entry.duration == 1800
        assert entry.amount == pytest.approx(30.0)

    def test_recovered_timer_rejects_start(self, temp_db, clock):
        """Test a recovered timer still blocks a second start."""
        timer_engine.TimerEngine(clock=clock).start("A", 60)
        restarted = timer_engine.TimerEngine(clock=clock)
        with pytest.raises(AlreadyRunning):
            restarted.start("B", 10)

    def test_no_recovery(self, engine):
        """Test recovery does nothing without a saved timer."""
        assert engine.recovered is False
        assert engine.state == 'stopped'

    def test_clock_behind_start(self, temp_db, clock):
        """Test elapsed never goes negative."""
        timer_engine.TimerEngine(clock=clock).start("A", 60)
        clock.now = 900
        assert timer_engine.TimerEngine(clock=clock).status().elapsed_seconds == 0


class TestFormatFunctions:
    """Test formatting functions."""

    def test_format_seconds(self):
        """Test seconds formatting."""
        assert timer_engine.format_seconds(0) == "00:00:00"
        assert timer_engine.format_seconds(61) == "00:01:01"
        assert timer_engine.format_seconds(3661) == "01:01:01"
        assert timer_engine.format_seconds(36000) == "10:00:00"
        assert timer_engine.format_seconds(-5) == "00:00:00"

    def test_format_hours(self):
        """Test hours formatting."""
        assert timer_engine.format_hours(0) == "0.00 hrs"
        assert timer_engine.format_hours(1.5) == "1.50 hrs"
        assert timer_engine.format_hours(10.25) == "10.25 hrs"

    def test_format_currency(self):
        """Test currency formatting."""
        assert timer_engine.format_currency(0) == "$0.00"
        assert timer_engine.format_currency(100) == "$100.00"
        assert timer_engine.format_currency(1234.56) == "$1,234.56"
        assert timer_engine.format_currency(1000000) == "$1,000,000.00"
