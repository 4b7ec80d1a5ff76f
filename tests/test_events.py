"""Tests for the timer status notifier."""

import logging

from events import EventNotifier
from models import TimerStatus


class TestEventNotifier:
    """Test subscription and fan-out."""

    def test_publish_to_all(self):
        """Test every subscriber receives each status."""
        notifier = EventNotifier()
        first, second = [], []
        notifier.subscribe(first.append)
        notifier.subscribe(second.append)

        status = TimerStatus.running("A", 10.0, 100, 160)
        notifier.publish(status)

        assert first == [status]
        assert second == [status]

    def test_publish_without_subscribers(self):
        """Test publishing to nobody is fine."""
        EventNotifier().publish(TimerStatus.idle())

    def test_unsubscribe(self):
        """Test the returned function removes the subscriber."""
        notifier = EventNotifier()
        seen = []
        unsubscribe = notifier.subscribe(seen.append)
        unsubscribe()
        unsubscribe()  # second call is harmless

        notifier.publish(TimerStatus.idle())
        assert seen == []
        assert len(notifier) == 0

    def test_failing_subscriber_isolated(self, caplog):
        """Test one broken subscriber does not stop delivery to others."""
        notifier = EventNotifier()
        seen = []

        def broken(status):
            raise RuntimeError("UI went away")

        notifier.subscribe(broken)
        notifier.subscribe(seen.append)

        with caplog.at_level(logging.ERROR, logger="events"):
            notifier.publish(TimerStatus.idle())

        assert seen == [TimerStatus.idle()]
        assert "failed" in caplog.text

    def test_subscriber_may_unsubscribe_during_publish(self):
        """Test changing subscriptions from a callback is safe."""
        notifier = EventNotifier()
        seen = []

        def once(status):
            seen.append(status)
            notifier.unsubscribe(once)

        notifier.subscribe(once)
        notifier.publish(TimerStatus.idle())
        notifier.publish(TimerStatus.idle())
        assert len(seen) == 1


class TestTimerStatus:
    """Test status snapshots."""

    def test_idle(self):
        """Test idle carries no timer details."""
        status = TimerStatus.idle()
        assert status.is_running is False
        assert status.project_name is None
        assert status.elapsed_seconds is None

    def test_running_elapsed(self):
        """Test elapsed is now minus start, never negative."""
        assert TimerStatus.running("A", 1.0, 1000, 1500).elapsed_seconds == 500
        assert TimerStatus.running("A", 1.0, 1000, 900).elapsed_seconds == 0

    def test_to_dict(self):
        """Test the payload shape sent to the UI."""
        assert TimerStatus.running("A", 2.0, 10, 15).to_dict() == {
            'is_running': True,
            'project_name': "A",
            'hourly_rate': 2.0,
            'start_time': 10,
            'elapsed_seconds': 5,
        }
