"""Error types raised by the time tracker core."""


class TrackerError(Exception):
    """Base class for all time tracker errors."""


class InvalidInput(TrackerError, ValueError):
    """Empty project name, negative rate, non-positive duration."""


class AlreadyRunning(TrackerError):
    """A timer is already running."""


class NotFound(TrackerError, LookupError):
    """Referenced entry or invoice does not exist."""


class InvalidRange(TrackerError, ValueError):
    """Malformed time window."""


class EmptyPeriod(InvalidRange):
    """No time entries in the requested invoice period."""


class StorageFailure(TrackerError):
    """Underlying database or file I/O failed."""


class RenderFailure(TrackerError):
    """The document renderer failed to produce an invoice file."""
