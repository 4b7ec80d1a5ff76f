"""Value types shared by the timer, entry store and invoices."""

import json
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional


def calculate_amount(duration_seconds: int, hourly_rate: float) -> float:
    """Billable amount for a duration at an hourly rate."""
    return duration_seconds / 3600 * hourly_rate


@dataclass(frozen=True)
class TimeEntry:
    """A completed, billable interval of work on a project."""

    id: int
    project_name: str
    start_time: int
    end_time: int
    duration: int
    hourly_rate: float
    amount: float

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'TimeEntry':
        return cls(
            id=row['id'],
            project_name=row['project_name'],
            start_time=row['start_time'],
            end_time=row['end_time'],
            duration=row['duration'],
            hourly_rate=row['hourly_rate'],
            amount=row['amount'],
        )

    @property
    def hours(self) -> float:
        return self.duration / 3600

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TimerStatus:
    """Snapshot of the timer: idle, or running with its start and rate."""

    is_running: bool
    project_name: Optional[str] = None
    hourly_rate: Optional[float] = None
    start_time: Optional[int] = None
    elapsed_seconds: Optional[int] = None

    @classmethod
    def idle(cls) -> 'TimerStatus':
        return cls(is_running=False)

    @classmethod
    def running(cls, project_name: str, hourly_rate: float, start_time: int, now: int) -> 'TimerStatus':
        return cls(
            is_running=True,
            project_name=project_name,
            hourly_rate=hourly_rate,
            start_time=start_time,
            elapsed_seconds=max(0, now - start_time),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class OverlapWarning:
    """Advisory listing entries that intersect an edited entry."""

    overlapping_entries: List[TimeEntry]

    def to_dict(self) -> Dict[str, Any]:
        return {'overlapping_entries': [e.to_dict() for e in self.overlapping_entries]}


@dataclass(frozen=True)
class UpdateResult:
    entry: TimeEntry
    overlap_warning: Optional[OverlapWarning] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entry': self.entry.to_dict(),
            'overlap_warning': self.overlap_warning.to_dict() if self.overlap_warning else None,
        }


@dataclass(frozen=True)
class Totals:
    total_seconds: int = 0
    total_amount: float = 0.0

    @property
    def total_hours(self) -> float:
        return self.total_seconds / 3600

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Invoice:
    """An immutable bill generated from the entries of a period.

    business_info and bill_to_info are snapshots taken at generation time.
    """

    id: int
    created_at: int
    period_start: Optional[int]
    period_end: Optional[int]
    business_info: Dict[str, Any] = field(default_factory=dict)
    bill_to_info: Dict[str, Any] = field(default_factory=dict)
    total_hours: float = 0.0
    total_amount: float = 0.0
    entry_count: int = 0
    file_path: str = ''

    @property
    def invoice_number(self) -> str:
        return f"INV-{self.id:04d}"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Invoice':
        return cls(
            id=row['id'],
            created_at=row['created_at'],
            period_start=row['period_start'],
            period_end=row['period_end'],
            business_info=json.loads(row['business_info'] or '{}'),
            bill_to_info=json.loads(row['bill_to_info'] or '{}'),
            total_hours=row['total_hours'],
            total_amount=row['total_amount'],
            entry_count=row['entry_count'],
            file_path=row['file_path'] or '',
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['invoice_number'] = self.invoice_number
        return data
