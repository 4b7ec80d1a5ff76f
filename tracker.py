"""Command surface used by the UI: timer, today's entries, invoices."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

import db
import entry_store
import invoice_bridge
from events import EventNotifier, Subscriber
from models import Invoice, TimeEntry, TimerStatus, Totals, UpdateResult
from timer_engine import TimerEngine

logger = logging.getLogger(__name__)


class TimeTracker:
    """One per process. Creating it initializes the database and restores
    any timer left running by a previous run."""

    def __init__(self, clock: Optional[Callable[[], int]] = None,
                 renderer: Optional[invoice_bridge.Renderer] = None,
                 subscribers: Optional[List[Subscriber]] = None):
        db.init_db()
        self.notifier = EventNotifier()
        for callback in subscribers or []:
            self.notifier.subscribe(callback)
        self.clock = clock
        self.renderer = renderer
        self.engine = TimerEngine(notifier=self.notifier, clock=clock)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self.notifier.subscribe(callback)

    # === Timer ===

    def start_timer(self, project_name: str, hourly_rate: float) -> TimerStatus:
        return self.engine.start(project_name, hourly_rate)

    def start_quick_timer(self) -> TimerStatus:
        return self.engine.start_quick()

    def stop_timer(self) -> Optional[TimeEntry]:
        return self.engine.stop()

    def cancel_timer(self) -> bool:
        return self.engine.cancel()

    def get_timer_status(self) -> TimerStatus:
        return self.engine.status()

    # === Entries ===

    def _now(self) -> datetime:
        """Local time from the tracker's clock, so "today" agrees with the timer."""
        return datetime.fromtimestamp(self.engine.clock())

    def get_today_entries(self) -> List[TimeEntry]:
        return entry_store.list_today(self._now())

    def get_today_total(self) -> Totals:
        return entry_store.totals_today(self._now())

    def get_entries_in_range(self, start_time: int, end_time: int) -> List[TimeEntry]:
        return entry_store.list_for_range(start_time, end_time)

    def create_time_entry(self, project_name: str, start_time: int, end_time: int,
                          hourly_rate: float = 0.0) -> TimeEntry:
        return entry_store.create_entry(project_name, start_time, end_time, hourly_rate)

    def update_time_entry(self, entry_id: int, project_name: Optional[str] = None,
                          hourly_rate: Optional[float] = None,
                          duration_seconds: Optional[int] = None) -> UpdateResult:
        return entry_store.update_entry(entry_id, project_name, hourly_rate, duration_seconds)

    def delete_time_entry(self, entry_id: int):
        entry_store.delete_entry(entry_id)

    # === Invoices ===

    def save_invoice(self, business_info: Dict, start_time: int, end_time: int,
                     bill_to_info: Optional[Dict] = None) -> Invoice:
        return invoice_bridge.generate_invoice(
            start_time, end_time, business_info, bill_to_info,
            renderer=self.renderer, clock=self.clock
        )

    def get_all_invoices(self) -> List[Invoice]:
        return invoice_bridge.get_all_invoices()

    def get_invoice_pdf_path(self, invoice_id: int) -> Path:
        return invoice_bridge.get_invoice_pdf_path(invoice_id)

    def delete_invoice(self, invoice_id: int):
        invoice_bridge.delete_invoice(invoice_id)

    def export_invoice(self, invoice_id: int, destination_dir: Path) -> Path:
        return invoice_bridge.export_invoice(invoice_id, destination_dir)
