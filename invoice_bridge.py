"""Create invoices from time entries."""

import copy
import json
import logging
import shutil
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

import db
import entry_store
import generate_pdf
from errors import InvalidInput, InvalidRange, EmptyPeriod, NotFound, RenderFailure, StorageFailure
from models import Invoice, TimeEntry
from timer_engine import current_unix_timestamp

logger = logging.getLogger(__name__)

# (output_path, invoice, entries, business_info, bill_to_info) -> path written
Renderer = Callable[[Path, Invoice, List[TimeEntry], Dict, Dict], Path]


def bill_to_from_business_info(business_info: Dict) -> Dict:
    """Bill-to snapshot taken from the client_* fields of the business info."""
    return {
        'name': business_info.get('client_name'),
        'address': business_info.get('client_address'),
        'email': business_info.get('client_email'),
        'phone': business_info.get('client_phone'),
    }


def _snapshot(info: Dict, label: str) -> Dict:
    """Deep copy of an info dict that is known to serialize to JSON."""
    if not isinstance(info, dict):
        raise InvalidInput(f"{label} must be a mapping")
    snap = copy.deepcopy(info)
    try:
        json.dumps(snap)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"{label} cannot be stored: {e}") from e
    return snap


def get_invoice_output_path(invoice: Invoice, bill_to_info: Dict) -> Path:
    """invoices/<client>/INV-0001_<timestamp>.pdf"""
    client_name = (bill_to_info.get('name') or '').strip() or 'General'
    folder_name = client_name.replace(' ', '_').replace('/', '_').replace('\\', '_')
    stamp = datetime.fromtimestamp(invoice.created_at).strftime('%Y%m%d_%H%M%S')
    client_dir = db.get_invoices_dir() / folder_name
    client_dir.mkdir(parents=True, exist_ok=True)
    return client_dir / f"{invoice.invoice_number}_{stamp}.pdf"


def _remove_file(path: Path):
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Could not remove invoice file {path}: {e}")


def generate_invoice(
    period_start: int,
    period_end: int,
    business_info: Dict,
    bill_to_info: Optional[Dict] = None,
    renderer: Optional[Renderer] = None,
    clock: Optional[Callable[[], int]] = None
) -> Invoice:
    """Aggregate the entries of [period_start, period_end) into a new invoice.

    The invoice row and the rendered file are committed together: if
    rendering fails the row is rolled back (RenderFailure), and if the
    commit fails the file is removed (StorageFailure). Totals are frozen at
    generation time.
    """
    for label, value in (("Period start", period_start), ("Period end", period_end)):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidInput(f"{label} must be an integer Unix timestamp")
    if period_end < period_start:
        raise InvalidRange("Invoice period ends before it starts")

    business_snapshot = _snapshot(business_info, "Business info")
    if not str(business_snapshot.get('name') or '').strip():
        raise InvalidInput("Business name is required")
    if bill_to_info is None:
        bill_to_info = bill_to_from_business_info(business_snapshot)
    bill_to_snapshot = _snapshot(bill_to_info, "Bill-to info")

    renderer = renderer or generate_pdf.generate_invoice_pdf
    created_at = (clock or current_unix_timestamp)()

    written: Optional[Path] = None
    try:
        with db.transaction() as conn:
            entries = entry_store.list_for_range(period_start, period_end, conn=conn)
            if not entries:
                raise EmptyPeriod("No time entries in the selected period to include in the invoice")

            totals = entry_store.summarize(entries)
            total_hours = totals.total_hours
            total_amount = round(totals.total_amount, 2)

            invoice_id = db.insert_invoice(
                conn,
                created_at,
                period_start,
                period_end,
                json.dumps(business_snapshot),
                json.dumps(bill_to_snapshot),
                total_hours,
                total_amount,
                len(entries)
            )
            invoice = Invoice(
                id=invoice_id,
                created_at=created_at,
                period_start=period_start,
                period_end=period_end,
                business_info=business_snapshot,
                bill_to_info=bill_to_snapshot,
                total_hours=total_hours,
                total_amount=total_amount,
                entry_count=len(entries),
            )

            try:
                written = get_invoice_output_path(invoice, bill_to_snapshot)
            except OSError as e:
                raise StorageFailure(f"Cannot prepare invoice folder: {e}") from e
            try:
                rendered = renderer(written, invoice, entries, business_snapshot, bill_to_snapshot)
            except Exception as e:
                logger.error(f"PDF generation error for {invoice.invoice_number}: {e}")
                raise RenderFailure(f"Failed to render invoice: {e}") from e
            if rendered is not None and Path(rendered) != written:
                _remove_file(written)
                written = Path(rendered)
            if not written.exists():
                raise RenderFailure(f"Renderer did not produce {written}")

            invoice = replace(invoice, file_path=str(written))
            db.set_invoice_file_path(conn, invoice_id, invoice.file_path)
    except BaseException:
        if written is not None:
            _remove_file(written)
        raise

    logger.info(
        f"Generated {invoice.invoice_number}: {invoice.entry_count} entries, "
        f"{invoice.total_hours:.2f} h, {db.format_currency(invoice.total_amount)}"
    )
    return invoice


def get_all_invoices() -> List[Invoice]:
    """All invoices, newest first."""
    with db.snapshot() as conn:
        rows = db.fetch_invoices(conn)
    return [Invoice.from_row(row) for row in rows]


def get_invoice(invoice_id: int) -> Invoice:
    """Get invoice by ID."""
    with db.snapshot() as conn:
        row = db.fetch_invoice(conn, invoice_id)
    if row is None:
        raise NotFound(f"Invoice {invoice_id} not found")
    return Invoice.from_row(row)


def get_invoice_pdf_path(invoice_id: int) -> Path:
    """Path of an invoice's rendered document."""
    return Path(get_invoice(invoice_id).file_path)


def delete_invoice(invoice_id: int):
    """Delete an invoice row and then its file.

    A file that is already gone or cannot be removed (e.g. open in a viewer)
    is logged; the invoice is deleted either way.
    """
    with db.transaction() as conn:
        row = db.fetch_invoice(conn, invoice_id)
        if row is None:
            raise NotFound(f"Invoice {invoice_id} not found")
        db.delete_invoice_row(conn, invoice_id)

    file_path = row['file_path']
    logger.info(f"Deleted invoice {invoice_id}")
    if not file_path:
        return
    try:
        Path(file_path).unlink()
    except FileNotFoundError:
        logger.warning(f"Invoice file {file_path} was already missing")
    except OSError as e:
        logger.warning(f"Failed to delete invoice file {file_path}: {e}")


def export_invoice(invoice_id: int, destination_dir: Path) -> Path:
    """Copy an invoice's document into destination_dir, return the copy's path."""
    source = get_invoice_pdf_path(invoice_id)
    if not source.is_file():
        raise NotFound(f"Invoice file {source} not found")
    destination_dir = Path(destination_dir)
    try:
        destination_dir.mkdir(parents=True, exist_ok=True)
        destination = destination_dir / source.name
        shutil.copy2(source, destination)
    except OSError as e:
        raise StorageFailure(f"Failed to copy invoice to {destination_dir}: {e}") from e
    logger.info(f"Exported invoice {invoice_id} to {destination}")
    return destination
