"""Main entry point for the Time Tracker command line."""

import argparse
import logging
import sys
from datetime import datetime, timedelta
from typing import List, Optional

import db
from errors import TrackerError
from timer_engine import format_seconds, format_hours
from tracker import TimeTracker


def parse_day(value: str) -> datetime:
    """Parse YYYY-MM-DD as local midnight."""
    try:
        return datetime.strptime(value, '%Y-%m-%d')
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid date: {value} (expected YYYY-MM-DD)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="timetracker", description="Track work time and build invoices")
    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    sub = parser.add_subparsers(dest="command", required=True)

    start = sub.add_parser("start", help="Start the timer")
    start.add_argument("project", nargs="?", help="Project name (omit for a quick task)")
    start.add_argument("--rate", type=float, default=None, help="Hourly rate")

    sub.add_parser("stop", help="Stop the timer and save the entry")
    sub.add_parser("cancel", help="Discard the running timer")
    sub.add_parser("status", help="Show the timer")
    sub.add_parser("today", help="List today's entries")

    invoice = sub.add_parser("invoice", help="Generate an invoice for a date range")
    invoice.add_argument("--from", dest="date_from", type=parse_day, required=True)
    invoice.add_argument("--to", dest="date_to", type=parse_day, required=True,
                         help="Last day included")
    invoice.add_argument("--name", required=True, help="Your business name")
    invoice.add_argument("--address")
    invoice.add_argument("--email")
    invoice.add_argument("--phone")
    invoice.add_argument("--client", help="Client name")
    invoice.add_argument("--client-address")
    invoice.add_argument("--client-email")
    invoice.add_argument("--client-phone")

    sub.add_parser("invoices", help="List invoices")
    return parser


def run(args: argparse.Namespace, tracker: TimeTracker):
    """Execute one command."""
    if args.command == "start":
        if args.project:
            rate = args.rate
            if rate is None:
                rate = float(db.get_setting('default_hourly_rate', '0') or 0)
            status = tracker.start_timer(args.project, rate)
        else:
            status = tracker.start_quick_timer()
        print(f"Started {status.project_name} at {db.format_currency(status.hourly_rate)}/h")

    elif args.command == "stop":
        entry = tracker.stop_timer()
        if entry is None:
            print("No entry saved")
        else:
            print(f"Saved {entry.project_name}: {format_seconds(entry.duration)} "
                  f"({db.format_currency(entry.amount)})")

    elif args.command == "cancel":
        print("Timer discarded" if tracker.cancel_timer() else "No timer running")

    elif args.command == "status":
        status = tracker.get_timer_status()
        if status.is_running:
            print(f"Running: {status.project_name} ({format_seconds(status.elapsed_seconds)})")
        else:
            print("Status: No timer running")

    elif args.command == "today":
        for entry in tracker.get_today_entries():
            start = datetime.fromtimestamp(entry.start_time).strftime('%H:%M')
            end = datetime.fromtimestamp(entry.end_time).strftime('%H:%M')
            print(f"{entry.id:>5}  {start}-{end}  {format_seconds(entry.duration)}  "
                  f"{db.format_currency(entry.amount):>12}  {entry.project_name}")
        totals = tracker.get_today_total()
        print(f"Total Today: {format_seconds(totals.total_seconds)} "
              f"({db.format_currency(totals.total_amount)})")

    elif args.command == "invoice":
        start = int(args.date_from.timestamp())
        end = int((args.date_to + timedelta(days=1)).timestamp())
        business_info = {
            'name': args.name,
            'address': args.address,
            'email': args.email,
            'phone': args.phone,
            'client_name': args.client,
            'client_address': args.client_address,
            'client_email': args.client_email,
            'client_phone': args.client_phone,
        }
        invoice = tracker.save_invoice(business_info, start, end)
        print(f"{invoice.invoice_number}: {format_hours(invoice.total_hours)}, "
              f"{db.format_currency(invoice.total_amount)} -> {invoice.file_path}")

    elif args.command == "invoices":
        for invoice in tracker.get_all_invoices():
            print(f"{invoice.invoice_number}  {db.format_date_display(invoice.created_at)}  "
                  f"{format_hours(invoice.total_hours)}  {db.format_currency(invoice.total_amount):>12}  "
                  f"{invoice.file_path}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        tracker = TimeTracker()
        run(args, tracker)
    except TrackerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
