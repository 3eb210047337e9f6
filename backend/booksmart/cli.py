#!/usr/bin/env python3
"""
BookSmart admin CLI - inventory and fine maintenance for library operators.

Commands:
1. audit            Compare copy counts with BORROWED records (read only)
2. repair           Reset one book's available copies, recording who did it
3. refresh-fines    Recompute the stored fine of every overdue loan
4. remind-due-soon  Remind borrowers whose loans fall due shortly

Usage:
    booksmart-admin audit
    booksmart-admin repair 42 --operator admin@library.org --reason "lost ledger entry"
    booksmart-admin refresh-fines --rate 0.50
    booksmart-admin remind-due-soon --days 3
"""
import argparse
import asyncio
import sys
from decimal import Decimal, InvalidOperation
from typing import Optional

# Load environment variables before settings are read
from dotenv import load_dotenv
load_dotenv()

from booksmart.core.exceptions import AppException  # noqa: E402
from booksmart.database import close_db, session_scope  # noqa: E402
from booksmart.services.lifecycle_service import BorrowLifecycleService  # noqa: E402
from booksmart.services.notifications import DeferredNotifier, LogNotifier  # noqa: E402
from booksmart.services.reconciliation import ReconciliationService  # noqa: E402


# ============================================================================
# COLORS AND FORMATTING
# ============================================================================

class Colors:
    """ANSI color codes for terminal output."""
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    BOLD = '\033[1m'
    END = '\033[0m'


def print_header(text: str):
    """Print a header."""
    print(f"\n{Colors.BOLD}{Colors.HEADER}{'='*70}{Colors.END}")
    print(f"{Colors.BOLD}{Colors.HEADER}  {text}{Colors.END}")
    print(f"{Colors.BOLD}{Colors.HEADER}{'='*70}{Colors.END}\n")


def print_section(text: str):
    """Print a section header."""
    print(f"\n{Colors.BOLD}{Colors.CYAN}{'-'*50}{Colors.END}")
    print(f"{Colors.BOLD}{Colors.CYAN}{text}{Colors.END}")
    print(f"{Colors.BOLD}{Colors.CYAN}{'-'*50}{Colors.END}")


def print_success(text: str):
    print(f"{Colors.GREEN}✓ {text}{Colors.END}")


def print_error(text: str):
    print(f"{Colors.RED}✗ {text}{Colors.END}")


def print_warning(text: str):
    print(f"{Colors.YELLOW}⚠ {text}{Colors.END}")


def print_info(text: str):
    print(f"{Colors.BLUE}ℹ {text}{Colors.END}")


# ============================================================================
# COMMANDS
# ============================================================================

def _lifecycle_service(session) -> BorrowLifecycleService:
    """Lifecycle service whose notifications go out once the session commits."""
    return BorrowLifecycleService(session, notifier=DeferredNotifier(session, LogNotifier()))


async def run_audit() -> int:
    """Print every inventory discrepancy. Exit code 1 when any is found."""
    print_header("Inventory Audit")

    async with session_scope() as session:
        discrepancies = await ReconciliationService(session).audit_inventory()

    if not discrepancies:
        print_success("All books are consistent with their borrow records")
        return 0

    print_section(f"{len(discrepancies)} book(s) out of balance")
    for d in discrepancies:
        print_warning(
            f"Book {d.book_id} ({d.title}): {d.available_copies}/{d.total_copies} available, "
            f"{d.expected} BORROWED record(s), {d.actual} copies out (drift {d.drift:+d})"
        )
    print_info("Repair a book with: booksmart-admin repair BOOK_ID --operator EMAIL")
    return 1


async def run_repair(book_id: int, operator: str, reason: Optional[str]) -> int:
    """Repair one book's available count inside a single transaction."""
    print_header(f"Inventory Repair - Book {book_id}")

    try:
        async with session_scope() as session:
            adjustment = await ReconciliationService(session).repair_inventory(
                book_id, operator, reason
            )
    except AppException as e:
        print_error(e.message)
        return 1

    if adjustment is None:
        print_success(f"Book {book_id} is already consistent, nothing changed")
        return 0

    print_success(
        f"Available copies {adjustment.previous_available} -> {adjustment.new_available} "
        f"({adjustment.borrowed_count} BORROWED record(s))"
    )
    print_info(f"Adjustment #{adjustment.id} recorded for {adjustment.performed_by}")
    return 0


async def run_refresh_fines(rate: Optional[Decimal]) -> int:
    """Recompute and store the fines of all overdue loans."""
    print_header("Overdue Fine Refresh")

    async with session_scope() as session:
        service = _lifecycle_service(session)
        results = await service.refresh_overdue_fines(rate, actor="booksmart-admin")

    if not results:
        print_success("No overdue loans")
        return 0

    print_section(f"{len(results)} overdue loan(s)")
    for r in results:
        line = (
            f"Record {r.record_id}: {r.days_overdue} day(s) late, "
            f"fine {r.previous_fine} -> {r.fine_amount}"
        )
        if r.updated:
            print_success(line)
        else:
            print_warning(f"{line} (returned meanwhile, skipped)")
    return 0


async def run_remind_due_soon(days: int) -> int:
    """Send reminders for loans due within the next ``days`` days."""
    print_header("Due-Soon Reminders")

    try:
        async with session_scope() as session:
            service = _lifecycle_service(session)
            results = await service.send_due_soon_reminders(days, actor="booksmart-admin")
    except AppException as e:
        print_error(e.message)
        return 1

    if not results:
        print_success(f"No loans due in the next {days} day(s)")
        return 0

    print_section(f"{len(results)} loan(s) due soon")
    for r in results:
        line = f"Record {r.record_id}: due {r.due_date} (in {r.days_until_due} day(s))"
        if r.sent:
            print_success(line)
        else:
            print_warning(f"{line} (returned meanwhile, skipped)")
    return 0


# ============================================================================
# MAIN
# ============================================================================

def parse_rate(value: str) -> Decimal:
    try:
        rate = Decimal(value)
    except InvalidOperation:
        raise argparse.ArgumentTypeError(f"not a number: {value!r}")
    if rate < 0:
        raise argparse.ArgumentTypeError("rate cannot be negative")
    return rate


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="booksmart-admin",
        description="BookSmart admin CLI - inventory and fine maintenance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  booksmart-admin audit                                   # Report drift, exit 1 if any
  booksmart-admin repair 42 --operator admin@library.org  # Reset book 42's copy count
  booksmart-admin refresh-fines                           # Use the configured daily fine
  booksmart-admin refresh-fines --rate 0.50               # One-off rate override
  booksmart-admin remind-due-soon                         # Loans due within 2 days
        """
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser(
        "audit",
        help="Compare copy counts with BORROWED records",
    )

    repair = subparsers.add_parser(
        "repair",
        help="Reset a book's available copies from its BORROWED records",
    )
    repair.add_argument("book_id", type=int, help="Book to repair")
    repair.add_argument(
        "--operator",
        required=True,
        help="Email of the operator performing the repair",
    )
    repair.add_argument("--reason", help="Why the repair is needed")

    refresh = subparsers.add_parser(
        "refresh-fines",
        help="Recompute the stored fine of every overdue loan",
    )
    refresh.add_argument(
        "--rate",
        type=parse_rate,
        help="Daily fine to use instead of the configured one",
    )

    remind = subparsers.add_parser(
        "remind-due-soon",
        help="Remind borrowers whose loans fall due within a few days",
    )
    remind.add_argument(
        "--days",
        type=int,
        default=2,
        help="How many days ahead to look (default: 2)",
    )

    return parser


async def dispatch(args: argparse.Namespace) -> int:
    try:
        if args.command == "audit":
            return await run_audit()
        if args.command == "repair":
            return await run_repair(args.book_id, args.operator, args.reason)
        if args.command == "remind-due-soon":
            return await run_remind_due_soon(args.days)
        return await run_refresh_fines(args.rate)
    finally:
        await close_db()


def main(argv: Optional[list[str]] = None):
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        exit_code = asyncio.run(dispatch(args))
    except KeyboardInterrupt:
        print(f"\n\n{Colors.YELLOW}Interrupted by user{Colors.END}")
        sys.exit(1)
    except Exception as e:
        print_error(f"Unexpected error: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
