"""Command-line interface for Event Check-in."""
import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

import pydantic

from event_checkin import __version__
from event_checkin.app import DashboardMonitor, TicketDesk, format_stats, load_config
from event_checkin.exceptions import TicketingError
from event_checkin.models import AppConfig, Ticket
from event_checkin.reconciler import CheckInResult

logger = logging.getLogger(__name__)


def parse_args(args: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: List of command line arguments. If None, uses sys.argv[1:].

    Returns:
        Parsed arguments.
    """
    parser = argparse.ArgumentParser(
        prog="checkin",
        description="Manage event tickets, payments, check-in and guest notifications.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    # Store configuration
    store_group = parser.add_argument_group('Store Configuration')
    store_group.add_argument(
        '--script-url',
        type=str,
        help='Apps Script web app URL (overrides GOOGLE_SCRIPT_URL)',
    )
    store_group.add_argument(
        '--header-rows',
        type=int,
        help='number of title/header rows above the ticket data',
    )
    store_group.add_argument(
        '--search-mode',
        choices=['client', 'server'],
        help='look tickets up by scanning all rows or by asking the endpoint',
    )

    # Logging configuration
    log_group = parser.add_argument_group('Logging')
    log_group.add_argument(
        '--log-level',
        type=str,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Logging level',
    )
    log_group.add_argument(
        '--verbose', '-v',
        action='store_const',
        const='DEBUG',
        dest='log_level',
        help='Enable verbose output (same as --log-level DEBUG)',
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}',
        help='show version and exit',
    )

    commands = parser.add_subparsers(dest='command', required=True)

    add = commands.add_parser('add', help='add a ticket, a list or a range of tickets')
    add.add_argument('tickets', help='ticket numbers, e.g. 042, 100-102 or 1,5,9')
    add.add_argument('--name', required=True, help='guest name')
    add.add_argument('--phone', default='', help='guest phone number')
    add.add_argument('--paid', action='store_true', help='tickets are already paid')
    add.add_argument(
        '--checked-in',
        action='store_true',
        help='paid and checked in on creation (event-day mode)',
    )

    lookup = commands.add_parser('lookup', help='show the status of ticket numbers')
    lookup.add_argument('tickets', help='ticket numbers, e.g. 042, 100-102 or 1,5,9')

    search = commands.add_parser('search', help='search guests by name, ticket or phone')
    search.add_argument('query')

    checkin = commands.add_parser('checkin', help='express check-in; reads ticket numbers from stdin when none are given')
    checkin.add_argument('tickets', nargs='*', help='ticket numbers to check in')
    checkin.add_argument(
        '--auto-pay',
        action='store_true',
        help='take payment for unpaid tickets without asking',
    )

    pay = commands.add_parser('pay', help='mark a ticket as paid')
    pay.add_argument('ticket')

    unpay = commands.add_parser('unpay', help='mark a ticket as unpaid')
    unpay.add_argument('ticket')

    notify = commands.add_parser('notify', help='text every expected guest')
    notify.add_argument('--preview', action='store_true', help='show the message without sending')
    notify.add_argument('--test', metavar='PHONE', help='send a single test message to PHONE')
    notify.add_argument('--yes', '-y', action='store_true', help='do not ask for confirmation')

    dashboard = commands.add_parser('dashboard', help='show check-in statistics')
    dashboard.add_argument('--watch', action='store_true', help='keep refreshing until interrupted')

    if args is None:
        args = sys.argv[1:]
    return parser.parse_args(args)


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Settings overrides for the options given on the command line."""
    overrides: Dict[str, Any] = {}
    if getattr(args, 'script_url', None):
        overrides['GOOGLE_SCRIPT_URL'] = args.script_url
    if getattr(args, 'header_rows', None) is not None:
        overrides['STORE_HEADER_ROWS'] = args.header_rows
    if getattr(args, 'search_mode', None):
        overrides['STORE_SEARCH_MODE'] = args.search_mode
    if getattr(args, 'log_level', None):
        overrides['LOG_LEVEL'] = args.log_level
    return overrides


def configure_logging(level: str = 'INFO') -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as a string (e.g., 'INFO', 'DEBUG').
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(),
        ]
    )

    # Request logging from httpx is noisy at INFO
    logging.getLogger('httpx').setLevel(logging.WARNING)


def confirm(prompt: str) -> bool:
    try:
        answer = input(f"{prompt} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ('y', 'yes')


def describe(ticket: Ticket) -> str:
    return (
        f"#{ticket.ticket_number}  {ticket.name}  {ticket.phone_number}  "
        f"paid: {'Yes' if ticket.paid else 'No'}  checked in: {'Yes' if ticket.checked_in else 'No'}"
    )


def print_result(result: CheckInResult) -> None:
    mark = '✓' if result.success else '✗'
    print(f"{mark} {result.ticket_number}: {result.message}")


async def run_add(desk: TicketDesk, args: argparse.Namespace) -> int:
    result = await desk.add_tickets(
        args.tickets,
        name=args.name,
        phone_number=args.phone,
        paid=args.paid or args.checked_in,
        checked_in=args.checked_in,
    )
    print(f"Added {result.added} ticket(s).")
    if result.failed:
        print(f"Skipped duplicates: {', '.join(result.failed)}")
    return 0


async def run_lookup(desk: TicketDesk, args: argparse.Namespace) -> int:
    found_all = True
    for number, ticket in await desk.lookup(args.tickets):
        if ticket is None:
            found_all = False
            print(f"#{number}  not found")
        else:
            print(describe(ticket))
    return 0 if found_all else 1


async def run_search(desk: TicketDesk, args: argparse.Namespace) -> int:
    tickets = await desk.search(args.query)
    for ticket in tickets:
        print(describe(ticket))
    print(f"{len(tickets)} result(s): {sum(1 for t in tickets if t.paid)} paid, "
          f"{sum(1 for t in tickets if not t.paid)} unpaid")
    return 0


async def run_checkin(desk: TicketDesk, args: argparse.Namespace) -> int:
    if args.auto_pay:
        confirm_payment = lambda ticket: True  # noqa: E731
    else:
        confirm_payment = lambda ticket: confirm(  # noqa: E731
            f"{ticket.name} (#{ticket.ticket_number}) has not paid. Mark paid & check in?"
        )

    if args.tickets:
        results = await desk.reconciler.express_check_in(args.tickets, confirm_payment)
        for result in results:
            print_result(result)
        return 0 if all(r.success for r in results) else 1

    print("Ready to scan tickets. Enter a blank line to finish.")
    while True:
        try:
            line = input("> ").strip()
        except EOFError:
            break
        if not line:
            break
        for result in await desk.reconciler.express_check_in([line], confirm_payment):
            print_result(result)
    return 0


async def run_pay(desk: TicketDesk, args: argparse.Namespace) -> int:
    await desk.reconciler.mark_paid(args.ticket)
    print(f"Ticket {args.ticket} marked paid.")
    return 0


async def run_unpay(desk: TicketDesk, args: argparse.Namespace) -> int:
    await desk.reconciler.mark_unpaid(args.ticket)
    print(f"Ticket {args.ticket} marked unpaid.")
    return 0


async def run_notify(desk: TicketDesk, args: argparse.Namespace) -> int:
    dispatcher = desk.dispatcher

    if args.test:
        result = await dispatcher.send_test_message(args.test)
        if result.success:
            print("Test message sent successfully! Check your phone.")
            return 0
        print(f"Failed to send test message: {result.error}")
        return 1

    recipients, unique = await dispatcher.load_recipients()
    print(f"{len(recipients)} expected guest(s), {len(unique)} unique phone number(s).")
    if len(recipients) > len(unique):
        print(f"{len(recipients) - len(unique)} duplicate phone number(s) will be skipped.")

    if args.preview:
        print("\n" + dispatcher.preview_message(unique))
        return 0

    if not args.yes and not confirm(
        f"You are about to send {len(unique)} text message(s). This cannot be undone. Continue?"
    ):
        print("Cancelled.")
        return 0

    def on_progress(sent: int, total: int, name: str) -> None:
        print(f"  {sent}/{total} ({sent * 100 // total}%) {name}")

    report = await dispatcher.notify_expected_guests(on_progress)
    for result in report.results:
        status = '✓ Sent' if result.success else f'✗ Failed: {result.error}'
        print(f"{result.name} ({result.phone_number}): {status}")
    print(f"\n{report.total_sent} sent, {report.total_failed} failed.")
    return 0 if report.total_failed == 0 else 1


async def run_dashboard(desk: TicketDesk, args: argparse.Namespace, config: AppConfig) -> int:
    if not args.watch:
        print(format_stats(await desk.stats()))
        return 0

    monitor = DashboardMonitor(
        desk,
        config.refresh_interval,
        on_update=lambda stats: print(format_stats(stats) + "\n"),
    )
    await monitor.run()
    return 0


COMMANDS = {
    'add': run_add,
    'lookup': run_lookup,
    'search': run_search,
    'checkin': run_checkin,
    'pay': run_pay,
    'unpay': run_unpay,
    'notify': run_notify,
}


async def async_main(argv: Optional[List[str]] = None) -> int:
    """Async entry point for the CLI."""
    args = parse_args(argv)

    # Environment first, then command line overrides
    try:
        config = load_config(**overrides_from_args(args))
    except pydantic.ValidationError as e:
        configure_logging()
        logger.error(f"❌ Invalid configuration: {e}")
        return 1

    configure_logging(level=config.log_level)

    try:
        async with TicketDesk(config) as desk:
            if args.command == 'dashboard':
                return await run_dashboard(desk, args, config)
            return await COMMANDS[args.command](desk, args)
    except TicketingError as e:
        print(f"✗ {e}")
        return 1


def main() -> int:
    """Main entry point for CLI."""
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        print("\n👋 Operation cancelled by user")
        return 0


if __name__ == "__main__":
    sys.exit(main())
