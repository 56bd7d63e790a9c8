"""
Main application module for Event Check-in.
"""
import asyncio
import logging
import signal
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from .config import Settings, load_settings
from .exceptions import DuplicateTicketError, TicketingError, ValidationError
from .models import (
    AppConfig,
    BatchAddResult,
    DashboardStats,
    EventDetails,
    NotificationConfig,
    SmsConfig,
    StoreConfig,
    Ticket,
)
from .notifications import NotificationDispatcher, SmsTransport, create_sms_transport
from .reconciler import TicketReconciler
from .store import TicketStore
from .ticket_numbers import parse_ticket_numbers

logger = logging.getLogger(__name__)


def compute_stats(tickets: Sequence[Ticket], ticket_price: float, recent_limit: int = 5) -> DashboardStats:
    """Dashboard numbers. Only rows with a ticket number, name and phone count."""
    complete = [
        t for t in tickets
        if t.ticket_number.strip() and t.name.strip() and t.phone_number.strip()
    ]
    checked_in = [t for t in complete if t.checked_in]
    paid = sum(1 for t in complete if t.paid)
    total = len(complete)

    return DashboardStats(
        total=total,
        checked_in=len(checked_in),
        paid=paid,
        remaining=total - len(checked_in),
        check_in_rate=(len(checked_in) / total) * 100 if total else 0.0,
        revenue=paid * ticket_price,
        recent_check_ins=checked_in[:recent_limit],
    )


class TicketDesk:
    """Operations behind each screen of the check-in desk."""

    def __init__(
        self,
        config: AppConfig,
        store: Optional[TicketStore] = None,
        transport: Optional[SmsTransport] = None,
    ):
        self.config = config
        self.store = store or TicketStore(config.store)
        self.reconciler = TicketReconciler(self.store)
        self.transport = transport or create_sms_transport(config.sms)
        self.dispatcher = NotificationDispatcher(
            self.store, self.transport, config.event, config.notification
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.store.close()

    async def add_tickets(
        self,
        raw: str,
        name: str,
        phone_number: str = "",
        paid: bool = False,
        checked_in: bool = False,
    ) -> BatchAddResult:
        """Add one ticket or a range/list of tickets for the same guest.

        Args:
            raw: Ticket number input, e.g. ``"042"``, ``"100-102"`` or ``"1,5,9"``.
            name: Guest name, required.
            phone_number: Guest phone number.
            paid: Whether the tickets are paid.
            checked_in: Check in on creation (event-day mode only, requires ``paid``).

        Raises:
            ValidationError: Nothing to add, more than the batch limit, or the
                flags are inconsistent. Raised before any remote call.
            DuplicateTicketError: Some numbers already exist; none were added.
        """
        ticket_numbers = parse_ticket_numbers(raw, limit=self.store.config.max_batch_size)
        if not ticket_numbers:
            raise ValidationError("Enter at least one ticket number")
        if not name.strip():
            raise ValidationError("Name is required")
        if checked_in and not self.config.event_day:
            raise ValidationError("Tickets can only be checked in on creation in event-day mode")
        if checked_in and not paid:
            raise ValidationError("A ticket cannot be checked in before it is paid")

        existing = await self.store.exists_batch(ticket_numbers)
        if existing:
            raise DuplicateTicketError(
                existing,
                f"Ticket number(s) already exist: {', '.join(existing)}. Remove them and try again.",
            )

        tickets = [
            Ticket(number, name.strip(), phone_number.strip(), paid=paid, checked_in=checked_in)
            for number in ticket_numbers
        ]
        if len(tickets) == 1:
            await self.store.append_one(tickets[0], check_duplicates=False)
            return BatchAddResult(added=1)
        return await self.store.append_batch(tickets)

    async def lookup(self, raw: str) -> List[Tuple[str, Optional[Ticket]]]:
        """Look up each ticket number in the input; missing ones map to None."""
        ticket_numbers = parse_ticket_numbers(raw)
        return [(number, await self.store.find_ticket(number)) for number in ticket_numbers]

    async def search(self, query: str) -> List[Ticket]:
        return await self.store.search(query)

    async def stats(self) -> DashboardStats:
        tickets = await self.store.get_tickets()
        return compute_stats(tickets, self.config.ticket_price)


class DashboardMonitor:
    """Refreshes dashboard statistics on an interval."""

    def __init__(self, desk: TicketDesk, interval: float, on_update=None):
        """Initialize with the desk to poll and the refresh interval in seconds."""
        self.desk = desk
        self.interval = interval
        self.on_update = on_update
        self.shutdown_event = asyncio.Event()
        self.refresh_count = 0
        self.latest: Optional[DashboardStats] = None

        # Register signal handlers
        signal.signal(signal.SIGINT, self._handle_shutdown)
        signal.signal(signal.SIGTERM, self._handle_shutdown)

    def _handle_shutdown(self, signum, frame) -> None:
        """Handle shutdown signals gracefully."""
        logger.warning(f"Received signal {signum}, stopping dashboard...")
        self.shutdown_event.set()

    async def refresh(self) -> Optional[DashboardStats]:
        """Fetch fresh stats; failures are logged and the last stats kept."""
        self.refresh_count += 1
        try:
            self.latest = await self.desk.stats()
        except TicketingError as e:
            logger.error(f"Failed to load stats: {e}")
            return None

        if self.on_update:
            self.on_update(self.latest)
        return self.latest

    async def run(self) -> None:
        """Refresh until a shutdown is requested."""
        logger.info(f"📊 Dashboard refreshing every {self.interval:g}s")

        while not self.shutdown_event.is_set():
            await self.refresh()
            try:
                await asyncio.wait_for(self.shutdown_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        logger.info(f"✅ Dashboard stopped after {self.refresh_count} refresh(es)")


def create_default_config() -> AppConfig:
    """Create a default configuration."""
    return AppConfig(
        store=StoreConfig(header_rows=2, search_mode="client"),
        sms=SmsConfig(),
        notification=NotificationConfig(send_delay=1.0),
        event=EventDetails(),
        event_day=False,
        ticket_price=120.0,
        refresh_interval=10.0,
        log_level="INFO",
    )


def config_from_settings(settings: Settings) -> AppConfig:
    """Convert environment settings into an application config."""
    return AppConfig(
        store=StoreConfig(
            script_url=settings.GOOGLE_SCRIPT_URL,
            header_rows=settings.STORE_HEADER_ROWS,
            search_mode=settings.STORE_SEARCH_MODE,
            timeout=settings.REQUEST_TIMEOUT,
            max_batch_size=settings.MAX_BATCH_SIZE,
        ),
        sms=SmsConfig(
            account_sid=settings.TWILIO_ACCOUNT_SID,
            auth_token=settings.TWILIO_AUTH_TOKEN,
            from_number=settings.TWILIO_PHONE_NUMBER,
            timeout=settings.REQUEST_TIMEOUT,
        ),
        notification=NotificationConfig(
            send_delay=settings.SMS_SEND_DELAY,
            calendar_link=settings.NOTIFY_CALENDAR_LINK,
            calendar_style=settings.NOTIFY_CALENDAR_STYLE,
        ),
        event=EventDetails(
            name=settings.EVENT_NAME,
            start=settings.EVENT_START,
            end=settings.EVENT_END,
            date_text=settings.EVENT_DATE_TEXT,
            time_text=settings.EVENT_TIME_TEXT,
            location=settings.EVENT_LOCATION,
            address=settings.EVENT_ADDRESS,
            description=settings.EVENT_DESCRIPTION,
            timezone=settings.EVENT_TIMEZONE,
        ),
        event_day=settings.EVENT_DAY,
        ticket_price=settings.TICKET_PRICE,
        refresh_interval=settings.REFRESH_INTERVAL,
        log_level=settings.LOG_LEVEL,
    )


def load_config(**overrides) -> AppConfig:
    """Load configuration from environment variables.

    Args:
        **overrides: Settings values that replace the environment, e.g.
            ``GOOGLE_SCRIPT_URL="https://..."``.
    """
    return config_from_settings(load_settings(**overrides))


def format_stats(stats: DashboardStats) -> str:
    lines = [
        f"=== Dashboard ({datetime.now():%H:%M:%S}) ===",
        f"Total tickets: {stats.total}",
        f"Checked in:    {stats.checked_in} ({stats.check_in_rate:.0f}%)",
        f"Remaining:     {stats.remaining}",
        f"Paid:          {stats.paid}",
        f"Revenue:       ${stats.revenue:,.2f}",
    ]
    if stats.recent_check_ins:
        lines.append("Recent check-ins:")
        lines.extend(f"  #{t.ticket_number} {t.name}" for t in stats.recent_check_ins)
    return "\n".join(lines)
