"""
SMS notifications for expected guests.
"""
import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple

import httpx
import pydantic
from pydantic import BaseModel, ConfigDict

from .calendar_links import calendar_link_for, event_from_details
from .exceptions import DeliveryError, TicketingError, ValidationError
from .models import EventDetails, NotificationConfig, SmsConfig, SmsMessage, Ticket
from .store import TicketStore

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")

ProgressCallback = Callable[[int, int, str], None]


def normalize_phone(phone: str) -> str:
    """Strip everything but digits."""
    return _NON_DIGITS.sub("", phone or "")


def format_phone_number(phone: str) -> str:
    """Format a phone number as E.164, assuming North American numbering.

    Handles formats like 647-330-8919, (647) 330-8919 and 16473308919.
    """
    raw = (phone or "").strip()
    digits = normalize_phone(raw)

    if len(digits) == 10:
        return f"+1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if raw.startswith("+") and 8 <= len(digits) <= 15:
        return f"+{digits}"
    raise ValidationError(f"Invalid phone number: {phone!r}")


def compose_message(name: str, ticket_number: str, event: EventDetails, calendar_link: str) -> str:
    """Text sent to each guest."""
    lines = [
        f"Thank you {name},",
        "",
        f"Your ticket number is {ticket_number}",
        "",
        event.name,
        f"{event.formatted_date} at {event.formatted_time}",
        "",
        event.location,
        event.address,
    ]
    if calendar_link:
        lines += ["", f"Calendar: {calendar_link}"]
    return "\n".join(lines)


@dataclass
class Recipient:
    name: str
    phone_number: str
    ticket_number: str


@dataclass
class SendResult:
    """Delivery outcome for one recipient."""
    name: str
    phone_number: str
    success: bool
    error: Optional[str] = None
    message_id: Optional[str] = None


@dataclass
class DispatchReport:
    """Summary of a bulk notification run."""
    total_sent: int = 0
    total_failed: int = 0
    results: List[SendResult] = field(default_factory=list)
    duplicates_dropped: int = 0


class TwilioMessage(BaseModel):
    """The part of a Twilio message resource we use."""
    model_config = ConfigDict(extra="ignore")

    sid: str
    status: Optional[str] = None
    error_code: Optional[int] = None


class SmsTransport:
    """Base class for SMS providers."""

    def __init__(self, config: SmsConfig):
        self.config = config

    @property
    def from_number(self) -> str:
        return self.config.from_number

    def is_configured(self) -> bool:
        return bool(self.config.account_sid and self.config.auth_token and self.config.from_number)

    async def send(self, message: SmsMessage) -> str:
        """Send one message and return the provider's message id."""
        if not self.is_configured():
            raise DeliveryError("SMS service is not configured. Check your Twilio environment variables.")
        try:
            return await self._send_impl(message)
        except httpx.HTTPError as e:
            raise DeliveryError(f"Failed to send SMS: {e}") from e

    async def _send_impl(self, message: SmsMessage) -> str:
        """Implementation of the sending logic."""
        raise NotImplementedError("Subclasses must implement this method")


class TwilioSmsTransport(SmsTransport):
    """Sends SMS through the Twilio Messages API."""

    def __init__(self, config: SmsConfig, client: Optional[httpx.AsyncClient] = None):
        super().__init__(config)
        self.client = client
        self.url = f"{config.api_base}/Accounts/{config.account_sid}/Messages.json"

    async def _send_impl(self, message: SmsMessage) -> str:
        data = {"To": message.to, "From": message.from_number, "Body": message.body}
        auth = (self.config.account_sid, self.config.auth_token)

        if self.client is not None:
            response = await self.client.post(self.url, data=data, auth=auth)
        else:
            async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                response = await client.post(self.url, data=data, auth=auth)

        if not response.is_success:
            try:
                detail = response.json().get("message")
            except ValueError:
                detail = None
            raise DeliveryError(detail or f"Failed to send SMS: HTTP {response.status_code}")

        try:
            result = TwilioMessage.model_validate(response.json())
        except (ValueError, pydantic.ValidationError) as e:
            raise DeliveryError(f"Unexpected SMS provider response: {e}") from e

        logger.debug(f"Twilio message {result.sid} status={result.status}")
        if result.status in ("queued", "accepted"):
            logger.debug("Message queued; delivery status is tracked by the provider")
        return result.sid


def create_sms_transport(config: SmsConfig) -> SmsTransport:
    """Create the SMS transport for the given config."""
    return TwilioSmsTransport(config)


def select_recipients(tickets: Iterable[Ticket]) -> List[Recipient]:
    """Guests marked as expected who have both a name and a phone number."""
    return [
        Recipient(ticket.name, ticket.phone_number, ticket.ticket_number)
        for ticket in tickets
        if ticket.phone_number.strip() and ticket.name.strip() and ticket.expected
    ]


def dedupe_recipients(recipients: Iterable[Recipient]) -> List[Recipient]:
    """Keep the first recipient for each phone number (compared by digits)."""
    unique = {}
    for recipient in recipients:
        unique.setdefault(normalize_phone(recipient.phone_number), recipient)
    return list(unique.values())


class NotificationDispatcher:
    """Sends one message per unique phone number, one at a time."""

    def __init__(
        self,
        store: TicketStore,
        transport: SmsTransport,
        event: EventDetails,
        config: NotificationConfig,
    ):
        self.store = store
        self.transport = transport
        self.event = event
        self.config = config

    @property
    def calendar_link(self) -> str:
        if self.config.calendar_link:
            return self.config.calendar_link
        calendar_event = event_from_details(self.event)
        return calendar_link_for(calendar_event, self.config.calendar_style) if calendar_event else ""

    def message_for(self, recipient: Recipient) -> str:
        return compose_message(recipient.name, recipient.ticket_number, self.event, self.calendar_link)

    def preview_message(self, recipients: List[Recipient]) -> str:
        """The message the first recipient would receive."""
        if not recipients:
            return ""
        return self.message_for(recipients[0])

    async def load_recipients(self) -> Tuple[List[Recipient], List[Recipient]]:
        """Return all expected guests and the de-duplicated send list."""
        tickets = await self.store.get_tickets()
        recipients = select_recipients(tickets)
        unique = dedupe_recipients(recipients)
        logger.info(f"📇 {len(recipients)} expected guest(s), {len(unique)} unique phone number(s)")
        return recipients, unique

    async def send_one(self, recipient: Recipient) -> SendResult:
        """Send to a single recipient; failures are returned, not raised."""
        try:
            message = SmsMessage(
                to=format_phone_number(recipient.phone_number),
                from_number=self.transport.from_number,
                body=self.message_for(recipient),
            )
            message_id = await self.transport.send(message)
        except TicketingError as e:
            logger.error(f"Failed to notify {recipient.name} ({recipient.phone_number}): {e}")
            return SendResult(recipient.name, recipient.phone_number, False, error=str(e))

        logger.info(f"📤 Sent notification to {recipient.name}")
        return SendResult(recipient.name, recipient.phone_number, True, message_id=message_id)

    async def dispatch(
        self,
        recipients: List[Recipient],
        on_progress: Optional[ProgressCallback] = None,
    ) -> DispatchReport:
        """Send to each recipient in order, pausing between messages.

        Args:
            recipients: Already de-duplicated recipients.
            on_progress: Called as ``on_progress(sent, total, name)`` after each send.

        Returns:
            DispatchReport with one result per recipient.
        """
        report = DispatchReport()
        total = len(recipients)

        for i, recipient in enumerate(recipients):
            result = await self.send_one(recipient)
            report.results.append(result)
            if result.success:
                report.total_sent += 1
            else:
                report.total_failed += 1

            if on_progress:
                on_progress(i + 1, total, recipient.name)

            # Stay under the provider's rate limit
            if i < total - 1:
                await asyncio.sleep(self.config.send_delay)

        logger.info(f"✅ Notifications done: {report.total_sent} sent, {report.total_failed} failed")
        return report

    async def notify_expected_guests(self, on_progress: Optional[ProgressCallback] = None) -> DispatchReport:
        """Load expected guests from the store and message each unique phone number once."""
        if not self.transport.is_configured():
            raise ValidationError("SMS service is not configured. Add Twilio credentials to your environment.")

        recipients, unique = await self.load_recipients()
        if not unique:
            raise ValidationError("No recipients to send to. Check that guests are marked as expected.")

        report = await self.dispatch(unique, on_progress)
        report.duplicates_dropped = len(recipients) - len(unique)
        return report

    async def send_test_message(self, phone_number: str) -> SendResult:
        """Send the standard message to an operator's own phone."""
        if not self.transport.is_configured():
            raise ValidationError("SMS service is not configured. Add Twilio credentials to your environment.")
        return await self.send_one(Recipient("Test User", phone_number, "001"))
