"""Data models and types for Event Check-in."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .ticket_numbers import format_ticket_number, normalize_ticket_number

YES = "Yes"
NO = "No"


def to_flag(value: bool) -> str:
    """Serialize a boolean the way the sheet stores it."""
    return YES if value else NO


def from_flag(value: Any) -> bool:
    """Read a Yes/No cell; anything other than "yes" is false."""
    return str(value if value is not None else "").strip().lower() == "yes"


@dataclass
class Ticket:
    """One ticket row in the sheet."""
    ticket_number: str
    name: str
    phone_number: str = ""
    paid: bool = False
    checked_in: bool = False
    expected: bool = False

    @property
    def key(self) -> str:
        """Normalized ticket number used for all comparisons."""
        return normalize_ticket_number(self.ticket_number)

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Ticket":
        """Build a ticket from a ``searchTicket`` response record."""
        return cls(
            ticket_number=str(record.get("ticketNumber") or ""),
            name=str(record.get("name") or ""),
            phone_number=str(record.get("phoneNumber") or ""),
            paid=from_flag(record.get("paid")),
            checked_in=from_flag(record.get("checkedIn")),
            expected=from_flag(record.get("expected")),
        )

    def to_form(self) -> Dict[str, str]:
        """Form fields for a single-ticket POST."""
        return {
            "ticketNumber": format_ticket_number(self.ticket_number),
            "name": self.name,
            "phoneNumber": self.phone_number,
            "paid": "true" if self.paid else "false",
            "checkedIn": "true" if self.checked_in else "false",
        }

    def to_payload(self) -> Dict[str, Any]:
        """JSON object for one entry of a batch POST."""
        return {
            "ticketNumber": format_ticket_number(self.ticket_number),
            "name": self.name,
            "phoneNumber": self.phone_number,
            "paid": self.paid,
            "checkedIn": self.checked_in,
        }


@dataclass
class BatchAddResult:
    """Outcome of adding one or more tickets."""
    added: int = 0
    failed: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed


@dataclass
class DashboardStats:
    """Headline numbers shown on the dashboard."""
    total: int = 0
    checked_in: int = 0
    paid: int = 0
    remaining: int = 0
    check_in_rate: float = 0.0
    revenue: float = 0.0
    recent_check_ins: List[Ticket] = field(default_factory=list)


@dataclass
class EventDetails:
    """Event information used in guest notifications."""
    name: str = "Event"
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    date_text: Optional[str] = None
    time_text: Optional[str] = None
    location: str = ""
    address: str = ""
    description: Optional[str] = None
    timezone: str = "America/Toronto"

    @property
    def formatted_date(self) -> str:
        if self.date_text:
            return self.date_text
        if self.start:
            return f"{self.start:%A, %B} {self.start.day}, {self.start.year}"
        return ""

    @property
    def formatted_time(self) -> str:
        if self.time_text:
            return self.time_text
        if self.start:
            return self.start.strftime("%I:%M %p").lstrip("0")
        return ""


@dataclass
class SmsMessage:
    """Represents an SMS to be sent."""
    to: str  # E.164
    from_number: str
    body: str


@dataclass
class StoreConfig:
    """Configuration for the ticket endpoint."""
    script_url: str = ""
    header_rows: int = 2
    search_mode: str = "client"  # 'client' scans all rows, 'server' asks the endpoint
    timeout: float = 30.0
    max_batch_size: int = 100
    check_duplicates: bool = True


@dataclass
class SmsConfig:
    """Configuration for the SMS provider."""
    account_sid: str = ""
    auth_token: str = ""
    from_number: str = ""
    api_base: str = "https://api.twilio.com/2010-04-01"
    timeout: float = 30.0


@dataclass
class NotificationConfig:
    """Configuration for bulk notifications."""
    send_delay: float = 1.0  # seconds between messages
    calendar_link: Optional[str] = None
    calendar_style: str = "ics"  # ics, google or outlook


@dataclass
class AppConfig:
    """Main application configuration."""
    store: StoreConfig = field(default_factory=StoreConfig)
    sms: SmsConfig = field(default_factory=SmsConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)
    event: EventDetails = field(default_factory=EventDetails)
    event_day: bool = False
    ticket_price: float = 120.0
    refresh_interval: float = 10.0  # seconds
    log_level: str = "INFO"
