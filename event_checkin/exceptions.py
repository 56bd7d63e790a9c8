"""Error types raised by the Event Check-in package."""
from typing import Iterable, List, Optional


class TicketingError(Exception):
    """Base class for all errors raised by this package."""


class TransportError(TicketingError):
    """The ticket endpoint could not be reached or returned an unusable reply."""


class RemoteLogicError(TicketingError):
    """The endpoint answered but reported ``success: false``."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TicketNotFoundError(RemoteLogicError):
    """No row matches the requested ticket number."""

    def __init__(self, ticket_number: str, message: str = "Ticket not found"):
        super().__init__(message)
        self.ticket_number = ticket_number


class DuplicateTicketError(RemoteLogicError):
    """One or more ticket numbers already exist in the store."""

    def __init__(self, ticket_numbers: Iterable[str], message: Optional[str] = None):
        self.ticket_numbers: List[str] = list(ticket_numbers)
        if message is None:
            message = f"Ticket number already exists: {', '.join(self.ticket_numbers)}"
        super().__init__(message)


class ValidationError(TicketingError):
    """Client-side input was rejected before any remote call was made."""


class InvalidTransitionError(TicketingError):
    """The requested payment/check-in change is not allowed for the ticket's state."""


class DeliveryError(TicketingError):
    """An outbound SMS could not be delivered to the provider."""
