"""
Payment and check-in policy for tickets.

A ticket moves from unpaid to paid to checked in. Checking in an unpaid
ticket is never done directly: the operator confirms payment and the ticket
is paid and checked in with one call.
"""
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Awaitable, Callable, Iterable, List, Optional, Union

from .exceptions import InvalidTransitionError, TicketingError, TicketNotFoundError
from .models import Ticket
from .store import TicketStore
from .ticket_numbers import format_ticket_number

logger = logging.getLogger(__name__)


class TicketState(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    CHECKED_IN = "checked_in"
    UNPAID_CHECKED_IN = "unpaid_checked_in"  # disallowed, only ever observed


class CheckInStatus(str, Enum):
    CHECKED_IN = "checked_in"
    PAID_AND_CHECKED_IN = "paid_and_checked_in"
    NOT_FOUND = "not_found"
    ALREADY_CHECKED_IN = "already_checked_in"
    PAYMENT_REQUIRED = "payment_required"
    FAILED = "failed"


@dataclass
class CheckInResult:
    """Outcome of one check-in attempt."""
    ticket_number: str
    status: CheckInStatus
    message: str
    ticket: Optional[Ticket] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def success(self) -> bool:
        return self.status in (CheckInStatus.CHECKED_IN, CheckInStatus.PAID_AND_CHECKED_IN)


PaymentConfirmation = Callable[[Ticket], Union[bool, Awaitable[bool]]]


def ticket_state(ticket: Ticket) -> TicketState:
    """Classify a ticket by its two flags."""
    if ticket.checked_in:
        return TicketState.CHECKED_IN if ticket.paid else TicketState.UNPAID_CHECKED_IN
    return TicketState.PAID if ticket.paid else TicketState.UNPAID


def _refuse_unpaid_after_check_in(ticket: Ticket, ticket_number: str) -> None:
    if ticket.checked_in:
        raise InvalidTransitionError(
            f"Ticket {format_ticket_number(ticket_number)} is already checked in and cannot be marked unpaid"
        )


class TicketReconciler:
    """Decides which store mutations are allowed for a ticket."""

    def __init__(self, store: TicketStore):
        self.store = store

    async def _lookup(self, ticket_number: str) -> Ticket:
        ticket = await self.store.find_ticket(ticket_number)
        if ticket is None:
            raise TicketNotFoundError(format_ticket_number(ticket_number))
        return ticket

    async def mark_paid(self, ticket_number: str) -> None:
        await self.store.set_paid(ticket_number, True)

    async def mark_unpaid(self, ticket_number: str) -> None:
        """Clear the paid flag. Checked-in tickets must stay paid."""
        ticket = await self._lookup(ticket_number)
        _refuse_unpaid_after_check_in(ticket, ticket_number)
        await self.store.set_paid(ticket_number, False)

    async def toggle_payment(self, ticket_number: str) -> bool:
        """Flip the paid flag and return the new value."""
        ticket = await self._lookup(ticket_number)
        if ticket.paid:
            _refuse_unpaid_after_check_in(ticket, ticket_number)
            await self.store.set_paid(ticket_number, False)
            return False
        await self.mark_paid(ticket_number)
        return True

    async def check_in(self, ticket_number: str) -> CheckInResult:
        """Check in a paid ticket.

        Nothing is written when the ticket is missing, already checked in, or
        unpaid; the result says which. Errors from the endpoint are reported as
        ``FAILED`` with their text.
        """
        number = format_ticket_number(ticket_number)
        try:
            ticket = await self.store.find_ticket(ticket_number)
            if ticket is None:
                return CheckInResult(number, CheckInStatus.NOT_FOUND, "Ticket not found")

            if ticket.checked_in:
                return CheckInResult(
                    number, CheckInStatus.ALREADY_CHECKED_IN,
                    f"Already checked in - {ticket.name}", ticket,
                )

            if not ticket.paid:
                return CheckInResult(
                    number, CheckInStatus.PAYMENT_REQUIRED,
                    f"Payment required - {ticket.name}", ticket,
                )

            await self.store.check_in(ticket_number)
        except TicketNotFoundError:
            return CheckInResult(number, CheckInStatus.NOT_FOUND, "Ticket not found")
        except TicketingError as e:
            logger.error(f"Check-in of ticket {number} failed: {e}")
            return CheckInResult(number, CheckInStatus.FAILED, str(e))

        logger.info(f"✅ Checked in ticket {number} ({ticket.name})")
        return CheckInResult(number, CheckInStatus.CHECKED_IN, f"✓ {ticket.name}", ticket)

    async def pay_and_check_in(self, ticket_number: str) -> CheckInResult:
        """Mark a ticket paid and checked in with one store call.

        Safe to repeat on a ticket that is already paid and checked in.
        """
        number = format_ticket_number(ticket_number)
        try:
            ticket = await self.store.find_ticket(ticket_number)
            if ticket is None:
                return CheckInResult(number, CheckInStatus.NOT_FOUND, "Ticket not found")

            if ticket_state(ticket) is TicketState.UNPAID_CHECKED_IN:
                logger.warning(f"Ticket {number} was checked in without payment; recording payment now")

            await self.store.pay_and_check_in(ticket_number)
        except TicketNotFoundError:
            return CheckInResult(number, CheckInStatus.NOT_FOUND, "Ticket not found")
        except TicketingError as e:
            logger.error(f"Payment/check-in of ticket {number} failed: {e}")
            return CheckInResult(number, CheckInStatus.FAILED, str(e))

        ticket.paid = True
        ticket.checked_in = True
        logger.info(f"✅ Ticket {number} paid and checked in ({ticket.name})")
        return CheckInResult(number, CheckInStatus.PAID_AND_CHECKED_IN, "✓ Paid & Checked in", ticket)

    async def express_check_in(
        self,
        ticket_numbers: Iterable[str],
        confirm_payment: Optional[PaymentConfirmation] = None,
    ) -> List[CheckInResult]:
        """Check in a sequence of scanned tickets one after another.

        Args:
            ticket_numbers: Ticket numbers in scan order.
            confirm_payment: Called with an unpaid ticket; returning true takes
                payment and checks the ticket in. May be sync or async.

        Returns:
            One result per ticket number, in order.
        """
        results: List[CheckInResult] = []
        for ticket_number in ticket_numbers:
            if not ticket_number.strip():
                continue

            result = await self.check_in(ticket_number)
            if result.status is CheckInStatus.PAYMENT_REQUIRED and confirm_payment is not None:
                approved = confirm_payment(result.ticket)
                if inspect.isawaitable(approved):
                    approved = await approved
                if approved:
                    result = await self.pay_and_check_in(ticket_number)

            results.append(result)
        return results
