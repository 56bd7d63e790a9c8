"""
Async client for the spreadsheet endpoint that holds the ticket rows.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
import pydantic
from pydantic import BaseModel, ConfigDict, Field

from .exceptions import (
    DuplicateTicketError,
    RemoteLogicError,
    TicketNotFoundError,
    TransportError,
    ValidationError,
)
from .models import BatchAddResult, StoreConfig, Ticket
from .sheet import COL_TICKET, Row, cell, clean_rows, data_rows, locate, matches_query, ticket_from_row
from .ticket_numbers import format_ticket_number, normalize_ticket_number

logger = logging.getLogger(__name__)

NOT_FOUND_ERROR = "Ticket not found"
DUPLICATE_ERROR = "Ticket number already exists"


class StoreResponse(BaseModel):
    """Envelope returned by every endpoint call."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    success: bool
    error: Optional[str] = None
    data: Any = None
    found: Optional[bool] = None
    existing_tickets: List[Any] = Field(default_factory=list, alias="existingTickets")
    added: int = 0
    failed: List[Any] = Field(default_factory=list)
    timestamp: Optional[str] = None


class TicketStore:
    """Reads and writes ticket rows through the remote endpoint."""

    def __init__(self, config: StoreConfig, client: Optional[httpx.AsyncClient] = None):
        """Initialize with store configuration and an optional shared client."""
        if not config.script_url:
            raise ValueError("Missing endpoint URL. Set GOOGLE_SCRIPT_URL in your .env file.")
        if config.search_mode not in ("client", "server"):
            raise ValueError(f"Unknown search mode: {config.search_mode!r}")
        self.config = config
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self):
        """Async context manager entry."""
        self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this store created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            # Apps Script answers every request through a redirect
            self._client = httpx.AsyncClient(
                timeout=self.config.timeout,
                follow_redirects=True,
            )
        return self._client

    # -------- transport --------

    async def _request(self, method: str, **kwargs) -> StoreResponse:
        client = self._get_client()
        try:
            response = await client.request(method, self.config.script_url, **kwargs)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"Endpoint returned HTTP {e.response.status_code}: {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Could not reach endpoint: {e}") from e
        except ValueError as e:
            raise TransportError("Endpoint returned a response that is not JSON") from e

        try:
            envelope = StoreResponse.model_validate(payload)
        except pydantic.ValidationError as e:
            raise TransportError(f"Unexpected endpoint response: {e}") from e

        if not envelope.success:
            raise RemoteLogicError(envelope.error or "Request failed")
        return envelope

    async def _get(self, params: Optional[Dict[str, str]] = None) -> StoreResponse:
        return await self._request("GET", params=params)

    async def _post(self, data: Dict[str, str], ticket_number: Optional[str] = None) -> StoreResponse:
        try:
            return await self._request("POST", data=data)
        except RemoteLogicError as e:
            if ticket_number is not None and e.message == NOT_FOUND_ERROR:
                raise TicketNotFoundError(ticket_number) from e
            if e.message == DUPLICATE_ERROR:
                duplicates = [ticket_number] if ticket_number is not None else []
                raise DuplicateTicketError(duplicates, e.message) from e
            raise

    # -------- reads --------

    async def get_all_rows(self) -> List[Row]:
        """Fetch the whole sheet, header rows included."""
        envelope = await self._get()
        rows = clean_rows(envelope.data or [])
        logger.debug(f"Fetched {len(rows)} rows")
        return rows

    async def get_tickets(self) -> List[Ticket]:
        """Fetch all data rows as tickets."""
        rows = await self.get_all_rows()
        return [ticket_from_row(row) for row in data_rows(rows, self.config.header_rows)]

    async def find_ticket(self, ticket_number: str) -> Optional[Ticket]:
        """Find a ticket by its normalized number, or ``None`` when absent."""
        key = normalize_ticket_number(ticket_number)

        if self.config.search_mode == "server":
            envelope = await self._get({"action": "searchTicket", "ticketNumber": ticket_number.strip()})
            if not envelope.found or not envelope.data:
                return None
            return Ticket.from_record(envelope.data)

        rows = await self.get_all_rows()
        index = locate(rows, key, self.config.header_rows)
        if index is None:
            return None
        return ticket_from_row(rows[index])

    async def exists_batch(self, ticket_numbers: Sequence[str]) -> List[str]:
        """Return the padded form of every given ticket number already stored."""
        if not ticket_numbers:
            return []

        if self.config.search_mode == "server":
            envelope = await self._get({
                "action": "checkTickets",
                "tickets": json.dumps([str(n).strip() for n in ticket_numbers]),
            })
            return [format_ticket_number(n) for n in envelope.existing_tickets]

        rows = await self.get_all_rows()
        stored = {
            normalize_ticket_number(cell(row, COL_TICKET))
            for row in data_rows(rows, self.config.header_rows)
        }
        return [
            format_ticket_number(n) for n in ticket_numbers
            if normalize_ticket_number(n) in stored
        ]

    async def search(self, query: str) -> List[Ticket]:
        """Find guests by name, ticket number or phone digits."""
        tickets = await self.get_tickets()
        return [ticket for ticket in tickets if matches_query(ticket, query)]

    # -------- writes --------

    async def append_one(self, ticket: Ticket, check_duplicates: Optional[bool] = None) -> None:
        """Append a single ticket row.

        Args:
            ticket: The ticket to add. ``checked_in`` defaults to false.
            check_duplicates: Look the number up before posting. Defaults to
                the store configuration.

        Raises:
            ValidationError: The ticket number or name is blank.
            DuplicateTicketError: The normalized number is already stored.
        """
        _validate_ticket(ticket)
        if check_duplicates is None:
            check_duplicates = self.config.check_duplicates

        if check_duplicates:
            existing = await self.exists_batch([ticket.ticket_number])
            if existing:
                raise DuplicateTicketError(existing)

        await self._post(ticket.to_form(), ticket_number=format_ticket_number(ticket.ticket_number))
        logger.info(f"➕ Added ticket {format_ticket_number(ticket.ticket_number)} for {ticket.name}")

    async def append_batch(self, tickets: Sequence[Ticket]) -> BatchAddResult:
        """Append several tickets in one call, skipping duplicates.

        Repeats inside ``tickets`` and numbers already stored are reported in
        ``failed``; the rest are added.
        """
        if not tickets:
            raise ValidationError("No tickets to add")
        if len(tickets) > self.config.max_batch_size:
            raise ValidationError(
                f"Batch of {len(tickets)} tickets exceeds the maximum of {self.config.max_batch_size}"
            )

        unique: List[Ticket] = []
        failed: List[str] = []
        seen = set()
        for ticket in tickets:
            _validate_ticket(ticket)
            if ticket.key in seen:
                failed.append(format_ticket_number(ticket.ticket_number))
                continue
            seen.add(ticket.key)
            unique.append(ticket)

        envelope = await self._post({
            "batch": "true",
            "tickets": json.dumps([ticket.to_payload() for ticket in unique]),
        })
        failed.extend(format_ticket_number(n) for n in envelope.failed)

        result = BatchAddResult(added=envelope.added, failed=failed)
        logger.info(f"➕ Batch add: {result.added} added, {len(result.failed)} skipped")
        return result

    async def set_paid(self, ticket_number: str, paid: bool) -> None:
        """Set the paid flag of a ticket."""
        action = "markPaid" if paid else "markUnpaid"
        await self._post(
            {"action": action, "ticketNumber": ticket_number.strip()},
            ticket_number=format_ticket_number(ticket_number),
        )
        logger.info(f"💵 Ticket {format_ticket_number(ticket_number)} marked {'paid' if paid else 'unpaid'}")

    async def check_in(self, ticket_number: str) -> Optional[str]:
        """Set the checked-in flag. Payment is not verified here."""
        envelope = await self._post(
            {"action": "checkIn", "ticketNumber": ticket_number.strip()},
            ticket_number=format_ticket_number(ticket_number),
        )
        return envelope.timestamp

    async def pay_and_check_in(self, ticket_number: str) -> Optional[str]:
        """Set both the paid and checked-in flags in a single call."""
        envelope = await self._post(
            {"action": "payAndCheckIn", "ticketNumber": ticket_number.strip()},
            ticket_number=format_ticket_number(ticket_number),
        )
        return envelope.timestamp


def _validate_ticket(ticket: Ticket) -> None:
    if not str(ticket.ticket_number or "").strip():
        raise ValidationError("Ticket number is required")
    if not (ticket.name or "").strip():
        raise ValidationError(f"Name is required for ticket {format_ticket_number(ticket.ticket_number)}")
