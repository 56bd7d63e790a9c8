"""Shared fixtures: an in-memory stand-in for the Apps Script endpoint."""
import json
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl

import httpx
import pytest

from event_checkin.models import StoreConfig
from event_checkin.sheet import locate
from event_checkin.store import TicketStore
from event_checkin.ticket_numbers import format_ticket_number, normalize_ticket_number

SCRIPT_URL = "https://script.example.com/macros/s/test/exec"

TITLE_ROW = ["Guest List", "", "", "", "", ""]
HEADER_ROW = ["Ticket", "Name", "Phone", "Paid", "Checked In", "Expected"]


class FakeSheetEndpoint:
    """Behaves like the deployed web app over a list of rows."""

    def __init__(self, rows: Optional[List[List[Any]]] = None, header_rows: int = 2):
        self.header_rows = header_rows
        self.rows: List[List[Any]] = [TITLE_ROW, HEADER_ROW][:header_rows] + list(rows or [])
        self.calls: List[Dict[str, str]] = []
        self.status_code = 200

    @property
    def data(self) -> List[List[Any]]:
        return self.rows[self.header_rows:]

    @property
    def mutations(self) -> List[Dict[str, str]]:
        return [call for call in self.calls if call["method"] == "POST"]

    def row_for(self, ticket_number: str) -> Optional[List[Any]]:
        index = locate(self.rows, normalize_ticket_number(ticket_number), self.header_rows)
        return None if index is None else self.rows[index]

    def _existing(self) -> set:
        return {normalize_ticket_number(row[0]) for row in self.data}

    def handle(self, request: httpx.Request) -> httpx.Response:
        if self.status_code != 200:
            return httpx.Response(self.status_code, text="Server Error")

        if request.method == "GET":
            params = dict(request.url.params)
            self.calls.append({"method": "GET", **params})
            return httpx.Response(200, json=self._get(params))

        form = dict(parse_qsl(request.content.decode("utf-8")))
        self.calls.append({"method": "POST", **form})
        return httpx.Response(200, json=self._post(form))

    def _get(self, params: Dict[str, str]) -> Dict[str, Any]:
        action = params.get("action")
        if action == "searchTicket":
            row = self.row_for(params.get("ticketNumber", ""))
            if row is None:
                return {"success": True, "found": False}
            return {
                "success": True,
                "found": True,
                "data": {
                    "ticketNumber": str(row[0]),
                    "name": row[1],
                    "phoneNumber": row[2],
                    "paid": row[3],
                    "checkedIn": row[4],
                },
            }
        if action == "checkTickets":
            existing = self._existing()
            requested = json.loads(params["tickets"])
            return {
                "success": True,
                "existingTickets": [
                    t.rjust(3, "0") for t in requested if normalize_ticket_number(t) in existing
                ],
            }
        return {"success": True, "data": self.rows}

    def _post(self, form: Dict[str, str]) -> Dict[str, Any]:
        action = form.get("action")
        updates = {
            "updatePayment": {3: "Yes"},
            "markPaid": {3: "Yes"},
            "markUnpaid": {3: "No"},
            "checkIn": {4: "Yes"},
            "payAndCheckIn": {3: "Yes", 4: "Yes"},
        }
        if action in updates:
            row = self.row_for(form.get("ticketNumber", ""))
            if row is None:
                return {"success": False, "error": "Ticket not found"}
            for column, value in updates[action].items():
                row[column] = value
            return {"success": True, "timestamp": "1/1/2026, 7:00:00 PM"}

        if form.get("batch") == "true":
            existing = self._existing()
            added, failed = 0, []
            for ticket in json.loads(form["tickets"]):
                key = normalize_ticket_number(ticket["ticketNumber"])
                if key in existing:
                    failed.append(ticket["ticketNumber"])
                    continue
                self.rows.append([
                    format_ticket_number(ticket["ticketNumber"]),
                    ticket["name"],
                    ticket["phoneNumber"],
                    "Yes" if ticket["paid"] else "No",
                    "Yes" if ticket["checkedIn"] else "No",
                ])
                existing.add(key)
                added += 1
            return {"success": True, "added": added, "failed": failed}

        if normalize_ticket_number(form.get("ticketNumber")) in self._existing():
            return {"success": False, "error": "Ticket number already exists"}
        self.rows.append([
            format_ticket_number(form["ticketNumber"]),
            form["name"],
            form["phoneNumber"],
            "Yes" if form.get("paid") == "true" else "No",
            "Yes" if form.get("checkedIn") == "true" else "No",
        ])
        return {"success": True}


def make_store(endpoint: FakeSheetEndpoint, **config) -> TicketStore:
    """TicketStore wired to ``endpoint`` through httpx.MockTransport."""
    config.setdefault("header_rows", endpoint.header_rows)
    client = httpx.AsyncClient(transport=httpx.MockTransport(endpoint.handle))
    return TicketStore(StoreConfig(script_url=SCRIPT_URL, **config), client=client)


@pytest.fixture
def sample_rows():
    """A few guests in different payment/check-in states."""
    return [
        ["001", "Alice Smith", "647-330-8919", "Yes", "No", "Yes"],
        ["002", "Bob Jones", "(416) 555-0100", "No", "No", "Yes"],
        ["003", "Carol White", "6473308919", "Yes", "Yes", "Yes"],
        [4, "Dan Brown", "905 555 0199", "No", "No", "No"],
    ]


@pytest.fixture
def endpoint(sample_rows):
    """Fake endpoint preloaded with the sample guests."""
    return FakeSheetEndpoint([list(row) for row in sample_rows])


@pytest.fixture
def store(endpoint):
    """Client-side search store against the fake endpoint."""
    return make_store(endpoint)


@pytest.fixture
def server_store(endpoint):
    """Server-side search store against the fake endpoint."""
    return make_store(endpoint, search_mode="server")
