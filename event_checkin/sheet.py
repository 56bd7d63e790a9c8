"""
Row layout of the ticket sheet and pure helpers that work on row snapshots.

Columns (0-indexed): ticket number, name, phone, paid, checked in, expected.
The first ``header_rows`` rows hold the title and column headers.
"""
import re
from typing import Any, List, Optional, Sequence

from .models import Ticket, from_flag
from .ticket_numbers import TICKET_NUMBER_WIDTH, normalize_ticket_number

COL_TICKET = 0
COL_NAME = 1
COL_PHONE = 2
COL_PAID = 3
COL_CHECKED_IN = 4
COL_EXPECTED = 5

Row = List[str]

_NON_DIGITS = re.compile(r"\D")


def cell(row: Sequence[Any], column: int) -> str:
    """Read a cell as text; missing and null cells read as ``""``."""
    if column >= len(row) or row[column] is None:
        return ""
    return str(row[column])


def clean_rows(data: Sequence[Sequence[Any]]) -> List[Row]:
    """Stringify every cell of a raw ``data`` payload."""
    return [[cell(row, i) for i in range(len(row))] for row in data]


def data_rows(rows: Sequence[Row], header_rows: int) -> List[Row]:
    return list(rows[header_rows:])


def locate(rows: Sequence[Row], key: str, header_rows: int) -> Optional[int]:
    """Index of the first data row whose ticket number matches ``key``."""
    key = normalize_ticket_number(key)
    for index in range(header_rows, len(rows)):
        if normalize_ticket_number(cell(rows[index], COL_TICKET)) == key:
            return index
    return None


def ticket_from_row(row: Sequence[Any]) -> Ticket:
    return Ticket(
        ticket_number=cell(row, COL_TICKET),
        name=cell(row, COL_NAME),
        phone_number=cell(row, COL_PHONE),
        paid=from_flag(cell(row, COL_PAID)),
        checked_in=from_flag(cell(row, COL_CHECKED_IN)),
        expected=from_flag(cell(row, COL_EXPECTED)),
    )


def matches_query(ticket: Ticket, query: str) -> bool:
    """Guest search: numbers match ticket numbers or phones, text matches names."""
    query = query.strip().lower()
    if not query:
        return False

    if query.isdigit():
        padded_query = query.rjust(TICKET_NUMBER_WIDTH, "0")
        if padded_query in normalize_ticket_number(ticket.ticket_number):
            return True
        return query in _NON_DIGITS.sub("", ticket.phone_number)

    return query in ticket.name.lower()
