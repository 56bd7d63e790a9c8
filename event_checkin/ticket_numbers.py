"""Ticket number canonicalization and batch input parsing."""
import logging
from typing import Any, List

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

TICKET_NUMBER_WIDTH = 3
MAX_PARSED_TICKETS = 1000


def format_ticket_number(raw: Any) -> str:
    """Trim and zero-pad a ticket number to the stored width, keeping case."""
    return str(raw if raw is not None else "").strip().rjust(TICKET_NUMBER_WIDTH, "0")


def normalize_ticket_number(raw: Any) -> str:
    """Return the comparison key for a ticket number.

    ``"7"``, ``"07"`` and ``"007"`` all map to ``"007"``.
    """
    return format_ticket_number(raw).lower()


def parse_ticket_numbers(raw: str, limit: int = MAX_PARSED_TICKETS) -> List[str]:
    """Expand user input into individual, padded ticket numbers.

    Accepts a single token, a comma separated list, numeric ranges such as
    ``"001-005"``, or any mix of those. Order is preserved and repeats are
    dropped. Ranges whose bounds are not numbers are skipped.

    Args:
        raw: The text typed or scanned by the operator.
        limit: Most ticket numbers the input may expand to.

    Returns:
        A list of padded ticket numbers. Empty when there is nothing to submit.

    Raises:
        ValidationError: The input expands to more than ``limit`` tickets.
    """
    tickets: List[str] = []
    seen = set()

    for part in (raw or "").split(","):
        part = part.strip()
        if not part:
            continue

        if "-" in part:
            start, _, end = part.partition("-")
            try:
                low, high = int(start), int(end)
            except ValueError:
                logger.debug(f"Ignoring malformed range {part!r}")
                continue
            if high - low + 1 > limit:
                raise ValidationError(
                    f"Range {part} covers {high - low + 1} tickets; the maximum is {limit}"
                )
            candidates = [str(number) for number in range(low, high + 1)]
        else:
            candidates = [part]

        for candidate in candidates:
            key = normalize_ticket_number(candidate)
            if key in seen:
                continue
            seen.add(key)
            tickets.append(format_ticket_number(candidate))

        if len(tickets) > limit:
            raise ValidationError(f"Too many tickets: {len(tickets)}; the maximum is {limit}")

    return tickets
