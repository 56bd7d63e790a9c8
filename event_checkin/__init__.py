"""Event Check-in package.

This package provides tools to add tickets, track payments, check guests in
and send SMS notifications, using a shared spreadsheet as the ticket store.
"""

__version__ = "0.1.0"

# Import key components to make them available at the package level
from .app import DashboardMonitor, TicketDesk, load_config
from .exceptions import (
    DuplicateTicketError,
    RemoteLogicError,
    TicketingError,
    TicketNotFoundError,
    TransportError,
    ValidationError,
)
from .models import AppConfig, StoreConfig, Ticket
from .notifications import NotificationDispatcher, TwilioSmsTransport
from .reconciler import TicketReconciler
from .store import TicketStore
from .ticket_numbers import normalize_ticket_number, parse_ticket_numbers

__all__ = [
    'AppConfig',
    'DashboardMonitor',
    'DuplicateTicketError',
    'NotificationDispatcher',
    'RemoteLogicError',
    'StoreConfig',
    'Ticket',
    'TicketDesk',
    'TicketNotFoundError',
    'TicketReconciler',
    'TicketStore',
    'TicketingError',
    'TransportError',
    'TwilioSmsTransport',
    'ValidationError',
    'load_config',
    'normalize_ticket_number',
    'parse_ticket_numbers',
]
