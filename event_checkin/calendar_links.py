"""Calendar links included in guest notifications."""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote, urlencode
from zoneinfo import ZoneInfo

from .models import EventDetails


@dataclass
class CalendarEvent:
    title: str
    location: str
    start: datetime
    end: datetime
    description: str = ""
    timezone: str = "America/Toronto"


def create_event(
    title: str,
    location: str,
    address: str,
    start: datetime,
    end: datetime,
    description: Optional[str] = None,
    tz: str = "America/Toronto",
) -> CalendarEvent:
    return CalendarEvent(
        title=title,
        location=f"{location}, {address}" if address else location,
        start=start,
        end=end,
        description=description or f"{title}\n\nLocation: {location}\n{address}",
        timezone=tz,
    )


def event_from_details(details: EventDetails) -> Optional[CalendarEvent]:
    """Calendar event for configured details, or None without a start time."""
    if details.start is None:
        return None
    return create_event(
        details.name,
        details.location,
        details.address,
        details.start,
        details.end or details.start,
        details.description,
        details.timezone,
    )


def _as_utc(value: datetime, tz: str) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=ZoneInfo(tz))
    return value.astimezone(timezone.utc)


def _utc_stamp(value: datetime, tz: str) -> str:
    return _as_utc(value, tz).strftime("%Y%m%dT%H%M%SZ")


def _utc_iso(value: datetime, tz: str) -> str:
    return _as_utc(value, tz).strftime("%Y-%m-%dT%H:%M:%SZ")


def _escape(text: str) -> str:
    for char in ("\\", ",", ";"):
        text = text.replace(char, "\\" + char)
    return text.replace("\n", "\\n")


def ics_content(event: CalendarEvent) -> str:
    """Minimal iCalendar document for a single event."""
    return "\r\n".join([
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "BEGIN:VEVENT",
        f"DTSTART:{_utc_stamp(event.start, event.timezone)}",
        f"DTEND:{_utc_stamp(event.end, event.timezone)}",
        f"SUMMARY:{_escape(event.title)}",
        f"LOCATION:{_escape(event.location)}",
        f"DESCRIPTION:{_escape(event.description)}",
        "END:VEVENT",
        "END:VCALENDAR",
    ])


def web_calendar_link(event: CalendarEvent) -> str:
    """``data:`` URI that phones open straight into their calendar app."""
    return f"data:text/calendar;charset=utf-8,{quote(ics_content(event), safe='')}"


def google_calendar_link(event: CalendarEvent) -> str:
    params = urlencode({
        "action": "TEMPLATE",
        "text": event.title,
        "dates": f"{_utc_stamp(event.start, event.timezone)}/{_utc_stamp(event.end, event.timezone)}",
        "details": event.description,
        "location": event.location,
        "ctz": event.timezone,
    })
    return f"https://calendar.google.com/calendar/render?{params}"


def outlook_calendar_link(event: CalendarEvent) -> str:
    params = urlencode({
        "path": "/calendar/action/compose",
        "rru": "addevent",
        "subject": event.title,
        "body": event.description,
        "location": event.location,
        "startdt": _utc_iso(event.start, event.timezone),
        "enddt": _utc_iso(event.end, event.timezone),
    })
    return f"https://outlook.live.com/calendar/0/deeplink/compose?{params}"


CALENDAR_STYLES = {
    "ics": web_calendar_link,
    "google": google_calendar_link,
    "outlook": outlook_calendar_link,
}


def calendar_link_for(event: CalendarEvent, style: str = "ics") -> str:
    """Link in the given style; raises KeyError for an unknown style."""
    return CALENDAR_STYLES[style](event)
