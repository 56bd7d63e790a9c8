"""Configuration settings using Pydantic with environment variables."""
from datetime import datetime
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file if it exists
env_path = Path('.') / '.env'
load_dotenv(dotenv_path=env_path)


class Settings(BaseSettings):
    """Application settings with environment variable loading and validation."""

    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='ignore',
    )

    # Required settings
    GOOGLE_SCRIPT_URL: str = Field(
        ...,
        description="Web app URL of the Apps Script endpoint that serves the ticket sheet"
    )

    # Store
    STORE_HEADER_ROWS: int = Field(2, description="Number of title/header rows above the data")
    STORE_SEARCH_MODE: str = Field("client", description="'client' scans all rows, 'server' asks the endpoint")
    REQUEST_TIMEOUT: float = Field(30.0, description="Timeout in seconds for endpoint requests")
    MAX_BATCH_SIZE: int = Field(100, description="Largest number of tickets accepted in one batch add")

    # Application mode
    EVENT_DAY: bool = Field(False, description="Event-day mode allows adding tickets already checked in")
    TICKET_PRICE: float = Field(120.0, description="Price per ticket, used for dashboard revenue")
    REFRESH_INTERVAL: float = Field(10.0, description="Seconds between dashboard refreshes")

    # SMS
    TWILIO_ACCOUNT_SID: str = Field("", description="Twilio account SID")
    TWILIO_AUTH_TOKEN: str = Field("", description="Twilio auth token")
    TWILIO_PHONE_NUMBER: str = Field("", description="Sender phone number in E.164 format")
    SMS_SEND_DELAY: float = Field(1.0, description="Seconds to wait between messages")
    NOTIFY_CALENDAR_LINK: Optional[str] = Field(None, description="Calendar link to use instead of a generated one")
    NOTIFY_CALENDAR_STYLE: str = Field("ics", description="Generated calendar link: ics, google or outlook")

    # Event
    EVENT_NAME: str = Field("Event", description="Event name used in notifications")
    EVENT_START: Optional[datetime] = Field(None, description="Event start, ISO format")
    EVENT_END: Optional[datetime] = Field(None, description="Event end, ISO format")
    EVENT_DATE_TEXT: Optional[str] = Field(None, description="Human readable date for messages")
    EVENT_TIME_TEXT: Optional[str] = Field(None, description="Human readable time for messages")
    EVENT_LOCATION: str = Field("", description="Venue name")
    EVENT_ADDRESS: str = Field("", description="Venue address")
    EVENT_DESCRIPTION: Optional[str] = Field(None, description="Calendar event description")
    EVENT_TIMEZONE: str = Field("America/Toronto", description="Timezone of naive event times")

    LOG_LEVEL: str = Field("INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)")

    @field_validator('GOOGLE_SCRIPT_URL')
    @classmethod
    def validate_script_url(cls, v):
        """Validate endpoint URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('GOOGLE_SCRIPT_URL must start with http:// or https://')
        return v

    @field_validator('STORE_HEADER_ROWS')
    @classmethod
    def validate_header_rows(cls, v):
        if v < 0:
            raise ValueError('STORE_HEADER_ROWS cannot be negative')
        return v

    @field_validator('STORE_SEARCH_MODE')
    @classmethod
    def validate_search_mode(cls, v):
        v = v.lower()
        if v not in ('client', 'server'):
            raise ValueError("STORE_SEARCH_MODE must be 'client' or 'server'")
        return v

    @field_validator('NOTIFY_CALENDAR_STYLE')
    @classmethod
    def validate_calendar_style(cls, v):
        v = v.lower()
        if v not in ('ics', 'google', 'outlook'):
            raise ValueError("NOTIFY_CALENDAR_STYLE must be 'ics', 'google' or 'outlook'")
        return v

    @field_validator('LOG_LEVEL')
    @classmethod
    def validate_log_level(cls, v):
        """Validate LOG_LEVEL is a valid logging level."""
        valid_levels = {'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'}
        if v.upper() not in valid_levels:
            raise ValueError(f'LOG_LEVEL must be one of {valid_levels}')
        return v.upper()


def load_settings(**overrides) -> Settings:
    """Read settings from the environment and ``.env``.

    Keyword arguments take priority over environment values.
    """
    return Settings(**overrides)
