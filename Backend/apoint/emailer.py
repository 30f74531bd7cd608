import base64
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


@dataclass(frozen=True)
class ResendConfig:
    api_key: Optional[str] = None
    sender: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.sender)


def format_utc_timestamp(value: datetime) -> str:
    """Format datetime as UTC timestamp for iCalendar (RFC 5545)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.strftime("%Y%m%dT%H%M%SZ")


def escape_ical_text(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\n", "\\n")
    )


def build_ics_event(
    uid: str,
    start_at: datetime,
    end_at: datetime,
    summary: str,
    description: str,
    now: Optional[datetime] = None,
) -> str:
    dtstamp = format_utc_timestamp(now or datetime.now(timezone.utc))
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Apoint//Booking//EN",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"DTSTAMP:{dtstamp}",
        f"DTSTART:{format_utc_timestamp(start_at)}",
        f"DTEND:{format_utc_timestamp(end_at)}",
        f"SUMMARY:{escape_ical_text(summary)}",
        f"DESCRIPTION:{escape_ical_text(description)}",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return "\r\n".join(lines) + "\r\n"


async def send_email(
    config: ResendConfig,
    to_email: str,
    subject: str,
    html: str,
    ics_filename: Optional[str] = None,
    ics_text: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> bool:
    """Send one email through Resend. Returns False without sending when unconfigured."""
    if not config.configured:
        logger.warning("Resend is not configured; skipping email send.")
        return False

    payload = {
        "from": config.sender,
        "to": to_email,
        "subject": subject,
        "html": html,
    }
    if ics_filename and ics_text:
        payload["attachments"] = [
            {
                "filename": ics_filename,
                "content": base64.b64encode(ics_text.encode("utf-8")).decode("ascii"),
                "content_type": "text/calendar; charset=utf-8",
            }
        ]

    headers = {
        "Authorization": f"Bearer {config.api_key}",
        "Content-Type": "application/json",
    }

    if client is not None:
        response = await client.post(RESEND_API_URL, json=payload, headers=headers)
        response.raise_for_status()
        return True

    async with httpx.AsyncClient(timeout=10) as owned_client:
        response = await owned_client.post(RESEND_API_URL, json=payload, headers=headers)
        response.raise_for_status()
    return True
