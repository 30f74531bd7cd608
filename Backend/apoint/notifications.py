"""
Booking Notifications Module

Customer-facing emails for booking events, sent through Resend (emailer.py).

Every message is logged. When Resend is not configured the send is a logged
no-op. Failures are logged and reported as False; they never block the
booking flow.
"""

import logging
from datetime import datetime
from typing import Optional

import httpx

from .emailer import ResendConfig, build_ics_event, send_email
from .models import Booking, Service, WaitlistEntry
from .scheduling.time_window import ensure_utc

logger = logging.getLogger(__name__)


def _when(value: datetime) -> str:
    return ensure_utc(value).strftime("%B %d, %Y at %H:%M UTC")


def _html(title: str, paragraphs: list[str]) -> str:
    body = "\n".join(f"<p>{p}</p>" for p in paragraphs)
    return f"""
        <html>
        <body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
            <h2 style="color: #1a73e8;">{title}</h2>
            {body}
        </body>
        </html>
        """


class EmailNotificationGateway:
    def __init__(self, config: Optional[ResendConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or ResendConfig()
        self.client = client

    async def _deliver(
        self,
        to_email: str,
        subject: str,
        html: str,
        ics_filename: Optional[str] = None,
        ics_text: Optional[str] = None,
    ) -> bool:
        logger.info(f"[NOTIFICATION] {subject} -> {to_email}")
        try:
            return await send_email(
                self.config,
                to_email,
                subject,
                html,
                ics_filename=ics_filename,
                ics_text=ics_text,
                client=self.client,
            )
        except httpx.HTTPError as exc:
            logger.warning(f"Failed to send '{subject}' to {to_email}: {exc}")
            return False

    async def notify_booking_created(self, booking: Booking, service: Optional[Service] = None) -> bool:
        service_name = service.name if service is not None else "your appointment"
        ics = build_ics_event(
            uid=f"{booking.id}@apoint",
            start_at=booking.start_at,
            end_at=booking.end_at,
            summary=service_name,
            description=f"Booking for {booking.customer_name}",
        )
        return await self._deliver(
            booking.customer_email,
            f"Booking confirmed - {_when(booking.start_at)}",
            _html(
                "Your booking is confirmed",
                [
                    f"Hi {booking.customer_name},",
                    f"<strong>{service_name}</strong> on {_when(booking.start_at)}.",
                ],
            ),
            ics_filename="booking.ics",
            ics_text=ics,
        )

    async def notify_booking_cancelled(self, booking: Booking) -> bool:
        paragraphs = [
            f"Hi {booking.customer_name},",
            f"Your booking on {_when(booking.start_at)} has been cancelled.",
        ]
        if booking.cancellation_reason:
            paragraphs.append(f"Reason: {booking.cancellation_reason}")
        return await self._deliver(
            booking.customer_email,
            "Booking cancelled",
            _html("Your booking was cancelled", paragraphs),
        )

    async def notify_booking_rescheduled(self, booking: Booking, previous_start_at: datetime) -> bool:
        return await self._deliver(
            booking.customer_email,
            f"Booking moved to {_when(booking.start_at)}",
            _html(
                "Your booking was rescheduled",
                [
                    f"Hi {booking.customer_name},",
                    f"Previously: {_when(previous_start_at)}",
                    f"Now: <strong>{_when(booking.start_at)}</strong>",
                ],
            ),
        )

    async def notify_waitlist_slot_available(self, entry: WaitlistEntry, booking: Booking) -> bool:
        return await self._deliver(
            entry.customer_email,
            "A slot you were waiting for is available",
            _html(
                "Good news",
                [
                    f"Hi {entry.customer_name},",
                    f"The time you asked for ({_when(entry.preferred_start_at)}) has opened up. "
                    "Book it before someone else does.",
                ],
            ),
        )

    async def notify_booking_reminder(self, booking: Booking) -> bool:
        return await self._deliver(
            booking.customer_email,
            f"Reminder: booking on {_when(booking.start_at)}",
            _html(
                "Upcoming booking",
                [
                    f"Hi {booking.customer_name},",
                    f"This is a reminder of your booking on {_when(booking.start_at)}.",
                ],
            ),
        )
