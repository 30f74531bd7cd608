"""
Email delivery: ICS attachments, Resend payloads and the notification gateway.
"""

import base64
import json
import uuid
from datetime import datetime, timezone

import httpx

from apoint.emailer import (
    RESEND_API_URL,
    ResendConfig,
    build_ics_event,
    escape_ical_text,
    format_utc_timestamp,
    send_email,
)
from apoint.models import Booking, BookingStatus, Service
from apoint.notifications import EmailNotificationGateway

from conftest import at

CONFIG = ResendConfig(api_key="re_test", sender="Bookings <bookings@example.com>")


def recording_client(sent: list, status_code: int = 200) -> httpx.AsyncClient:
    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(status_code, json={"id": "email_1"})

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def make_booking(**fields) -> Booking:
    values = dict(
        id=uuid.uuid4(),
        tenant_id=1,
        service_id=1,
        staff_id=1,
        customer_name="Alex Customer",
        customer_email="alex@example.com",
        start_at=at(9),
        end_at=at(9, 30),
        status=BookingStatus.CONFIRMED,
    )
    values.update(fields)
    return Booking(**values)


class TestIcs:
    def test_utc_timestamp(self):
        assert format_utc_timestamp(datetime(2030, 1, 7, 9, 5)) == "20300107T090500Z"
        assert format_utc_timestamp(at(9)) == "20300107T090000Z"

    def test_escape(self):
        assert escape_ical_text("a;b,c\\d\ne") == "a\\;b\\,c\\\\d\\ne"

    def test_event(self):
        ics = build_ics_event(
            uid="abc@apoint",
            start_at=at(9),
            end_at=at(9, 30),
            summary="Haircut, short",
            description="Booking",
            now=datetime(2030, 1, 1, tzinfo=timezone.utc),
        )

        lines = ics.split("\r\n")
        assert lines[0] == "BEGIN:VCALENDAR"
        assert "DTSTART:20300107T090000Z" in lines
        assert "DTEND:20300107T093000Z" in lines
        assert "DTSTAMP:20300101T000000Z" in lines
        assert "SUMMARY:Haircut\\, short" in lines
        assert ics.endswith("END:VCALENDAR\r\n")


class TestSendEmail:
    async def test_unconfigured_is_a_no_op(self):
        sent = []
        async with recording_client(sent) as client:
            assert await send_email(ResendConfig(), "a@example.com", "Hi", "<p>Hi</p>", client=client) is False
        assert sent == []

    async def test_posts_payload_with_attachment(self):
        sent = []
        async with recording_client(sent) as client:
            ok = await send_email(
                CONFIG,
                "a@example.com",
                "Hi",
                "<p>Hi</p>",
                ics_filename="booking.ics",
                ics_text="BEGIN:VCALENDAR\r\n",
                client=client,
            )

        assert ok is True
        request = sent[0]
        assert str(request.url) == RESEND_API_URL
        assert request.headers["Authorization"] == "Bearer re_test"
        payload = json.loads(request.content)
        assert payload["to"] == "a@example.com"
        assert payload["from"] == CONFIG.sender
        attachment = payload["attachments"][0]
        assert attachment["filename"] == "booking.ics"
        assert base64.b64decode(attachment["content"]).decode() == "BEGIN:VCALENDAR\r\n"


class TestEmailNotificationGateway:
    async def test_booking_created_attaches_calendar_event(self):
        sent = []
        async with recording_client(sent) as client:
            gateway = EmailNotificationGateway(CONFIG, client=client)
            booking = make_booking()
            ok = await gateway.notify_booking_created(booking, Service(name="Haircut", duration_minutes=30))

        assert ok is True
        payload = json.loads(sent[0].content)
        assert payload["subject"].startswith("Booking confirmed")
        assert "Haircut" in payload["html"]
        ics = base64.b64decode(payload["attachments"][0]["content"]).decode()
        assert f"UID:{booking.id}@apoint" in ics

    async def test_cancellation_includes_reason(self):
        sent = []
        async with recording_client(sent) as client:
            gateway = EmailNotificationGateway(CONFIG, client=client)
            await gateway.notify_booking_cancelled(make_booking(cancellation_reason="Sick"))

        payload = json.loads(sent[0].content)
        assert payload["subject"] == "Booking cancelled"
        assert "Reason: Sick" in payload["html"]
        assert "attachments" not in payload

    async def test_reschedule_and_reminder(self):
        sent = []
        async with recording_client(sent) as client:
            gateway = EmailNotificationGateway(CONFIG, client=client)
            booking = make_booking(start_at=at(11), end_at=at(11, 30))
            await gateway.notify_booking_rescheduled(booking, previous_start_at=at(9))
            await gateway.notify_booking_reminder(booking)

        subjects = [json.loads(r.content)["subject"] for r in sent]
        assert subjects[0].startswith("Booking moved to")
        assert subjects[1].startswith("Reminder")

    async def test_http_error_is_reported_not_raised(self):
        sent = []
        async with recording_client(sent, status_code=500) as client:
            gateway = EmailNotificationGateway(CONFIG, client=client)
            assert await gateway.notify_booking_reminder(make_booking()) is False
        assert len(sent) == 1

    async def test_unconfigured_gateway_skips(self):
        gateway = EmailNotificationGateway()
        assert await gateway.notify_booking_reminder(make_booking()) is False
