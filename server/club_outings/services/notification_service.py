"""Best-effort member emails for reservation, carpool and outing events."""

import asyncio
import html
import logging
from enum import Enum
from functools import lru_cache
from typing import Any, Protocol

import httpx

from ..core.config import settings
from ..core.observability import metrics_collector
from ..models.member import Member
from ..models.outing import Outing

logger = logging.getLogger(__name__)


class NotificationTemplate(str, Enum):
    """Email templates understood by the dispatchers."""
    REGISTRATION = "registration"
    WAITLIST = "waitlist"
    PROMOTION = "promotion"
    CANCELLATION = "cancellation"
    OUTING_CANCELLED = "outing_cancelled"
    CARPOOL_CANCELLED = "carpool_cancelled"
    REMINDER = "reminder"


SUBJECTS = {
    NotificationTemplate.REGISTRATION: "Registration confirmed: {outing_title}",
    NotificationTemplate.WAITLIST: "You are on the waitlist: {outing_title}",
    NotificationTemplate.PROMOTION: "A seat opened up, you are confirmed: {outing_title}",
    NotificationTemplate.CANCELLATION: "Registration cancelled: {outing_title}",
    NotificationTemplate.OUTING_CANCELLED: "Outing cancelled: {outing_title}",
    NotificationTemplate.CARPOOL_CANCELLED: "Your carpool was cancelled: {outing_title}",
    NotificationTemplate.REMINDER: "Reminder, tomorrow: {outing_title}",
}

LEADS = {
    NotificationTemplate.REGISTRATION: "Your registration is confirmed.",
    NotificationTemplate.WAITLIST: (
        "The outing is full. You are on the waitlist and will be emailed if a seat opens."
    ),
    NotificationTemplate.PROMOTION: "A participant withdrew and you now hold a confirmed seat.",
    NotificationTemplate.CANCELLATION: "Your registration has been cancelled.",
    NotificationTemplate.OUTING_CANCELLED: "The organizer cancelled this outing.",
    NotificationTemplate.CARPOOL_CANCELLED: (
        "The driver withdrew the carpool you booked. Your seat has been released."
    ),
    NotificationTemplate.REMINDER: "See you soon! Here are the details of your outing.",
}


def render_email(template: NotificationTemplate, context: dict[str, Any]) -> tuple[str, str]:
    """Return (subject, html body) for a template and its context."""
    subject = SUBJECTS[template].format(outing_title=context.get("outing_title", "club outing"))

    lines = [
        f"<p>Hello {html.escape(str(context.get('first_name') or ''))},</p>",
        f"<p>{html.escape(LEADS[template])}</p>",
        "<ul>",
        f"<li><strong>Outing:</strong> {html.escape(str(context.get('outing_title', '')))}</li>",
        f"<li><strong>Date:</strong> {html.escape(str(context.get('outing_date', '')))}</li>",
        f"<li><strong>Location:</strong> {html.escape(str(context.get('location', '')))}</li>",
        "</ul>",
    ]
    if context.get("reason"):
        lines.append(f"<p><strong>Reason:</strong> {html.escape(str(context['reason']))}</p>")
    if context.get("driver_name"):
        lines.append(f"<p><strong>Driver:</strong> {html.escape(str(context['driver_name']))}</p>")

    return subject, "\n".join(lines)


class NotificationDispatcher(Protocol):
    """Anything able to deliver one templated email."""

    async def send(self, to: str, template: NotificationTemplate, context: dict[str, Any]) -> bool:
        ...


class LoggingDispatcher:
    """Dispatcher used when no email provider is configured: logs instead of sending."""

    async def send(self, to: str, template: NotificationTemplate, context: dict[str, Any]) -> bool:
        subject, _ = render_email(template, context)
        logger.info(
            "Email delivery disabled, notification logged only",
            extra={"to": to, "template": template.value, "subject": subject}
        )
        return True


class ResendDispatcher:
    """
    Sends email through the Resend HTTP API.

    Delivery failures are logged and counted, never raised: the state change
    that triggered the email is already committed.
    """

    def __init__(
        self,
        api_key: str,
        api_url: str = "https://api.resend.com/emails",
        sender: str = "Club Outings <onboarding@resend.dev>",
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.sender = sender
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def send(self, to: str, template: NotificationTemplate, context: dict[str, Any]) -> bool:
        subject, body = render_email(template, context)
        payload = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "html": body,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport
            ) as client:
                response = await client.post(
                    self.api_url,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"}
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(
                "NotificationDeliveryFailed",
                extra={"to": to, "template": template.value, "error": str(e)}
            )
            metrics_collector.record_notification(template.value, delivered=False)
            return False

        logger.info(
            "Notification sent",
            extra={"to": to, "template": template.value, "status_code": response.status_code}
        )
        metrics_collector.record_notification(template.value, delivered=True)
        return True


@lru_cache(maxsize=1)
def get_dispatcher() -> NotificationDispatcher:
    """Process-wide dispatcher built from settings."""
    if not settings.resend_api_key:
        logger.info("RESEND_API_KEY not set, member emails will only be logged")
        return LoggingDispatcher()
    return ResendDispatcher(
        api_key=settings.resend_api_key,
        api_url=settings.resend_api_url,
        sender=settings.notification_sender,
        timeout_seconds=settings.notification_timeout_seconds,
    )


class OutingNotifier:
    """Builds outing email contexts and hands them to a dispatcher."""

    def __init__(self, dispatcher: NotificationDispatcher | None = None):
        self.dispatcher = dispatcher or get_dispatcher()

    @staticmethod
    def build_context(member: Member, outing: Outing, **extra: Any) -> dict[str, Any]:
        context = {
            "first_name": member.first_name,
            "last_name": member.last_name,
            "outing_id": str(outing.id),
            "outing_title": outing.title,
            "outing_date": outing.date_time.strftime("%A %d %B %Y, %H:%M UTC"),
            "location": outing.location,
            "outing_type": outing.outing_type,
        }
        context.update({key: value for key, value in extra.items() if value is not None})
        return context

    async def notify(
        self,
        member: Member,
        template: NotificationTemplate,
        outing: Outing,
        **extra: Any
    ) -> bool:
        """Send one email; returns False instead of raising on any failure."""
        context = self.build_context(member, outing, **extra)
        try:
            return await self.dispatcher.send(member.email, template, context)
        except Exception as e:
            logger.error(
                "NotificationDeliveryFailed",
                extra={
                    "member_id": str(member.id),
                    "template": template.value,
                    "outing_id": str(outing.id),
                    "error": str(e),
                },
                exc_info=True
            )
            metrics_collector.record_notification(template.value, delivered=False)
            return False

    async def notify_many(
        self,
        members: list[Member],
        template: NotificationTemplate,
        outing: Outing,
        **extra: Any
    ) -> int:
        """Fan one template out to several members; returns how many were delivered."""
        results = await asyncio.gather(
            *(self.notify(member, template, outing, **extra) for member in members)
        )
        return sum(1 for delivered in results if delivered)
