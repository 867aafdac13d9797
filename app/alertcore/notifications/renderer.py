from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from alertcore.models import Alert, Contact, Event
from alertcore.utils.time import minutes_until

from .models import EmailPayload, RenderContext, RenderedMessage, TextPayload, VoiceScript


logger = logging.getLogger("alertcore.renderer")

DEFAULT_MEETING_TITLE = "your meeting"
DEFAULT_EVENT_TITLE = "An important event"
DEFAULT_START_TIME = "shortly"
DESCRIPTION_LIMIT = 200


def _minutes_phrase(minutes: Optional[int]) -> str:
    if minutes is None or minutes <= 0:
        return ""
    return f" in {minutes} minute{'s' if minutes != 1 else ''}"


def _extract_links(payload: Dict[str, Any]) -> List[str]:
    links: List[str] = []
    for key in ("link", "url", "meeting_url", "hangout_link"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            links.append(value.strip())
    extra = payload.get("links")
    if isinstance(extra, (list, tuple)):
        links.extend(str(item).strip() for item in extra if item)
    return list(dict.fromkeys(links))


class MessageRenderer:
    """
    Builds the channel payload for an alert.

    Pure: the caller supplies ``now``. Missing context never raises; a
    neutral phrase is used instead.
    """

    def __init__(self, *, timezone_name: str = "UTC", brand: str = "SaveHub") -> None:
        self._default_tz = self._load_zone(timezone_name) or timezone.utc
        self._brand = brand

    def render(
        self,
        alert: Alert,
        event: Optional[Event],
        now: datetime,
        contact: Optional[Contact] = None,
    ) -> RenderedMessage:
        context = self.build_context(alert, event, now, contact)
        if alert.channel == "email":
            return self._render_email(alert, context, now)
        if alert.channel == "voice":
            return self._render_voice(alert, context)
        return self._render_text(alert, context)

    def build_context(
        self,
        alert: Alert,
        event: Optional[Event],
        now: datetime,
        contact: Optional[Contact] = None,
    ) -> RenderContext:
        payload = event.payload if event is not None and isinstance(event.payload, dict) else {}
        title = (event.title if event is not None else None) or payload.get("summary")
        description = payload.get("description")
        occurred_at = event.occurred_at if event is not None else None

        start_time_local = None
        minutes_remaining = None
        if occurred_at is not None:
            zone = self._load_zone(contact.timezone if contact else None) or self._default_tz
            local = occurred_at.replace(tzinfo=timezone.utc).astimezone(zone)
            start_time_local = local.strftime("%I:%M %p").lstrip("0")
            minutes_remaining = minutes_until(occurred_at, now)

        return RenderContext(
            title=str(title).strip() if title else None,
            start_time_local=start_time_local,
            minutes_remaining=minutes_remaining,
            description=str(description)[:DESCRIPTION_LIMIT] if description else None,
            links=_extract_links(payload),
            recipient_name=contact.display_name if contact else None,
            occurred_at=occurred_at,
        )

    # -- email ------------------------------------------------------------

    def _render_email(self, alert: Alert, context: RenderContext, now: datetime) -> EmailPayload:
        title = context.title or DEFAULT_EVENT_TITLE
        start = context.start_time_local or "the scheduled time"
        phrase = _minutes_phrase(context.minutes_remaining)
        subject_phrase = phrase if context.minutes_remaining and context.minutes_remaining <= 15 else ""

        subjects = {
            "MEETING_UPCOMING_EMAIL": f"Your meeting starts{subject_phrase}, don't let it slip",
            "MEETING_URGENT_MESSAGE": f"Urgent: Your meeting starts{subject_phrase}",
            "MEETING_MISSED": "You missed a meeting",
            "PAYMENT_DUE_SOON": "Payment Due Reminder",
            "PAYMENT_OVERDUE": "Payment Overdue",
            "APPOINTMENT_APPROACHING": "Your appointment is coming up",
            "MEDICATION_TIME": "Time to take your medication",
            "DELIVERY_ARRIVING": "Your delivery is arriving soon",
            "DELIVERY_DELAYED": "Your delivery is delayed",
            "SECURITY_WARNING": "Security alert",
        }
        bodies = {
            "MEETING_UPCOMING_EMAIL": (
                f"You have a meeting '{title}' starting at {start}{phrase}.\n\n"
                "We're reminding you early so you don't have to rush.\n\n"
                "Please review the meeting details and make sure you're prepared to attend."
            ),
            "MEETING_URGENT_MESSAGE": (
                f"URGENT: Your meeting '{title}' starts at {start}{phrase}.\n\n"
                "Please join now if you haven't already."
            ),
            "MEETING_MISSED": f"It looks like you missed '{title}', which started at {start}.",
            "PAYMENT_DUE_SOON": f"A payment for '{title}' is due soon. Please process it by the due date.",
            "PAYMENT_OVERDUE": f"A payment for '{title}' is overdue. Please settle it as soon as possible.",
            "APPOINTMENT_APPROACHING": f"Your appointment '{title}' starts at {start}{phrase}.",
            "MEDICATION_TIME": "It's time to take your medication.",
            "DELIVERY_ARRIVING": "Your delivery is arriving soon.",
            "DELIVERY_DELAYED": "Your delivery has been delayed. Check the tracking page for the latest estimate.",
            "SECURITY_WARNING": "We noticed security activity on your account. Please review it.",
        }
        subject = subjects.get(alert.alert_type, f"Alert: {alert.category}")
        body = bodies.get(
            alert.alert_type,
            f"You have a new alert in the category: {alert.category}\n\nPlease log in to review details.",
        )

        lines = [f"Hi {context.recipient_name},", ""] if context.recipient_name else []
        lines.extend([body, "", "---", f"Alert Type: {alert.alert_type}", f"Category: {alert.category}"])
        lines.append(f"Sent: {now.replace(tzinfo=timezone.utc).isoformat()}")
        lines.append(f"Event: {title}")
        if context.description:
            lines.append(f"Description: {context.description}")
        for link in context.links:
            lines.append(f"Link: {link}")
        lines.extend(["", f"(This is an automated alert from {self._brand})"])
        return EmailPayload(subject=subject, body="\n".join(lines))

    # -- text -------------------------------------------------------------

    def _render_text(self, alert: Alert, context: RenderContext) -> TextPayload:
        title = context.title or DEFAULT_MEETING_TITLE
        phrase = _minutes_phrase(context.minutes_remaining) or " now"
        if alert.category == "MEETING":
            body = f"{self._brand}: '{title}' starts{phrase}. Just checking so you don't miss something important."
        else:
            body = f"{self._brand}: {alert.alert_type.replace('_', ' ').lower()} for '{title}'."
        if context.links:
            body = f"{body} {context.links[0]}"
        return TextPayload(body=body)

    # -- voice ------------------------------------------------------------

    def _render_voice(self, alert: Alert, context: RenderContext) -> VoiceScript:
        start = context.start_time_local or DEFAULT_START_TIME
        minutes = context.minutes_remaining
        if alert.category == "MEETING":
            subject = f"Your meeting titled {context.title or DEFAULT_MEETING_TITLE}"
            now_phrase = "is starting now."
            closing = (
                f"The meeting starts at {start}. Missing this could cost you valuable time or money.",
                "Please join now. Thank you.",
            )
        else:
            now_phrase = "is due now."
            subject = f"{alert.category.replace('_', ' ').capitalize()} alert: {context.title or DEFAULT_EVENT_TITLE}"
            closing = (f"It is scheduled for {start}.", "Please check your messages for details. Thank you.")
        if minutes is not None and minutes > 0:
            timing = f"{subject} starts in {minutes} minute{'s' if minutes != 1 else ''}."
        else:
            timing = f"{subject} {now_phrase}"
        return VoiceScript(segments=(f"Hi. This is an important reminder from {self._brand}.", timing, *closing))

    @staticmethod
    def _load_zone(name: Optional[str]):
        if not name:
            return None
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r; falling back to default", name)
            return None
