"""
Built-in tiers and alert rules.

Rules only decide which reminders an event deserves; they never touch
storage or channels. Each category maps to an ordered list of rules whose
conditions are AND-combined checks against the event (dotted field paths
such as ``payload.status``).
"""

from __future__ import annotations

from typing import Any, Dict, List

DEFAULT_CHANNEL = "email"

DEFAULT_TIERS: Dict[str, Dict[str, Any]] = {
    "early": {"channel": "email", "offset": "12 minutes"},
    "mid": {"channel": "sms", "offset": "5 minutes"},
    "critical": {"channel": "voice", "offset": "2 minutes"},
}

_SCHEDULED_MEETING = [
    {"field": "payload.status", "operator": "equals", "value": "SCHEDULED"},
    {"field": "occurred_at", "operator": "exists"},
]

DEFAULT_RULES: Dict[str, List[Dict[str, Any]]] = {
    "MEETING": [
        {
            "name": "meeting_email_alert",
            "tier": "early",
            "alert_type": "MEETING_UPCOMING_EMAIL",
            "conditions": _SCHEDULED_MEETING,
        },
        {
            "name": "meeting_sms_alert",
            "tier": "mid",
            "alert_type": "MEETING_URGENT_MESSAGE",
            "conditions": _SCHEDULED_MEETING,
        },
        {
            "name": "meeting_call_alert",
            "tier": "critical",
            "alert_type": "MEETING_CRITICAL_CALL",
            "conditions": _SCHEDULED_MEETING,
        },
        {
            "name": "meeting_missed",
            "alert_type": "MEETING_MISSED",
            "offset": 0,
            "conditions": [{"field": "payload.status", "operator": "equals", "value": "MISSED"}],
        },
    ],
    "FINANCE": [
        {
            "name": "payment_due_soon",
            "alert_type": "PAYMENT_DUE_SOON",
            "offset": "3 days",
            "conditions": [{"field": "payload.type", "operator": "equals", "value": "PAYMENT_DUE"}],
        },
        {
            "name": "payment_overdue",
            "alert_type": "PAYMENT_OVERDUE",
            "offset": 0,
            "conditions": [{"field": "payload.status", "operator": "equals", "value": "OVERDUE"}],
        },
    ],
    "HEALTH": [
        {
            "name": "medication_time",
            "alert_type": "MEDICATION_TIME",
            "offset": 0,
            "conditions": [{"field": "payload.type", "operator": "equals", "value": "MEDICATION_REMINDER"}],
        },
        {
            "name": "appointment_approaching",
            "alert_type": "APPOINTMENT_APPROACHING",
            "offset": "1 hour",
            "conditions": [{"field": "payload.type", "operator": "equals", "value": "APPOINTMENT"}],
        },
    ],
    "DELIVERY": [
        {
            "name": "delivery_arriving",
            "alert_type": "DELIVERY_ARRIVING",
            "offset": 0,
            "conditions": [{"field": "payload.status", "operator": "equals", "value": "ARRIVING_SOON"}],
        },
        {
            "name": "delivery_delayed",
            "alert_type": "DELIVERY_DELAYED",
            "offset": 0,
            "conditions": [{"field": "payload.status", "operator": "equals", "value": "DELAYED"}],
        },
    ],
    "SECURITY": [
        {
            "name": "security_warning",
            "alert_type": "SECURITY_WARNING",
            "offset": 0,
            "conditions": [{"field": "payload.event_type", "operator": "exists"}],
        },
    ],
    "OTHER": [
        {
            "name": "generic_alert",
            "alert_type": "GENERIC_ALERT",
            "offset": 0,
            "conditions": [{"field": "type", "operator": "exists"}],
        },
    ],
}
