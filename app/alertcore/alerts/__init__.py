"""Alerts package exposing the rule engine, collapse policy and delivery lock."""

from .collapse import CollapseDecision, CollapsePolicy
from .engine import RuleEngine
from .lock import DeliveryLock
from .service import AlertScheduler, ScheduleReport

__all__ = [
    "AlertScheduler",
    "CollapseDecision",
    "CollapsePolicy",
    "DeliveryLock",
    "RuleEngine",
    "ScheduleReport",
]
