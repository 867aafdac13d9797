from __future__ import annotations

from datetime import timedelta
from typing import Any, Iterable, Mapping, Optional, Sequence

from alertcore.models import AlertSpec, Event

from .base import AlertRule
from .conditions import evaluate_conditions


class ConditionalAlertRule(AlertRule):
    """Emits one AlertSpec when every condition matches an event of ``category``."""

    def __init__(
        self,
        name: str,
        *,
        category: str,
        alert_type: str,
        channel: str,
        offset: timedelta,
        tier: Optional[str] = None,
        conditions: Sequence[Mapping[str, Any]] = (),
    ) -> None:
        self.name = name
        self.category = category
        self._spec = AlertSpec(
            alert_type=alert_type,
            offset_before_event=offset,
            channel=channel,
            tier=tier,
            rule_name=name,
        )
        self._conditions = list(conditions)

    @property
    def spec(self) -> AlertSpec:
        return self._spec

    def evaluate(self, event: Event) -> Iterable[AlertSpec]:
        if event.category != self.category:
            return []
        if not evaluate_conditions(self._conditions, event):
            return []
        return [self._spec]
