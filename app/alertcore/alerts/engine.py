from __future__ import annotations

from typing import Any, Dict, List, Optional

from alertcore.models import AlertSpec, Event

from .registry import build_rules


class RuleEngine:
    """Maps an event to the reminders it deserves. Pure: no storage, no clock."""

    def __init__(self, config: Optional[Dict[str, Any]] = None) -> None:
        self._rules = build_rules(config or {})

    @property
    def categories(self) -> List[str]:
        return sorted(self._rules)

    def evaluate(self, event: Event) -> List[AlertSpec]:
        """
        Specs ordered least to most urgent (largest offset first).

        Unknown categories and unmatched events produce an empty list.
        A later rule reusing an ``alert_type`` is ignored.
        """
        rules = self._rules.get(event.category)
        if not rules:
            return []

        specs: List[AlertSpec] = []
        seen = set()
        for rule in rules:
            for spec in rule.evaluate(event):
                if spec.alert_type in seen:
                    continue
                seen.add(spec.alert_type)
                specs.append(spec)

        return sorted(specs, key=lambda spec: spec.offset_before_event, reverse=True)
