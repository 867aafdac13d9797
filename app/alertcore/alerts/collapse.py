from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from alertcore.models import Alert


logger = logging.getLogger("alertcore.collapse")


@dataclass(frozen=True, slots=True)
class Cancellation:
    alert: Alert
    superseded_by: Alert

    @property
    def reason(self) -> str:
        return f"collapsed: superseded by {self.superseded_by.alert_type} (alert {self.superseded_by.id})"


@dataclass(slots=True)
class CollapseDecision:
    deliver: List[Alert] = field(default_factory=list)
    cancel: List[Cancellation] = field(default_factory=list)


def group_by_event(alerts: Iterable[Alert]) -> Dict[str, List[Alert]]:
    groups: Dict[str, List[Alert]] = OrderedDict()
    for alert in alerts:
        groups.setdefault(alert.event_id, []).append(alert)
    return groups


class CollapsePolicy:
    """
    Decides which of an event's due alerts go out now.

    Within one event, urgency grows with ``scheduled_at`` (the tier closest to
    the event), ties broken by insertion order so the earlier-created alert
    counts as less urgent. Only the most urgent due alert is delivered; every
    other due alert of that event is cancelled in its favour. A lone due
    alert is delivered no matter how late it is.
    """

    def partition(self, due_alerts: Iterable[Alert]) -> CollapseDecision:
        decision = CollapseDecision()
        for event_id, group in group_by_event(due_alerts).items():
            ordered = sorted(group, key=Alert.urgency_key)
            most_urgent = ordered[-1]
            decision.deliver.append(most_urgent)
            for stale in ordered[:-1]:
                decision.cancel.append(Cancellation(alert=stale, superseded_by=most_urgent))
            if len(ordered) > 1:
                logger.info(
                    "collapse.event",
                    extra={
                        "event_id": event_id,
                        "deliver": most_urgent.alert_type,
                        "cancel": [alert.alert_type for alert in ordered[:-1]],
                    },
                )
        return decision
