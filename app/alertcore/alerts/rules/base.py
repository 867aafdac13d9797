from __future__ import annotations

from typing import Iterable, Protocol

from alertcore.models import AlertSpec, Event


class AlertRule(Protocol):
    name: str

    def evaluate(self, event: Event) -> Iterable[AlertSpec]:
        ...
