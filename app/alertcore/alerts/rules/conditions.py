from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, Mapping

from alertcore.models import Event


logger = logging.getLogger("alertcore.rules")


def _compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def check(value: Any, expected: Any) -> bool:
        if value is None:
            return False
        try:
            return bool(op(value, expected))
        except TypeError:
            return False

    return check


def _in_list(value: Any, expected: Any) -> bool:
    return isinstance(expected, (list, tuple, set)) and value in expected


def _not_in_list(value: Any, expected: Any) -> bool:
    return isinstance(expected, (list, tuple, set)) and value not in expected


OPERATORS: Dict[str, Callable[..., bool]] = {
    "exists": lambda value, _expected: value is not None,
    "not_exists": lambda value, _expected: value is None,
    "equals": lambda value, expected: value == expected,
    "not_equals": lambda value, expected: value != expected,
    "greater_than": _compare(lambda a, b: a > b),
    "less_than": _compare(lambda a, b: a < b),
    "greater_than_or_equals": _compare(lambda a, b: a >= b),
    "less_than_or_equals": _compare(lambda a, b: a <= b),
    "contains": lambda value, expected: value is not None and str(expected) in str(value),
    "not_contains": lambda value, expected: value is None or str(expected) not in str(value),
    "starts_with": lambda value, expected: value is not None and str(value).startswith(str(expected)),
    "ends_with": lambda value, expected: value is not None and str(value).endswith(str(expected)),
    "in_list": _in_list,
    "not_in_list": _not_in_list,
}


def get_nested_value(source: Any, path: str) -> Any:
    """Resolve a dotted path such as ``payload.status``; missing segments yield None."""
    if not path:
        return None
    current: Any = source.to_dict() if isinstance(source, Event) else source
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        else:
            return None
    return current


def evaluate_conditions(conditions: Iterable[Mapping[str, Any]], event: Event) -> bool:
    """All conditions must hold (AND). No conditions always matches."""
    for condition in conditions or ():
        operator = condition.get("operator")
        check = OPERATORS.get(str(operator))
        if check is None:
            logger.warning("Unknown rule operator %r", operator)
            return False
        value = get_nested_value(event, str(condition.get("field", "")))
        if not check(value, condition.get("value")):
            return False
    return True
