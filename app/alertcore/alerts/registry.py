from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional

from alertcore.errors import ConfigError
from alertcore.utils.time import parse_duration

from .rules.base import AlertRule
from .rules.conditional import ConditionalAlertRule
from .rules.defaults import DEFAULT_CHANNEL, DEFAULT_RULES, DEFAULT_TIERS


logger = logging.getLogger("alertcore.rules.registry")


def _resolve_tiers(
    tiers_conf: Mapping[str, Any],
    offsets: Mapping[str, Any],
) -> Dict[str, Dict[str, Any]]:
    tiers: Dict[str, Dict[str, Any]] = {name: dict(conf) for name, conf in DEFAULT_TIERS.items()}
    for name, conf in (tiers_conf or {}).items():
        if not isinstance(conf, dict):
            raise ConfigError(f"Tier '{name}' must be a mapping")
        tiers.setdefault(str(name), {}).update(conf)
    for name, offset in (offsets or {}).items():
        tiers.setdefault(str(name), {"channel": DEFAULT_CHANNEL})["offset"] = offset
    resolved: Dict[str, Dict[str, Any]] = {}
    for name, conf in tiers.items():
        try:
            offset = parse_duration(conf.get("offset", 0))
        except ValueError as exc:
            raise ConfigError(f"Tier '{name}' has an invalid offset: {exc}") from exc
        resolved[name] = {"channel": str(conf.get("channel", DEFAULT_CHANNEL)), "offset": offset}
    return resolved


def _build_rule(
    category: str,
    entry: Mapping[str, Any],
    tiers: Mapping[str, Dict[str, Any]],
) -> ConditionalAlertRule:
    name = entry.get("name")
    alert_type = entry.get("alert_type")
    if not name or not alert_type:
        raise ConfigError(f"{category} rule requires 'name' and 'alert_type'")

    tier_name = entry.get("tier")
    tier: Dict[str, Any] = {}
    if tier_name is not None:
        if tier_name not in tiers:
            raise ConfigError(f"Rule '{name}' references unknown tier '{tier_name}'")
        tier = tiers[tier_name]

    offset: timedelta
    if "offset" in entry:
        try:
            offset = parse_duration(entry["offset"])
        except ValueError as exc:
            raise ConfigError(f"Rule '{name}' has an invalid offset: {exc}") from exc
    else:
        offset = tier.get("offset", timedelta(0))

    conditions = entry.get("conditions") or []
    if not isinstance(conditions, list):
        raise ConfigError(f"Rule '{name}' conditions must be a list")

    return ConditionalAlertRule(
        str(name),
        category=category,
        alert_type=str(alert_type),
        channel=str(entry.get("channel") or tier.get("channel") or DEFAULT_CHANNEL),
        offset=offset,
        tier=str(tier_name) if tier_name is not None else None,
        conditions=conditions,
    )


def build_rules(config: Optional[Dict[str, Any]]) -> Dict[str, List[AlertRule]]:
    """
    Build the per-category rule table.

    ``config`` carries ``rules`` (``tiers``, ``categories`` and
    ``include_defaults``), ``offsets`` (tier -> duration overrides) and
    ``channels`` (channel -> enabled; None means every channel is on).
    """
    config = config if isinstance(config, dict) else {}
    rules_conf = config.get("rules") or {}
    channels: Optional[Mapping[str, bool]] = config.get("channels")

    tiers = _resolve_tiers(rules_conf.get("tiers") or {}, config.get("offsets") or {})

    categories: Dict[str, List[Dict[str, Any]]] = {}
    if rules_conf.get("include_defaults", True):
        categories.update({name: list(entries) for name, entries in DEFAULT_RULES.items()})
    for category, entries in (rules_conf.get("categories") or {}).items():
        if not isinstance(entries, list):
            raise ConfigError(f"Rules for category '{category}' must be a list")
        categories[str(category)] = entries

    table: Dict[str, List[AlertRule]] = {}
    for category, entries in categories.items():
        built: List[AlertRule] = []
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("enabled", True):
                continue
            rule = _build_rule(category, entry, tiers)
            if channels is not None and not channels.get(rule.spec.channel, False):
                logger.info(
                    "Skipping rule %s: channel %s is disabled",
                    rule.name,
                    rule.spec.channel,
                )
                continue
            built.append(rule)
        if built:
            table[category] = built
    return table
