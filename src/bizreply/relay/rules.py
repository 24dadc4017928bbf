"""Business rule evaluation: store hours and escalation keywords."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime, time
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


@dataclass(slots=True, frozen=True)
class StoreStatus:
    is_open: bool
    summary: str


def _day_table(store_hours: Mapping[str, Any]) -> Mapping[str, Any]:
    days = store_hours.get("days")
    return days if isinstance(days, Mapping) else store_hours


def _parse_clock(value: Any) -> time | None:
    if not isinstance(value, str):
        return None
    try:
        hour, minute = value.strip().split(":", 1)
        return time(int(hour), int(minute[:2]))
    except ValueError:
        return None


def _zone(store_hours: Mapping[str, Any]) -> ZoneInfo:
    name = store_hours.get("timezone") or "UTC"
    try:
        return ZoneInfo(str(name))
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("unknown store timezone; using UTC", extra={"timezone": name})
        return ZoneInfo("UTC")


def describe_store_hours(store_hours: Mapping[str, Any] | None) -> list[str]:
    """Render one ``"Monday: 09:00 - 17:00"`` line per configured weekday."""

    if not store_hours:
        return []
    table = _day_table(store_hours)
    lines: list[str] = []
    for day in WEEKDAYS:
        hours = table.get(day)
        if not isinstance(hours, Mapping):
            continue
        if hours.get("closed"):
            lines.append(f"{day.title()}: Closed")
        elif hours.get("open") and hours.get("close"):
            lines.append(f"{day.title()}: {hours['open']} - {hours['close']}")
    return lines


def store_status(
    store_hours: Mapping[str, Any] | None, now: datetime | None = None
) -> StoreStatus | None:
    """Evaluate whether the store is open at ``now`` in the store's timezone.

    Returns ``None`` when no usable hours are configured for the current day.
    """

    if not store_hours:
        return None
    local_now = (now or datetime.now(tz=UTC)).astimezone(_zone(store_hours))

    holidays = store_hours.get("holidays") or []
    if isinstance(holidays, list) and local_now.date().isoformat() in {str(d) for d in holidays}:
        return StoreStatus(False, "Closed today for a holiday")

    hours = _day_table(store_hours).get(WEEKDAYS[local_now.weekday()])
    if not isinstance(hours, Mapping):
        return None
    if hours.get("closed"):
        return StoreStatus(False, "Closed today")

    opens = _parse_clock(hours.get("open"))
    closes = _parse_clock(hours.get("close"))
    if opens is None or closes is None:
        return None

    current = local_now.time().replace(second=0, microsecond=0)
    if opens <= closes:
        is_open = opens <= current < closes
    else:
        is_open = current >= opens or current < closes
    label = "Open now" if is_open else "Closed now"
    return StoreStatus(is_open, f"{label} (today {hours['open']} - {hours['close']})")


def match_escalation_keyword(text: str, keywords: Iterable[str] | None) -> str | None:
    """Return the first configured keyword found in ``text`` as a whole word."""

    if not text or not keywords:
        return None
    for keyword in keywords:
        if not isinstance(keyword, str) or not keyword.strip():
            continue
        pattern = rf"(?<!\w){re.escape(keyword.strip())}(?!\w)"
        if re.search(pattern, text, flags=re.IGNORECASE):
            return keyword.strip()
    return None
