"""
Menu product availability rules.

Rule configs:
  time_window:    {"start": "09:00", "end": "17:00"}  (end before start wraps past midnight)
  day_of_week:    {"days": ["mon", "wed", "fri"]}    (names, or ints with 0 = Sunday)
  quantity_limit: {"max_quantity": 20}
  date_range:     {"start": "2025-01-01", "end": "2025-01-31"}  (inclusive)
"""
from __future__ import annotations

from datetime import date, datetime, time, timezone
from typing import Any, Iterable, List, Mapping, Optional

from delivery_api.core.errors import DomainError

DAY_LABELS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
_DAY_INDEX = {label.lower(): i for i, label in enumerate(DAY_LABELS)}
_DAY_INDEX.update(
    {
        "sunday": 0,
        "monday": 1,
        "tuesday": 2,
        "wednesday": 3,
        "thursday": 4,
        "friday": 5,
        "saturday": 6,
    }
)


def _get(rule: Any, name: str, default: Any = None) -> Any:
    if isinstance(rule, Mapping):
        return rule.get(name, default)
    return getattr(rule, name, default)


def _parse_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    if isinstance(value, int):
        return time(hour=value % 24)
    try:
        hour, minute = str(value).split(":")[:2]
        return time(hour=int(hour), minute=int(minute))
    except (TypeError, ValueError) as e:
        raise DomainError(f"Invalid time '{value}', expected HH:MM") from e


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise DomainError(f"Invalid date '{value}', expected YYYY-MM-DD") from e


def _day_index(value: Any) -> int:
    if isinstance(value, int) and 0 <= value <= 6:
        return value
    index = _DAY_INDEX.get(str(value).strip().lower())
    if index is None:
        raise DomainError(f"Invalid day '{value}'")
    return index


def _window(config: Mapping[str, Any]) -> tuple[time, time]:
    start = config.get("start", config.get("start_hour"))
    end = config.get("end", config.get("end_hour"))
    if start is None or end is None:
        raise DomainError("time_window rules need start and end")
    return _parse_time(start), _parse_time(end)


def _days(config: Mapping[str, Any]) -> List[int]:
    return sorted({_day_index(d) for d in (config.get("days") or config.get("allowed_days") or [])})


def _max_quantity(config: Mapping[str, Any]) -> int:
    value = config.get("max_quantity")
    if value is None:
        raise DomainError("quantity_limit rules need max_quantity")
    return int(value)


def _rule_passes(rule_type: str, config: Mapping[str, Any], at: datetime, sold: int) -> bool:
    if rule_type == "time_window":
        start, end = _window(config)
        now = at.time().replace(second=0, microsecond=0, tzinfo=None)
        if start <= end:
            return start <= now < end
        return now >= start or now < end
    if rule_type == "day_of_week":
        # Python's weekday() is Monday = 0.
        return (at.weekday() + 1) % 7 in _days(config)
    if rule_type == "quantity_limit":
        return sold < _max_quantity(config)
    if rule_type == "date_range":
        today = at.date()
        start = config.get("start")
        end = config.get("end")
        if start is not None and today < _parse_date(start):
            return False
        if end is not None and today > _parse_date(end):
            return False
        return True
    raise DomainError(f"Unknown availability rule type '{rule_type}'")


# PUBLIC_INTERFACE
def is_available(rules: Iterable[Any], at: Optional[datetime] = None, sold: int = 0) -> bool:
    """True when every enabled rule passes at `at` (default now, UTC)."""
    moment = at or datetime.now(tz=timezone.utc)
    for rule in rules:
        if not _get(rule, "is_enabled", True):
            continue
        if not _rule_passes(_get(rule, "rule_type"), _get(rule, "config") or {}, moment, sold):
            return False
    return True


def _format_date(value: Any) -> str:
    d = _parse_date(value)
    return f"{d:%b} {d.day}, {d.year}"


# PUBLIC_INTERFACE
def get_rule_summary(rule: Any) -> str:
    """Human-readable description of a rule, e.g. "Available Mon, Wed, Fri"."""
    rule_type = _get(rule, "rule_type")
    config = _get(rule, "config") or {}

    if rule_type == "time_window":
        start, end = _window(config)
        text = f"Available {start:%H:%M}–{end:%H:%M}"
    elif rule_type == "day_of_week":
        days = _days(config)
        text = "Available " + ", ".join(DAY_LABELS[d] for d in days) if days else "Never available"
    elif rule_type == "quantity_limit":
        text = f"Limited to {_max_quantity(config)} units"
    elif rule_type == "date_range":
        start, end = config.get("start"), config.get("end")
        if start and end:
            text = f"Available {_format_date(start)} – {_format_date(end)}"
        elif start:
            text = f"Available from {_format_date(start)}"
        elif end:
            text = f"Available until {_format_date(end)}"
        else:
            text = "Always available"
    else:
        text = f"Unknown rule '{rule_type}'"

    if not _get(rule, "is_enabled", True):
        text = "(disabled) " + text
    return text


# PUBLIC_INTERFACE
def get_remaining_quantity(rules: Iterable[Any], sold: int = 0) -> Optional[int]:
    """Smallest remaining allowance across enabled quantity rules, or None when unlimited."""
    remaining: Optional[int] = None
    for rule in rules:
        if _get(rule, "rule_type") != "quantity_limit" or not _get(rule, "is_enabled", True):
            continue
        left = max(0, _max_quantity(_get(rule, "config") or {}) - sold)
        remaining = left if remaining is None else min(remaining, left)
    return remaining
