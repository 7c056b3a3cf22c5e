"""
Update time evaluation.

Handlers describe when the content they fetch changes with a small
schedule grammar, for example::

    "2,5,8,11,14,17,20,23"     every day at these hours
    "fri 14 EST"               Fridays at 2pm Eastern
    "today 6"                  every day at 6am
    "always"                   never trust the cache

The evaluator turns such a schedule into the most recent instant, at or
before "now", at which a refresh was due. It is pure: "now" is always
passed in.
"""

import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Iterable, List, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from newsclipper.config import REFERENCE_TIMEZONE
from newsclipper.models import ALWAYS, UpdateTime, UpdateTimeSpec


UPDATE_TIME_PATTERN = re.compile(r"^([a-z]*)\D*([\d ,]*)\s*([a-z/_+\-]*)", re.IGNORECASE)

WEEKDAYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]

# Abbreviations are fixed offsets, they do not follow daylight saving time
TIMEZONE_OFFSETS = {
    "PST": -8,
    "PDT": -7,
    "MST": -7,
    "MDT": -6,
    "CST": -6,
    "CDT": -5,
    "EST": -5,
    "EDT": -4,
    "GMT": 0,
    "UTC": 0,
    "UT": 0,
    "Z": 0,
}


def resolve_timezone(name: Optional[str]) -> tzinfo:
    """
    Resolve a timezone name from an update time.

    Args:
        name: Abbreviation (PST, EST, ...), IANA name, or None for the
            reference zone

    Returns:
        tzinfo for the zone

    Raises:
        ValueError: If the zone is unknown
    """
    name = (name or REFERENCE_TIMEZONE).strip()
    offset = TIMEZONE_OFFSETS.get(name.upper())
    if offset is not None:
        return timezone(timedelta(hours=offset), name.upper())
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone in update time: {name!r}") from e


def parse_update_time(text: str) -> UpdateTime:
    """
    Parse one update time string like "fri 2,14 EST".

    Raises:
        ValueError: If the string has no hours or names an unknown day
    """
    match = UPDATE_TIME_PATTERN.match(text.strip())
    day, hour_text, zone = match.group(1), match.group(2), match.group(3)

    hours = [int(h) for h in re.split(r"\D+", hour_text) if h != ""]
    if not hours:
        raise ValueError(f"No hours in update time: {text!r}")

    # "thursday" and "thu" are the same day
    day = day.lower()
    if day in ("", "today"):
        day = None
    else:
        day = day[:3]
        if day not in WEEKDAYS:
            raise ValueError(f"Unknown day in update time: {text!r}")

    if zone:
        # Fail early on bad zones
        resolve_timezone(zone)

    return UpdateTime(day=day, hours=hours, timezone=zone or None)


def parse_update_times(times: Union[str, Iterable[str]]) -> UpdateTimeSpec:
    """
    Parse a list of update time strings into an UpdateTimeSpec.

    The result is the "always" sentinel when the first item is "always".
    """
    if isinstance(times, str):
        times = [times]
    times = [t for t in times if t and t.strip()]

    if times and times[0].strip().lower() == ALWAYS:
        return UpdateTimeSpec.always_refresh()

    return UpdateTimeSpec(entries=[parse_update_time(t) for t in times])


def _candidate(day: date, hour: int, zone: tzinfo) -> datetime:
    return datetime.combine(day, time(hour=hour), tzinfo=zone).astimezone(timezone.utc)


def _entry_due_instant(entry: UpdateTime, now: datetime) -> datetime:
    zone = resolve_timezone(entry.timezone)
    local_now = now.astimezone(zone)
    today = local_now.date()

    if entry.day is None:
        base_day = today
        step_back = timedelta(days=1)
    else:
        days_back = (local_now.weekday() - WEEKDAYS.index(entry.day)) % 7
        base_day = today - timedelta(days=days_back)
        step_back = timedelta(days=7)

    latest = None
    for hour in entry.hours:
        candidate = _candidate(base_day, hour, zone)
        # Schedules describe past events: "yesterday at 2pm" or "last
        # Friday at 2pm", never a time still to come
        if candidate > now:
            candidate = _candidate(base_day - step_back, hour, zone)
        if latest is None or candidate > latest:
            latest = candidate
    return latest


def due_instant(
    spec: Union[UpdateTimeSpec, List[UpdateTime]],
    now: datetime,
) -> Optional[datetime]:
    """
    Compute the most recent instant at or before now when a refresh was due.

    Args:
        spec: Parsed update times (not the "always" sentinel)
        now: Current time, timezone-aware

    Returns:
        The due instant in UTC, or None if there are no entries

    Raises:
        ValueError: For the "always" sentinel or a naive "now"
    """
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")

    if isinstance(spec, UpdateTimeSpec):
        if spec.always:
            raise ValueError("'always' has no due instant")
        entries = spec.entries
    else:
        entries = spec

    due = None
    for entry in entries:
        candidate = _entry_due_instant(entry, now)
        if due is None or candidate > due:
            due = candidate
    return due


def is_outdated(spec: UpdateTimeSpec, last_updated: datetime, now: datetime) -> bool:
    """Check if data fetched at last_updated is older than the due instant."""
    if spec.always:
        return True
    due = due_instant(spec, now)
    if due is None:
        return False
    return last_updated < due
