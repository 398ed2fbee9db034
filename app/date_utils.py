"""Date helpers shared by the control room, submissions and reports."""

from __future__ import annotations

from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_FACTORY_TIMEZONE = "Asia/Dhaka"


def resolve_timezone(tz_name: str | None):
    """Return the ``ZoneInfo`` for ``tz_name`` or UTC when it cannot be loaded."""

    try:
        return ZoneInfo(tz_name or DEFAULT_FACTORY_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return timezone.utc


def factory_today(tz_name: str | None = None, *, now: datetime | None = None) -> date:
    """Return the calendar date "today" as seen from the factory floor.

    Production dates are always recorded in the factory's local timezone, so
    a submission made at 01:00 in Dhaka belongs to that day even though UTC
    still reports the previous one.
    """

    zone = resolve_timezone(tz_name)
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(zone).date()


def coerce_date(value) -> date | None:
    """Return ``value`` as a :class:`date` when possible, otherwise ``None``."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def iso(value) -> str | None:
    parsed = coerce_date(value)
    return parsed.isoformat() if parsed else None


def days_between(later: date, earlier: date) -> int:
    """Whole calendar days from ``earlier`` to ``later`` (negative when past)."""

    return (later - earlier).days


def parse_cutoff(value: str | None) -> time | None:
    """Parse an ``HH:MM`` or ``HH:MM:SS`` cutoff string."""

    if not value:
        return None
    try:
        return time.fromisoformat(value.strip())
    except ValueError:
        return None


def is_late_for_cutoff(
    cutoff: str | None, tz_name: str | None = None, *, now: datetime | None = None
) -> bool:
    """Return ``True`` when the factory's local clock is past ``cutoff``.

    Factories without a configured cutoff never mark submissions late.
    """

    limit = parse_cutoff(cutoff)
    if limit is None:
        return False
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    local = moment.astimezone(resolve_timezone(tz_name))
    return local.time().replace(tzinfo=None) > limit
