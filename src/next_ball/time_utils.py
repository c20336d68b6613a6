"""UTC and US-Eastern clock helpers; NBA calendars (game day, season, report slots) run on ET."""

from __future__ import annotations

from datetime import UTC, date, datetime, tzinfo
from zoneinfo import ZoneInfo

ET_ZONE = ZoneInfo("America/New_York")


def utc_now() -> datetime:
    """Return current UTC time with second precision."""
    return datetime.now(UTC).replace(microsecond=0)


def iso_z(value: datetime) -> str:
    """ISO-8601 in UTC with a trailing Z; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def utc_now_str() -> str:
    return iso_z(utc_now())


def et_now(now: datetime | None = None) -> datetime:
    """Return `now` (default: current time) expressed in US Eastern time."""
    return (now or utc_now()).astimezone(ET_ZONE)


def et_today(now: datetime | None = None) -> date:
    return et_now(now).date()


def same_et_day(first: datetime, second: datetime) -> bool:
    return et_today(first) == et_today(second)


def parse_timestamp(value: str, *, naive_zone: tzinfo = UTC) -> datetime | None:
    """Parse an ISO timestamp into UTC.

    A trailing "Z" is dropped before parsing and the value is read in
    `naive_zone` when it carries no offset. The CDN's `*Est` fields are
    Eastern wall-clock times with a misleading "Z", so they are parsed with
    `naive_zone=ET_ZONE`.
    """
    raw = value.strip().removesuffix("Z")
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=naive_zone)
    return parsed.astimezone(UTC)
