"""Timezone resolution and local-time formatting for the render context."""

from __future__ import annotations

import datetime
import logging
import os
import zoneinfo
from typing import NamedTuple

from dateutil import parser as date_parser

from inkscreen_lite.domain.exceptions import ConfigError

logger = logging.getLogger(__name__)

TEST_TIME_ENV = "INKSCREEN_TEST_TIME"

# Obsolete names still found in older deployments
TZ_ALIAS_MAP: dict[str, str] = {
    "Etc/Universal": "UTC",
    "Universal": "UTC",
    "Zulu": "UTC",
    "Asia/Rangoon": "Asia/Yangon",
    "America/Godthab": "America/Nuuk",
}


class LocalTimeStrings(NamedTuple):
    """Wall-clock strings exposed to templates."""

    time: str
    date: str
    timezone: str


def resolve_timezone(tz_name: str | None) -> zoneinfo.ZoneInfo:
    """Resolve an IANA timezone identifier to a ZoneInfo.

    Unlike request-level timezone handling, there is no fallback here: the
    configured zone is a deployment setting, so an unknown identifier is a
    misconfiguration.

    Args:
        tz_name: IANA timezone identifier (e.g. "America/Los_Angeles")

    Returns:
        ZoneInfo for the identifier

    Raises:
        ConfigError: If the identifier is empty or unknown
    """
    if not tz_name or not tz_name.strip():
        raise ConfigError("No timezone configured")

    key = TZ_ALIAS_MAP.get(tz_name.strip(), tz_name.strip())
    try:
        return zoneinfo.ZoneInfo(key)
    except (zoneinfo.ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f"Invalid timezone {tz_name!r}: {exc}") from exc


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via the INKSCREEN_TEST_TIME environment
    variable (ISO 8601, e.g. "2025-10-27T08:20:00-07:00"). Naive values are
    taken as UTC.
    """
    test_time = os.environ.get(TEST_TIME_ENV)
    if test_time:
        try:
            dt = date_parser.isoparse(test_time)
        except ValueError as exc:
            logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV, test_time, exc)
        else:
            if dt.tzinfo is None:
                return dt.replace(tzinfo=datetime.timezone.utc)
            return dt.astimezone(datetime.timezone.utc)

    return datetime.datetime.now(datetime.timezone.utc)


def format_local_time(now: datetime.datetime, tz: datetime.tzinfo) -> LocalTimeStrings:
    """Format an instant as the time/date/timezone strings used by templates.

    ``time`` is a 12-hour clock with a lowercase meridiem ("03:07 pm"),
    ``date`` is ISO ("2025-01-15") and ``timezone`` is the zone abbreviation
    in effect at that instant ("PST", "UTC").

    Args:
        now: Timezone-aware instant
        tz: Target timezone

    Returns:
        LocalTimeStrings for the instant in ``tz``
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=datetime.timezone.utc)
    local = now.astimezone(tz)
    # %p is locale dependent; build the meridiem from the hour instead
    meridiem = "am" if local.hour < 12 else "pm"
    return LocalTimeStrings(
        time=f"{local.strftime('%I:%M')} {meridiem}",
        date=local.strftime("%Y-%m-%d"),
        timezone=local.strftime("%Z"),
    )
