from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from edubus.core.exceptions import ValidationError

TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


def parse_time_of_day(value: str | None, *, field_name: str = "time") -> time:
    """Parse ``HH:mm`` or ``HH:mm:ss`` into a ``time``."""
    match = TIME_PATTERN.match((value or "").strip())
    if not match:
        raise ValidationError(f"{field_name} must be HH:mm or HH:mm:ss", details={field_name: value})
    hours, minutes = int(match.group(1)), int(match.group(2))
    seconds = int(match.group(3)) if match.group(3) is not None else 0
    if hours > 23 or minutes > 59 or seconds > 59:
        raise ValidationError(f"{field_name} is out of range", details={field_name: value})
    return time(hours, minutes, seconds)


def resolve_timezone(timezone_id: str | None) -> ZoneInfo:
    if not timezone_id or not timezone_id.strip():
        raise ValidationError("Timezone is required")
    try:
        return ZoneInfo(timezone_id.strip())
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Invalid timezone: {timezone_id}", details={"timezone": timezone_id}) from exc


def local_to_utc(local: datetime, tz: ZoneInfo) -> datetime:
    # fold=0: ambiguous wall times take the first occurrence, skipped ones move forward by the gap.
    return local.replace(tzinfo=tz, fold=0).astimezone(timezone.utc)


def occurrence_window(service_date: date, start: time, end: time, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Absolute UTC start/end for one local occurrence on ``service_date``."""
    local_start = datetime.combine(service_date, start)
    local_end = datetime.combine(service_date, end)
    if local_end <= local_start:
        local_end += timedelta(days=1)
    return local_to_utc(local_start, tz), local_to_utc(local_end, tz)


def format_time_of_day(value: time) -> str:
    return value.strftime("%H:%M:%S" if value.second else "%H:%M")


def normalize_time_of_day(value: str | None, *, field_name: str = "time") -> str:
    return format_time_of_day(parse_time_of_day(value, field_name=field_name))
