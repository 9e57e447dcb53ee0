"""Minimal recurrence rules for schedules.

Only two shapes are supported: ``FREQ=DAILY`` and ``FREQ=WEEKLY`` with an
optional ``BYDAY`` weekday filter. An empty rule means daily service.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum

from edubus.core.exceptions import ValidationError


class Frequency(str, Enum):
    daily = "DAILY"
    weekly = "WEEKLY"


# Index matches date.weekday(): Monday == 0.
WEEKDAY_TOKENS: tuple[str, ...] = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: Frequency = Frequency.daily
    by_day: frozenset[str] = field(default_factory=frozenset)

    def matches(self, on_date: date) -> bool:
        if self.frequency is Frequency.daily:
            return True
        # WEEKLY with no BYDAY filter matches every calendar day.
        if not self.by_day:
            return True
        return WEEKDAY_TOKENS[on_date.weekday()] in self.by_day

    def describe(self) -> str:
        text = f"FREQ={self.frequency.value}"
        if self.frequency is Frequency.weekly and self.by_day:
            ordered = [token for token in WEEKDAY_TOKENS if token in self.by_day]
            text += f";BYDAY={','.join(ordered)}"
        return text


DAILY = RecurrenceRule()


def _split_segments(rrule: str) -> dict[str, str]:
    parts: dict[str, str] = {}
    for segment in rrule.split(";"):
        segment = segment.strip()
        if not segment:
            continue
        key, sep, value = segment.partition("=")
        if not sep or not key.strip():
            raise ValidationError(f"Malformed RRULE segment '{segment}'", details={"rrule": rrule})
        parts[key.strip().upper()] = value.strip().upper()
    return parts


def validate_rrule(rrule: str | None) -> RecurrenceRule:
    """Validate a rule string and return its parsed form."""
    if rrule is None or not rrule.strip():
        return DAILY

    parts = _split_segments(rrule)
    freq = parts.get("FREQ")
    if not freq:
        raise ValidationError("RRULE must declare FREQ", details={"rrule": rrule})
    if freq not in {item.value for item in Frequency}:
        raise ValidationError(
            f"Unsupported RRULE frequency '{freq}'. Supported: DAILY, WEEKLY",
            details={"rrule": rrule},
        )

    frequency = Frequency(freq)
    by_day: set[str] = set()
    # BYDAY is only meaningful for WEEKLY; DAILY rules carrying it are accepted and ignored.
    if frequency is Frequency.weekly and "BYDAY" in parts:
        tokens = [token.strip() for token in parts["BYDAY"].split(",") if token.strip()]
        if not tokens:
            raise ValidationError("BYDAY must list at least one weekday", details={"rrule": rrule})
        invalid = sorted(set(tokens) - set(WEEKDAY_TOKENS))
        if invalid:
            raise ValidationError(
                f"Invalid BYDAY token(s): {', '.join(invalid)}",
                details={"rrule": rrule, "allowed": list(WEEKDAY_TOKENS)},
            )
        by_day = set(tokens)

    return RecurrenceRule(frequency=frequency, by_day=frozenset(by_day))


def parse_rrule(rrule: str | None) -> RecurrenceRule:
    """Parse a rule string that has already passed validation."""
    if rrule is None or not rrule.strip():
        return DAILY
    parts = _split_segments(rrule)
    frequency = Frequency(parts.get("FREQ", Frequency.daily.value))
    if frequency is Frequency.daily:
        return DAILY
    tokens = frozenset(token.strip() for token in parts.get("BYDAY", "").split(",") if token.strip())
    return RecurrenceRule(frequency=frequency, by_day=tokens)


def iter_dates(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def iter_matching_dates(rule: RecurrenceRule, start: date, end: date) -> Iterator[date]:
    for current in iter_dates(start, end):
        if rule.matches(current):
            yield current
