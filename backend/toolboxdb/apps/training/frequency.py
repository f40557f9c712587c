"""
Frequency clock: maps a recurrence frequency and an anchor instant to the
next due instant. Pure and deterministic.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta
from typing import Optional, Union

from ...errors import ValidationError
from .models import Frequency


def add_months(anchor: datetime, months: int) -> datetime:
    """
    Add calendar months, clamping the day to the last valid day of the
    target month (Jan 31 + 1 month -> Feb 28/29). Time of day and tzinfo
    are preserved.
    """
    if months == 0:
        return anchor
    total = anchor.month - 1 + months
    year = anchor.year + total // 12
    month = total % 12 + 1
    day = min(anchor.day, calendar.monthrange(year, month)[1])
    return anchor.replace(year=year, month=month, day=day)


def next_due(frequency: Frequency, anchor: datetime) -> Optional[datetime]:
    """
    The due instant that follows `anchor`, or None for ONCE (no recurrence).
    """
    frequency = parse_frequency(frequency)
    if frequency is Frequency.ONCE:
        return None
    if frequency is Frequency.WEEKLY:
        return anchor + timedelta(days=7)
    if frequency is Frequency.MONTHLY:
        return add_months(anchor, 1)
    if frequency is Frequency.ANNUALLY:
        return add_months(anchor, 12)
    raise ValidationError(f"Unsupported frequency {frequency!r}.")


def first_due(frequency: Frequency, assigned_at: datetime) -> datetime:
    """
    Due instant of an assignment's first talk. A ONCE talk carries
    `assigned_at` as its reference date only; it has no deadline and never
    turns overdue (see `has_deadline`).
    """
    due = next_due(frequency, assigned_at)
    return assigned_at if due is None else due


def parse_frequency(value: Union[Frequency, str, None]) -> Frequency:
    if isinstance(value, Frequency):
        return value
    if isinstance(value, str):
        try:
            return Frequency(value.strip().upper())
        except ValueError:
            pass
    raise ValidationError(
        f"Invalid frequency {value!r}. Expected one of: "
        + ", ".join(f.value.title() for f in Frequency)
        + "."
    )


def has_deadline(frequency: Frequency) -> bool:
    """ONCE training stays pending until signed off; only recurring talks lapse."""
    return parse_frequency(frequency) is not Frequency.ONCE
