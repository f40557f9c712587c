from __future__ import annotations

from datetime import datetime, timezone

import pytest

from toolboxdb.apps.training.frequency import add_months, first_due, has_deadline, next_due, parse_frequency
from toolboxdb.apps.training.models import Frequency
from toolboxdb.errors import ValidationError


def _dt(year: int, month: int, day: int, hour: int = 9) -> datetime:
    return datetime(year, month, day, hour, 0, tzinfo=timezone.utc)


def test_weekly_adds_seven_days():
    assert next_due(Frequency.WEEKLY, _dt(2024, 1, 8)) == _dt(2024, 1, 15)


def test_monthly_clamps_to_leap_day():
    assert next_due(Frequency.MONTHLY, _dt(2024, 1, 31)) == _dt(2024, 2, 29)


def test_monthly_clamps_to_end_of_february_in_common_year():
    assert next_due(Frequency.MONTHLY, _dt(2023, 1, 31)) == _dt(2023, 2, 28)


def test_monthly_rolls_over_the_year():
    assert next_due(Frequency.MONTHLY, _dt(2024, 12, 15)) == _dt(2025, 1, 15)


def test_annually_from_leap_day_lands_on_february_28():
    assert next_due(Frequency.ANNUALLY, _dt(2024, 2, 29)) == _dt(2025, 2, 28)


def test_once_has_no_next_due():
    assert next_due(Frequency.ONCE, _dt(2024, 1, 1)) is None


def test_first_due_for_once_is_the_assignment_instant():
    assigned_at = _dt(2024, 3, 4, 14)
    assert first_due(Frequency.ONCE, assigned_at) == assigned_at


def test_only_recurring_frequencies_have_a_deadline():
    assert has_deadline(Frequency.ONCE) is False
    assert has_deadline("weekly") is True
    assert all(has_deadline(f) for f in Frequency if f is not Frequency.ONCE)


def test_first_due_for_recurring_is_one_period_out():
    assert first_due(Frequency.WEEKLY, _dt(2024, 1, 1)) == _dt(2024, 1, 8)


def test_add_months_preserves_time_and_tz():
    result = add_months(datetime(2024, 5, 31, 23, 45, tzinfo=timezone.utc), 1)
    assert result == datetime(2024, 6, 30, 23, 45, tzinfo=timezone.utc)
    assert result.tzinfo is timezone.utc


def test_parse_frequency_is_case_insensitive():
    assert parse_frequency(" weekly ") is Frequency.WEEKLY
    assert parse_frequency(Frequency.ANNUALLY) is Frequency.ANNUALLY


@pytest.mark.parametrize("value", ["fortnightly", "", None, 7])
def test_parse_frequency_rejects_unknown_values(value):
    with pytest.raises(ValidationError):
        parse_frequency(value)
