"""Tests for period keys and business-time boundaries."""
from datetime import date, datetime

import pytest

from quotedigest.utils.periods import (
    Period,
    business_day,
    month_period,
    period_for,
    previous_complete_period,
    week_period,
)


def test_period_keys():
    assert Period("week", 2025, 3).key == "2025-W03"
    assert Period("month", 2025, 1).key == "2025-01"
    assert str(Period("week", 2025, 12)) == "2025-W12"


@pytest.mark.parametrize("key", ["2025-W03", "2020-W53", "2025-01", "2024-12"])
def test_parse_returns_same_key(key):
    assert Period.parse(key).key == key


@pytest.mark.parametrize("key", ["", "2025", "2025-W3", "2025-13", "2025-W54", "week-3", None])
def test_parse_rejects_invalid_keys(key):
    with pytest.raises(ValueError):
        Period.parse(key)


def test_previous_week_crosses_iso_year():
    assert Period("week", 2025, 4).previous() == Period("week", 2025, 3)
    assert Period("week", 2025, 1).previous() == Period("week", 2024, 52)
    assert Period("week", 2021, 1).previous() == Period("week", 2020, 53)


def test_previous_month_crosses_year():
    assert Period("month", 2025, 3).previous() == Period("month", 2025, 2)
    assert Period("month", 2025, 1).previous() == Period("month", 2024, 12)


def test_week_boundary_uses_business_timezone():
    # Sunday 22:00 UTC is already Monday 01:00 at UTC+3
    sunday_night = datetime(2025, 1, 19, 22, 0)
    assert week_period(sunday_night, offset_min=180).key == "2025-W04"
    assert week_period(sunday_night, offset_min=0).key == "2025-W03"


def test_month_boundary_uses_business_timezone():
    last_evening = datetime(2025, 1, 31, 21, 30)
    assert month_period(last_evening, offset_min=180).key == "2025-02"
    assert month_period(last_evening, offset_min=0).key == "2025-01"


def test_business_day():
    assert business_day(datetime(2025, 1, 14, 22, 0), offset_min=180) == date(2025, 1, 15)
    assert business_day(datetime(2025, 1, 14, 20, 0), offset_min=180) == date(2025, 1, 14)


def test_previous_complete_period():
    now = datetime(2025, 1, 22, 12, 0)
    assert previous_complete_period("week", now).key == "2025-W03"
    assert previous_complete_period("month", now).key == "2024-12"


def test_period_for_rejects_unknown_kind():
    assert period_for("month", datetime(2025, 5, 5)).key == "2025-05"
    with pytest.raises(ValueError):
        period_for("year", datetime(2025, 5, 5))


@pytest.mark.parametrize("key", ["2025-W53", "2023-W53", "2021-W53"])
def test_week_53_rejected_in_52_week_years(key):
    with pytest.raises(ValueError):
        Period.parse(key)


def test_week_53_accepted_in_53_week_years():
    assert Period.parse("2026-W53").previous().key == "2026-W52"
    assert Period("week", 2020, 53).key == "2020-W53"
