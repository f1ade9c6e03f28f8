from datetime import date, timedelta

import pytest

from utils.date_utils import (
    add_months, detect_date_frequency, generate_forecast_dates, parse_date_with_format,
    seasonal_period_from_frequency, to_date,
)


@pytest.mark.parametrize("value, fmt, expected", [
    ("15/03/2024", "dd/mm/yyyy", date(2024, 3, 15)),
    ("03/15/2024", "mm/dd/yyyy", date(2024, 3, 15)),
    ("2024-03-15", "yyyy-mm-dd", date(2024, 3, 15)),
    ("15-03-2024", "dd-mm-yyyy", date(2024, 3, 15)),
    ("2024/03/15", "yyyy/mm/dd", date(2024, 3, 15)),
    ("2024-03", "yyyy-mm", date(2024, 3, 1)),
    ("2024-W10", "yyyy-ww", date(2024, 3, 4)),
    ("10-2024", "ww-yyyy", date(2024, 3, 4)),
    ("2024", "yyyy", date(2024, 1, 1)),
])
def test_parse_date_with_format(value, fmt, expected):
    assert parse_date_with_format(value, fmt) == expected


@pytest.mark.parametrize("value, fmt", [
    ("31/02/2024", "dd/mm/yyyy"),
    ("2024-13", "yyyy-mm"),
    ("1800", "yyyy"),
    ("2024-03-15", "dd/mm/yyyy"),
    ("", "yyyy-mm-dd"),
    ("2024-03-15", "unknown"),
])
def test_parse_date_with_format_invalid(value, fmt):
    assert parse_date_with_format(value, fmt) is None


def test_to_date():
    assert to_date("2024-05-06T10:00:00") == date(2024, 5, 6)
    assert to_date(date(2024, 1, 1)) == date(2024, 1, 1)
    assert to_date("") is None
    assert to_date("not a date") is None
    assert to_date(None) is None


def test_detect_date_frequency():
    start = date(2024, 1, 1)
    weekly = [start + timedelta(weeks=i) for i in range(6)]
    assert detect_date_frequency(weekly) == {"type": "weekly", "interval": 7, "seasonalPeriod": 52}

    daily = [start + timedelta(days=i) for i in range(6)]
    assert detect_date_frequency(daily)["type"] == "daily"

    quarterly = [add_months(start, 3 * i) for i in range(5)]
    assert detect_date_frequency(quarterly)["seasonalPeriod"] == 4

    yearly = [date(2020 + i, 1, 1) for i in range(4)]
    assert detect_date_frequency(yearly)["type"] == "yearly"

    assert detect_date_frequency(["2024-01-01"])["type"] == "monthly"


def test_seasonal_period_from_frequency():
    assert seasonal_period_from_frequency("daily") == 7
    assert seasonal_period_from_frequency("quarterly") == 4
    assert seasonal_period_from_frequency("yearly") == 1
    assert seasonal_period_from_frequency("fortnightly") == 12


def test_generate_forecast_dates_clamps_month_ends():
    assert generate_forecast_dates(date(2024, 1, 31), 3, "monthly") == [
        date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30),
    ]


def test_generate_forecast_dates_other_frequencies():
    start = date(2024, 1, 1)
    assert generate_forecast_dates(start, 2, "weekly") == [date(2024, 1, 8), date(2024, 1, 15)]
    assert generate_forecast_dates(start, 1, "daily") == [date(2024, 1, 2)]
    assert generate_forecast_dates(start, 2, "quarterly") == [date(2024, 4, 1), date(2024, 7, 1)]
    assert generate_forecast_dates("2024-01-01", 1, "yearly") == [date(2025, 1, 1)]
