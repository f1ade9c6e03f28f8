import calendar
from datetime import date, datetime, timedelta

import pandas as pd

FREQUENCY_INTERVALS = {
    "daily": (1, 7),
    "weekly": (7, 52),
    "monthly": (30, 12),
    "quarterly": (90, 4),
    "yearly": (365, 1),
}

DATE_FORMATS = (
    "dd/mm/yyyy", "mm/dd/yyyy", "yyyy-mm-dd", "dd-mm-yyyy", "yyyy/mm/dd",
    "yyyy-mm", "yyyy-ww", "ww-yyyy", "yyyy",
)


def to_date(value) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        ts = pd.Timestamp(str(value).split("T")[0])
    except (ValueError, TypeError):
        return None
    if pd.isna(ts):
        return None
    return ts.date()


def _int_parts(value: str, sep: str, count: int):
    parts = value.strip().split(sep)
    if len(parts) != count:
        return None
    try:
        return [int(p) for p in parts]
    except ValueError:
        return None


def parse_date_with_format(value, fmt: str) -> date | None:
    """
    Parse a header/cell according to one of DATE_FORMATS.
    Week formats resolve to the Monday of the ISO week.
    """
    if value is None or str(value).strip() == "":
        return None
    value = str(value).strip()

    try:
        if fmt in ("dd/mm/yyyy", "mm/dd/yyyy", "yyyy/mm/dd"):
            parts = _int_parts(value, "/", 3)
            if parts is None:
                return None
            if fmt == "dd/mm/yyyy":
                day, month, year = parts
            elif fmt == "mm/dd/yyyy":
                month, day, year = parts
            else:
                year, month, day = parts
            return date(year, month, day)

        if fmt in ("yyyy-mm-dd", "dd-mm-yyyy"):
            parts = _int_parts(value, "-", 3)
            if parts is None:
                return None
            if fmt == "yyyy-mm-dd":
                year, month, day = parts
            else:
                day, month, year = parts
            return date(year, month, day)

        if fmt == "yyyy-mm":
            parts = _int_parts(value, "-", 2)
            return date(parts[0], parts[1], 1) if parts else None

        if fmt in ("yyyy-ww", "ww-yyyy"):
            parts = _int_parts(value.upper().replace("W", ""), "-", 2)
            if parts is None:
                return None
            year, week = parts if fmt == "yyyy-ww" else (parts[1], parts[0])
            return date.fromisocalendar(year, week, 1)

        if fmt == "yyyy":
            year = int(value)
            return date(year, 1, 1) if 1900 <= year <= 2100 else None
    except ValueError:
        return None

    return None


def detect_date_frequency(dates) -> dict:
    """Classify spacing of dates by the average gap of the first 10 intervals."""
    parsed = sorted(d for d in (to_date(x) for x in dates) if d is not None)
    if len(parsed) < 2:
        return {"type": "monthly", "interval": 30, "seasonalPeriod": 12}

    gaps = [(parsed[i] - parsed[i - 1]).days for i in range(1, min(len(parsed), 10))]
    avg = sum(gaps) / len(gaps)

    if avg <= 2:
        freq = "daily"
    elif avg <= 8:
        freq = "weekly"
    elif avg <= 35:
        freq = "monthly"
    elif avg <= 100:
        freq = "quarterly"
    else:
        freq = "yearly"

    interval, period = FREQUENCY_INTERVALS[freq]
    return {"type": freq, "interval": interval, "seasonalPeriod": period}


def seasonal_period_from_frequency(frequency: str) -> int:
    return FREQUENCY_INTERVALS.get(frequency, (30, 12))[1]


def add_months(d: date, months: int) -> date:
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def generate_forecast_dates(last_date, periods: int, frequency: str = "monthly"):
    last = to_date(last_date)
    dates = []
    for i in range(1, periods + 1):
        if frequency == "daily":
            nxt = last + timedelta(days=i)
        elif frequency == "weekly":
            nxt = last + timedelta(weeks=i)
        elif frequency == "quarterly":
            nxt = add_months(last, 3 * i)
        elif frequency == "yearly":
            nxt = add_months(last, 12 * i)
        else:
            nxt = add_months(last, i)
        dates.append(nxt)
    return dates
