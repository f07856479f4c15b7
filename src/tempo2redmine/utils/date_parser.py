from datetime import date, datetime, timedelta
from typing import Optional, Tuple
import calendar


def month_range(year: int, month: int) -> Tuple[date, date]:
    """Return the first and last day of a month."""
    _, last_day = calendar.monthrange(year, month)
    return date(year, month, 1), date(year, month, last_day)


def parse_period(period: Optional[str], today: Optional[date] = None) -> Tuple[date, date]:
    """
    Parse a reconciliation period.

    Supported formats:
    - None or "" (current month)
    - "last-month" (previous calendar month)
    - "YYYY-MM" (entire month)
    - "YYYY-MM-DD" (single day)
    - "YYYY-MM-DD..YYYY-MM-DD" or "YYYY-MM-DD - YYYY-MM-DD" (explicit range)

    Args:
        period: Period string in one of the supported formats
        today: Reference day, defaults to the current date

    Returns:
        Tuple of (start_date, end_date), both inclusive

    Raises:
        ValueError: If the format is not recognized or the range is inverted
    """
    today = today or date.today()
    period = (period or "").strip()

    if not period:
        return month_range(today.year, today.month)

    if period == "last-month":
        previous = today.replace(day=1) - timedelta(days=1)
        return month_range(previous.year, previous.month)

    for separator in ("..", " - "):
        if separator in period:
            start_str, end_str = period.split(separator, 1)
            start_date = _parse_day(start_str)
            end_date = _parse_day(end_str)
            if end_date < start_date:
                raise ValueError(f"Period end {end_date} is before start {start_date}")
            return start_date, end_date

    if len(period) == 7 and period.count("-") == 1:
        year_str, month_str = period.split("-")
        try:
            return month_range(int(year_str), int(month_str))
        except ValueError:
            pass

    elif len(period) == 10 and period.count("-") == 2:
        day = _parse_day(period)
        return day, day

    raise ValueError(
        f"Invalid period: '{period}'. "
        "Use 'YYYY-MM', 'YYYY-MM-DD', 'YYYY-MM-DD..YYYY-MM-DD' or 'last-month'"
    )


def _parse_day(value: str) -> date:
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValueError(f"Invalid date: '{value.strip()}', expected YYYY-MM-DD") from None


def format_period(start_date: date, end_date: date) -> str:
    return f"{start_date.isoformat()}..{end_date.isoformat()}"


def get_current_month() -> Tuple[date, date]:
    """Get the current month date range."""
    today = date.today()
    return month_range(today.year, today.month)
