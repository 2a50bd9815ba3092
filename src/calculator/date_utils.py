"""Calendar helpers for anniversary-based year counting and UK tax years."""

from datetime import date


def add_years(start: date, years: int) -> date:
    """
    Shift a date by whole years, moving 29 February to 28 February when the
    target year is not a leap year.
    """
    try:
        return start.replace(year=start.year + years)
    except ValueError:
        return start.replace(year=start.year + years, day=28)


def whole_years_between(start: date, end: date) -> int:
    """
    Completed years from ``start`` to ``end`` (an age calculation).

    Negative when ``end`` is before ``start``.
    """
    if end < start:
        return -whole_years_between(end, start)
    years = end.year - start.year
    if (end.month, end.day) < (start.month, start.day):
        years -= 1
    return years


def age_on(date_of_birth: date, on: date) -> int:
    return whole_years_between(date_of_birth, on)


def tax_year_start(on: date) -> date:
    """6 April on or before ``on``."""
    start = date(on.year, 4, 6)
    if on < start:
        start = date(on.year - 1, 4, 6)
    return start


def tax_year_label(on: date) -> str:
    """
    Label of the UK tax year containing ``on``.

    >>> tax_year_label(date(2026, 1, 10))
    '2025-26'
    """
    start = tax_year_start(on).year
    return f"{start}-{str(start + 1)[-2:]}"
