"""
Convert recurring patterns to and from short English phrases.

Parsing covers phrases like "daily", "every 3 days", "every Mon, Wed and Fri",
"every month on the 15th" and "every 2 years". Unrecognized text returns None
so the caller can fall back to structured input.
"""
import re
from typing import Optional

from models import (
    DailyPattern,
    MonthlyPattern,
    RecurringPattern,
    WeeklyPattern,
    YearlyPattern,
)

DAY_NAMES = {
    "sunday": 0, "sun": 0,
    "monday": 1, "mon": 1,
    "tuesday": 2, "tue": 2, "tues": 2,
    "wednesday": 3, "wed": 3,
    "thursday": 4, "thu": 4, "thur": 4, "thurs": 4,
    "friday": 5, "fri": 5,
    "saturday": 6, "sat": 6,
}

DAY_ABBREVIATIONS = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
MONTH_ABBREVIATIONS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
                       "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

_EVERY_N = re.compile(r"^every\s+(\d+)\s+(day|week|month|year)s?$")
_EVERY_WEEKDAYS = re.compile(r"^every\s+(.+)$")
_MONTHLY_ON_DAY = re.compile(r"^every\s+month\s+on\s+(?:the\s+)?(\d+)(?:st|nd|rd|th)?$")
_DAY_SEPARATORS = re.compile(r"\s*,\s*|\s+and\s+|\s+")

_SIMPLE_PHRASES = {
    "daily": DailyPattern,
    "every day": DailyPattern,
    "weekly": WeeklyPattern,
    "every week": WeeklyPattern,
    "monthly": MonthlyPattern,
    "every month": MonthlyPattern,
    "yearly": YearlyPattern,
    "every year": YearlyPattern,
}

_UNIT_PATTERNS = {
    "day": DailyPattern,
    "week": WeeklyPattern,
    "month": MonthlyPattern,
    "year": YearlyPattern,
}


def parse_recurring_description(text: str) -> Optional[RecurringPattern]:
    """Parse a human-readable description into a pattern, or None if not recognized."""
    if not text:
        return None

    normalized = text.lower().strip()

    if normalized in _SIMPLE_PHRASES:
        return _SIMPLE_PHRASES[normalized]()

    match = _EVERY_N.match(normalized)
    if match:
        interval = int(match.group(1))
        if interval < 1:
            return None
        return _UNIT_PATTERNS[match.group(2)](interval=interval)

    match = _MONTHLY_ON_DAY.match(normalized)
    if match:
        day = int(match.group(1))
        if 1 <= day <= 31:
            return MonthlyPattern(day_of_month=day)
        return None

    match = _EVERY_WEEKDAYS.match(normalized)
    if match:
        parts = [p for p in _DAY_SEPARATORS.split(match.group(1)) if p]
        # Every word must be a day name; "every other thing" is not a pattern
        if parts and all(p in DAY_NAMES for p in parts):
            days = sorted({DAY_NAMES[p] for p in parts})
            return WeeklyPattern(days_of_week=days)

    return None


def format_ordinal(n: int) -> str:
    if (n // 10) % 10 == 1:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def _format_days(days: list[int]) -> str:
    return ", ".join(DAY_ABBREVIATIONS[d] for d in days)


def format_recurring_pattern(pattern: RecurringPattern) -> str:
    """Format a pattern as a short description, e.g. "Weekly on Mon, Wed, Fri"."""
    interval = pattern.interval

    if pattern.type == "daily":
        return "Daily" if interval == 1 else f"Every {interval} days"

    if pattern.type == "weekly":
        base = "Weekly" if interval == 1 else f"Every {interval} weeks"
        if pattern.days_of_week:
            return f"{base} on {_format_days(pattern.days_of_week)}"
        return base

    if pattern.type == "monthly":
        base = "Monthly" if interval == 1 else f"Every {interval} months"
        if pattern.day_of_month:
            return f"{base} on the {format_ordinal(pattern.day_of_month)}"
        return base

    if pattern.type == "yearly":
        base = "Yearly" if interval == 1 else f"Every {interval} years"
        if pattern.month_of_year and pattern.day_of_month:
            month = MONTH_ABBREVIATIONS[pattern.month_of_year - 1]
            return f"{base} on {month} {pattern.day_of_month}"
        return base

    if pattern.type == "custom":
        if not pattern.days_of_week:
            return "Custom"
        days = _format_days(pattern.days_of_week)
        if interval == 1:
            return f"Custom: {days}"
        return f"Custom: {days} every {interval} weeks"

    raise ValueError(f"Unknown recurring pattern type: {pattern.type}")
