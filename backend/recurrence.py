"""
Recurrence calculation: next occurrence, notification time, and date matching.

All functions here are pure. Callers pass the reference date/time explicitly;
nothing in this module reads the clock.
Weekdays use 0=Sunday .. 6=Saturday to match stored patterns.
"""
import calendar
import logging
from datetime import MAXYEAR, date, datetime, timedelta
from typing import Iterator, Optional, Union

from models import RecurringPattern

logger = logging.getLogger(__name__)

DateLike = Union[date, datetime]


def _day_of(value: DateLike) -> date:
    return value.date() if isinstance(value, datetime) else value


def _weekday(value: DateLike) -> int:
    """Weekday with Sunday=0 (Python's weekday() has Monday=0)."""
    return (value.weekday() + 1) % 7


def _days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _check_year(year: int) -> int:
    if year > MAXYEAR:
        raise OverflowError(f"year {year} is out of range")
    return year


def is_pattern_expired(pattern: RecurringPattern, as_of: DateLike, completed_occurrences: int) -> bool:
    """True once the end date has passed or the occurrence cap has been reached."""
    if pattern.end_date is not None and _day_of(as_of) > pattern.end_date:
        return True
    if pattern.occurrences is not None and completed_occurrences >= pattern.occurrences:
        return True
    return False


def _next_daily(current: DateLike, interval: int) -> DateLike:
    return current + timedelta(days=interval)


def _next_weekly(current: DateLike, interval: int, days_of_week: Optional[list[int]]) -> DateLike:
    if not days_of_week:
        return current + timedelta(weeks=interval)

    target_days = sorted(days_of_week)
    current_day = _weekday(current)

    for day in target_days:
        if day > current_day:
            return current + timedelta(days=day - current_day)

    # Nothing left this week: first target day of the week `interval` weeks on.
    # Weeks start on Sunday, so (7 - current_day) reaches next Sunday.
    days_ahead = 7 - current_day + target_days[0] + (interval - 1) * 7
    return current + timedelta(days=days_ahead)


def _next_monthly(current: DateLike, interval: int, day_of_month: Optional[int]) -> DateLike:
    target_day = day_of_month or current.day
    # Month arithmetic from day 1, then clamp (Jan 31 + 1 month -> Feb 28/29)
    months = current.month - 1 + interval
    year = _check_year(current.year + months // 12)
    month = months % 12 + 1
    return current.replace(year=year, month=month, day=min(target_day, _days_in_month(year, month)))


def _next_yearly(
    current: DateLike,
    interval: int,
    month_of_year: Optional[int],
    day_of_month: Optional[int],
) -> DateLike:
    target_month = month_of_year or current.month
    target_day = day_of_month or current.day

    year = _check_year(current.year + interval)
    next_date = current.replace(
        year=year, month=target_month, day=min(target_day, _days_in_month(year, target_month))
    )
    if next_date <= current:
        year = _check_year(year + interval)
        next_date = next_date.replace(
            year=year, day=min(target_day, _days_in_month(year, target_month))
        )
    return next_date


def get_next_occurrence(
    pattern: RecurringPattern,
    from_date: DateLike,
    completed_occurrences: int = 0,
) -> Optional[DateLike]:
    """
    Calculate the next occurrence after from_date.

    from_date is typically the current due date. The result has the same type
    as from_date (date or datetime) and keeps its time of day.
    Returns None if the pattern has expired, either before or after computing
    the candidate, or if the candidate is past the last representable date.
    """
    if is_pattern_expired(pattern, from_date, completed_occurrences):
        return None

    interval = pattern.interval

    try:
        if pattern.type == "daily":
            next_date = _next_daily(from_date, interval)
        elif pattern.type in ("weekly", "custom"):
            next_date = _next_weekly(from_date, interval, pattern.days_of_week)
        elif pattern.type == "monthly":
            next_date = _next_monthly(from_date, interval, pattern.day_of_month)
        elif pattern.type == "yearly":
            next_date = _next_yearly(from_date, interval, pattern.month_of_year, pattern.day_of_month)
        else:
            raise ValueError(f"Unknown recurring pattern type: {pattern.type}")
    except OverflowError:
        logger.debug("No next %s occurrence after %s: date out of range", pattern.type, from_date)
        return None

    if pattern.end_date is not None and _day_of(next_date) > pattern.end_date:
        return None

    return next_date


def get_next_notification_time(pattern: RecurringPattern, from_time: DateLike) -> Optional[datetime]:
    """Next occurrence (ignoring the occurrence cap) at the pattern's notify_at time."""
    if not pattern.notify_at:
        return None

    if not isinstance(from_time, datetime):
        from_time = datetime.combine(from_time, datetime.min.time())

    next_date = get_next_occurrence(pattern, from_time, 0)
    if next_date is None:
        return None

    hours, minutes = map(int, pattern.notify_at.split(":"))
    return next_date.replace(hour=hours, minute=minutes, second=0, microsecond=0)


def _elapsed_units(pattern_type: str, anchor: date, target: date) -> int:
    if pattern_type == "daily":
        return (target - anchor).days
    if pattern_type in ("weekly", "custom"):
        return (target - anchor).days // 7
    if pattern_type == "monthly":
        return (target.year - anchor.year) * 12 + (target.month - anchor.month)
    if pattern_type == "yearly":
        return target.year - anchor.year
    raise ValueError(f"Unknown recurring pattern type: {pattern_type}")


def _anchor_day(anchor: date, target: date) -> int:
    """The anchor's day of month, clamped to the target's month."""
    return min(anchor.day, _days_in_month(target.year, target.month))


def _matches_fields(pattern: RecurringPattern, target: date, anchor: Optional[date] = None) -> bool:
    """
    Field checks for one date. Unset fields fall back to the anchor's weekday,
    day or month, as get_next_occurrence falls back to the current date's.
    With no anchor an unset field matches anything.
    """
    if pattern.type == "daily":
        return True

    if pattern.type in ("weekly", "custom"):
        if pattern.days_of_week:
            return _weekday(target) in pattern.days_of_week
        if anchor is not None:
            return _weekday(target) == _weekday(anchor)
        return True

    if pattern.type == "monthly":
        if pattern.day_of_month is not None:
            return target.day == pattern.day_of_month
        if anchor is not None:
            return target.day == _anchor_day(anchor, target)
        return True

    if pattern.type == "yearly":
        month = pattern.month_of_year or (anchor.month if anchor else None)
        if month is not None and target.month != month:
            return False
        if pattern.day_of_month is not None:
            return target.day == pattern.day_of_month
        if anchor is not None:
            return target.day == _anchor_day(anchor, target)
        return True

    raise ValueError(f"Unknown recurring pattern type: {pattern.type}")


def matches_date(
    pattern: RecurringPattern,
    target_date: DateLike,
    anchor_date: Optional[DateLike] = None,
) -> bool:
    """
    Check whether target_date is a valid occurrence of the pattern.

    Independent of get_next_occurrence: this answers "does day X qualify"
    for calendar range queries. The anchor (usually the task's original due
    date) supplies the weekday or day of month when the pattern leaves them
    unset, and the interval is only enforced when an anchor is given;
    elapsed days, weeks, months or years from the anchor must be a
    non-negative multiple of the interval.
    """
    target = _day_of(target_date)
    anchor = _day_of(anchor_date) if anchor_date is not None else None

    if pattern.end_date is not None and target > pattern.end_date:
        return False

    if not _matches_fields(pattern, target, anchor):
        return False

    if pattern.interval > 1:
        if anchor is None:
            logger.debug("No anchor for %s pattern with interval %d; interval not enforced",
                         pattern.type, pattern.interval)
            return True
        elapsed = _elapsed_units(pattern.type, anchor, target)
        return elapsed >= 0 and elapsed % pattern.interval == 0

    return True


def iter_matching_dates(
    pattern: RecurringPattern,
    start: DateLike,
    end: DateLike,
    anchor_date: Optional[DateLike] = None,
) -> Iterator[date]:
    """Yield every date in [start, end] matching the pattern, skipping dates before the anchor."""
    current = _day_of(start)
    last = _day_of(end)
    if anchor_date is not None:
        current = max(current, _day_of(anchor_date))
    if pattern.end_date is not None:
        last = min(last, pattern.end_date)

    while current <= last:
        if matches_date(pattern, current, anchor_date):
            yield current
        current += timedelta(days=1)


def calculate_next_reminder(
    original_due: Optional[datetime],
    original_reminder: Optional[datetime],
    next_due: datetime,
) -> Optional[datetime]:
    """Carry the due-date/reminder offset over to the next occurrence."""
    if original_due is None or original_reminder is None:
        return None
    return next_due - (original_due - original_reminder)
