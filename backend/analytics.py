"""
Completion reconciliation: occurrence status, streaks and analytics aggregation.

Everything here is pure; "today" is always passed in by the caller.
"""
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Optional

from models import AnalyticsData, DailyStats, Occurrence, OccurrenceStatus


def occurrence_status(
    scheduled_date: date,
    completed_at: Optional[datetime],
    today: date,
) -> OccurrenceStatus:
    """Completed if there is a completion, missed if scheduled before today, else pending."""
    if completed_at is not None:
        return "completed"
    if scheduled_date < today:
        return "missed"
    return "pending"


def is_missed(scheduled_date: date, completed_at: Optional[datetime], today: date) -> bool:
    return occurrence_status(scheduled_date, completed_at, today) == "missed"


def reconcile_occurrences(
    scheduled_dates: Iterable[date],
    completions: Mapping[date, Optional[datetime]],
    today: date,
) -> list[Occurrence]:
    """Pair each scheduled date with its completion (if any) and classify it."""
    result = []
    for scheduled in sorted(set(scheduled_dates)):
        completed_at = completions.get(scheduled)
        result.append(Occurrence(
            scheduled_date=scheduled,
            completed_at=completed_at,
            status=occurrence_status(scheduled, completed_at, today),
        ))
    return result


def calculate_streak(completion_dates: Iterable[date], today: date) -> int:
    """
    Count consecutive days with a completion, walking back from today.

    If there is nothing today but there is something yesterday, the streak
    still counts from yesterday. Duplicate dates count once.
    """
    sorted_dates = sorted(completion_dates, reverse=True)
    if not sorted_dates:
        return 0

    yesterday = today - timedelta(days=1)
    if sorted_dates[0] == today:
        check_date = today
    elif sorted_dates[0] == yesterday:
        check_date = yesterday
    else:
        return 0

    streak = 0
    for completed in sorted_dates:
        if completed == check_date:
            streak += 1
            check_date -= timedelta(days=1)
        elif completed < check_date:
            break  # gap
    return streak


def calculate_completion_rate(total_completed: int, total_expected: int) -> int:
    """Percentage of expected items that were completed; 100 when nothing was expected."""
    if total_expected == 0:
        return 100
    rate = Decimal(100 * total_completed) / Decimal(total_expected)
    return int(rate.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def build_daily_breakdown(
    start: date,
    end: date,
    regular_completed: Mapping[date, int],
    recurring_completed: Mapping[date, int],
    recurring_missed: Mapping[date, int],
) -> list[DailyStats]:
    """One entry per day in [start, end], zero-filled, overlaid with the given counts."""
    breakdown: dict[date, DailyStats] = {}
    current = start
    while current <= end:
        breakdown[current] = DailyStats(date=current)
        current += timedelta(days=1)

    for day, count in regular_completed.items():
        if day in breakdown:
            breakdown[day].regular_completed = count
    for day, count in recurring_completed.items():
        if day in breakdown:
            breakdown[day].recurring_completed = count
    for day, count in recurring_missed.items():
        if day in breakdown:
            breakdown[day].recurring_missed = count

    return [breakdown[day] for day in sorted(breakdown)]


def summarize_analytics(
    start: date,
    end: date,
    today: date,
    regular_completed: Mapping[date, int],
    recurring_completed: Mapping[date, int],
    recurring_missed: Mapping[date, int],
    completion_days: Optional[Iterable[date]] = None,
) -> AnalyticsData:
    """
    Build the analytics result for a date range.

    completion_days feeds the streak; it defaults to every day in the range
    with at least one completion, but callers can pass days outside the range
    so a streak is not cut off at the range start.
    """
    total_regular = sum(regular_completed.values())
    total_recurring = sum(recurring_completed.values())
    total_missed = sum(recurring_missed.values())

    if completion_days is None:
        completion_days = {
            day for day, count in list(regular_completed.items()) + list(recurring_completed.items())
            if count > 0
        }

    total_completed = total_regular + total_recurring
    return AnalyticsData(
        total_regular_completed=total_regular,
        total_recurring_completed=total_recurring,
        total_recurring_missed=total_missed,
        completion_rate=calculate_completion_rate(total_completed, total_completed + total_missed),
        current_streak=calculate_streak(set(completion_days), today),
        daily_breakdown=build_daily_breakdown(
            start, end, regular_completed, recurring_completed, recurring_missed
        ),
    )
