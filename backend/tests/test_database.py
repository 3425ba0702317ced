"""
Tests for database.py - task CRUD, completing recurring tasks, completion history, analytics.
"""
import pytest
import sqlite3
import sys
import os
from datetime import date, datetime

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import (
    EXPIRED_MESSAGE,
    complete_recurring_task_db,
    create_task_db,
    delete_task_db,
    get_all_tasks,
    get_analytics_db,
    get_completion_history_db,
    get_recurring_occurrences_db,
    get_task_db,
    update_past_completion_db,
    update_task_db,
)
from models import DailyPattern, WeeklyPattern

NOW = datetime(2026, 1, 15, 18, 0)


def count_history_rows(db_path):
    conn = sqlite3.connect(db_path)
    try:
        return conn.execute("SELECT COUNT(*) FROM completion_history").fetchone()[0]
    finally:
        conn.close()


class TestTaskCRUD:
    """Tests for basic task create/read/update/delete operations."""

    def test_create_task_basic(self, test_db):
        """Create a simple task."""
        task = create_task_db("id-1", "Buy groceries")

        assert task.id == "id-1"
        assert task.title == "Buy groceries"
        assert task.completed is False
        assert task.due_date is None
        assert task.recurring_pattern is None
        assert task.completed_occurrences == 0

    def test_create_recurring_task_reloads_pattern(self, test_db):
        """The stored pattern comes back as the same variant."""
        pattern = WeeklyPattern(days_of_week=[1, 3, 5], notify_at="07:30")
        create_task_db("id-1", "Gym", datetime(2026, 1, 16, 7, 0), recurring_pattern=pattern)

        task = get_task_db("id-1")
        assert task.recurring_pattern == pattern
        assert task.due_date == datetime(2026, 1, 16, 7, 0)

    def test_get_task_missing(self, test_db):
        assert get_task_db("nope") is None

    def test_get_all_tasks_empty(self, test_db):
        """Get tasks from empty database."""
        assert get_all_tasks() == []

    def test_get_all_tasks_order(self, test_db):
        """Open tasks first, earliest due date first, undated last."""
        create_task_db("id-1", "Undated", created_at=datetime(2026, 1, 1))
        create_task_db("id-2", "Later", datetime(2026, 1, 20))
        create_task_db("id-3", "Sooner", datetime(2026, 1, 16))
        create_task_db("id-4", "Done", datetime(2026, 1, 10))
        update_task_db("id-4", now=NOW, completed=True)

        assert [t.id for t in get_all_tasks()] == ["id-3", "id-2", "id-1", "id-4"]

    def test_update_task_title(self, test_db):
        create_task_db("id-1", "Old title")
        task = update_task_db("id-1", title="New title")
        assert task.title == "New title"

    def test_update_task_completed_stamps_time(self, test_db):
        """Completing stamps completed_at; un-completing clears it."""
        create_task_db("id-1", "Task")

        task = update_task_db("id-1", now=NOW, completed=True)
        assert task.completed is True
        assert task.completed_at == NOW

        task = update_task_db("id-1", completed=False)
        assert task.completed is False
        assert task.completed_at is None

    def test_update_task_pattern(self, test_db):
        create_task_db("id-1", "Task")
        task = update_task_db("id-1", recurring_pattern=DailyPattern(interval=2))
        assert task.recurring_pattern == DailyPattern(interval=2)

        task = update_task_db("id-1", recurring_pattern=None)
        assert task.recurring_pattern is None

    def test_update_task_missing(self, test_db):
        assert update_task_db("nope", title="x") is None

    def test_delete_task(self, test_db):
        create_task_db("id-1", "Task")
        assert delete_task_db("id-1") is True
        assert delete_task_db("id-1") is False
        assert get_all_tasks() == []


class TestCompleteRecurring:
    """Tests for complete_recurring_task_db."""

    def test_creates_next_task(self, test_db):
        """The next task is due one interval later and keeps the reminder offset."""
        pattern = DailyPattern(interval=3)
        create_task_db(
            "id-1", "Water plants",
            due_date=datetime(2026, 1, 15, 10, 0),
            reminder_at=datetime(2026, 1, 15, 9, 30),
            recurring_pattern=pattern,
        )

        result = complete_recurring_task_db("id-1", NOW)

        assert result.completed is True
        assert result.message is None
        next_task = result.next_task
        assert next_task.id != "id-1"
        assert next_task.title == "Water plants"
        assert next_task.due_date == datetime(2026, 1, 18, 10, 0)
        assert next_task.reminder_at == datetime(2026, 1, 18, 9, 30)
        assert next_task.recurring_pattern == pattern
        assert next_task.completed_occurrences == 1

        original = get_task_db("id-1")
        assert original.completed is True
        assert original.completed_at == NOW
        assert get_task_db(next_task.id) == next_task

    def test_writes_completion_record(self, test_db):
        """The finished occurrence is recorded on its due date."""
        create_task_db("id-1", "Standup", datetime(2026, 1, 14, 9, 0), recurring_pattern=DailyPattern())

        complete_recurring_task_db("id-1", NOW)

        records = get_completion_history_db(date(2026, 1, 1), date(2026, 1, 31))
        assert len(records) == 1
        assert records[0].task_id == "id-1"
        assert records[0].scheduled_date == date(2026, 1, 14)
        assert records[0].completed_at == NOW
        assert records[0].task_title == "Standup"

    def test_without_due_date_uses_now(self, test_db):
        """A Friday pattern completed on Thursday evening is next due on Friday."""
        create_task_db("id-1", "Review", recurring_pattern=WeeklyPattern(days_of_week=[5]))

        result = complete_recurring_task_db("id-1", NOW)

        assert result.next_task.due_date == datetime(2026, 1, 16, 18, 0)
        assert result.next_task.reminder_at is None
        records = get_completion_history_db(date(2026, 1, 15), date(2026, 1, 15))
        assert len(records) == 1

    def test_count_carries_along_series(self, test_db):
        pattern = DailyPattern(occurrences=3)
        create_task_db("id-1", "Pills", datetime(2026, 1, 15, 8, 0), recurring_pattern=pattern)

        second = complete_recurring_task_db("id-1", NOW).next_task
        third = complete_recurring_task_db(second.id, NOW).next_task
        assert third.completed_occurrences == 2
        assert third.due_date == datetime(2026, 1, 17, 8, 0)

        result = complete_recurring_task_db(third.id, NOW)
        assert result.next_task is None
        assert result.message == EXPIRED_MESSAGE

    def test_occurrence_cap_reached(self, test_db):
        """The last occurrence is still recorded but nothing new is scheduled."""
        create_task_db("id-1", "Once", datetime(2026, 1, 15, 8, 0), recurring_pattern=DailyPattern(occurrences=1))

        result = complete_recurring_task_db("id-1", NOW)

        assert result.completed is True
        assert result.next_task is None
        assert result.message == EXPIRED_MESSAGE
        assert len(get_all_tasks()) == 1
        assert count_history_rows(test_db) == 1

    def test_end_date_reached(self, test_db):
        pattern = DailyPattern(interval=3, end_date=date(2026, 1, 17))
        create_task_db("id-1", "Short series", datetime(2026, 1, 15, 8, 0), recurring_pattern=pattern)

        result = complete_recurring_task_db("id-1", NOW)
        assert result.next_task is None
        assert result.message == EXPIRED_MESSAGE

    def test_completing_twice_keeps_one_series(self, test_db):
        """A repeated completion is rejected, leaving one open successor."""
        create_task_db("id-1", "Stretch", datetime(2026, 1, 15, 8, 0), recurring_pattern=DailyPattern())

        first = complete_recurring_task_db("id-1", NOW)
        with pytest.raises(ValueError):
            complete_recurring_task_db("id-1", NOW)

        open_tasks = [t for t in get_all_tasks() if not t.completed]
        assert [t.id for t in open_tasks] == [first.next_task.id]
        assert count_history_rows(test_db) == 1

    def test_missing_task(self, test_db):
        assert complete_recurring_task_db("nope", NOW) is None

    def test_non_recurring_task(self, test_db):
        """Completing a plain task through this flow is rejected and changes nothing."""
        create_task_db("id-1", "Plain")
        with pytest.raises(ValueError):
            complete_recurring_task_db("id-1", NOW)
        assert get_task_db("id-1").completed is False


class TestPastCompletion:
    """Tests for update_past_completion_db and get_completion_history_db."""

    def test_same_call_twice_keeps_one_record(self, test_db):
        """The first call creates a record, the second updates it."""
        create_task_db("id-1", "Journal", datetime(2026, 1, 10, 21, 0), recurring_pattern=DailyPattern())

        first = update_past_completion_db("id-1", date(2026, 1, 12), True, NOW)
        second = update_past_completion_db("id-1", date(2026, 1, 12), True, NOW)

        assert first.action == "created"
        assert second.action == "updated"
        assert second.record.id == first.record.id
        assert second.record.completed_at == NOW
        assert count_history_rows(test_db) == 1

    def test_mark_not_completed(self, test_db):
        create_task_db("id-1", "Journal", recurring_pattern=DailyPattern())
        update_past_completion_db("id-1", date(2026, 1, 12), True, NOW)

        result = update_past_completion_db("id-1", date(2026, 1, 12), False, NOW)

        assert result.action == "updated"
        assert result.record.completed_at is None

    def test_create_as_not_completed(self, test_db):
        create_task_db("id-1", "Journal", recurring_pattern=DailyPattern())
        result = update_past_completion_db("id-1", date(2026, 1, 12), False, NOW)
        assert result.action == "created"
        assert result.record.completed_at is None

    def test_updates_record_written_by_completion(self, test_db):
        """Correcting the occurrence just completed updates its record."""
        create_task_db("id-1", "Journal", datetime(2026, 1, 15, 21, 0), recurring_pattern=DailyPattern())
        complete_recurring_task_db("id-1", NOW)

        result = update_past_completion_db("id-1", date(2026, 1, 15), False, NOW)

        assert result.action == "updated"
        assert count_history_rows(test_db) == 1

    def test_missing_task(self, test_db):
        assert update_past_completion_db("nope", date(2026, 1, 12), True, NOW) is None

    def test_non_recurring_task(self, test_db):
        create_task_db("id-1", "Plain")
        with pytest.raises(ValueError):
            update_past_completion_db("id-1", date(2026, 1, 12), True, NOW)
        assert count_history_rows(test_db) == 0

    def test_history_range(self, test_db):
        create_task_db("id-1", "Journal", recurring_pattern=DailyPattern())
        for day in (10, 12, 14):
            update_past_completion_db("id-1", date(2026, 1, day), True, NOW)

        records = get_completion_history_db(date(2026, 1, 11), date(2026, 1, 14))

        assert [r.scheduled_date for r in records] == [date(2026, 1, 12), date(2026, 1, 14)]
        assert all(r.task_title == "Journal" for r in records)


class TestRecurringOccurrences:
    """Tests for get_recurring_occurrences_db."""

    def test_matching_dates_from_due_date(self, test_db):
        create_task_db("id-1", "Gym", datetime(2026, 1, 16, 7, 0), recurring_pattern=WeeklyPattern(days_of_week=[1, 3, 5]))
        create_task_db("id-2", "Plain", datetime(2026, 1, 16, 7, 0))

        result = get_recurring_occurrences_db(date(2026, 1, 12), date(2026, 1, 25))

        assert len(result) == 1
        assert result[0].task.id == "id-1"
        assert result[0].matching_dates == [
            date(2026, 1, 16), date(2026, 1, 19), date(2026, 1, 21), date(2026, 1, 23)
        ]

    def test_interval_counts_from_due_date(self, test_db):
        create_task_db("id-1", "Every other day", datetime(2026, 1, 15, 7, 0), recurring_pattern=DailyPattern(interval=2))

        result = get_recurring_occurrences_db(date(2026, 1, 15), date(2026, 1, 20))

        assert result[0].matching_dates == [date(2026, 1, 15), date(2026, 1, 17), date(2026, 1, 19)]

    def test_completed_tasks_excluded(self, test_db):
        create_task_db("id-1", "Gym", datetime(2026, 1, 16, 7, 0), recurring_pattern=DailyPattern())
        update_task_db("id-1", now=NOW, completed=True)

        assert get_recurring_occurrences_db(date(2026, 1, 12), date(2026, 1, 25)) == []


class TestAnalytics:
    """Tests for get_analytics_db."""

    def test_empty_range(self, test_db):
        result = get_analytics_db(date(2026, 1, 9), date(2026, 1, 15), date(2026, 1, 15))

        assert result.total_regular_completed == 0
        assert result.total_recurring_completed == 0
        assert result.total_recurring_missed == 0
        assert result.completion_rate == 100
        assert result.current_streak == 0
        assert len(result.daily_breakdown) == 7

    def test_completed_and_missed(self, test_db):
        """
        A daily task due from Jan 12: completed Jan 12, nothing on Jan 13,
        explicitly not completed on Jan 14, Jan 15 is today and still pending.
        A regular task was completed on Jan 14.
        """
        create_task_db("regular", "Call bank")
        update_task_db("regular", now=datetime(2026, 1, 14, 10, 0), completed=True)

        create_task_db(
            "daily", "Stretch", datetime(2026, 1, 12, 9, 0),
            recurring_pattern=DailyPattern(), created_at=datetime(2026, 1, 10),
        )
        update_past_completion_db("daily", date(2026, 1, 12), True, datetime(2026, 1, 12, 20, 0))
        update_past_completion_db("daily", date(2026, 1, 14), False, datetime(2026, 1, 14, 20, 0))

        result = get_analytics_db(date(2026, 1, 12), date(2026, 1, 15), date(2026, 1, 15))

        assert result.total_regular_completed == 1
        assert result.total_recurring_completed == 1
        assert result.total_recurring_missed == 2
        assert result.completion_rate == 50
        assert result.current_streak == 1

        by_day = {d.date: d for d in result.daily_breakdown}
        assert by_day[date(2026, 1, 12)].recurring_completed == 1
        assert by_day[date(2026, 1, 13)].recurring_missed == 1
        assert by_day[date(2026, 1, 14)].regular_completed == 1
        assert by_day[date(2026, 1, 14)].recurring_missed == 1
        assert by_day[date(2026, 1, 15)].recurring_missed == 0

    def test_plain_weekly_misses_once_a_week(self, test_db):
        """A weekly task with no weekdays is expected on its due date's weekday only."""
        create_task_db(
            "weekly", "Laundry", datetime(2026, 1, 1, 9, 0),
            recurring_pattern=WeeklyPattern(), created_at=datetime(2025, 12, 30),
        )

        result = get_analytics_db(date(2026, 1, 1), date(2026, 1, 15), date(2026, 1, 15))

        assert result.total_recurring_missed == 2
        missed_days = [d.date for d in result.daily_breakdown if d.recurring_missed]
        assert missed_days == [date(2026, 1, 1), date(2026, 1, 8)]

    def test_streak_spans_before_range(self, test_db):
        """Completions before the range start still count toward the streak."""
        create_task_db("daily", "Stretch", recurring_pattern=DailyPattern(), created_at=datetime(2026, 1, 10))
        for day in (12, 13, 14, 15):
            update_past_completion_db("daily", date(2026, 1, day), True, datetime(2026, 1, day, 20, 0))

        result = get_analytics_db(date(2026, 1, 15), date(2026, 1, 15), date(2026, 1, 15))

        assert result.total_recurring_completed == 1
        assert result.current_streak == 4
