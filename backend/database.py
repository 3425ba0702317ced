import sqlite3
import logging
import uuid
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Optional
from contextlib import contextmanager

from analytics import summarize_analytics
from config import get_settings
from models import (
    AnalyticsData,
    CompleteRecurringResult,
    CompletionRecord,
    PastCompletionResult,
    RecurringOccurrences,
    RecurringPattern,
    Task,
    pattern_from_json,
    pattern_to_json,
)
from recurrence import calculate_next_reminder, get_next_occurrence, iter_matching_dates

logger = logging.getLogger(__name__)

DATABASE_PATH = get_settings().database_path

EXPIRED_MESSAGE = "Recurring pattern has expired"


@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def write_transaction():
    """
    Connection holding the sqlite write lock from the first statement.
    Used for read-check-then-write sequences so concurrent callers serialize.
    Commits on success, rolls back and re-raises on any error.
    """
    with get_db() as conn:
        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise


def init_db():
    """Initialize database by running Alembic migrations."""
    import subprocess
    import os

    # Run alembic upgrade from the backend directory
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=backend_dir,
        check=True
    )


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _row_to_task(row) -> Task:
    """Convert a database row to a Task model."""
    return Task(
        id=row["id"],
        title=row["title"],
        completed=bool(row["completed"]),
        completed_at=_parse_datetime(row["completed_at"]),
        due_date=_parse_datetime(row["due_date"]),
        reminder_at=_parse_datetime(row["reminder_at"]),
        recurring_pattern=pattern_from_json(row["recurring_pattern"]),
        completed_occurrences=row["completed_occurrences"] or 0,
        created_at=_parse_datetime(row["created_at"]),
    )


def _row_to_record(row) -> CompletionRecord:
    keys = row.keys()
    return CompletionRecord(
        id=row["id"],
        task_id=row["task_id"],
        scheduled_date=date.fromisoformat(row["scheduled_date"]),
        completed_at=_parse_datetime(row["completed_at"]),
        created_at=_parse_datetime(row["created_at"]),
        task_title=row["title"] if "title" in keys else None,
    )


def _insert_task(conn, task: Task):
    conn.execute(
        """INSERT INTO tasks
           (id, title, completed, completed_at, due_date, reminder_at, recurring_pattern, completed_occurrences, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            task.id,
            task.title,
            int(task.completed),
            _format_datetime(task.completed_at),
            _format_datetime(task.due_date),
            _format_datetime(task.reminder_at),
            pattern_to_json(task.recurring_pattern) if task.recurring_pattern else None,
            task.completed_occurrences,
            _format_datetime(task.created_at),
        )
    )


def create_task_db(
    task_id: str,
    title: str,
    due_date: Optional[datetime] = None,
    reminder_at: Optional[datetime] = None,
    recurring_pattern: Optional[RecurringPattern] = None,
    completed_occurrences: int = 0,
    created_at: Optional[datetime] = None,
) -> Task:
    """Create a task. created_at defaults to the current time."""
    task = Task(
        id=task_id,
        title=title,
        due_date=due_date,
        reminder_at=reminder_at,
        recurring_pattern=recurring_pattern,
        completed_occurrences=completed_occurrences,
        created_at=created_at or datetime.now(),
    )
    with get_db() as conn:
        _insert_task(conn, task)
        conn.commit()
    return task


def get_task_db(task_id: str) -> Optional[Task]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(row) if row else None


def get_all_tasks() -> list[Task]:
    with get_db() as conn:
        rows = conn.execute("""
            SELECT * FROM tasks
            ORDER BY
                completed,
                due_date IS NULL,
                due_date,
                created_at
        """).fetchall()
        return [_row_to_task(row) for row in rows]


def _to_storage(field: str, value):
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if field == "recurring_pattern" and value is not None:
        return pattern_to_json(value)
    return value


def update_task_db(task_id: str, now: Optional[datetime] = None, **updates) -> Optional[Task]:
    """
    Update a task with any fields provided.
    Only updates fields that differ from current values.
    Setting completed=True stamps completed_at with `now`; completed=False clears it.

    Args:
        task_id: Task ID to update
        now: Completion timestamp; defaults to the current time
        **updates: Field names and values to update (title, completed, due_date, reminder_at, recurring_pattern)
    """
    with get_db() as conn:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if not row:
            return None

        keys = row.keys()

        if updates.get("completed") is not None and updates["completed"] != bool(row["completed"]):
            updates["completed_at"] = (now or datetime.now()) if updates["completed"] else None

        # Filter updates: only include fields that differ from current values
        changes = {}
        for field, new_value in updates.items():
            if field not in keys:
                continue
            stored = _to_storage(field, new_value)
            if stored != row[field]:
                changes[field] = stored

        # Execute UPDATE only if there are actual changes
        if changes:
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            values = list(changes.values()) + [task_id]
            conn.execute(f"UPDATE tasks SET {set_clause} WHERE id = ?", values)
            conn.commit()

        # Return updated task (re-fetch to get current state)
        updated_row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(updated_row)


def delete_task_db(task_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        conn.commit()
        return cursor.rowcount > 0


# Recurring completion

def complete_recurring_task_db(task_id: str, now: datetime) -> Optional[CompleteRecurringResult]:
    """
    Complete the current occurrence of a recurring task and schedule the next one.

    The next due date is computed from the task's due date (or `now` if it has
    none). The reminder keeps its offset from the due date. A completion record
    is written for the finished occurrence, scheduled on its due date.
    When the pattern has expired no next task is created and the result says so.
    Returns None if the task does not exist; raises ValueError if it is not
    recurring or was already completed.
    """
    with write_transaction() as conn:
        row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        if not row:
            return None
        task = _row_to_task(row)
        if task.recurring_pattern is None:
            raise ValueError(f"Task {task_id} does not have a recurring pattern")
        # Its successor already exists; completing again would fork the series
        if task.completed:
            raise ValueError(f"Task {task_id} is already completed")

        conn.execute(
            "UPDATE tasks SET completed = 1, completed_at = ? WHERE id = ?",
            (now.isoformat(), task_id)
        )

        base_date = task.due_date or now
        conn.execute(
            """INSERT INTO completion_history (task_id, scheduled_date, completed_at, created_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(task_id, scheduled_date) DO UPDATE SET completed_at = excluded.completed_at""",
            (task_id, base_date.date().isoformat(), now.isoformat(), now.isoformat())
        )

        completed_count = task.completed_occurrences + 1
        next_due = get_next_occurrence(task.recurring_pattern, base_date, completed_count)
        if next_due is None:
            logger.info("Recurring task %s completed; series has ended after %d occurrences",
                        task_id, completed_count)
            return CompleteRecurringResult(completed=True, next_task=None, message=EXPIRED_MESSAGE)

        next_task = Task(
            id=str(uuid.uuid4()),
            title=task.title,
            due_date=next_due,
            reminder_at=calculate_next_reminder(task.due_date, task.reminder_at, next_due),
            recurring_pattern=task.recurring_pattern,
            completed_occurrences=completed_count,
            created_at=now,
        )
        _insert_task(conn, next_task)

    logger.info("Recurring task %s completed; next occurrence %s due %s",
                task_id, next_task.id, next_due.isoformat())
    return CompleteRecurringResult(completed=True, next_task=next_task, message=None)


def update_past_completion_db(
    task_id: str,
    scheduled_date: date,
    completed: bool,
    now: datetime,
) -> Optional[PastCompletionResult]:
    """
    Mark a past occurrence completed or not completed.

    Upserts by (task_id, scheduled_date): an existing record gets its
    completed_at set to `now` (or cleared), otherwise a record is created.
    Repeating the same call never creates a second record.
    Returns None if the task does not exist; raises ValueError if it is not recurring.
    """
    completed_at = now.isoformat() if completed else None
    scheduled = scheduled_date.isoformat()

    with write_transaction() as conn:
        task_row = conn.execute(
            "SELECT recurring_pattern FROM tasks WHERE id = ?", (task_id,)
        ).fetchone()
        if not task_row:
            return None
        if not task_row["recurring_pattern"]:
            raise ValueError(f"Task {task_id} does not have a recurring pattern")

        existing = conn.execute(
            "SELECT id FROM completion_history WHERE task_id = ? AND scheduled_date = ?",
            (task_id, scheduled)
        ).fetchone()

        if existing:
            action = "updated"
            conn.execute(
                "UPDATE completion_history SET completed_at = ? WHERE id = ?",
                (completed_at, existing["id"])
            )
            record_id = existing["id"]
        else:
            action = "created"
            cursor = conn.execute(
                """INSERT INTO completion_history (task_id, scheduled_date, completed_at, created_at)
                   VALUES (?, ?, ?, ?)""",
                (task_id, scheduled, completed_at, now.isoformat())
            )
            record_id = cursor.lastrowid

        row = conn.execute("SELECT * FROM completion_history WHERE id = ?", (record_id,)).fetchone()
        record = _row_to_record(row)

    logger.info("Past completion for task %s on %s %s (completed=%s)", task_id, scheduled, action, completed)
    return PastCompletionResult(action=action, record=record)


# Range queries

def get_completion_history_db(start: date, end: date) -> list[CompletionRecord]:
    """Completion records scheduled within [start, end], with their task titles."""
    with get_db() as conn:
        rows = conn.execute(
            """SELECT ch.*, t.title FROM completion_history ch
               LEFT JOIN tasks t ON t.id = ch.task_id
               WHERE ch.scheduled_date BETWEEN ? AND ?
               ORDER BY ch.scheduled_date, ch.id""",
            (start.isoformat(), end.isoformat())
        ).fetchall()
        return [_row_to_record(row) for row in rows]


def _open_recurring_tasks(conn) -> list[Task]:
    rows = conn.execute(
        "SELECT * FROM tasks WHERE completed = 0 AND recurring_pattern IS NOT NULL ORDER BY created_at"
    ).fetchall()
    return [_row_to_task(row) for row in rows]


def _anchor_for(task: Task) -> date:
    return (task.due_date or task.created_at).date()


def get_recurring_occurrences_db(start: date, end: date) -> list[RecurringOccurrences]:
    """
    For each open recurring task, the dates in [start, end] its pattern matches.
    Matching is anchored on the task's due date (or creation date), so earlier
    dates are not listed and intervals count from the anchor.
    """
    with get_db() as conn:
        tasks = _open_recurring_tasks(conn)

    result = []
    for task in tasks:
        dates = list(iter_matching_dates(task.recurring_pattern, start, end, _anchor_for(task)))
        if dates:
            result.append(RecurringOccurrences(task=task, matching_dates=dates))
    return result


def get_analytics_db(start: date, end: date, today: date) -> AnalyticsData:
    """
    Aggregate completions and misses for [start, end].

    Regular tasks count on the day they were completed. Recurring occurrences
    count on their scheduled day: completed when a record has completed_at,
    missed when a past record has none, or when an open recurring task has a
    matching date from its due date up to yesterday with no record at all.
    """
    start_s, end_s = start.isoformat(), end.isoformat()

    with get_db() as conn:
        regular_rows = conn.execute(
            """SELECT substr(completed_at, 1, 10) AS day, COUNT(*) AS count FROM tasks
               WHERE completed = 1 AND recurring_pattern IS NULL AND completed_at IS NOT NULL
                 AND substr(completed_at, 1, 10) BETWEEN ? AND ?
               GROUP BY day""",
            (start_s, end_s)
        ).fetchall()

        record_rows = conn.execute(
            """SELECT task_id, scheduled_date, completed_at FROM completion_history
               WHERE scheduled_date BETWEEN ? AND ?""",
            (start_s, end_s)
        ).fetchall()

        streak_rows = conn.execute(
            """SELECT substr(completed_at, 1, 10) AS day FROM tasks
               WHERE completed = 1 AND completed_at IS NOT NULL
               UNION
               SELECT substr(completed_at, 1, 10) AS day FROM completion_history
               WHERE completed_at IS NOT NULL"""
        ).fetchall()

        open_tasks = _open_recurring_tasks(conn)

    regular = {date.fromisoformat(row["day"]): row["count"] for row in regular_rows}

    recurring_completed = Counter()
    recurring_missed = Counter()
    recorded = set()
    for row in record_rows:
        scheduled = date.fromisoformat(row["scheduled_date"])
        recorded.add((row["task_id"], scheduled))
        if row["completed_at"]:
            recurring_completed[scheduled] += 1
        elif scheduled < today:
            recurring_missed[scheduled] += 1

    yesterday = today - timedelta(days=1)
    for task in open_tasks:
        for scheduled in iter_matching_dates(task.recurring_pattern, start, min(end, yesterday), _anchor_for(task)):
            if (task.id, scheduled) not in recorded:
                recurring_missed[scheduled] += 1

    completion_days = {date.fromisoformat(row["day"]) for row in streak_rows if row["day"]}

    return summarize_analytics(
        start,
        end,
        today,
        regular,
        dict(recurring_completed),
        dict(recurring_missed),
        completion_days=completion_days,
    )
