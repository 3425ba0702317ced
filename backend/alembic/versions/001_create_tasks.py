"""Create tasks table with recurring pattern and completion columns

Revision ID: 001
Revises: None
Create Date: 2026-01-12

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # Check if tasks table exists
    result = conn.execute(
        text("SELECT name FROM sqlite_master WHERE type='table' AND name='tasks'")
    ).fetchone()

    if not result:
        conn.execute(text("""
            CREATE TABLE tasks (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                completed INTEGER DEFAULT 0,
                completed_at TEXT,
                due_date TEXT,
                reminder_at TEXT,
                recurring_pattern TEXT,
                completed_occurrences INTEGER DEFAULT 0,
                created_at TEXT NOT NULL
            )
        """))
    else:
        # Bring an older tasks table up to date
        columns = {row[1] for row in conn.execute(text("PRAGMA table_info(tasks)")).fetchall()}

        for name, column_type in (
            ("completed_at", "TEXT"),
            ("due_date", "TEXT"),
            ("reminder_at", "TEXT"),
            ("recurring_pattern", "TEXT"),
            ("completed_occurrences", "INTEGER DEFAULT 0"),
        ):
            if name not in columns:
                conn.execute(text(f"ALTER TABLE tasks ADD COLUMN {name} {column_type}"))

    conn.execute(text("CREATE INDEX IF NOT EXISTS tasks_due_date_idx ON tasks (due_date)"))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP INDEX IF EXISTS tasks_due_date_idx"))
    conn.execute(text("DROP TABLE IF EXISTS tasks"))
