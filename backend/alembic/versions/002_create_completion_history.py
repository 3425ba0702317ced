"""Create completion_history table, one row per (task, scheduled date)

Revision ID: 002
Revises: 001
Create Date: 2026-01-22

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS completion_history (
            id INTEGER PRIMARY KEY,
            task_id TEXT NOT NULL,
            scheduled_date TEXT NOT NULL,
            completed_at TEXT,
            created_at TEXT NOT NULL
        )
    """))

    # Upserts rely on this: at most one record per occurrence
    conn.execute(text("""
        CREATE UNIQUE INDEX IF NOT EXISTS completion_history_task_date_idx
        ON completion_history (task_id, scheduled_date)
    """))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP INDEX IF EXISTS completion_history_task_date_idx"))
    conn.execute(text("DROP TABLE IF EXISTS completion_history"))
