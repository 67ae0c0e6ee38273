"""Add position column for drag and drop ordering within a column

Revision ID: 003
Revises: 002
Create Date: 2025-06-21

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '003'
down_revision: Union[str, None] = '002'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    columns = {row[1] for row in conn.execute(text("PRAGMA table_info(tasks)")).fetchall()}

    if "position" not in columns:
        conn.execute(text("ALTER TABLE tasks ADD COLUMN position INTEGER NOT NULL DEFAULT 0"))
        # Existing tasks keep their creation order within each column
        rows = conn.execute(
            text("SELECT id, board_id, status FROM tasks ORDER BY created_at")
        ).fetchall()
        positions = {}
        for task_id, board_id, status in rows:
            position = positions.get((board_id, status), 0)
            conn.execute(
                text("UPDATE tasks SET position = :position WHERE id = :id"),
                {"position": position, "id": task_id}
            )
            positions[(board_id, status)] = position + 1


def downgrade() -> None:
    # SQLite doesn't support DROP COLUMN easily, so we'd need to recreate the table
    # For simplicity, downgrade is a no-op (column remains but is unused)
    pass
