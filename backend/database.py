import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime
from typing import Optional

import config
from models import Board, Priority, Status, Subscription, SubscriptionStatus, Task, TaskColumns

logger = logging.getLogger(__name__)

DATABASE_PATH = config.DATABASE_PATH
DEFAULT_BOARD_NAME = "My Board"
ACTIVE_STATUSES = (Status.TODO.value, Status.IN_PROGRESS.value)


@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db():
    """Initialize database by running Alembic migrations."""
    import subprocess
    import os

    # Run alembic upgrade from the backend directory
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "-x", f"db_path={os.path.abspath(DATABASE_PATH)}", "upgrade", "head"],
        cwd=backend_dir,
        check=True
    )


def normalize_deadline(deadline: Optional[str]) -> str:
    """Coerce a deadline to YYYY-MM-DD; missing or invalid becomes today."""
    today = date.today().isoformat()
    if not deadline:
        return today
    try:
        return date.fromisoformat(deadline.strip()[:10]).isoformat()
    except ValueError:
        logger.warning("Invalid deadline %r, defaulting to today", deadline)
        return today


def _row_to_task(row) -> Task:
    """Convert a database row to a Task model."""
    return Task(
        id=row["id"],
        title=row["title"],
        description=row["description"] or "",
        deadline=row["due_date"],
        status=row["status"],
        priority=row["priority"],
        position=row["position"],
        board_id=row["board_id"],
        user_id=row["user_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_board(row) -> Board:
    return Board(
        id=row["id"],
        name=row["name"],
        description=row["description"] or "",
        user_id=row["user_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# Board operations
def get_boards_db(user_id: str) -> list[Board]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM boards WHERE user_id = ? ORDER BY created_at DESC, rowid DESC",
            (user_id,)
        ).fetchall()
        return [_row_to_board(row) for row in rows]


def get_board_db(board_id: str, user_id: str) -> Optional[Board]:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM boards WHERE id = ? AND user_id = ?",
            (board_id, user_id)
        ).fetchone()
        return _row_to_board(row) if row else None


def create_board_db(board_id: str, user_id: str, name: str, description: str = "") -> Board:
    now = datetime.now().isoformat()
    with get_db() as conn:
        conn.execute(
            """INSERT INTO boards (id, name, description, user_id, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (board_id, name, description, user_id, now, now)
        )
        conn.commit()
    return Board(id=board_id, name=name, description=description, user_id=user_id, created_at=now, updated_at=now)


def update_board_db(board_id: str, user_id: str, **updates) -> Optional[Board]:
    changes = {field: value for field, value in updates.items() if field in ("name", "description") and value is not None}
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM boards WHERE id = ? AND user_id = ?", (board_id, user_id)
        ).fetchone()
        if not row:
            return None
        if changes:
            changes["updated_at"] = datetime.now().isoformat()
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            conn.execute(f"UPDATE boards SET {set_clause} WHERE id = ?", list(changes.values()) + [board_id])
            conn.commit()
        row = conn.execute("SELECT * FROM boards WHERE id = ?", (board_id,)).fetchone()
        return _row_to_board(row)


def delete_board_db(board_id: str, user_id: str) -> bool:
    """Delete a board and every task on it."""
    with get_db() as conn:
        conn.execute("DELETE FROM tasks WHERE board_id = ? AND user_id = ?", (board_id, user_id))
        cursor = conn.execute("DELETE FROM boards WHERE id = ? AND user_id = ?", (board_id, user_id))
        conn.commit()
        return cursor.rowcount > 0


def ensure_default_board_db(user_id: str) -> Board:
    """Return the user's oldest board, creating one if they have none."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM boards WHERE user_id = ? ORDER BY created_at, rowid LIMIT 1",
            (user_id,)
        ).fetchone()
    if row:
        return _row_to_board(row)
    logger.info("Creating default board for user %s", user_id)
    return create_board_db(str(uuid.uuid4()), user_id, DEFAULT_BOARD_NAME)


# Task operations
def _next_position(conn, board_id: str, status: str) -> int:
    row = conn.execute(
        "SELECT MAX(position) FROM tasks WHERE board_id = ? AND status = ?",
        (board_id, status)
    ).fetchone()
    return 0 if row[0] is None else row[0] + 1


def get_task_db(task_id: str, user_id: str) -> Optional[Task]:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
        ).fetchone()
        return _row_to_task(row) if row else None


def get_tasks_db(user_id: str, board_id: Optional[str] = None) -> list[Task]:
    """All of a user's tasks, newest first, optionally limited to one board."""
    query = "SELECT * FROM tasks WHERE user_id = ?"
    params = [user_id]
    if board_id:
        query += " AND board_id = ?"
        params.append(board_id)
    query += " ORDER BY created_at DESC, rowid DESC"
    with get_db() as conn:
        return [_row_to_task(row) for row in conn.execute(query, params).fetchall()]


def get_tasks_by_status_db(user_id: str, board_id: Optional[str] = None) -> TaskColumns:
    """Group tasks into kanban columns, each ordered by position."""
    tasks = sorted(get_tasks_db(user_id, board_id), key=lambda task: task.position)
    return TaskColumns(
        todo=[task for task in tasks if task.status is Status.TODO],
        in_progress=[task for task in tasks if task.status is Status.IN_PROGRESS],
        done=[task for task in tasks if task.status is Status.DONE],
        is_empty=not tasks,
    )


def create_task_db(
    task_id: str,
    user_id: str,
    board_id: str,
    title: str,
    description: str = "",
    deadline: Optional[str] = None,
    priority: str = "Medium",
    status: str = "Todo"
) -> Task:
    """Create a task at the end of its status column.
    deadline is normalized to YYYY-MM-DD; missing or invalid becomes today.
    """
    now = datetime.now().isoformat()
    due_date = normalize_deadline(deadline)
    priority = Priority(priority).value
    status = Status(status).value
    with get_db() as conn:
        position = _next_position(conn, board_id, status)
        conn.execute(
            """INSERT INTO tasks
               (id, title, description, due_date, status, priority, position, board_id, user_id, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (task_id, title, description, due_date, status, priority, position, board_id, user_id, now, now)
        )
        conn.commit()

    return Task(
        id=task_id,
        title=title,
        description=description,
        deadline=due_date,
        status=status,
        priority=priority,
        position=position,
        board_id=board_id,
        user_id=user_id,
        created_at=now,
        updated_at=now,
    )


# Task model field -> column
TASK_COLUMNS = {
    "title": "title",
    "description": "description",
    "deadline": "due_date",
    "priority": "priority",
    "status": "status",
}


def update_task_db(task_id: str, user_id: str, **updates) -> Optional[Task]:
    """
    Update a task with any fields provided.
    Only updates fields that differ from current values.

    Args:
        task_id: Task ID to update
        user_id: Owner of the task
        **updates: Field names and values to update (title, description, deadline, priority, status)
    """
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
        ).fetchone()
        if not row:
            return None

        changes = {}
        for field, new_value in updates.items():
            if field not in TASK_COLUMNS or new_value is None:
                continue
            column = TASK_COLUMNS[field]
            if field == "deadline":
                new_value = normalize_deadline(new_value)
            elif hasattr(new_value, "value"):
                new_value = new_value.value
            if new_value != row[column]:
                changes[column] = new_value

        # A status change moves the task to the end of the target column
        if "status" in changes:
            changes["position"] = _next_position(conn, row["board_id"], changes["status"])

        if changes:
            changes["updated_at"] = datetime.now().isoformat()
            set_clause = ", ".join(f"{column} = ?" for column in changes.keys())
            values = list(changes.values()) + [task_id]
            conn.execute(f"UPDATE tasks SET {set_clause} WHERE id = ?", values)
            conn.commit()

        # Return updated task (re-fetch to get current state)
        updated_row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(updated_row)


def update_task_status_db(task_id: str, user_id: str, status: Status) -> Optional[Task]:
    return update_task_db(task_id, user_id, status=status)


def _column_ids(conn, board_id: str, status: str, exclude: str) -> list[str]:
    rows = conn.execute(
        "SELECT id FROM tasks WHERE board_id = ? AND status = ? AND id != ? ORDER BY position, created_at",
        (board_id, status, exclude)
    ).fetchall()
    return [row["id"] for row in rows]


def move_task_db(task_id: str, user_id: str, status: Status, index: int) -> Optional[Task]:
    """
    Drag and drop: place a task at index within the target status column.
    index is clamped to the column length; both the source and the target
    column are renumbered 0..n-1.
    """
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id)
        ).fetchone()
        if not row:
            return None

        board_id = row["board_id"]
        source_status = row["status"]
        target_status = status.value

        target_ids = _column_ids(conn, board_id, target_status, task_id)
        target_ids.insert(min(index, len(target_ids)), task_id)

        now = datetime.now().isoformat()
        if source_status != target_status:
            conn.execute(
                "UPDATE tasks SET status = ?, updated_at = ? WHERE id = ?",
                (target_status, now, task_id)
            )
            for position, other_id in enumerate(_column_ids(conn, board_id, source_status, task_id)):
                conn.execute("UPDATE tasks SET position = ? WHERE id = ?", (position, other_id))

        for position, other_id in enumerate(target_ids):
            conn.execute("UPDATE tasks SET position = ? WHERE id = ?", (position, other_id))
        conn.commit()

        updated_row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(updated_row)


def delete_task_db(task_id: str, user_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id))
        conn.commit()
        return cursor.rowcount > 0


def count_active_tasks_db(user_id: str) -> int:
    """Count tasks that are not Done."""
    with get_db() as conn:
        return conn.execute(
            "SELECT COUNT(*) FROM tasks WHERE user_id = ? AND status IN (?, ?)",
            (user_id, *ACTIVE_STATUSES)
        ).fetchone()[0]


# Subscription operations
def _row_to_subscription(row) -> Subscription:
    return Subscription(
        user_id=row["user_id"],
        subscription_id=row["subscription_id"],
        plan_id=row["plan_id"],
        status=row["status"],
        updated_at=row["updated_at"],
    )


def get_subscription_db(user_id: str) -> Optional[Subscription]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM user_plans WHERE user_id = ?", (user_id,)).fetchone()
        return _row_to_subscription(row) if row else None


def upsert_subscription_db(
    user_id: str,
    subscription_id: str,
    plan_id: str,
    status: SubscriptionStatus = SubscriptionStatus.PENDING
) -> Subscription:
    """Insert or replace the user's subscription record."""
    now = datetime.now().isoformat()
    with get_db() as conn:
        conn.execute(
            """INSERT INTO user_plans (user_id, subscription_id, plan_id, status, updated_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                   subscription_id = excluded.subscription_id,
                   plan_id = excluded.plan_id,
                   status = excluded.status,
                   updated_at = excluded.updated_at""",
            (user_id, subscription_id, plan_id, status.value, now)
        )
        conn.commit()
    logger.info("Subscription %s (%s) for user %s is %s", subscription_id, plan_id, user_id, status.value)
    return Subscription(
        user_id=user_id,
        subscription_id=subscription_id,
        plan_id=plan_id,
        status=status,
        updated_at=now,
    )


def set_subscription_status_db(subscription_id: str, status: SubscriptionStatus) -> bool:
    """Update a subscription's status by the billing provider's id."""
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE user_plans SET status = ?, updated_at = ? WHERE subscription_id = ?",
            (status.value, datetime.now().isoformat(), subscription_id)
        )
        conn.commit()
        return cursor.rowcount > 0


def get_task_limit(user_id: str) -> int:
    """Active task cap for the user's plan; the free limit unless a known plan is active."""
    subscription = get_subscription_db(user_id)
    if subscription and subscription.status is SubscriptionStatus.ACTIVE:
        plan_limit = config.SUBSCRIPTION_PLAN_LIMITS.get(subscription.plan_id)
        if plan_limit:
            return plan_limit
    return config.FREE_PLAN_TASK_LIMIT


def has_reached_task_limit(user_id: str) -> bool:
    active = count_active_tasks_db(user_id)
    limit = get_task_limit(user_id)
    logger.debug("User %s has %d active tasks out of %d", user_id, active, limit)
    return active >= limit
