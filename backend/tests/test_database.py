"""
Tests for database.py - boards, task CRUD, column ordering, plan limits.
"""
import pytest
import sys
import os
from datetime import date

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import config
from database import (
    get_boards_db,
    create_board_db,
    update_board_db,
    delete_board_db,
    ensure_default_board_db,
    get_tasks_db,
    get_tasks_by_status_db,
    create_task_db,
    update_task_db,
    update_task_status_db,
    move_task_db,
    delete_task_db,
    count_active_tasks_db,
    get_subscription_db,
    upsert_subscription_db,
    set_subscription_status_db,
    get_task_limit,
    has_reached_task_limit,
)
from models import Priority, Status, SubscriptionStatus

USER = "user-1"
BASIC_PLAN = "P-90N57053P66221623NBETAGI"


def column_titles(tasks) -> list[str]:
    return [task.title for task in tasks]


class TestBoards:
    """Tests for board operations."""

    def test_create_and_list(self, test_db):
        create_board_db("b-1", USER, "Work", "Day job")
        create_board_db("b-2", USER, "Home")
        create_board_db("b-3", "someone-else", "Theirs")

        boards = get_boards_db(USER)
        assert [board.id for board in boards] == ["b-2", "b-1"]
        assert boards[1].description == "Day job"

    def test_ensure_default_board_creates_once(self, test_db):
        first = ensure_default_board_db(USER)
        second = ensure_default_board_db(USER)

        assert first.name == "My Board"
        assert first.id == second.id
        assert len(get_boards_db(USER)) == 1

    def test_ensure_default_board_returns_oldest(self, test_db):
        create_board_db("b-1", USER, "First")
        create_board_db("b-2", USER, "Second")

        assert ensure_default_board_db(USER).id == "b-1"

    def test_update_board(self, test_db):
        create_board_db("b-1", USER, "Old")
        board = update_board_db("b-1", USER, name="New", description=None)

        assert board.name == "New"
        assert board.description == ""

    def test_update_board_other_user(self, test_db):
        create_board_db("b-1", USER, "Old")
        assert update_board_db("b-1", "someone-else", name="New") is None

    def test_delete_board_removes_tasks(self, test_db):
        create_board_db("b-1", USER, "Work")
        create_task_db("t-1", USER, "b-1", "Task on board")

        assert delete_board_db("b-1", USER) is True
        assert get_tasks_db(USER) == []
        assert delete_board_db("b-1", USER) is False


class TestTaskCRUD:
    """Tests for basic task create/read/update/delete operations."""

    def test_create_task_basic(self, test_db):
        task = create_task_db("t-1", USER, "b-1", "Buy groceries", deadline="2026-11-02")

        assert task.id == "t-1"
        assert task.title == "Buy groceries"
        assert task.deadline == "2026-11-02"
        assert task.status is Status.TODO
        assert task.priority is Priority.MEDIUM
        assert task.position == 0

    def test_create_task_normalizes_deadline(self, test_db):
        task = create_task_db("t-1", USER, "b-1", "Call mom", deadline="2026-11-02T09:30:00")
        assert task.deadline == "2026-11-02"

    def test_create_task_invalid_deadline_is_today(self, test_db):
        task = create_task_db("t-1", USER, "b-1", "Call mom", deadline="next tuesday")
        assert task.deadline == date.today().isoformat()

    def test_create_task_accepts_enums(self, test_db):
        task = create_task_db("t-1", USER, "b-1", "Ship", priority=Priority.HIGH, status=Status.IN_PROGRESS)

        stored = get_tasks_db(USER)[0]
        assert stored.priority is Priority.HIGH
        assert stored.status is Status.IN_PROGRESS
        assert task.status is Status.IN_PROGRESS

    def test_positions_append_per_column(self, test_db):
        create_task_db("t-1", USER, "b-1", "A")
        create_task_db("t-2", USER, "b-1", "B")
        other = create_task_db("t-3", USER, "b-1", "C", status="Done")
        elsewhere = create_task_db("t-4", USER, "b-2", "D")

        assert get_tasks_by_status_db(USER, "b-1").todo[1].position == 1
        assert other.position == 0
        assert elsewhere.position == 0

    def test_get_tasks_newest_first_and_by_board(self, test_db):
        create_task_db("t-1", USER, "b-1", "Older")
        create_task_db("t-2", USER, "b-1", "Newer")
        create_task_db("t-3", USER, "b-2", "Other board")
        create_task_db("t-4", "someone-else", "b-1", "Not mine")

        assert column_titles(get_tasks_db(USER, "b-1")) == ["Newer", "Older"]
        assert len(get_tasks_db(USER)) == 3

    def test_update_task(self, test_db):
        create_task_db("t-1", USER, "b-1", "Old title")
        updated = update_task_db("t-1", USER, title="New title", priority=Priority.LOW, deadline="2026-12-24")

        assert updated.title == "New title"
        assert updated.priority is Priority.LOW
        assert updated.deadline == "2026-12-24"

    def test_update_task_no_changes_keeps_updated_at(self, test_db):
        task = create_task_db("t-1", USER, "b-1", "Same")
        updated = update_task_db("t-1", USER, title="Same", description=None)
        assert updated.updated_at == task.updated_at

    def test_update_task_not_found(self, test_db):
        assert update_task_db("missing", USER, title="New title") is None

    def test_update_task_other_user(self, test_db):
        create_task_db("t-1", USER, "b-1", "Mine")
        assert update_task_db("t-1", "someone-else", title="Stolen") is None

    def test_status_change_moves_to_end_of_column(self, test_db):
        create_task_db("t-1", USER, "b-1", "Done already", status="Done")
        create_task_db("t-2", USER, "b-1", "Finishing")

        updated = update_task_status_db("t-2", USER, Status.DONE)

        assert updated.status is Status.DONE
        assert updated.position == 1

    def test_delete_task(self, test_db):
        create_task_db("t-1", USER, "b-1", "Delete me")

        assert delete_task_db("t-1", USER) is True
        assert get_tasks_db(USER) == []

    def test_delete_task_not_found(self, test_db):
        assert delete_task_db("missing", USER) is False


class TestColumns:
    """Tests for get_tasks_by_status_db and move_task_db."""

    def test_empty_columns(self, test_db):
        columns = get_tasks_by_status_db(USER)
        assert columns.is_empty is True
        assert columns.todo == [] and columns.in_progress == [] and columns.done == []

    def test_grouping(self, test_db):
        create_task_db("t-1", USER, "b-1", "A")
        create_task_db("t-2", USER, "b-1", "B", status="In Progress")
        create_task_db("t-3", USER, "b-1", "C", status="Done")

        columns = get_tasks_by_status_db(USER, "b-1")

        assert column_titles(columns.todo) == ["A"]
        assert column_titles(columns.in_progress) == ["B"]
        assert column_titles(columns.done) == ["C"]
        assert columns.is_empty is False

    def test_reorder_within_column(self, test_db):
        for i, title in enumerate(["A", "B", "C", "D"]):
            create_task_db(f"t-{i}", USER, "b-1", title)

        moved = move_task_db("t-3", USER, Status.TODO, 1)

        assert moved.position == 1
        todo = get_tasks_by_status_db(USER, "b-1").todo
        assert column_titles(todo) == ["A", "D", "B", "C"]
        assert [task.position for task in todo] == [0, 1, 2, 3]

    def test_move_down_within_column(self, test_db):
        for i, title in enumerate(["A", "B", "C"]):
            create_task_db(f"t-{i}", USER, "b-1", title)

        move_task_db("t-0", USER, Status.TODO, 2)

        assert column_titles(get_tasks_by_status_db(USER, "b-1").todo) == ["B", "C", "A"]

    def test_move_across_columns(self, test_db):
        create_task_db("t-1", USER, "b-1", "A")
        create_task_db("t-2", USER, "b-1", "B")
        create_task_db("t-3", USER, "b-1", "C")
        create_task_db("t-4", USER, "b-1", "X", status="In Progress")
        create_task_db("t-5", USER, "b-1", "Y", status="In Progress")

        moved = move_task_db("t-2", USER, Status.IN_PROGRESS, 1)

        assert moved.status is Status.IN_PROGRESS
        columns = get_tasks_by_status_db(USER, "b-1")
        assert column_titles(columns.in_progress) == ["X", "B", "Y"]
        assert [task.position for task in columns.in_progress] == [0, 1, 2]
        assert column_titles(columns.todo) == ["A", "C"]
        assert [task.position for task in columns.todo] == [0, 1]

    def test_move_index_clamped(self, test_db):
        create_task_db("t-1", USER, "b-1", "A")
        create_task_db("t-2", USER, "b-1", "B", status="Done")

        moved = move_task_db("t-1", USER, Status.DONE, 99)

        assert moved.position == 1
        assert column_titles(get_tasks_by_status_db(USER, "b-1").done) == ["B", "A"]

    def test_move_not_found(self, test_db):
        assert move_task_db("missing", USER, Status.DONE, 0) is None


class TestTaskLimits:
    """Tests for subscriptions and the active task cap."""

    def test_free_limit_without_subscription(self, test_db):
        assert get_task_limit(USER) == config.FREE_PLAN_TASK_LIMIT

    def test_active_plan_limit(self, test_db):
        upsert_subscription_db(USER, "I-SUB1", BASIC_PLAN, SubscriptionStatus.ACTIVE)
        assert get_task_limit(USER) == 10

    def test_pending_plan_uses_free_limit(self, test_db):
        upsert_subscription_db(USER, "I-SUB1", BASIC_PLAN)
        assert get_task_limit(USER) == config.FREE_PLAN_TASK_LIMIT

    def test_unknown_plan_uses_free_limit(self, test_db):
        upsert_subscription_db(USER, "I-SUB1", "P-UNKNOWN", SubscriptionStatus.ACTIVE)
        assert get_task_limit(USER) == config.FREE_PLAN_TASK_LIMIT

    def test_done_tasks_not_counted(self, test_db):
        create_task_db("t-1", USER, "b-1", "A")
        create_task_db("t-2", USER, "b-1", "B", status="In Progress")
        create_task_db("t-3", USER, "b-1", "C", status="Done")

        assert count_active_tasks_db(USER) == 2

    def test_limit_reached(self, test_db):
        for i in range(config.FREE_PLAN_TASK_LIMIT - 1):
            create_task_db(f"t-{i}", USER, "b-1", f"Task {i}")
        assert has_reached_task_limit(USER) is False

        create_task_db("t-last", USER, "b-1", "One more")
        assert has_reached_task_limit(USER) is True

    def test_upsert_replaces_subscription(self, test_db):
        upsert_subscription_db(USER, "I-SUB1", BASIC_PLAN)
        upsert_subscription_db(USER, "I-SUB2", "P-4U238456CC281673FNBETEFI", SubscriptionStatus.ACTIVE)

        subscription = get_subscription_db(USER)
        assert subscription.subscription_id == "I-SUB2"
        assert subscription.status is SubscriptionStatus.ACTIVE
        assert get_task_limit(USER) == 25

    def test_set_status_by_subscription_id(self, test_db):
        upsert_subscription_db(USER, "I-SUB1", BASIC_PLAN)

        assert set_subscription_status_db("I-SUB1", SubscriptionStatus.ACTIVE) is True
        assert get_subscription_db(USER).status is SubscriptionStatus.ACTIVE
        assert set_subscription_status_db("I-MISSING", SubscriptionStatus.CANCELLED) is False
