"""Tests for the Supabase storage adapter with a mocked client."""

from datetime import date, datetime, timezone
from unittest.mock import MagicMock, call

import pytest

from peerassist.database import (
    COMPLETE_TASK_RPC,
    CREATE_USER_ACCOUNT_RPC,
    OTPS_TABLE,
    SELECT_TASK_WORKER_RPC,
    TASKS_TABLE,
)
from peerassist.marketplace.models import ScheduledTask, Task, TaskQuery, TaskStatus, User, WorkType
from peerassist.marketplace.supabase_storage import SupabaseMarketplaceStorage
from peerassist.otp import issue_password_reset_code, issue_task_completion_code

NOW = datetime(2025, 4, 20, 12, 0, tzinfo=timezone.utc)

_BUILDER_METHODS = (
    "select", "insert", "update", "upsert", "delete",
    "eq", "neq", "gt", "gte", "lte", "in_", "contains", "order", "limit",
)


def _result(data):
    return MagicMock(data=data)


def _query(*results):
    """Fluent PostgREST builder mock; ``execute`` yields ``results`` in order."""
    q = MagicMock()
    for name in _BUILDER_METHODS:
        getattr(q, name).return_value = q
    q.not_ = MagicMock()
    q.not_.contains.return_value = q
    q.execute.side_effect = [_result(r) for r in results] or [_result([])]
    return q


def _task(**overrides) -> Task:
    fields = dict(
        id="task-1",
        title="Fix sink",
        description="Leak",
        task_time="10:00 AM",
        task_date=date(2025, 4, 20),
        estimated_pay_rate=25.0,
        place_of_work="12 Main St",
        work_type=WorkType.PLUMBING,
        people_needed=1,
        creator_email="a@x.com",
    )
    fields.update(overrides)
    return Task(**fields)


@pytest.fixture
def db():
    return MagicMock()


@pytest.fixture
def store(db):
    return SupabaseMarketplaceStorage(db)


class TestUsers:

    def test_create_user_uses_rpc(self, store, db):
        db.rpc.return_value.execute.return_value = _result(True)

        created = store.create_user(User(email="d@x.com", name="Dana", mobile="1"), "hash")

        assert created is True
        db.rpc.assert_called_once_with(
            CREATE_USER_ACCOUNT_RPC,
            {"p_email": "d@x.com", "p_name": "Dana", "p_mobile": "1", "p_password_hash": "hash"},
        )

    def test_create_user_existing(self, store, db):
        db.rpc.return_value.execute.return_value = _result(False)

        assert store.create_user(User(email="a@x.com", name="A", mobile="1"), "hash") is False

    def test_get_user(self, store, db):
        db.table.return_value = _query([{"email": "a@x.com", "name": "Alice", "mobile": "1", "completed_tasks": 3}])

        user = store.get_user("a@x.com")

        assert user.name == "Alice"
        assert user.completed_tasks == 3

    def test_get_user_missing(self, store, db):
        db.table.return_value = _query([])

        assert store.get_user("ghost@x.com") is None


class TestOneTimeCodes:

    def test_upsert_password_reset_uses_empty_task_key(self, store, db):
        q = _query([{}])
        db.table.return_value = q

        store.upsert_otp(issue_password_reset_code("a@x.com", now=NOW))

        db.table.assert_called_with(OTPS_TABLE)
        data = q.upsert.call_args.args[0]
        assert data["task_key"] == ""
        assert data["context"] == "password_reset"
        assert q.upsert.call_args.kwargs["on_conflict"] == "email,context,task_key"

    def test_upsert_completion_keyed_by_task(self, store, db):
        q = _query([{}])
        db.table.return_value = q

        store.upsert_otp(issue_task_completion_code("a@x.com", "task-1", "b@x.com", now=NOW))

        data = q.upsert.call_args.args[0]
        assert data["task_key"] == "task-1"
        assert data["worker_email"] == "b@x.com"


class TestTasks:

    def test_feed_query_filters(self, store, db):
        q = _query([_task().to_dict()])
        db.table.return_value = q

        tasks = store.list_tasks(
            TaskQuery(
                status=TaskStatus.OPEN,
                exclude_creator="b@x.com",
                exclude_applicant="b@x.com",
                work_type="Plumbing",
                from_date=date(2025, 4, 15),
                to_date=date(2025, 4, 25),
            )
        )

        assert [t.id for t in tasks] == ["task-1"]
        q.eq.assert_any_call("status", "Open")
        q.eq.assert_any_call("work_type", "Plumbing")
        q.neq.assert_called_once_with("creator_email", "b@x.com")
        q.not_.contains.assert_called_once_with("applicants", ["b@x.com"])
        q.gte.assert_called_once_with("task_date", "2025-04-15")
        q.lte.assert_called_once_with("task_date", "2025-04-25")
        q.order.assert_called_once_with("created_at", desc=False)

    def test_created_tasks_newest_first(self, store, db):
        q = _query([])
        db.table.return_value = q

        store.list_tasks(TaskQuery(creator_email="a@x.com", newest_first=True))

        q.order.assert_called_once_with("created_at", desc=True)

    def test_empty_id_list_skips_query(self, store, db):
        q = _query([])
        db.table.return_value = q

        assert store.list_tasks(TaskQuery(task_ids=[])) == []
        q.execute.assert_not_called()

    def test_add_applicant_is_conditional_on_version(self, store, db):
        current = _task(version=4)
        q = _query([current.to_dict()], [{**current.to_dict(), "applicants": ["b@x.com"], "version": 5}])
        db.table.return_value = q

        updated = store.add_applicant("task-1", "b@x.com", 4)

        assert updated.applicants == ["b@x.com"]
        update_data = q.update.call_args.args[0]
        assert update_data["applicants"] == ["b@x.com"]
        assert update_data["version"] == 5
        q.eq.assert_has_calls([call("status", "Open"), call("version", 4)], any_order=True)

    def test_add_applicant_lost_race(self, store, db):
        current = _task(version=4)
        db.table.return_value = _query([current.to_dict()], [])

        assert store.add_applicant("task-1", "b@x.com", 4) is None

    def test_add_applicant_stale_read_skips_write(self, store, db):
        q = _query([_task(version=5).to_dict()])
        db.table.return_value = q

        assert store.add_applicant("task-1", "b@x.com", 4) is None
        q.update.assert_not_called()

    def test_select_worker_uses_rpc(self, store, db):
        task = _task()
        row = ScheduledTask.for_selection(task, "b@x.com", now=NOW)
        db.rpc.return_value.execute.return_value = _result(
            [{**task.to_dict(), "selected_users": ["b@x.com"], "status": "In Progress", "version": 2}]
        )

        updated = store.select_worker("task-1", 1, row, TaskStatus.IN_PROGRESS)

        assert updated.status == TaskStatus.IN_PROGRESS
        name, params = db.rpc.call_args.args
        assert name == SELECT_TASK_WORKER_RPC
        assert params["p_expected_version"] == 1
        assert params["p_new_status"] == "In Progress"
        assert params["p_schedule"]["worker_email"] == "b@x.com"
        assert params["p_schedule"]["task_date"] == "2025-04-20"

    def test_select_worker_conflict(self, store, db):
        db.rpc.return_value.execute.return_value = _result([])

        row = ScheduledTask.for_selection(_task(), "b@x.com", now=NOW)
        assert store.select_worker("task-1", 1, row, TaskStatus.OPEN) is None

    def test_save_task_inserts_row(self, store, db):
        task = _task()
        q = _query([task.to_dict()])
        db.table.return_value = q

        assert store.save_task(task) == "task-1"
        db.table.assert_called_with(TASKS_TABLE)
        assert q.insert.call_args.args[0]["work_type"] == "Plumbing"

    def test_increment_views_skips_empty(self, store, db):
        store.increment_views([])

        db.rpc.assert_not_called()


class TestCompleteTask:

    def test_error_code_passthrough(self, store, db):
        db.rpc.return_value.execute.return_value = _result({"error": "invalid_code"})

        assert store.complete_task("task-1", "a@x.com", "123456", NOW) == (None, "invalid_code")
        name, params = db.rpc.call_args.args
        assert name == COMPLETE_TASK_RPC
        assert params["p_now"] == NOW.isoformat()

    def test_success_payload(self, store, db):
        task = _task(status=TaskStatus.COMPLETED)
        row = ScheduledTask.for_selection(task, "b@x.com", now=NOW)
        db.rpc.return_value.execute.return_value = _result(
            {
                "task": task.to_dict(),
                "scheduled_task": {**row.to_dict(), "status": "Completed", "completed_at": NOW.isoformat()},
                "worker_email": "b@x.com",
                "worker_completed_tasks": 7,
            }
        )

        result, error = store.complete_task("task-1", "a@x.com", "123456", NOW)

        assert error is None
        assert result.task.status == TaskStatus.COMPLETED
        assert result.scheduled_task.completed_at == NOW
        assert result.worker_completed_tasks == 7

    def test_empty_payload_raises(self, store, db):
        db.rpc.return_value.execute.return_value = _result(None)

        with pytest.raises(RuntimeError):
            store.complete_task("task-1", "a@x.com", "123456", NOW)
