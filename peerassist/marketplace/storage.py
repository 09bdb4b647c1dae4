"""
Marketplace storage layer.

Defines the persistence contract used by the lifecycle and account services,
plus an in-process implementation for local development and tests. The
Supabase-backed implementation lives in ``supabase_storage``.

Every method that touches more than one record is a single all-or-nothing
call: callers never coordinate multi-record writes themselves.
"""

import copy
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Protocol, Tuple

from ..logging_config import get_logger
from ..otp import OneTimeCode, OtpContext, codes_match, otp_key
from .models import (
    TERMINAL_STATUSES,
    CompletionResult,
    ScheduledTask,
    ScheduleStatus,
    Task,
    TaskQuery,
    TaskStatus,
    User,
    utc_now,
)

logger = get_logger("marketplace.storage")

# Error codes returned by complete_task
COMPLETION_INVALID_CODE = "invalid_code"
COMPLETION_NOT_FOUND = "not_found"
COMPLETION_INVALID_STATE = "invalid_state"


class MarketplaceStorage(Protocol):
    """Protocol for marketplace persistence backends."""

    # Users / credentials
    def create_user(self, user: User, password_hash: str) -> bool:
        """Create the user and credential rows together. False if the email exists."""
        ...

    def get_user(self, email: str) -> Optional[User]:
        ...

    def get_users(self, emails: List[str]) -> List[User]:
        ...

    def update_user(self, email: str, fields: Dict[str, object]) -> Optional[User]:
        """Apply a partial profile update. None if the user does not exist."""
        ...

    def get_password_hash(self, email: str) -> Optional[str]:
        ...

    def reset_password(self, email: str, code: str, password_hash: str, now: datetime) -> bool:
        """Validate a live reset code, store the new hash and consume the code."""
        ...

    # One-time codes
    def upsert_otp(self, otp: OneTimeCode) -> None:
        ...

    def get_otp(
        self, email: str, context: OtpContext, task_id: Optional[str] = None
    ) -> Optional[OneTimeCode]:
        """Return the live code for the key; expired codes read as missing."""
        ...

    def delete_otp(self, email: str, context: OtpContext, task_id: Optional[str] = None) -> bool:
        ...

    # Tasks
    def save_task(self, task: Task) -> str:
        ...

    def get_task(self, task_id: str) -> Optional[Task]:
        ...

    def list_tasks(self, query: TaskQuery) -> List[Task]:
        ...

    def update_task_fields(
        self, task_id: str, expected_status: TaskStatus, fields: Dict[str, object]
    ) -> Optional[Task]:
        """Update editable fields only while the task has ``expected_status``."""
        ...

    def add_applicant(self, task_id: str, email: str, expected_version: int) -> Optional[Task]:
        """Append an applicant if the task is Open and still at ``expected_version``."""
        ...

    def select_worker(
        self,
        task_id: str,
        expected_version: int,
        scheduled_task: ScheduledTask,
        new_status: TaskStatus,
    ) -> Optional[Task]:
        """Append the worker to the selected list and insert its index row."""
        ...

    def update_task_status(
        self, task_id: str, expected_status: TaskStatus, new_status: TaskStatus
    ) -> Optional[Task]:
        ...

    def increment_views(self, task_ids: List[str]) -> None:
        ...

    # Scheduled-task index
    def list_scheduled_tasks(self, worker_email: str) -> List[ScheduledTask]:
        ...

    def complete_task(
        self, task_id: str, creator_email: str, code: str, now: datetime
    ) -> Tuple[Optional[CompletionResult], Optional[str]]:
        """Run the completion handshake as one transaction.

        Returns ``(result, None)`` on success or ``(None, error_code)`` where
        error_code is one of ``invalid_code``, ``not_found``, ``invalid_state``.
        """
        ...


class InMemoryMarketplaceStorage:
    """In-memory marketplace storage for testing and local development."""

    def __init__(self):
        """Initialize empty storage."""
        self._lock = threading.RLock()
        self._users: Dict[str, User] = {}
        self._credentials: Dict[str, str] = {}
        self._otps: Dict[tuple, OneTimeCode] = {}
        self._tasks: Dict[str, Task] = {}
        self._scheduled: Dict[str, ScheduledTask] = {}

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Hold the lock and roll every collection back if the block raises."""
        with self._lock:
            snapshot = copy.deepcopy(
                (self._users, self._credentials, self._otps, self._tasks, self._scheduled)
            )
            try:
                yield
            except BaseException:
                (
                    self._users,
                    self._credentials,
                    self._otps,
                    self._tasks,
                    self._scheduled,
                ) = snapshot
                raise

    # === Users ===

    def create_user(self, user: User, password_hash: str) -> bool:
        with self._transaction():
            if user.email in self._users or user.email in self._credentials:
                return False
            self._users[user.email] = copy.deepcopy(user)
            self._credentials[user.email] = password_hash
            return True

    def get_user(self, email: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(email)
            return copy.deepcopy(user) if user else None

    def get_users(self, emails: List[str]) -> List[User]:
        with self._lock:
            return [copy.deepcopy(self._users[e]) for e in emails if e in self._users]

    def update_user(self, email: str, fields: Dict[str, object]) -> Optional[User]:
        with self._lock:
            user = self._users.get(email)
            if not user:
                return None
            for name, value in fields.items():
                setattr(user, name, value)
            return copy.deepcopy(user)

    def get_password_hash(self, email: str) -> Optional[str]:
        with self._lock:
            return self._credentials.get(email)

    def reset_password(self, email: str, code: str, password_hash: str, now: datetime) -> bool:
        with self._transaction():
            otp = self._live_otp(otp_key(email, OtpContext.PASSWORD_RESET), now)
            if otp is None or not codes_match(otp.code, code):
                return False
            if email not in self._credentials:
                return False
            self._credentials[email] = password_hash
            del self._otps[otp.key]
            return True

    # === One-time codes ===

    def _live_otp(self, key: tuple, now: Optional[datetime] = None) -> Optional[OneTimeCode]:
        otp = self._otps.get(key)
        if otp is None:
            return None
        if otp.is_expired(now):
            # Lazy pruning stands in for a store-level TTL
            del self._otps[key]
            return None
        return otp

    def upsert_otp(self, otp: OneTimeCode) -> None:
        with self._lock:
            self._otps[otp.key] = copy.deepcopy(otp)

    def get_otp(
        self, email: str, context: OtpContext, task_id: Optional[str] = None
    ) -> Optional[OneTimeCode]:
        with self._lock:
            otp = self._live_otp(otp_key(email, context, task_id))
            return copy.deepcopy(otp) if otp else None

    def delete_otp(self, email: str, context: OtpContext, task_id: Optional[str] = None) -> bool:
        with self._lock:
            return self._otps.pop(otp_key(email, context, task_id), None) is not None

    # === Tasks ===

    def save_task(self, task: Task) -> str:
        with self._lock:
            self._tasks[task.id] = copy.deepcopy(task)
            return task.id

    def get_task(self, task_id: str) -> Optional[Task]:
        with self._lock:
            task = self._tasks.get(task_id)
            return copy.deepcopy(task) if task else None

    def list_tasks(self, query: TaskQuery) -> List[Task]:
        with self._lock:
            tasks = [copy.deepcopy(t) for t in self._tasks.values() if query.matches(t)]
        tasks.sort(key=lambda t: t.created_at, reverse=query.newest_first)
        return tasks

    def update_task_fields(
        self, task_id: str, expected_status: TaskStatus, fields: Dict[str, object]
    ) -> Optional[Task]:
        with self._lock:
            task = self._tasks.get(task_id)
            if not task or task.status != expected_status:
                return None
            updated = Task.from_dict({**task.to_dict(), **fields})
            updated.updated_at = utc_now()
            self._tasks[task_id] = updated
            return copy.deepcopy(updated)

    def add_applicant(self, task_id: str, email: str, expected_version: int) -> Optional[Task]:
        with self._lock:
            task = self._tasks.get(task_id)
            if (
                not task
                or task.version != expected_version
                or task.status != TaskStatus.OPEN
                or email in task.applicants
            ):
                return None
            task.applicants.append(email)
            task.version += 1
            task.updated_at = utc_now()
            return copy.deepcopy(task)

    def select_worker(
        self,
        task_id: str,
        expected_version: int,
        scheduled_task: ScheduledTask,
        new_status: TaskStatus,
    ) -> Optional[Task]:
        with self._transaction():
            task = self._tasks.get(task_id)
            if not task or task.version != expected_version or task.status != TaskStatus.OPEN:
                return None
            task.selected_users.append(scheduled_task.worker_email)
            task.status = new_status
            task.version += 1
            task.updated_at = utc_now()
            self._scheduled[scheduled_task.id] = copy.deepcopy(scheduled_task)
            return copy.deepcopy(task)

    def update_task_status(
        self, task_id: str, expected_status: TaskStatus, new_status: TaskStatus
    ) -> Optional[Task]:
        with self._lock:
            task = self._tasks.get(task_id)
            if not task or task.status != expected_status:
                return None
            task.status = new_status
            task.version += 1
            task.updated_at = utc_now()
            return copy.deepcopy(task)

    def increment_views(self, task_ids: List[str]) -> None:
        with self._lock:
            for task_id in task_ids:
                task = self._tasks.get(task_id)
                if task:
                    task.views += 1

    # === Scheduled-task index ===

    def list_scheduled_tasks(self, worker_email: str) -> List[ScheduledTask]:
        with self._lock:
            rows = [copy.deepcopy(s) for s in self._scheduled.values() if s.worker_email == worker_email]
        rows.sort(key=lambda s: s.scheduled_at)
        return rows

    def complete_task(
        self, task_id: str, creator_email: str, code: str, now: datetime
    ) -> Tuple[Optional[CompletionResult], Optional[str]]:
        with self._transaction():
            key = otp_key(creator_email, OtpContext.TASK_COMPLETION, task_id)
            otp = self._live_otp(key, now)
            if otp is None or not codes_match(otp.code, code):
                return None, COMPLETION_INVALID_CODE

            task = self._tasks.get(task_id)
            if not task:
                return None, COMPLETION_NOT_FOUND
            if task.status in TERMINAL_STATUSES:
                return None, COMPLETION_INVALID_STATE

            worker_email = otp.worker_email or ""
            self._mark_task_completed(task, now)
            scheduled = self._mark_schedule_completed(task_id, worker_email, now)
            completed_count = self._increment_completed_tasks(worker_email)
            self._consume_otp(key)

            return (
                CompletionResult(
                    task=copy.deepcopy(task),
                    scheduled_task=copy.deepcopy(scheduled) if scheduled else None,
                    worker_email=worker_email,
                    worker_completed_tasks=completed_count,
                ),
                None,
            )

    # Individual steps of the completion transaction

    def _mark_task_completed(self, task: Task, now: datetime) -> None:
        task.status = TaskStatus.COMPLETED
        task.version += 1
        task.updated_at = now

    def _mark_schedule_completed(
        self, task_id: str, worker_email: str, now: datetime
    ) -> Optional[ScheduledTask]:
        for row in self._scheduled.values():
            if row.task_id == task_id and row.worker_email == worker_email:
                row.status = ScheduleStatus.COMPLETED
                row.completed_at = now
                return row
        logger.warning(f"No scheduled-task row for task={task_id} worker={worker_email}")
        return None

    def _increment_completed_tasks(self, worker_email: str) -> int:
        user = self._users.get(worker_email)
        if not user:
            raise LookupError(f"Worker {worker_email} not found")
        user.completed_tasks += 1
        return user.completed_tasks

    def _consume_otp(self, key: tuple) -> None:
        del self._otps[key]
