"""
Task lifecycle service.

Enforces the task state machine, the membership rules for applicants and
selected workers, and the OTP-gated completion handshake. Every store
interaction goes through a deadline-bounded runner; emails and view counters
are handed to the background dispatcher and never affect the caller.
"""

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

from ..background import BackgroundDispatcher
from ..config import Settings
from ..errors import (
    ConflictError,
    DuplicateApplicationError,
    InvalidCredentialError,
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    SelfApplicationError,
    StoreError,
    UnauthorizedError,
)
from ..logging_config import get_logger, log_task_event
from ..notifications import EmailSender
from ..otp import issue_task_completion_code
from .models import (
    TERMINAL_STATUSES,
    VALID_WORK_TYPES,
    CompletionResult,
    ScheduledTask,
    Task,
    TaskDraft,
    TaskQuery,
    TaskStatus,
    User,
    can_transition,
    utc_now,
)
from .runner import StoreRunner
from .storage import (
    COMPLETION_INVALID_CODE,
    COMPLETION_INVALID_STATE,
    COMPLETION_NOT_FOUND,
    MarketplaceStorage,
)

logger = get_logger("marketplace.service")

# Compare-and-set attempts for apply/accept before giving up with a conflict
MAX_CAS_ATTEMPTS = 5


@dataclass
class CreatorSummary:
    """Public contact details of a task creator."""

    name: str
    email: str
    mobile: str

    @classmethod
    def from_user(cls, user: User) -> "CreatorSummary":
        return cls(name=user.name, email=user.email, mobile=user.mobile)


@dataclass
class AppliedTask:
    """A task the viewer applied to, as the viewer is allowed to see it."""

    task: Task
    creator: Optional[CreatorSummary]
    selected: bool


@dataclass
class ScheduledEntry:
    """A scheduled-task row joined with its (possibly missing) task."""

    schedule: ScheduledTask
    task: Optional[Task]


class TaskLifecycleService:
    """Service for posting, applying, selecting and completing tasks."""

    def __init__(
        self,
        storage: MarketplaceStorage,
        settings: Settings,
        dispatcher: BackgroundDispatcher,
        email_sender: EmailSender,
    ):
        self.storage = storage
        self.settings = settings
        self.dispatcher = dispatcher
        self.email_sender = email_sender
        self._store = StoreRunner(settings.store_timeout_seconds)

    # === Lookups ===

    async def _require_user(self, email: str) -> User:
        user = await self._store(self.storage.get_user, email)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def _require_task(self, task_id: str) -> Task:
        task = await self._store(self.storage.get_task, task_id)
        if not task:
            raise NotFoundError("Task not found")
        return task

    async def _require_owned_task(self, task_id: str, creator_email: str) -> Task:
        task = await self._store(self.storage.get_task, task_id)
        if not task or task.creator_email != creator_email:
            raise NotFoundError("Task not found or you don't have permission to update it")
        return task

    # === Posting ===

    async def post_task(self, creator_email: str, draft: TaskDraft) -> Task:
        """Create a new Open task owned by ``creator_email``."""
        await self._require_user(creator_email)

        task = Task(
            title=draft.title,
            description=draft.description,
            task_time=draft.task_time,
            task_date=draft.task_date,
            estimated_pay_rate=draft.estimated_pay_rate,
            place_of_work=draft.place_of_work,
            work_type=draft.work_type,
            people_needed=draft.people_needed,
            creator_email=creator_email,
        )
        await self._store(self.storage.save_task, task)
        log_task_event("post", task.id, creator_email)
        return task

    async def update_task(self, creator_email: str, task_id: str, draft: TaskDraft) -> Task:
        """Replace the editable fields of an Open task owned by the caller."""
        await self._require_user(creator_email)
        task = await self._require_owned_task(task_id, creator_email)
        if task.status != TaskStatus.OPEN:
            raise InvalidStateError("Only open tasks can be edited")
        if draft.people_needed <= len(task.selected_users):
            raise InvalidInputError(
                f"people_needed must exceed the {len(task.selected_users)} worker(s) already selected"
            )

        updated = await self._store(
            self.storage.update_task_fields, task_id, TaskStatus.OPEN, draft.to_update()
        )
        if not updated:
            # Status moved between the read and the conditional write
            raise InvalidStateError("Only open tasks can be edited")
        log_task_event("update", task_id, creator_email)
        return updated

    async def cancel_task(self, task_id: str, creator_email: str) -> Task:
        """Withdraw an Open task. Only its creator may cancel it."""
        await self._require_user(creator_email)
        task = await self._require_owned_task(task_id, creator_email)
        if not can_transition(task.status, TaskStatus.CANCELLED):
            raise InvalidStateError(f"Cannot cancel a task that is {TaskStatus(task.status).value}")

        updated = await self._store(
            self.storage.update_task_status, task_id, TaskStatus.OPEN, TaskStatus.CANCELLED
        )
        if not updated:
            raise InvalidStateError("Task is no longer open")
        log_task_event("cancel", task_id, creator_email)
        return updated

    # === Reads ===

    async def get_feed(
        self,
        viewer_email: str,
        category: Optional[str] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> List[Task]:
        """Open tasks the viewer neither created nor applied to, oldest first.

        Each returned task gets its view counter bumped in the background.
        """
        await self._require_user(viewer_email)

        if category and category not in VALID_WORK_TYPES:
            return []

        query = TaskQuery(
            status=TaskStatus.OPEN,
            exclude_creator=viewer_email,
            exclude_applicant=viewer_email,
            work_type=category or None,
            from_date=from_date,
            to_date=to_date,
        )
        tasks = await self._store(self.storage.list_tasks, query)

        if tasks:
            task_ids = [t.id for t in tasks]
            self.dispatcher.dispatch(
                self._store(self.storage.increment_views, task_ids),
                f"increment views for {len(task_ids)} task(s)",
            )
        return tasks

    async def get_created_tasks(self, creator_email: str) -> List[Task]:
        """Tasks posted by ``creator_email``, newest first."""
        await self._require_user(creator_email)
        return await self._store(
            self.storage.list_tasks, TaskQuery(creator_email=creator_email, newest_first=True)
        )

    async def get_applied_tasks(self, viewer_email: str) -> List[AppliedTask]:
        """Tasks the viewer applied to, with creator contact and selection flag."""
        await self._require_user(viewer_email)
        tasks = await self._store(self.storage.list_tasks, TaskQuery(applicant=viewer_email))
        if not tasks:
            return []

        creator_emails = sorted({t.creator_email for t in tasks})
        creators: Dict[str, User] = {
            u.email: u for u in await self._store(self.storage.get_users, creator_emails)
        }

        results = []
        for task in tasks:
            creator = creators.get(task.creator_email)
            results.append(
                AppliedTask(
                    task=task,
                    creator=CreatorSummary.from_user(creator) if creator else None,
                    selected=task.is_selected(viewer_email),
                )
            )
        return results

    async def get_scheduled_tasks(self, worker_email: str) -> List[ScheduledEntry]:
        """Scheduled rows for a worker, each resolved to its task."""
        await self._require_user(worker_email)
        rows = await self._store(self.storage.list_scheduled_tasks, worker_email)
        if not rows:
            return []

        task_ids = sorted({r.task_id for r in rows})
        tasks = {
            t.id: t
            for t in await self._store(self.storage.list_tasks, TaskQuery(task_ids=task_ids))
        }
        return [ScheduledEntry(schedule=row, task=tasks.get(row.task_id)) for row in rows]

    # === Transitions ===

    async def apply(self, task_id: str, applicant_email: str) -> Task:
        """Add ``applicant_email`` to the task's applicants."""
        await self._require_user(applicant_email)

        for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
            task = await self._require_task(task_id)
            if task.status != TaskStatus.OPEN:
                log_task_event("apply", task_id, applicant_email, False, "task not open")
                raise InvalidStateError("Task is not open for applications")
            if task.creator_email == applicant_email:
                log_task_event("apply", task_id, applicant_email, False, "self-apply")
                raise SelfApplicationError()
            if task.has_applicant(applicant_email):
                log_task_event("apply", task_id, applicant_email, False, "duplicate")
                raise DuplicateApplicationError()

            updated = await self._store(
                self.storage.add_applicant, task_id, applicant_email, task.version
            )
            if updated:
                log_task_event("apply", task_id, applicant_email)
                return updated
            logger.debug(f"Apply lost a race on task {task_id} (attempt {attempt})")

        log_task_event("apply", task_id, applicant_email, False, "retries exhausted")
        raise ConflictError("Task was modified concurrently, please retry")

    async def accept(
        self, task_id: str, worker_email: str, poster_email: Optional[str] = None
    ) -> Task:
        """Select ``worker_email`` for the task and schedule them.

        The worker does not need to have applied. The task moves to In
        Progress once ``people_needed`` workers are selected. When
        ``poster_email`` is given it must be the task's creator.
        """
        await self._require_user(worker_email)

        for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
            task = await self._require_task(task_id)
            if poster_email is not None and poster_email != task.creator_email:
                raise UnauthorizedError("Only the task creator can select workers")
            if task.status != TaskStatus.OPEN:
                log_task_event("accept", task_id, worker_email, False, "task not open")
                raise InvalidStateError("Task is not open for selection")
            if task.is_selected(worker_email):
                raise ConflictError("Worker is already selected for this task")

            new_status = TaskStatus.OPEN
            if len(task.selected_users) + 1 >= task.people_needed:
                new_status = TaskStatus.IN_PROGRESS

            scheduled = ScheduledTask.for_selection(task, worker_email)
            updated = await self._store(
                self.storage.select_worker, task_id, task.version, scheduled, new_status
            )
            if updated:
                log_task_event(
                    "accept", task_id, worker_email, detail=f"status={TaskStatus(updated.status).value}"
                )
                self.dispatcher.dispatch(
                    self.email_sender.send_worker_selected(
                        worker_email, updated.title, updated.creator_email
                    ),
                    f"selection notice to {worker_email}",
                )
                return updated
            logger.debug(f"Accept lost a race on task {task_id} (attempt {attempt})")

        log_task_event("accept", task_id, worker_email, False, "retries exhausted")
        raise ConflictError("Task was modified concurrently, please retry")

    async def request_completion(self, task_id: str, worker_email: str) -> Task:
        """Issue a completion code to the task creator on a worker's behalf.

        Any earlier code for the same task is replaced.
        """
        task = await self._require_task(task_id)
        if not task.is_selected(worker_email):
            log_task_event("request_completion", task_id, worker_email, False, "not selected")
            raise UnauthorizedError("You are not authorized to end this task")
        if task.status in TERMINAL_STATUSES:
            raise InvalidStateError(f"Task is already {TaskStatus(task.status).value}")

        otp = issue_task_completion_code(
            task.creator_email,
            task.id,
            worker_email,
            validity_minutes=self.settings.task_completion_otp_minutes,
            length=self.settings.otp_length,
        )
        await self._store(self.storage.upsert_otp, otp)

        self.dispatcher.dispatch(
            self.email_sender.send_task_completion_code(
                task.creator_email,
                otp.code,
                task.title,
                worker_email,
                self.settings.task_completion_otp_minutes,
            ),
            f"completion code for task {task_id}",
        )
        log_task_event("request_completion", task_id, worker_email)
        return task

    async def confirm_completion(
        self,
        task_id: str,
        creator_email: str,
        code: str,
        poster_email: Optional[str] = None,
    ) -> CompletionResult:
        """Validate the completion code and complete the task atomically."""
        if poster_email is not None and poster_email != creator_email:
            raise UnauthorizedError("Token does not match the acting user")

        result, error = await self._store(
            self.storage.complete_task, task_id, creator_email, code, utc_now()
        )
        if error == COMPLETION_INVALID_CODE:
            log_task_event("confirm_completion", task_id, creator_email, False, "invalid code")
            raise InvalidCredentialError("Invalid or expired OTP")
        if error == COMPLETION_NOT_FOUND:
            raise NotFoundError("Task not found")
        if error == COMPLETION_INVALID_STATE:
            raise InvalidStateError("Task is already completed or cancelled")
        if result is None:
            raise StoreError(f"Unexpected completion outcome: {error}")

        log_task_event(
            "confirm_completion",
            task_id,
            creator_email,
            detail=f"worker={result.worker_email} completed_tasks={result.worker_completed_tasks}",
        )
        return result

    async def check_store(self) -> None:
        """Round-trip the store (health checks). Raises StoreError on failure."""
        await self._store(self.storage.get_task, "health-check")
