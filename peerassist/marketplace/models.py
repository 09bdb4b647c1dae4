"""
Marketplace records: users, tasks and scheduled-task index rows.

These dataclasses are the contract between the lifecycle service and the
storage backends. Backends persist them as flat rows via ``to_dict`` /
``from_dict``.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a record ID."""
    return uuid.uuid4().hex


def _parse_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


def _parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    # Rows may carry a full timestamp; only the calendar date matters
    return date.fromisoformat(str(value)[:10])


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


# === Enums ===


class WorkType(str, Enum):
    """Closed set of task categories."""

    PLUMBING = "Plumbing"
    HOUSE_SHIFTING = "House Shifting"
    CARPENTRY = "Carpentry"
    CLEANING = "Cleaning"
    ELECTRICAL = "Electrical"
    PAINTING = "Painting"
    GARDENING = "Gardening"
    TUTORING = "Tutoring"
    COMPUTER_HELP = "Computer Help"
    OTHER = "Other"


VALID_WORK_TYPES = [wt.value for wt in WorkType]


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class ScheduleStatus(str, Enum):
    """Status of a scheduled-task index row."""

    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"


# Transitions only move forward; Completed and Cancelled are terminal.
VALID_TASK_TRANSITIONS: Dict[TaskStatus, frozenset] = {
    TaskStatus.OPEN: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED, TaskStatus.CANCELLED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.COMPLETED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.CANCELLED})


def can_transition(from_status: TaskStatus, to_status: TaskStatus) -> bool:
    """Check if a status transition is valid."""
    return TaskStatus(to_status) in VALID_TASK_TRANSITIONS.get(TaskStatus(from_status), frozenset())


def parse_task_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` task date. Raises ValueError on bad input."""
    return datetime.strptime(value, "%Y-%m-%d").date()


# === Records ===


@dataclass
class User:
    """Marketplace identity record (credentials live separately)."""

    email: str
    name: str
    mobile: str
    completed_tasks: int = 0
    rating: Optional[float] = None
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "name": self.name,
            "mobile": self.mobile,
            "completed_tasks": self.completed_tasks,
            "rating": self.rating,
            "created_at": _iso(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            email=data["email"],
            name=data.get("name") or "",
            mobile=data.get("mobile") or "",
            completed_tasks=data.get("completed_tasks") or 0,
            rating=data.get("rating"),
            created_at=_parse_dt(data.get("created_at")) or utc_now(),
        )


@dataclass
class Task:
    """A posted job."""

    title: str
    description: str
    task_time: str
    task_date: date
    estimated_pay_rate: float
    place_of_work: str
    work_type: WorkType
    people_needed: int
    creator_email: str
    id: str = field(default_factory=new_id)
    status: TaskStatus = TaskStatus.OPEN
    views: int = 0
    applicants: List[str] = field(default_factory=list)
    selected_users: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    # Bumped on every membership/status write; used for compare-and-set
    version: int = 1

    def has_applicant(self, email: str) -> bool:
        return email in self.applicants

    def is_selected(self, email: str) -> bool:
        return email in self.selected_users

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "task_time": self.task_time,
            "task_date": self.task_date.isoformat(),
            "estimated_pay_rate": self.estimated_pay_rate,
            "place_of_work": self.place_of_work,
            "work_type": WorkType(self.work_type).value,
            "people_needed": self.people_needed,
            "creator_email": self.creator_email,
            "status": TaskStatus(self.status).value,
            "views": self.views,
            "applicants": list(self.applicants),
            "selected_users": list(self.selected_users),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=str(data["id"]),
            title=data["title"],
            description=data["description"],
            task_time=data["task_time"],
            task_date=_parse_date(data["task_date"]),
            estimated_pay_rate=float(data["estimated_pay_rate"]),
            place_of_work=data["place_of_work"],
            work_type=WorkType(data["work_type"]),
            people_needed=int(data["people_needed"]),
            creator_email=data["creator_email"],
            status=TaskStatus(data.get("status") or TaskStatus.OPEN.value),
            views=data.get("views") or 0,
            applicants=list(data.get("applicants") or []),
            selected_users=list(data.get("selected_users") or []),
            created_at=_parse_dt(data.get("created_at")) or utc_now(),
            updated_at=_parse_dt(data.get("updated_at")) or utc_now(),
            version=data.get("version") or 1,
        )


@dataclass
class ScheduledTask:
    """Index row linking one selected worker to one task."""

    task_id: str
    title: str
    poster_email: str
    worker_email: str
    task_date: date
    task_time: str
    place: str
    id: str = field(default_factory=new_id)
    scheduled_at: datetime = field(default_factory=utc_now)
    status: ScheduleStatus = ScheduleStatus.SCHEDULED
    completed_at: Optional[datetime] = None

    @classmethod
    def for_selection(cls, task: Task, worker_email: str, now: Optional[datetime] = None) -> "ScheduledTask":
        """Build the index row created when ``worker_email`` is selected."""
        return cls(
            task_id=task.id,
            title=task.title,
            poster_email=task.creator_email,
            worker_email=worker_email,
            task_date=task.task_date,
            task_time=task.task_time,
            place=task.place_of_work,
            scheduled_at=now or utc_now(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "title": self.title,
            "poster_email": self.poster_email,
            "worker_email": self.worker_email,
            "task_date": self.task_date.isoformat(),
            "task_time": self.task_time,
            "place": self.place,
            "scheduled_at": _iso(self.scheduled_at),
            "status": ScheduleStatus(self.status).value,
            "completed_at": _iso(self.completed_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScheduledTask":
        return cls(
            id=str(data["id"]),
            task_id=str(data["task_id"]),
            title=data["title"],
            poster_email=data["poster_email"],
            worker_email=data["worker_email"],
            task_date=_parse_date(data["task_date"]),
            task_time=data["task_time"],
            place=data["place"],
            scheduled_at=_parse_dt(data.get("scheduled_at")) or utc_now(),
            status=ScheduleStatus(data.get("status") or ScheduleStatus.SCHEDULED.value),
            completed_at=_parse_dt(data.get("completed_at")),
        )


@dataclass
class TaskDraft:
    """Validated editable fields of a task, as submitted by its creator."""

    title: str
    description: str
    task_time: str
    task_date: date
    estimated_pay_rate: float
    place_of_work: str
    work_type: WorkType
    people_needed: int

    def to_update(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "task_time": self.task_time,
            "task_date": self.task_date.isoformat(),
            "estimated_pay_rate": self.estimated_pay_rate,
            "place_of_work": self.place_of_work,
            "work_type": WorkType(self.work_type).value,
            "people_needed": self.people_needed,
        }


@dataclass
class TaskQuery:
    """Filters for listing tasks. ``None`` means no constraint."""

    status: Optional[TaskStatus] = None
    creator_email: Optional[str] = None
    exclude_creator: Optional[str] = None
    applicant: Optional[str] = None
    exclude_applicant: Optional[str] = None
    work_type: Optional[str] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None
    task_ids: Optional[List[str]] = None
    newest_first: bool = False

    def matches(self, task: Task) -> bool:
        """In-process evaluation of the filter."""
        if self.status is not None and task.status != TaskStatus(self.status):
            return False
        if self.creator_email is not None and task.creator_email != self.creator_email:
            return False
        if self.exclude_creator is not None and task.creator_email == self.exclude_creator:
            return False
        if self.applicant is not None and self.applicant not in task.applicants:
            return False
        if self.exclude_applicant is not None and self.exclude_applicant in task.applicants:
            return False
        if self.work_type is not None and WorkType(task.work_type).value != self.work_type:
            return False
        if self.from_date is not None and task.task_date < self.from_date:
            return False
        if self.to_date is not None and task.task_date > self.to_date:
            return False
        if self.task_ids is not None and task.id not in self.task_ids:
            return False
        return True


@dataclass
class CompletionResult:
    """Outcome of the atomic completion handshake."""

    task: Task
    scheduled_task: Optional[ScheduledTask]
    worker_email: str
    worker_completed_tasks: int
