"""Pydantic models for API requests and responses."""

from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator

from .auth import MAX_PASSWORD_BYTES
from .errors import InvalidInputError
from .marketplace.models import (
    VALID_WORK_TYPES,
    ScheduledTask,
    Task,
    TaskDraft,
    User,
    WorkType,
    parse_task_date,
)
from .marketplace.service import AppliedTask, CreatorSummary, ScheduledEntry

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def _check_password_bytes(v: str) -> str:
    if len(v.encode()) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return v


class MessageResponse(BaseModel):
    """Plain acknowledgement."""
    message: str


# =============================================================================
# Auth Models
# =============================================================================

class SignupRequest(BaseModel):
    """Request to register a new user."""
    name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., max_length=254, pattern=EMAIL_PATTERN)
    mobile: str = Field(..., min_length=5, max_length=20)
    password: str = Field(..., min_length=6, max_length=128)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        return _check_password_bytes(v)


class LoginRequest(BaseModel):
    """Request for a session token."""
    email: str
    password: str


class LoginResponse(BaseModel):
    """Successful login."""
    message: str = "Login successful!"
    token: str
    token_type: str = "bearer"


class PasswordResetRequest(BaseModel):
    """Request a password-reset OTP by email."""
    email: str = Field(..., max_length=254, pattern=EMAIL_PATTERN)


class ValidateOtpRequest(BaseModel):
    """Submit a password-reset OTP together with the new password."""
    email: str
    otp: str = Field(..., min_length=1, max_length=12)
    password: str = Field(..., min_length=6, max_length=128)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, v: str) -> str:
        return _check_password_bytes(v)


# =============================================================================
# Profile Models
# =============================================================================

class ProfileResponse(BaseModel):
    """Public profile of a user."""
    email: str
    name: str
    mobile: str
    rating: float | None = None
    completed_tasks: int = 0

    @classmethod
    def from_user(cls, user: User) -> "ProfileResponse":
        return cls(
            email=user.email,
            name=user.name,
            mobile=user.mobile,
            rating=user.rating,
            completed_tasks=user.completed_tasks,
        )


class ProfileUpdate(BaseModel):
    """Partial profile update; at least one field is required."""
    name: str | None = Field(None, max_length=100)
    mobile: str | None = Field(None, max_length=20)


class ProfileUpdateResponse(BaseModel):
    message: str = "Profile updated successfully"
    profile: ProfileResponse


# =============================================================================
# Task Models
# =============================================================================

class TaskPostRequest(BaseModel):
    """Create a task, or update one when ``id`` is given."""
    id: str | None = None
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    task_time: str = Field(..., min_length=1, max_length=50)
    task_date: str  # YYYY-MM-DD
    estimated_pay_rate: float = Field(..., ge=0)
    place_of_work: str = Field(..., min_length=1, max_length=500)
    work_type: str
    people_needed: int = Field(..., ge=1, le=100)

    def to_draft(self) -> TaskDraft:
        """Validate date and category. Raises InvalidInputError."""
        try:
            task_date = parse_task_date(self.task_date)
        except ValueError as e:
            raise InvalidInputError("Invalid date format, expected YYYY-MM-DD") from e

        if self.work_type not in VALID_WORK_TYPES:
            raise InvalidInputError(
                f"Invalid work type. Valid types: {', '.join(VALID_WORK_TYPES)}"
            )

        return TaskDraft(
            title=self.title,
            description=self.description,
            task_time=self.task_time,
            task_date=task_date,
            estimated_pay_rate=self.estimated_pay_rate,
            place_of_work=self.place_of_work,
            work_type=WorkType(self.work_type),
            people_needed=self.people_needed,
        )


class TaskResponse(BaseModel):
    """Full task, as seen by its creator."""
    id: str
    title: str
    description: str
    task_time: str
    task_date: date
    estimated_pay_rate: float
    place_of_work: str
    work_type: str
    people_needed: int
    creator_email: str
    status: str
    views: int
    applicants: list[str]
    selected_users: list[str]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        data = task.to_dict()
        data.pop("version")
        return cls(**data)


class PublicTaskResponse(BaseModel):
    """Task as seen by anyone but its creator: applicant count, no lists."""
    id: str
    title: str
    description: str
    task_time: str
    task_date: date
    estimated_pay_rate: float
    place_of_work: str
    work_type: str
    people_needed: int
    creator_email: str
    status: str
    views: int
    total_applicants: int
    has_applied: bool
    created_at: datetime

    @classmethod
    def from_task(cls, task: Task, viewer_email: str) -> "PublicTaskResponse":
        data = task.to_dict()
        return cls(
            id=data["id"],
            title=data["title"],
            description=data["description"],
            task_time=data["task_time"],
            task_date=task.task_date,
            estimated_pay_rate=data["estimated_pay_rate"],
            place_of_work=data["place_of_work"],
            work_type=data["work_type"],
            people_needed=data["people_needed"],
            creator_email=data["creator_email"],
            status=data["status"],
            views=data["views"],
            total_applicants=len(task.applicants),
            has_applied=task.has_applicant(viewer_email),
            created_at=task.created_at,
        )


class TaskPostResponse(BaseModel):
    message: str
    task_id: str
    task: TaskResponse


class TaskListResponse(BaseModel):
    tasks: list[PublicTaskResponse]
    count: int


class CreatedTaskListResponse(BaseModel):
    tasks: list[TaskResponse]
    count: int


class CreatorInfo(BaseModel):
    name: str
    email: str
    mobile: str

    @classmethod
    def from_summary(cls, summary: CreatorSummary) -> "CreatorInfo":
        return cls(name=summary.name, email=summary.email, mobile=summary.mobile)


class AppliedTaskItem(BaseModel):
    task: PublicTaskResponse
    creator: CreatorInfo | None = None
    selected: bool

    @classmethod
    def from_applied(cls, item: AppliedTask, viewer_email: str) -> "AppliedTaskItem":
        return cls(
            task=PublicTaskResponse.from_task(item.task, viewer_email),
            creator=CreatorInfo.from_summary(item.creator) if item.creator else None,
            selected=item.selected,
        )


class AppliedTasksResponse(BaseModel):
    applied_tasks: list[AppliedTaskItem]
    count: int


class ScheduledTaskItem(BaseModel):
    """A scheduled-task row with its resolved task."""
    id: str
    task_id: str
    title: str
    poster_email: str
    worker_email: str
    task_date: date
    task_time: str
    place: str
    scheduled_at: datetime
    status: str
    completed_at: datetime | None = None
    task: PublicTaskResponse | None = None

    @classmethod
    def from_entry(cls, entry: ScheduledEntry) -> "ScheduledTaskItem":
        row: ScheduledTask = entry.schedule
        return cls(
            id=row.id,
            task_id=row.task_id,
            title=row.title,
            poster_email=row.poster_email,
            worker_email=row.worker_email,
            task_date=row.task_date,
            task_time=row.task_time,
            place=row.place,
            scheduled_at=row.scheduled_at,
            status=row.status.value,
            completed_at=row.completed_at,
            task=PublicTaskResponse.from_task(entry.task, row.worker_email) if entry.task else None,
        )


class ScheduledTasksResponse(BaseModel):
    scheduled_tasks: list[ScheduledTaskItem]
    count: int


class ApplyResponse(BaseModel):
    message: str = "Applied successfully"
    task_id: str


class AcceptResponse(BaseModel):
    message: str = "Worker selected successfully"
    task_id: str
    worker_email: str
    status: str


class EndTaskResponse(BaseModel):
    """Completion requested; the OTP went to the task owner."""
    message: str = "OTP sent to task owner for confirmation"
    task_title: str
    task_owner: str


class ValidateTaskCompletionRequest(BaseModel):
    """Task owner submits the completion OTP."""
    task_id: str = Field(..., min_length=1)
    email: str  # Task creator
    otp: str = Field(..., min_length=1, max_length=12)


class TaskCompletionResponse(BaseModel):
    message: str = "Task marked as completed"
    task_id: str
    status: str
    worker_email: str
    worker_completed_tasks: int
