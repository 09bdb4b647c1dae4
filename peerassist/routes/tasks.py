"""Task routes: feed, applications, selection and completion."""

from datetime import date

from fastapi import APIRouter, Request

from ..auth import SessionEmail, ensure_acting_user
from ..context import Context
from ..logging_config import get_logger
from ..marketplace.models import TaskStatus, parse_task_date
from ..models import (
    AcceptResponse,
    AppliedTaskItem,
    AppliedTasksResponse,
    ApplyResponse,
    EndTaskResponse,
    PublicTaskResponse,
    ScheduledTaskItem,
    ScheduledTasksResponse,
    TaskCompletionResponse,
    TaskListResponse,
    TaskResponse,
    ValidateTaskCompletionRequest,
)
from ..rate_limit import limiter

logger = get_logger("routes.tasks")
router = APIRouter(tags=["tasks"])


def _optional_date(name: str, value: str | None) -> date | None:
    """Parse a YYYY-MM-DD filter; an unparseable bound is ignored."""
    if not value:
        return None
    try:
        return parse_task_date(value)
    except ValueError:
        logger.info(f"Ignoring invalid {name} filter: {value!r}")
        return None


@router.get("/tasks/feed/{viewer_email}", response_model=TaskListResponse)
@limiter.limit("60/minute")
async def get_feed(
    request: Request,
    viewer_email: str,
    ctx: Context,
    session_email: SessionEmail,
    category: str | None = None,
    from_date: str | None = None,
    to_date: str | None = None,
):
    """Open tasks the viewer did not post and has not applied to, oldest first."""
    ensure_acting_user(viewer_email, session_email)
    tasks = await ctx.tasks.get_feed(
        viewer_email,
        category=category,
        from_date=_optional_date("from_date", from_date),
        to_date=_optional_date("to_date", to_date),
    )
    return TaskListResponse(
        tasks=[PublicTaskResponse.from_task(t, viewer_email) for t in tasks],
        count=len(tasks),
    )


@router.get("/appliedtasks/{viewer_email}", response_model=AppliedTasksResponse)
@limiter.limit("60/minute")
async def get_applied_tasks(
    request: Request, viewer_email: str, ctx: Context, session_email: SessionEmail
):
    """Tasks the viewer applied to, with creator contact and selection status."""
    ensure_acting_user(viewer_email, session_email)
    items = await ctx.tasks.get_applied_tasks(viewer_email)
    return AppliedTasksResponse(
        applied_tasks=[AppliedTaskItem.from_applied(item, viewer_email) for item in items],
        count=len(items),
    )


@router.post("/tasks/{task_id}/apply/{email}", response_model=ApplyResponse)
@limiter.limit("30/minute")
async def apply_for_task(
    request: Request, task_id: str, email: str, ctx: Context, session_email: SessionEmail
):
    ensure_acting_user(email, session_email)
    task = await ctx.tasks.apply(task_id, email)
    return ApplyResponse(task_id=task.id)


@router.post("/tasks/{task_id}/accept/{email}", response_model=AcceptResponse)
@limiter.limit("30/minute")
async def accept_worker(
    request: Request, task_id: str, email: str, ctx: Context, session_email: SessionEmail
):
    """Select ``email`` as a worker. With session tokens on, only the creator may do this."""
    task = await ctx.tasks.accept(task_id, email, poster_email=session_email)
    return AcceptResponse(task_id=task.id, worker_email=email, status=TaskStatus(task.status).value)


@router.post("/tasks/{task_id}/end/{email}", response_model=EndTaskResponse)
@limiter.limit("10/minute")
async def end_task(
    request: Request, task_id: str, email: str, ctx: Context, session_email: SessionEmail
):
    """A selected worker asks the task owner to confirm completion."""
    ensure_acting_user(email, session_email)
    task = await ctx.tasks.request_completion(task_id, email)
    return EndTaskResponse(task_title=task.title, task_owner=task.creator_email)


@router.post("/validateTaskCompletionOtp", response_model=TaskCompletionResponse)
@limiter.limit("10/minute")
async def validate_task_completion_otp(
    request: Request,
    body: ValidateTaskCompletionRequest,
    ctx: Context,
    session_email: SessionEmail,
):
    """Owner submits the completion OTP; the task completes atomically."""
    result = await ctx.tasks.confirm_completion(
        body.task_id, body.email, body.otp, poster_email=session_email
    )
    return TaskCompletionResponse(
        task_id=result.task.id,
        status=TaskStatus(result.task.status).value,
        worker_email=result.worker_email,
        worker_completed_tasks=result.worker_completed_tasks,
    )


@router.get("/scheduled-tasks/{email}", response_model=ScheduledTasksResponse)
@limiter.limit("60/minute")
async def get_scheduled_tasks(
    request: Request, email: str, ctx: Context, session_email: SessionEmail
):
    """Tasks the user has been selected to work on."""
    ensure_acting_user(email, session_email)
    entries = await ctx.tasks.get_scheduled_tasks(email)
    return ScheduledTasksResponse(
        scheduled_tasks=[ScheduledTaskItem.from_entry(e) for e in entries],
        count=len(entries),
    )


@router.post("/tasks/{task_id}/cancel/{email}", response_model=TaskResponse)
@limiter.limit("30/minute")
async def cancel_task(
    request: Request, task_id: str, email: str, ctx: Context, session_email: SessionEmail
):
    """Creator withdraws an Open task."""
    ensure_acting_user(email, session_email)
    task = await ctx.tasks.cancel_task(task_id, email)
    return TaskResponse.from_task(task)
