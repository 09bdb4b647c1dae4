"""User routes: profile and task posting."""

from fastapi import APIRouter, Request, Response, status

from ..auth import SessionEmail, ensure_acting_user
from ..context import Context
from ..logging_config import get_logger
from ..models import (
    CreatedTaskListResponse,
    ProfileResponse,
    ProfileUpdate,
    ProfileUpdateResponse,
    TaskPostRequest,
    TaskPostResponse,
    TaskResponse,
)
from ..rate_limit import limiter

logger = get_logger("routes.users")
router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{email}/profileinfo", response_model=ProfileResponse)
@limiter.limit("60/minute")
async def get_profile(request: Request, email: str, ctx: Context):
    """Public profile: name, contact, rating and completed-task count."""
    user = await ctx.accounts.get_profile(email)
    return ProfileResponse.from_user(user)


@router.put("/{email}/profileupdate", response_model=ProfileUpdateResponse)
@limiter.limit("20/minute")
async def update_profile(
    request: Request,
    email: str,
    body: ProfileUpdate,
    ctx: Context,
    session_email: SessionEmail,
):
    """Partially update name and/or mobile. 400 if neither is given."""
    ensure_acting_user(email, session_email)
    user = await ctx.accounts.update_profile(email, name=body.name, mobile=body.mobile)
    return ProfileUpdateResponse(profile=ProfileResponse.from_user(user))


@router.post("/{email}/post_task", response_model=TaskPostResponse)
@limiter.limit("30/minute")
async def post_task(
    request: Request,
    response: Response,
    email: str,
    body: TaskPostRequest,
    ctx: Context,
    session_email: SessionEmail,
):
    """
    Create a task, or update an existing one when ``id`` is present.

    Creation returns 201. Updates return 200 and are only allowed for the
    task's creator while the task is still Open.
    """
    ensure_acting_user(email, session_email)
    draft = body.to_draft()

    if body.id:
        task = await ctx.tasks.update_task(email, body.id, draft)
        response.status_code = status.HTTP_200_OK
        return TaskPostResponse(
            message="Task updated successfully", task_id=task.id, task=TaskResponse.from_task(task)
        )

    task = await ctx.tasks.post_task(email, draft)
    response.status_code = status.HTTP_201_CREATED
    return TaskPostResponse(
        message="Task created successfully", task_id=task.id, task=TaskResponse.from_task(task)
    )


@router.get("/{email}/created-tasks", response_model=CreatedTaskListResponse)
@limiter.limit("60/minute")
async def get_created_tasks(
    request: Request, email: str, ctx: Context, session_email: SessionEmail
):
    """Tasks posted by the user, newest first, with full applicant lists."""
    ensure_acting_user(email, session_email)
    tasks = await ctx.tasks.get_created_tasks(email)
    return CreatedTaskListResponse(tasks=[TaskResponse.from_task(t) for t in tasks], count=len(tasks))
