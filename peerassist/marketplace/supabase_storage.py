"""
Supabase-backed marketplace storage.

Single-row guarded writes use PostgREST conditional updates
(``UPDATE ... WHERE status = expected AND version = expected``). Writes that
span several rows go through Postgres functions defined in
``supabase/migrations/001_initial_schema.sql`` so they commit or roll back
as one transaction.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from supabase import Client

from ..database import (
    COMPLETE_TASK_RPC,
    CREATE_USER_ACCOUNT_RPC,
    CREDENTIALS_TABLE,
    INCREMENT_TASK_VIEWS_RPC,
    OTPS_TABLE,
    RESET_PASSWORD_RPC,
    SCHEDULED_TASKS_TABLE,
    SELECT_TASK_WORKER_RPC,
    TASKS_TABLE,
    USERS_TABLE,
)
from ..logging_config import get_logger
from ..otp import OneTimeCode, OtpContext
from .models import (
    CompletionResult,
    ScheduledTask,
    Task,
    TaskQuery,
    TaskStatus,
    User,
    utc_now,
)

logger = get_logger("marketplace.supabase")


def _first(result) -> Optional[Dict[str, Any]]:
    return result.data[0] if result.data else None


def _task_key(task_id: Optional[str]) -> str:
    # NULLs never collide in a unique index, so the OTP key stores '' instead
    return task_id or ""


class SupabaseMarketplaceStorage:
    """Marketplace storage on Supabase (PostgREST + RPC)."""

    def __init__(self, db: Client):
        self.db = db

    # === Users ===

    def create_user(self, user: User, password_hash: str) -> bool:
        result = self.db.rpc(
            CREATE_USER_ACCOUNT_RPC,
            {
                "p_email": user.email,
                "p_name": user.name,
                "p_mobile": user.mobile,
                "p_password_hash": password_hash,
            },
        ).execute()
        return bool(result.data)

    def get_user(self, email: str) -> Optional[User]:
        result = self.db.table(USERS_TABLE).select("*").eq("email", email).limit(1).execute()
        row = _first(result)
        return User.from_dict(row) if row else None

    def get_users(self, emails: List[str]) -> List[User]:
        if not emails:
            return []
        result = self.db.table(USERS_TABLE).select("*").in_("email", emails).execute()
        return [User.from_dict(row) for row in result.data or []]

    def update_user(self, email: str, fields: Dict[str, object]) -> Optional[User]:
        result = self.db.table(USERS_TABLE).update(fields).eq("email", email).execute()
        row = _first(result)
        return User.from_dict(row) if row else None

    def get_password_hash(self, email: str) -> Optional[str]:
        result = (
            self.db.table(CREDENTIALS_TABLE)
            .select("password_hash")
            .eq("email", email)
            .limit(1)
            .execute()
        )
        row = _first(result)
        return row["password_hash"] if row else None

    def reset_password(self, email: str, code: str, password_hash: str, now: datetime) -> bool:
        result = self.db.rpc(
            RESET_PASSWORD_RPC,
            {
                "p_email": email,
                "p_code": code,
                "p_password_hash": password_hash,
                "p_now": now.isoformat(),
            },
        ).execute()
        return bool(result.data)

    # === One-time codes ===

    def upsert_otp(self, otp: OneTimeCode) -> None:
        data = otp.to_dict()
        data["task_key"] = _task_key(otp.task_id)
        self.db.table(OTPS_TABLE).upsert(data, on_conflict="email,context,task_key").execute()

    def get_otp(
        self, email: str, context: OtpContext, task_id: Optional[str] = None
    ) -> Optional[OneTimeCode]:
        result = (
            self.db.table(OTPS_TABLE)
            .select("*")
            .eq("email", email)
            .eq("context", OtpContext(context).value)
            .eq("task_key", _task_key(task_id))
            .gt("expires_at", utc_now().isoformat())
            .limit(1)
            .execute()
        )
        row = _first(result)
        return OneTimeCode.from_dict(row) if row else None

    def delete_otp(self, email: str, context: OtpContext, task_id: Optional[str] = None) -> bool:
        result = (
            self.db.table(OTPS_TABLE)
            .delete()
            .eq("email", email)
            .eq("context", OtpContext(context).value)
            .eq("task_key", _task_key(task_id))
            .execute()
        )
        return bool(result.data)

    # === Tasks ===

    def save_task(self, task: Task) -> str:
        result = self.db.table(TASKS_TABLE).insert(task.to_dict()).execute()
        row = _first(result)
        return str(row["id"]) if row else task.id

    def get_task(self, task_id: str) -> Optional[Task]:
        result = self.db.table(TASKS_TABLE).select("*").eq("id", task_id).limit(1).execute()
        row = _first(result)
        return Task.from_dict(row) if row else None

    def list_tasks(self, query: TaskQuery) -> List[Task]:
        builder = self.db.table(TASKS_TABLE).select("*")

        if query.status is not None:
            builder = builder.eq("status", TaskStatus(query.status).value)
        if query.creator_email is not None:
            builder = builder.eq("creator_email", query.creator_email)
        if query.exclude_creator is not None:
            builder = builder.neq("creator_email", query.exclude_creator)
        if query.applicant is not None:
            builder = builder.contains("applicants", [query.applicant])
        if query.exclude_applicant is not None:
            builder = builder.not_.contains("applicants", [query.exclude_applicant])
        if query.work_type is not None:
            builder = builder.eq("work_type", query.work_type)
        if query.from_date is not None:
            builder = builder.gte("task_date", query.from_date.isoformat())
        if query.to_date is not None:
            builder = builder.lte("task_date", query.to_date.isoformat())
        if query.task_ids is not None:
            if not query.task_ids:
                return []
            builder = builder.in_("id", query.task_ids)

        result = builder.order("created_at", desc=query.newest_first).execute()
        return [Task.from_dict(row) for row in result.data or []]

    def update_task_fields(
        self, task_id: str, expected_status: TaskStatus, fields: Dict[str, object]
    ) -> Optional[Task]:
        update_data = {**fields, "updated_at": utc_now().isoformat()}
        result = (
            self.db.table(TASKS_TABLE)
            .update(update_data)
            .eq("id", task_id)
            .eq("status", TaskStatus(expected_status).value)
            .execute()
        )
        row = _first(result)
        return Task.from_dict(row) if row else None

    def add_applicant(self, task_id: str, email: str, expected_version: int) -> Optional[Task]:
        current = self.get_task(task_id)
        if not current or current.version != expected_version or email in current.applicants:
            return None

        # Atomic update: only succeeds if nobody wrote the row since we read it
        result = (
            self.db.table(TASKS_TABLE)
            .update(
                {
                    "applicants": current.applicants + [email],
                    "version": expected_version + 1,
                    "updated_at": utc_now().isoformat(),
                }
            )
            .eq("id", task_id)
            .eq("status", TaskStatus.OPEN.value)
            .eq("version", expected_version)
            .execute()
        )
        row = _first(result)
        return Task.from_dict(row) if row else None

    def select_worker(
        self,
        task_id: str,
        expected_version: int,
        scheduled_task: ScheduledTask,
        new_status: TaskStatus,
    ) -> Optional[Task]:
        result = self.db.rpc(
            SELECT_TASK_WORKER_RPC,
            {
                "p_task_id": task_id,
                "p_expected_version": expected_version,
                "p_new_status": TaskStatus(new_status).value,
                "p_schedule": scheduled_task.to_dict(),
            },
        ).execute()
        row = _first(result)
        return Task.from_dict(row) if row else None

    def update_task_status(
        self, task_id: str, expected_status: TaskStatus, new_status: TaskStatus
    ) -> Optional[Task]:
        current = self.get_task(task_id)
        if not current or current.status != expected_status:
            return None
        result = (
            self.db.table(TASKS_TABLE)
            .update(
                {
                    "status": TaskStatus(new_status).value,
                    "version": current.version + 1,
                    "updated_at": utc_now().isoformat(),
                }
            )
            .eq("id", task_id)
            .eq("status", TaskStatus(expected_status).value)
            .execute()
        )
        row = _first(result)
        return Task.from_dict(row) if row else None

    def increment_views(self, task_ids: List[str]) -> None:
        if task_ids:
            self.db.rpc(INCREMENT_TASK_VIEWS_RPC, {"p_task_ids": task_ids}).execute()

    # === Scheduled-task index ===

    def list_scheduled_tasks(self, worker_email: str) -> List[ScheduledTask]:
        result = (
            self.db.table(SCHEDULED_TASKS_TABLE)
            .select("*")
            .eq("worker_email", worker_email)
            .order("scheduled_at")
            .execute()
        )
        return [ScheduledTask.from_dict(row) for row in result.data or []]

    def complete_task(
        self, task_id: str, creator_email: str, code: str, now: datetime
    ) -> Tuple[Optional[CompletionResult], Optional[str]]:
        result = self.db.rpc(
            COMPLETE_TASK_RPC,
            {
                "p_task_id": task_id,
                "p_creator_email": creator_email,
                "p_code": code,
                "p_now": now.isoformat(),
            },
        ).execute()

        payload = result.data
        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if not payload:
            raise RuntimeError(f"{COMPLETE_TASK_RPC} returned no payload for task {task_id}")

        if payload.get("error"):
            return None, payload["error"]

        scheduled = payload.get("scheduled_task")
        return (
            CompletionResult(
                task=Task.from_dict(payload["task"]),
                scheduled_task=ScheduledTask.from_dict(scheduled) if scheduled else None,
                worker_email=payload["worker_email"],
                worker_completed_tasks=payload.get("worker_completed_tasks") or 0,
            ),
            None,
        )
