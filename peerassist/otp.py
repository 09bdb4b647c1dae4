"""One-time verification codes.

Codes gate two flows: password reset (keyed by email) and task completion
(keyed by task creator email + task ID, carrying the worker as payload).
At most one live code exists per key; issuing a new one replaces the old.
"""

import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

DEFAULT_CODE_LENGTH = 6


class OtpContext(str, Enum):
    """What a one-time code is for."""

    PASSWORD_RESET = "password_reset"
    TASK_COMPLETION = "task_completion"


def generate_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    """Generate a zero-padded numeric code from a CSPRNG."""
    if length < 1:
        raise ValueError("Code length must be positive")
    return f"{secrets.randbelow(10**length):0{length}d}"


def codes_match(expected: str, submitted: str) -> bool:
    """Constant-time comparison of two codes."""
    return hmac.compare_digest(expected.encode(), submitted.encode())


@dataclass
class OneTimeCode:
    """A short-lived verification code."""

    email: str
    code: str
    context: OtpContext
    expires_at: datetime
    task_id: Optional[str] = None
    worker_email: Optional[str] = None

    @property
    def key(self) -> tuple[str, str, Optional[str]]:
        return otp_key(self.email, self.context, self.task_id)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "code": self.code,
            "context": self.context.value,
            "expires_at": self.expires_at.isoformat(),
            "task_id": self.task_id,
            "worker_email": self.worker_email,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OneTimeCode":
        expires_at = data["expires_at"]
        if isinstance(expires_at, str):
            expires_at = datetime.fromisoformat(expires_at.replace("Z", "+00:00"))
        return cls(
            email=data["email"],
            code=data["code"],
            context=OtpContext(data["context"]),
            expires_at=expires_at,
            task_id=data.get("task_id"),
            worker_email=data.get("worker_email"),
        )


def otp_key(email: str, context: OtpContext, task_id: Optional[str] = None) -> tuple[str, str, Optional[str]]:
    """Upsert key for a code: (email, context, task_id)."""
    return (email, OtpContext(context).value, task_id)


def issue_password_reset_code(
    email: str,
    validity_minutes: int = 10,
    length: int = DEFAULT_CODE_LENGTH,
    now: Optional[datetime] = None,
) -> OneTimeCode:
    """Create a password-reset code keyed by email only."""
    now = now or datetime.now(timezone.utc)
    return OneTimeCode(
        email=email,
        code=generate_code(length),
        context=OtpContext.PASSWORD_RESET,
        expires_at=now + timedelta(minutes=validity_minutes),
    )


def issue_task_completion_code(
    creator_email: str,
    task_id: str,
    worker_email: str,
    validity_minutes: int = 30,
    length: int = DEFAULT_CODE_LENGTH,
    now: Optional[datetime] = None,
) -> OneTimeCode:
    """Create a task-completion code addressed to the task creator."""
    now = now or datetime.now(timezone.utc)
    return OneTimeCode(
        email=creator_email,
        code=generate_code(length),
        context=OtpContext.TASK_COMPLETION,
        expires_at=now + timedelta(minutes=validity_minutes),
        task_id=task_id,
        worker_email=worker_email,
    )
