"""Email notifications.

Messages go out through the SendGrid v3 mail API. Without an API key the
sender only logs what it would have sent, which keeps local development and
tests free of network calls.
"""

import httpx

from .config import Settings
from .logging_config import get_logger

logger = get_logger("notifications")


class EmailDeliveryError(Exception):
    """The mail API rejected or failed to accept a message."""


class EmailSender:
    """Sends plain-text email via the SendGrid HTTP API."""

    def __init__(self, settings: Settings, client: httpx.AsyncClient | None = None):
        self.api_key = settings.sendgrid_api_key
        self.api_url = settings.sendgrid_api_url
        self.sender = settings.email_from
        self.timeout = settings.email_timeout_seconds
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def send(self, to: str, subject: str, body: str) -> None:
        if not self.enabled:
            logger.info(f"Email delivery disabled (no SENDGRID_API_KEY) | to={to} | subject={subject}")
            return

        payload = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.sender},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            if self._client is not None:
                response = await self._client.post(
                    self.api_url, json=payload, headers=headers, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(
                        self.api_url, json=payload, headers=headers, timeout=self.timeout
                    )
        except httpx.RequestError as e:
            raise EmailDeliveryError(f"Mail API request failed: {e}") from e

        if response.status_code >= 300:
            raise EmailDeliveryError(
                f"Mail API returned {response.status_code}: {response.text[:200]}"
            )
        logger.info(f"Email sent | to={to} | subject={subject}")

    # Message templates

    async def send_password_reset_code(self, to: str, code: str, validity_minutes: int) -> None:
        await self.send(
            to,
            "Your password reset OTP",
            f"Your OTP for password reset is: {code}. It is valid for {validity_minutes} minutes.",
        )

    async def send_task_completion_code(
        self, to: str, code: str, task_title: str, worker_email: str, validity_minutes: int
    ) -> None:
        await self.send(
            to,
            f"Confirm completion of '{task_title}'",
            (
                f"{worker_email} has marked your task '{task_title}' as finished.\n"
                f"Share this OTP with them to confirm completion: {code}\n"
                f"It is valid for {validity_minutes} minutes."
            ),
        )

    async def send_worker_selected(self, to: str, task_title: str, poster_email: str) -> None:
        await self.send(
            to,
            f"You were selected for '{task_title}'",
            (
                f"Good news! {poster_email} selected you for the task '{task_title}'.\n"
                "Check your scheduled tasks for the date, time and place."
            ),
        )
