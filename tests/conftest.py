"""Pytest configuration and fixtures."""

import os
import secrets
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

# Unique JWT secret per test run
_TEST_JWT_SECRET = f"test-only-{secrets.token_urlsafe(32)}"

# Run against the in-memory store with rate limits off and no outbound email
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("JWT_SECRET_KEY", _TEST_JWT_SECRET)
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.pop("SENDGRID_API_KEY", None)

from fastapi.testclient import TestClient  # noqa: E402

from peerassist.auth import hash_password  # noqa: E402
from peerassist.config import Settings, get_settings  # noqa: E402
from peerassist.context import build_context  # noqa: E402
from peerassist.main import app  # noqa: E402
from peerassist.marketplace.models import TaskDraft, User, WorkType  # noqa: E402
from peerassist.marketplace.storage import InMemoryMarketplaceStorage  # noqa: E402
from peerassist.notifications import EmailSender  # noqa: E402

CREATOR = "a@x.com"
WORKER = "b@x.com"
OTHER = "c@x.com"


@pytest.fixture
def settings() -> Settings:
    return get_settings()


@pytest.fixture
def storage():
    """Fresh in-memory store seeded with three users."""
    store = InMemoryMarketplaceStorage()
    pw_hash = hash_password("password123")
    for email, name in [(CREATOR, "Alice"), (WORKER, "Bob"), (OTHER, "Carol")]:
        store.create_user(User(email=email, name=name, mobile="5550100"), pw_hash)
    return store


@pytest.fixture
def email_sender():
    """Email sender double that records calls instead of sending."""
    sender = MagicMock(spec=EmailSender)
    sender.send = AsyncMock()
    sender.send_password_reset_code = AsyncMock()
    sender.send_task_completion_code = AsyncMock()
    sender.send_worker_selected = AsyncMock()
    return sender


@pytest.fixture
def context(settings, storage, email_sender):
    return build_context(settings, storage=storage, email_sender=email_sender)


@pytest.fixture
def task_service(context):
    return context.tasks


@pytest.fixture
def account_service(context):
    return context.accounts


@pytest.fixture
def client(context):
    """Test client bound to a fresh application context."""
    app.state.context = context
    with TestClient(app) as test_client:
        yield test_client
    app.state.context = None


def make_draft(**overrides) -> TaskDraft:
    fields = {
        "title": "Fix kitchen sink",
        "description": "Leaking pipe under the sink",
        "task_time": "10:00 AM",
        "task_date": date(2025, 4, 20),
        "estimated_pay_rate": 25.0,
        "place_of_work": "12 Main St",
        "work_type": WorkType.PLUMBING,
        "people_needed": 1,
    }
    fields.update(overrides)
    return TaskDraft(**fields)


def task_payload(**overrides) -> dict:
    payload = {
        "title": "Fix kitchen sink",
        "description": "Leaking pipe under the sink",
        "task_time": "10:00 AM",
        "task_date": "2025-04-20",
        "estimated_pay_rate": 25.0,
        "place_of_work": "12 Main St",
        "work_type": "Plumbing",
        "people_needed": 1,
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def draft_factory():
    """Build TaskDraft objects with per-test overrides."""
    return make_draft


@pytest.fixture
def payload_factory():
    """Build post_task request bodies with per-test overrides."""
    return task_payload


@pytest.fixture
def posted_task(storage):
    """An Open task created by a@x.com, saved directly to the store."""
    from peerassist.marketplace.models import Task

    draft = make_draft()
    task = Task(creator_email=CREATOR, **draft.__dict__)
    storage.save_task(task)
    return task
