"""Application context: the store, services and side-effect plumbing.

Built once in the FastAPI lifespan and kept on ``app.state``. Handlers get
it through ``Depends(get_context)``; nothing else holds store handles.
"""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Request

from .background import BackgroundDispatcher
from .config import Settings
from .database import create_supabase_client
from .logging_config import get_logger
from .marketplace.accounts import AccountService
from .marketplace.service import TaskLifecycleService
from .marketplace.storage import InMemoryMarketplaceStorage, MarketplaceStorage
from .marketplace.supabase_storage import SupabaseMarketplaceStorage
from .notifications import EmailSender

logger = get_logger("context")


@dataclass
class AppContext:
    """Everything a request handler needs."""

    settings: Settings
    storage: MarketplaceStorage
    dispatcher: BackgroundDispatcher
    email_sender: EmailSender
    accounts: AccountService
    tasks: TaskLifecycleService


def create_storage(settings: Settings) -> MarketplaceStorage:
    """Create the storage backend selected by ``STORAGE_BACKEND``."""
    if settings.storage_backend == "memory":
        logger.warning("Using in-memory storage; data is lost on restart")
        return InMemoryMarketplaceStorage()

    return SupabaseMarketplaceStorage(create_supabase_client(settings))


def build_context(
    settings: Settings,
    storage: MarketplaceStorage | None = None,
    email_sender: EmailSender | None = None,
) -> AppContext:
    """Wire services over the given (or configured) storage."""
    storage = storage if storage is not None else create_storage(settings)
    email_sender = email_sender or EmailSender(settings)
    dispatcher = BackgroundDispatcher()
    return AppContext(
        settings=settings,
        storage=storage,
        dispatcher=dispatcher,
        email_sender=email_sender,
        accounts=AccountService(storage, settings, dispatcher, email_sender),
        tasks=TaskLifecycleService(storage, settings, dispatcher, email_sender),
    )


def get_context(request: Request) -> AppContext:
    return request.app.state.context


Context = Annotated[AppContext, Depends(get_context)]
