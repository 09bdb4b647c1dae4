"""Task marketplace subsystem for PeerAssist.

Models:
- User: Marketplace identity record
- Task: A posted job with lifecycle status and membership lists
- ScheduledTask: Index row linking a selected worker to a task
- TaskStatus / WorkType: Lifecycle status and category enums

Storage:
- MarketplaceStorage: Persistence protocol
- InMemoryMarketplaceStorage: In-process backend (tests, local development)
- SupabaseMarketplaceStorage: Production backend

Services:
- AccountService: Signup, login, password reset, profiles
- TaskLifecycleService: Post, apply, accept, complete, cancel
"""

from peerassist.marketplace.accounts import AccountService
from peerassist.marketplace.models import (
    VALID_TASK_TRANSITIONS,
    VALID_WORK_TYPES,
    CompletionResult,
    ScheduledTask,
    ScheduleStatus,
    Task,
    TaskDraft,
    TaskQuery,
    TaskStatus,
    User,
    WorkType,
)
from peerassist.marketplace.service import (
    AppliedTask,
    CreatorSummary,
    ScheduledEntry,
    TaskLifecycleService,
)
from peerassist.marketplace.storage import InMemoryMarketplaceStorage, MarketplaceStorage
from peerassist.marketplace.supabase_storage import SupabaseMarketplaceStorage

__all__ = [
    # Models
    "User",
    "Task",
    "TaskDraft",
    "TaskQuery",
    "TaskStatus",
    "WorkType",
    "ScheduledTask",
    "ScheduleStatus",
    "CompletionResult",
    "VALID_TASK_TRANSITIONS",
    "VALID_WORK_TYPES",
    # Storage
    "MarketplaceStorage",
    "InMemoryMarketplaceStorage",
    "SupabaseMarketplaceStorage",
    # Services
    "AccountService",
    "TaskLifecycleService",
    "AppliedTask",
    "CreatorSummary",
    "ScheduledEntry",
]
