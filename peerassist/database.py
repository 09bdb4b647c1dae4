"""Database utilities for Supabase integration."""

from supabase import Client, create_client
from supabase.client import ClientOptions

from .config import Settings

# =============================================================================
# Table Names (keep in sync with supabase/migrations)
# =============================================================================

USERS_TABLE = "users"
CREDENTIALS_TABLE = "user_credentials"
OTPS_TABLE = "otps"
TASKS_TABLE = "tasks"
SCHEDULED_TASKS_TABLE = "scheduled_tasks"

# =============================================================================
# Postgres functions (each runs in a single transaction)
# =============================================================================

CREATE_USER_ACCOUNT_RPC = "create_user_account"
RESET_PASSWORD_RPC = "reset_password_with_otp"
SELECT_TASK_WORKER_RPC = "select_task_worker"
COMPLETE_TASK_RPC = "complete_task_with_otp"
INCREMENT_TASK_VIEWS_RPC = "increment_task_views"


def create_supabase_client(settings: Settings) -> Client:
    """Create a Supabase client with a bounded request timeout."""
    if not settings.supabase_url:
        raise ValueError("SUPABASE_URL must be set when STORAGE_BACKEND=supabase")
    # Prefer new secret key, fall back to legacy service_role_key
    api_key = settings.supabase_secret_key or settings.supabase_service_role_key
    if not api_key:
        raise ValueError("Either SUPABASE_SECRET_KEY or SUPABASE_SERVICE_ROLE_KEY must be set")
    options = ClientOptions(postgrest_client_timeout=settings.store_timeout_seconds)
    return create_client(settings.supabase_url, api_key, options=options)
