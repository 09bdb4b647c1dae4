"""Tests for application context wiring."""

import pytest

from peerassist.context import build_context, create_storage
from peerassist.marketplace.storage import InMemoryMarketplaceStorage
from peerassist.notifications import EmailSender


class TestContext:

    def test_memory_backend(self, settings):
        ctx = build_context(settings.model_copy(update={"storage_backend": "memory"}))

        assert isinstance(ctx.storage, InMemoryMarketplaceStorage)
        assert isinstance(ctx.email_sender, EmailSender)
        assert ctx.tasks.storage is ctx.storage
        assert ctx.accounts.storage is ctx.storage
        assert ctx.tasks.dispatcher is ctx.dispatcher

    def test_supabase_backend_requires_url(self, settings):
        misconfigured = settings.model_copy(update={"storage_backend": "supabase", "supabase_url": None})

        with pytest.raises(ValueError, match="SUPABASE_URL"):
            create_storage(misconfigured)

    def test_contexts_are_independent(self, settings):
        first = build_context(settings)
        second = build_context(settings)

        assert first.storage is not second.storage
