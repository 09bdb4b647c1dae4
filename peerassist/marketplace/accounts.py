"""Account service: signup, login, password reset and profiles."""

import asyncio
from typing import Optional

from ..auth import create_access_token, hash_password, verify_password
from ..background import BackgroundDispatcher
from ..config import Settings
from ..errors import ConflictError, InvalidCredentialError, InvalidInputError, NotFoundError
from ..logging_config import get_logger, log_auth_event
from ..notifications import EmailSender
from ..otp import issue_password_reset_code
from .models import User, utc_now
from .runner import StoreRunner
from .storage import MarketplaceStorage

logger = get_logger("marketplace.accounts")


class AccountService:
    """Identity and credential operations."""

    def __init__(
        self,
        storage: MarketplaceStorage,
        settings: Settings,
        dispatcher: BackgroundDispatcher,
        email_sender: EmailSender,
    ):
        self.storage = storage
        self.settings = settings
        self.dispatcher = dispatcher
        self.email_sender = email_sender
        self._store = StoreRunner(settings.store_timeout_seconds)

    async def signup(self, name: str, email: str, mobile: str, password: str) -> User:
        """Register a user. The user and credential rows are created together."""
        # Hash off the event loop
        password_hash = await asyncio.to_thread(hash_password, password)
        user = User(email=email, name=name, mobile=mobile)

        created = await self._store(self.storage.create_user, user, password_hash)
        if not created:
            log_auth_event("signup", email, success=False, reason="already_exists")
            raise ConflictError("User already exists")

        log_auth_event("signup", email, success=True)
        return user

    async def login(self, email: str, password: str) -> str:
        """Check credentials and return a session token."""
        password_hash = await self._store(self.storage.get_password_hash, email)
        if not password_hash:
            log_auth_event("login", email, success=False, reason="unknown_email")
            raise InvalidCredentialError("Invalid email or password")

        valid = await asyncio.to_thread(verify_password, password, password_hash)
        if not valid:
            log_auth_event("login", email, success=False, reason="bad_password")
            raise InvalidCredentialError("Invalid email or password")

        log_auth_event("login", email, success=True)
        return create_access_token(email, self.settings)

    async def request_password_reset(self, email: str) -> None:
        """Issue a password-reset code and email it in the background."""
        user = await self._store(self.storage.get_user, email)
        if not user:
            log_auth_event("password_reset_request", email, success=False, reason="unknown_email")
            raise NotFoundError("User not found")

        otp = issue_password_reset_code(
            email,
            validity_minutes=self.settings.password_reset_otp_minutes,
            length=self.settings.otp_length,
        )
        await self._store(self.storage.upsert_otp, otp)

        self.dispatcher.dispatch(
            self.email_sender.send_password_reset_code(
                email, otp.code, self.settings.password_reset_otp_minutes
            ),
            f"password reset code to {email}",
        )
        log_auth_event("password_reset_request", email, success=True)

    async def reset_password(self, email: str, code: str, new_password: str) -> None:
        """Consume a live reset code and store the new password hash."""
        password_hash = await asyncio.to_thread(hash_password, new_password)
        updated = await self._store(
            self.storage.reset_password, email, code, password_hash, utc_now()
        )
        if not updated:
            log_auth_event("password_reset", email, success=False, reason="invalid_otp")
            raise InvalidCredentialError("Invalid or expired OTP")
        log_auth_event("password_reset", email, success=True)

    async def get_profile(self, email: str) -> User:
        user = await self._store(self.storage.get_user, email)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def update_profile(
        self, email: str, name: Optional[str] = None, mobile: Optional[str] = None
    ) -> User:
        """Partially update name and/or mobile."""
        fields = {}
        if name:
            fields["name"] = name
        if mobile:
            fields["mobile"] = mobile
        if not fields:
            raise InvalidInputError("No fields provided for update")

        user = await self._store(self.storage.update_user, email, fields)
        if not user:
            raise NotFoundError("User not found")
        logger.info(f"Profile updated | email={email} | fields={','.join(sorted(fields))}")
        return user
