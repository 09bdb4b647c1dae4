"""Authentication routes: signup, login and password reset."""

from fastapi import APIRouter, Request, status

from ..context import Context
from ..logging_config import get_logger
from ..models import (
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordResetRequest,
    SignupRequest,
    ValidateOtpRequest,
)
from ..rate_limit import limiter

logger = get_logger("routes.auth")
router = APIRouter(tags=["auth"])


@router.post("/signup", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def signup(request: Request, body: SignupRequest, ctx: Context):
    """Register a new user. 409 if the email is taken."""
    await ctx.accounts.signup(body.name, body.email, body.mobile, body.password)
    return MessageResponse(message="User registered successfully!")


@router.post("/login", response_model=LoginResponse)
@limiter.limit("10/minute")
async def login(request: Request, body: LoginRequest, ctx: Context):
    """Exchange email and password for a session token."""
    token = await ctx.accounts.login(body.email, body.password)
    return LoginResponse(token=token)


@router.post("/requestPasswordReset", response_model=MessageResponse)
@limiter.limit("5/minute")
async def request_password_reset(request: Request, body: PasswordResetRequest, ctx: Context):
    """Email a password-reset OTP to a registered user."""
    await ctx.accounts.request_password_reset(body.email)
    return MessageResponse(message="OTP sent to your email")


@router.post("/validateOtpAndUpdatePassword", response_model=MessageResponse)
@limiter.limit("10/minute")
async def validate_otp_and_update_password(request: Request, body: ValidateOtpRequest, ctx: Context):
    """Consume a password-reset OTP and set the new password."""
    await ctx.accounts.reset_password(body.email, body.otp, body.password)
    return MessageResponse(message="Password updated successfully")
