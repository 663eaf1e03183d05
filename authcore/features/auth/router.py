"""Authentication router (login, token lifecycle, password and two-factor flows)."""

import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.config.settings import settings
from authcore.database.dependencies import get_db_session
from authcore.features.account.models import Account
from authcore.features.account.schemas import AccountRegisterRequest, AccountResponse
from authcore.integrations.captcha import RecaptchaService
from authcore.integrations.email import EmailService
from authcore.shared.rate_limit import get_client_ip, limiter

from .dependencies import get_captcha_verifier, get_current_account, get_email_notifier
from .schemas import (
    AuthResponse,
    ForgotPasswordRequest,
    LoginRequest,
    MessageResponse,
    RefreshTokenRequest,
    ResendVerificationRequest,
    ResetPasswordRequest,
    TwoFactorCodeRequest,
    TwoFactorSetupResponse,
    VerifyEmailRequest,
)
from .service import AuthService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.login_rate_limit)
async def register(
    request: Request,
    data: AccountRegisterRequest,
    session: AsyncSession = Depends(get_db_session),
    captcha: RecaptchaService = Depends(get_captcha_verifier),
    notifier: EmailService = Depends(get_email_notifier),
):
    """Register a new account with email and password.

    A verification email is sent to the address.
    """
    return await AuthService.register(session, data, captcha, notifier, get_client_ip(request))


@router.post("/login", response_model=AuthResponse)
@limiter.limit(settings.login_rate_limit)
async def login(request: Request, data: LoginRequest, session: AsyncSession = Depends(get_db_session)):
    """Login and get tokens.

    - **email**: Account email
    - **password**: Password
    - **totp_code**: Required when two-factor authentication is enabled

    Without a code for a two-factor account the response carries
    `requires_two_factor: true` and no tokens.
    """
    return await AuthService.login(session, data.email, data.password, data.totp_code, get_client_ip(request))


@router.post("/refresh", response_model=AuthResponse)
@limiter.limit(settings.login_rate_limit)
async def refresh_token(request: Request, data: RefreshTokenRequest, session: AsyncSession = Depends(get_db_session)):
    """Exchange a refresh token for a new access/refresh pair.

    Each refresh token works once. Presenting a used one revokes every session
    of the account.
    """
    return await AuthService.refresh(session, data.refresh_token, get_client_ip(request))


@router.post("/logout", response_model=MessageResponse)
async def logout(data: RefreshTokenRequest, session: AsyncSession = Depends(get_db_session)):
    """Revoke a refresh token."""
    if await AuthService.logout(session, data.refresh_token):
        return MessageResponse(message="Successfully logged out")
    return MessageResponse(message="Token already revoked or not found")


@router.post("/logout-all", response_model=MessageResponse)
async def logout_all(
    current_account: Account = Depends(get_current_account),
    session: AsyncSession = Depends(get_db_session),
):
    """Revoke every refresh token of the current account."""
    await AuthService.logout_all(session, current_account.id)
    return MessageResponse(message="Logged out from all sessions")


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit(settings.login_rate_limit)
async def forgot_password(
    request: Request,
    data: ForgotPasswordRequest,
    session: AsyncSession = Depends(get_db_session),
    notifier: EmailService = Depends(get_email_notifier),
):
    """Send a password reset link. The response does not reveal whether the email exists."""
    await AuthService.request_password_reset(session, data.email, notifier)
    return MessageResponse(message="If the email is registered, a password reset link has been sent")


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(data: ResetPasswordRequest, session: AsyncSession = Depends(get_db_session)):
    """Set a new password using a reset token. Signs out every session."""
    await AuthService.reset_password(session, data.token, data.new_password)
    return MessageResponse(message="Password has been reset")


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(data: VerifyEmailRequest, session: AsyncSession = Depends(get_db_session)):
    await AuthService.verify_email(session, data.token)
    return MessageResponse(message="Email verified")


@router.post("/resend-verification", response_model=MessageResponse)
async def resend_verification(
    data: ResendVerificationRequest,
    session: AsyncSession = Depends(get_db_session),
    notifier: EmailService = Depends(get_email_notifier),
):
    await AuthService.request_email_verification(session, data.email, notifier)
    return MessageResponse(message="If the email needs verification, a link has been sent")


@router.post("/2fa/enable", response_model=TwoFactorSetupResponse)
async def enable_two_factor(
    current_account: Account = Depends(get_current_account),
    session: AsyncSession = Depends(get_db_session),
):
    """Generate a two-factor secret. It is not active until confirmed with a code."""
    return await AuthService.enable_two_factor(session, current_account)


@router.post("/2fa/confirm", response_model=MessageResponse)
async def confirm_two_factor(
    data: TwoFactorCodeRequest,
    current_account: Account = Depends(get_current_account),
    session: AsyncSession = Depends(get_db_session),
):
    await AuthService.confirm_two_factor(session, current_account, data.code)
    return MessageResponse(message="Two-factor authentication enabled")


@router.post("/2fa/disable", response_model=MessageResponse)
async def disable_two_factor(
    data: TwoFactorCodeRequest,
    current_account: Account = Depends(get_current_account),
    session: AsyncSession = Depends(get_db_session),
):
    await AuthService.disable_two_factor(session, current_account, data.code)
    return MessageResponse(message="Two-factor authentication disabled")
