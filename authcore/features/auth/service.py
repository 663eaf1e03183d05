"""Authentication service layer (session manager).

Every public method is one unit of work and commits it. Side effects that must
outlive a failing call, such as the failed-login counter or the revocation
triggered by refresh token reuse, are committed before the exception is raised.
"""

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from authcore.config.settings import settings
from authcore.features.account.exceptions import CaptchaVerificationFailed
from authcore.features.account.models import Account, AuthProvider
from authcore.features.account.schemas import AccountRegisterRequest, AccountResponse
from authcore.features.account.service import AccountService
from authcore.integrations.captcha import RecaptchaService
from authcore.integrations.email import EmailService

from . import federation, totp
from .exceptions import (
    AccountDisabledException,
    AccountLockedException,
    InvalidCredentialsException,
    InvalidTokenException,
    InvalidTokenTypeException,
    InvalidTwoFactorCodeException,
    RefreshTokenReusedException,
    TokenExpiredException,
    TwoFactorAlreadyEnabledException,
    TwoFactorNotEnabledException,
    TwoFactorNotInitializedException,
)
from .jwt_utils import (
    ExpiredTokenError,
    TokenError,
    TokenType,
    TokenTypeMismatchError,
    create_access_token,
    decode_token,
    password_fingerprint,
)
from .ledger import RefreshTokenLedger
from .schemas import AuthResponse, TwoFactorSetupResponse

logger = logging.getLogger(__name__)


def verify_token(token: str, expected_type: TokenType) -> dict[str, Any]:
    """Verify a token and translate codec failures into HTTP errors.

    Raises:
        TokenExpiredException: Token has expired
        InvalidTokenTypeException: Token is valid but of another type
        InvalidTokenException: Any other verification failure

    """
    try:
        return decode_token(token, expected_type)
    except ExpiredTokenError as err:
        raise TokenExpiredException() from err
    except TokenTypeMismatchError as err:
        raise InvalidTokenTypeException(expected=expected_type.value) from err
    except TokenError as err:
        raise InvalidTokenException() from err


class AuthService:
    """Service for login, token lifecycle and two-factor flows."""

    @staticmethod
    def build_auth_response(account: Account, access_token: str, refresh_token: str) -> AuthResponse:
        return AuthResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=settings.access_token_expire_minutes * 60 * 1000,
            user=AccountResponse.model_validate(account),
        )

    @staticmethod
    async def _start_session(session: AsyncSession, account: Account, ip_address: str | None) -> AuthResponse:
        await AccountService.record_successful_login(session, account.id)
        refresh_token = await RefreshTokenLedger.issue(session, account.id, ip_address)
        access_token = create_access_token(account.id, account.email)
        await session.commit()
        await session.refresh(account)
        return AuthService.build_auth_response(account, access_token, refresh_token)

    @staticmethod
    async def login(
        session: AsyncSession,
        email: str,
        password: str,
        totp_code: str | None = None,
        ip_address: str | None = None,
    ) -> AuthResponse:
        """Authenticate with email and password, then the second factor if enabled.

        Args:
            session: Database session
            email: Account email (any case)
            password: Plain text password
            totp_code: Six-digit code, required when two-factor is enabled
            ip_address: Client address recorded on the refresh token

        Returns:
            AuthResponse with tokens, or with ``requires_two_factor`` set and no tokens

        Raises:
            InvalidCredentialsException: Unknown email or wrong password
            AccountLockedException: Account is locked
            AccountDisabledException: Account is disabled
            InvalidTwoFactorCodeException: Wrong two-factor code

        """
        account = await AccountService.get_by_email(session, email)

        if account is None:
            Account.burn_password_check(password)
            raise InvalidCredentialsException()

        if account.provider != AuthProvider.LOCAL:
            # Federated accounts have no password and are never locked by password attempts
            Account.burn_password_check(password)
            logger.info(f"Password login attempted for {account.provider} account: {account.email}")
            raise InvalidCredentialsException()

        if account.locked:
            if not AccountService.lock_expired(account):
                logger.warning(f"Login attempt for locked account: {account.email}")
                raise AccountLockedException()
            if await AccountService.unlock(session, account.id):
                logger.info(f"Lockout period elapsed, account unlocked: {account.email}")
            await session.commit()
            await session.refresh(account)

        if not account.enabled:
            logger.warning(f"Login attempt for disabled account: {account.email}")
            raise AccountDisabledException()

        if not account.verify_password(password):
            state = await AccountService.record_failed_login(session, account.id)
            await session.commit()
            if state.just_locked:
                logger.warning(
                    f"SECURITY: account locked after {state.failed_login_attempts} failed logins: {account.email}"
                )
            raise InvalidCredentialsException()

        if account.failed_login_attempts > 0:
            await AccountService.reset_failed_logins(session, account.id)
            await session.commit()

        if account.totp_enabled:
            if not totp_code:
                logger.debug(f"Two-factor code required: {account.email}")
                return AuthResponse(requires_two_factor=True)
            if not totp.is_valid(account.totp_secret, totp_code):
                logger.info(f"Invalid two-factor code: {account.email}")
                raise InvalidTwoFactorCodeException()

        response = await AuthService._start_session(session, account, ip_address)
        logger.info(f"Account logged in: {account.email}")
        return response

    @staticmethod
    async def login_federated(
        session: AsyncSession,
        provider: str,
        claims: Mapping[str, Any],
        ip_address: str | None = None,
    ) -> AuthResponse:
        """Log in (creating the account on first use) with identity provider claims."""
        account = await federation.resolve(session, provider, claims)

        if not account.enabled:
            await session.commit()
            raise AccountDisabledException()
        if account.locked and not AccountService.lock_expired(account):
            await session.commit()
            raise AccountLockedException()

        response = await AuthService._start_session(session, account, ip_address)
        logger.info(f"Account logged in via {provider}: {account.email}")
        return response

    @staticmethod
    async def refresh(session: AsyncSession, refresh_token: str, ip_address: str | None = None) -> AuthResponse:
        """Rotate a refresh token.

        Raises:
            InvalidTokenException: Unknown token or lost a concurrent rotation
            TokenExpiredException: Token expired
            RefreshTokenReusedException: Token already used; all sessions were revoked

        """
        try:
            result = await RefreshTokenLedger.rotate(session, refresh_token, ip_address)
        except RefreshTokenReusedException:
            await session.commit()
            raise

        await session.commit()
        return AuthService.build_auth_response(result.account, result.access_token, result.refresh_token)

    @staticmethod
    async def logout(session: AsyncSession, refresh_token: str) -> bool:
        revoked = await RefreshTokenLedger.revoke(session, refresh_token)
        await session.commit()
        if revoked:
            logger.info("Refresh token revoked on logout")
        return revoked

    @staticmethod
    async def logout_all(session: AsyncSession, account_id: int) -> int:
        revoked = await RefreshTokenLedger.revoke_all(session, account_id)
        await session.commit()
        logger.info(f"Revoked {revoked} refresh token(s) for account: {account_id}")
        return revoked

    @staticmethod
    async def register(
        session: AsyncSession,
        data: AccountRegisterRequest,
        captcha: RecaptchaService,
        notifier: EmailService,
        ip_address: str | None = None,
    ) -> Account:
        """Register a local account and send the verification email.

        Raises:
            CaptchaVerificationFailed: CAPTCHA token rejected
            EmailAlreadyExists: Email already registered

        """
        if not await captcha.verify(data.recaptcha_token, ip_address):
            raise CaptchaVerificationFailed()

        account = await AccountService.register_account(session, data)
        await session.commit()

        await notifier.send_verification(account)
        return account

    @staticmethod
    async def request_password_reset(session: AsyncSession, email: str, notifier: EmailService) -> None:
        """Send a reset link if a local account exists. Silent either way."""
        account = await AccountService.get_by_email(session, email)
        if account is None or account.provider != AuthProvider.LOCAL.value or not account.enabled:
            logger.debug("Password reset requested for an email without a local account")
            return

        await notifier.send_password_reset(account)
        logger.info(f"Password reset requested: {account.email}")

    @staticmethod
    async def reset_password(session: AsyncSession, token: str, new_password: str) -> None:
        """Set a new password from a reset link, unlock the account and end every session.

        Raises:
            InvalidTokenException: Token invalid, already redeemed or for an unknown account
            TokenExpiredException: Token expired

        """
        claims = verify_token(token, TokenType.PASSWORD_RESET)
        account = await AccountService.get_by_id(session, int(claims["sub"]))

        if account is None or claims.get("pwh") != password_fingerprint(account.hashed_password):
            raise InvalidTokenException(detail="Invalid or expired reset token")

        if not await AccountService.update_password(session, account.id, new_password, account.hashed_password):
            raise InvalidTokenException(detail="Invalid or expired reset token")

        revoked = await RefreshTokenLedger.revoke_all(session, account.id)
        await session.commit()
        logger.info(f"Password reset for {account.email}, revoked {revoked} refresh token(s)")

    @staticmethod
    async def request_email_verification(session: AsyncSession, email: str, notifier: EmailService) -> None:
        """Resend the verification link to an unverified account. Silent either way."""
        account = await AccountService.get_by_email(session, email)
        if account is None or account.email_verified:
            return
        await notifier.send_verification(account)

    @staticmethod
    async def verify_email(session: AsyncSession, token: str) -> Account:
        claims = verify_token(token, TokenType.EMAIL_VERIFICATION)
        account = await AccountService.get_by_id(session, int(claims["sub"]))

        if account is None or claims.get("email") != account.email:
            raise InvalidTokenException(detail="Invalid verification token")

        if not account.email_verified:
            await AccountService.mark_email_verified(session, account.id)
            await session.commit()
            await session.refresh(account)
            logger.info(f"Email verified: {account.email}")
        return account

    @staticmethod
    async def enable_two_factor(session: AsyncSession, account: Account) -> TwoFactorSetupResponse:
        """Generate a pending secret; it takes effect only after ``confirm_two_factor``."""
        if account.totp_enabled:
            raise TwoFactorAlreadyEnabledException()

        secret = totp.generate_secret()
        await AccountService.set_totp_secret(session, account.id, secret)
        await session.commit()

        return TwoFactorSetupResponse(secret=secret, provisioning_uri=totp.provisioning_uri(secret, account.email))

    @staticmethod
    async def confirm_two_factor(session: AsyncSession, account: Account, code: str) -> None:
        await session.refresh(account)
        if not account.totp_secret:
            raise TwoFactorNotInitializedException()

        if not totp.is_valid(account.totp_secret, code):
            raise InvalidTwoFactorCodeException()

        # The secret may have been regenerated since it was read
        if not await AccountService.activate_totp(session, account.id, account.totp_secret):
            raise InvalidTwoFactorCodeException()
        await session.commit()
        logger.info(f"Two-factor authentication enabled: {account.email}")

    @staticmethod
    async def disable_two_factor(session: AsyncSession, account: Account, code: str) -> None:
        await session.refresh(account)
        if not account.totp_enabled:
            raise TwoFactorNotEnabledException()

        if not totp.is_valid(account.totp_secret, code):
            raise InvalidTwoFactorCodeException()

        await AccountService.clear_totp(session, account.id)
        await session.commit()
        logger.info(f"Two-factor authentication disabled: {account.email}")
