"""Authentication dependencies for FastAPI."""

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.database.dependencies import get_db_session
from authcore.features.account.models import Account
from authcore.features.account.service import AccountService
from authcore.integrations.captcha import RecaptchaService, recaptcha_service
from authcore.integrations.email import EmailService, email_service

from .exceptions import AccountDisabledException, AccountLockedException, InvalidTokenException
from .jwt_utils import TokenType
from .service import verify_token

security = HTTPBearer()


async def get_current_account(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    session: AsyncSession = Depends(get_db_session),
) -> Account:
    """Get the current authenticated account from an access token.

    Args:
        credentials: HTTP authorization credentials with bearer token
        session: Database session

    Returns:
        Account object

    Raises:
        InvalidTokenException: Token invalid, not an access token, or account gone
        AccountDisabledException: Account is disabled
        AccountLockedException: Account is locked

    """
    payload = verify_token(credentials.credentials, TokenType.ACCESS)

    try:
        account_id = int(payload["sub"])
    except ValueError as err:
        raise InvalidTokenException(detail="Invalid token payload") from err

    account = await AccountService.get_by_id(session, account_id)
    if account is None:
        raise InvalidTokenException(detail="Account not found")

    if not account.enabled:
        raise AccountDisabledException()

    if account.locked and not AccountService.lock_expired(account):
        raise AccountLockedException()

    return account


def get_captcha_verifier() -> RecaptchaService:
    return recaptcha_service


def get_email_notifier() -> EmailService:
    return email_service
