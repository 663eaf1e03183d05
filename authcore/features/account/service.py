"""Account service layer (credential store).

Mutations that race with concurrent logins are issued as single UPDATE
statements evaluated by the database, and return the new state instead of
mutating a shared ORM instance.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import and_, case, literal, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.config.settings import settings
from authcore.database.base import UTCDateTime
from authcore.shared import clock

from .exceptions import EmailAlreadyExists
from .models import Account, AccountRole, AuthProvider, normalize_email
from .schemas import AccountRegisterRequest

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FailedLoginState:
    """Counter state after a failed password check."""

    failed_login_attempts: int
    locked: bool
    just_locked: bool


class AccountService:
    """Service for account persistence and credential state.

    Lookups repopulate already-loaded instances, since the UPDATE statements
    below bypass the identity map.
    """

    @staticmethod
    async def get_by_id(session: AsyncSession, account_id: int) -> Account | None:
        stmt = select(Account).where(Account.id == account_id).execution_options(populate_existing=True)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_email(session: AsyncSession, email: str) -> Account | None:
        """Look up an account by email, case-insensitively."""
        stmt = (
            select(Account)
            .where(Account.email == normalize_email(email))
            .execution_options(populate_existing=True)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def register_account(session: AsyncSession, data: AccountRegisterRequest) -> Account:
        """Create a local (password) account.

        Args:
            session: Database session
            data: Registration data, already validated

        Returns:
            Created Account object (flushed, not committed)

        Raises:
            EmailAlreadyExists: If the email is taken by any provider

        """
        email = normalize_email(data.email)
        if await AccountService.get_by_email(session, email):
            raise EmailAlreadyExists()

        account = Account(
            email=email,
            hashed_password=Account.hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
            provider=AuthProvider.LOCAL.value,
            roles=[AccountRole.USER.value],
            email_verified=False,
        )
        session.add(account)
        try:
            await session.flush()
        except IntegrityError as err:
            # Lost a race with a concurrent registration of the same email
            await session.rollback()
            raise EmailAlreadyExists() from err

        logger.info(f"New account registered: {account.email}")
        return account

    @staticmethod
    async def record_failed_login(session: AsyncSession, account_id: int) -> FailedLoginState:
        """Atomically increment the failure counter and lock at the threshold.

        The comparison runs inside the UPDATE, so the lock transition is decided
        on the value the database actually incremented.
        """
        now = clock.utc_now()
        threshold = settings.max_failed_login_attempts
        next_count = Account.failed_login_attempts + 1
        reaches_threshold = next_count >= threshold

        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(
                failed_login_attempts=next_count,
                locked=case((reaches_threshold, True), else_=Account.locked),
                lock_time=case(
                    (and_(reaches_threshold, ~Account.locked), literal(now, UTCDateTime())),
                    else_=Account.lock_time,
                ),
            )
            .returning(Account.failed_login_attempts, Account.locked)
            .execution_options(synchronize_session=False)
        )
        row = (await session.execute(stmt)).one()
        attempts, locked = int(row[0]), bool(row[1])
        return FailedLoginState(
            failed_login_attempts=attempts,
            locked=locked,
            just_locked=locked and attempts == threshold,
        )

    @staticmethod
    async def reset_failed_logins(session: AsyncSession, account_id: int) -> None:
        stmt = (
            update(Account)
            .where(Account.id == account_id, Account.failed_login_attempts > 0)
            .values(failed_login_attempts=0)
            .execution_options(synchronize_session=False)
        )
        await session.execute(stmt)

    @staticmethod
    async def record_successful_login(session: AsyncSession, account_id: int) -> None:
        """Reset the failure counter and stamp the login time."""
        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(failed_login_attempts=0, last_login_at=clock.utc_now())
            .execution_options(synchronize_session=False)
        )
        await session.execute(stmt)

    @staticmethod
    def lock_expired(account: Account, now: datetime | None = None) -> bool:
        """True when a timed lockout is configured and has elapsed for this account."""
        if not account.locked or settings.lockout_duration_minutes <= 0 or account.lock_time is None:
            return False
        now = now or clock.utc_now()
        return account.lock_time + timedelta(minutes=settings.lockout_duration_minutes) <= now

    @staticmethod
    async def unlock(session: AsyncSession, account_id: int) -> bool:
        """Clear the lock and the failure counter. Returns False if it was not locked."""
        stmt = (
            update(Account)
            .where(Account.id == account_id, Account.locked)
            .values(locked=False, lock_time=None, failed_login_attempts=0)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def set_totp_secret(session: AsyncSession, account_id: int, secret: str) -> None:
        """Store a pending TOTP secret without activating it."""
        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(totp_secret=secret)
            .execution_options(synchronize_session=False)
        )
        await session.execute(stmt)

    @staticmethod
    async def activate_totp(session: AsyncSession, account_id: int, secret: str) -> bool:
        """Flip totp_enabled only if the stored secret is still the one the code was checked against."""
        stmt = (
            update(Account)
            .where(Account.id == account_id, Account.totp_secret == secret)
            .values(totp_enabled=True)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def clear_totp(session: AsyncSession, account_id: int) -> None:
        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(totp_enabled=False, totp_secret=None)
            .execution_options(synchronize_session=False)
        )
        await session.execute(stmt)

    @staticmethod
    async def update_password(
        session: AsyncSession, account_id: int, new_password: str, current_hash: str | None = None
    ) -> bool:
        """Replace the password hash and clear any lockout state.

        With ``current_hash`` the update only applies while the stored hash is
        still that value, so a reset link cannot be redeemed twice concurrently.
        """
        conditions = [Account.id == account_id]
        if current_hash is not None:
            conditions.append(Account.hashed_password == current_hash)
        stmt = (
            update(Account)
            .where(*conditions)
            .values(
                hashed_password=Account.hash_password(new_password),
                failed_login_attempts=0,
                locked=False,
                lock_time=None,
            )
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount == 1

    @staticmethod
    async def mark_email_verified(session: AsyncSession, account_id: int) -> None:
        stmt = (
            update(Account)
            .where(Account.id == account_id)
            .values(email_verified=True)
            .execution_options(synchronize_session=False)
        )
        await session.execute(stmt)
