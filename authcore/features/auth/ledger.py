"""Refresh token ledger: issue, rotate, revoke and sweep persisted refresh tokens."""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from authcore.features.account.models import Account
from authcore.features.account.service import AccountService
from authcore.shared import clock

from .exceptions import InvalidTokenException, RefreshTokenReusedException, TokenExpiredException
from .jwt_utils import create_access_token, mint_refresh_token
from .models import RefreshToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RotationResult:
    access_token: str
    refresh_token: str
    account: Account


class RefreshTokenLedger:
    """Sole owner of refresh token rows.

    None of these methods commit; the session manager decides the transaction
    boundary. ``rotate`` leaves the reuse revocation pending in the session when
    it raises ``RefreshTokenReusedException`` so the caller can commit it.
    """

    @staticmethod
    async def get(session: AsyncSession, token: str) -> RefreshToken | None:
        stmt = select(RefreshToken).where(RefreshToken.token == token).execution_options(populate_existing=True)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def issue(session: AsyncSession, account_id: int, ip_address: str | None = None) -> str:
        """Mint a refresh token and persist it as active.

        Other sessions of the same account are left untouched.
        """
        token, claims = mint_refresh_token(account_id)

        record = RefreshToken(
            account_id=account_id,
            token=token,
            jti=claims["jti"],
            expires_at=claims["exp"],
            created_at=claims["iat"],
            created_by_ip=ip_address,
        )
        session.add(record)
        await session.flush()

        logger.debug(f"Issued refresh token for account: {account_id}")
        return token

    @staticmethod
    async def rotate(session: AsyncSession, token: str, ip_address: str | None = None) -> RotationResult:
        """Exchange a refresh token for a new access/refresh pair.

        Raises:
            InvalidTokenException: Unknown token, inactive account, or a concurrent
                rotation of the same token won the race
            RefreshTokenReusedException: Token was already revoked; every token of
                the account is now revoked too
            TokenExpiredException: Token expired without being revoked

        """
        now = clock.utc_now()
        record = await RefreshTokenLedger.get(session, token)

        if record is None:
            raise InvalidTokenException(detail="Invalid refresh token")

        if record.revoked:
            revoked_count = await RefreshTokenLedger.revoke_all(session, record.account_id)
            logger.warning(
                f"SECURITY: revoked refresh token presented again; "
                f"revoked {revoked_count} token(s) for account: {record.account_id}"
            )
            raise RefreshTokenReusedException()

        if record.is_expired(now):
            raise TokenExpiredException()

        account = await AccountService.get_by_id(session, record.account_id)
        if account is None or not account.enabled:
            raise InvalidTokenException(detail="Account not found or disabled")

        # Compare-and-set: only the caller that flips revoked false -> true may continue
        claimed = await session.execute(
            update(RefreshToken)
            .where(RefreshToken.id == record.id, ~RefreshToken.revoked)
            .values(revoked=True, revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            logger.info(f"Concurrent rotation lost for account: {record.account_id}")
            raise InvalidTokenException(detail="Refresh token has already been rotated")

        new_refresh_token = await RefreshTokenLedger.issue(session, account.id, ip_address)
        await session.execute(
            update(RefreshToken)
            .where(RefreshToken.id == record.id)
            .values(replaced_by=new_refresh_token)
            .execution_options(synchronize_session=False)
        )
        access_token = create_access_token(account.id, account.email)

        logger.debug(f"Rotated refresh token for account: {account.id}")
        return RotationResult(access_token=access_token, refresh_token=new_refresh_token, account=account)

    @staticmethod
    async def revoke(session: AsyncSession, token: str) -> bool:
        """Revoke one token. Returns False if it was unknown or already revoked."""
        result = await session.execute(
            update(RefreshToken)
            .where(RefreshToken.token == token, ~RefreshToken.revoked)
            .values(revoked=True, revoked_at=clock.utc_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def revoke_all(session: AsyncSession, account_id: int) -> int:
        """Revoke every unrevoked token of the account. Returns how many were revoked."""
        result = await session.execute(
            update(RefreshToken)
            .where(RefreshToken.account_id == account_id, ~RefreshToken.revoked)
            .values(revoked=True, revoked_at=clock.utc_now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    @staticmethod
    async def count_active(session: AsyncSession, account_id: int) -> int:
        now = clock.utc_now()
        stmt = (
            select(func.count())
            .select_from(RefreshToken)
            .where(RefreshToken.account_id == account_id, ~RefreshToken.revoked, RefreshToken.expires_at > now)
        )
        return (await session.execute(stmt)).scalar_one()

    @staticmethod
    async def sweep_expired(session: AsyncSession, now: datetime | None = None) -> int:
        """Delete rows that are expired or revoked. Returns how many were deleted."""
        now = now or clock.utc_now()
        result = await session.execute(
            delete(RefreshToken)
            .where(or_(RefreshToken.expires_at <= now, RefreshToken.revoked))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
