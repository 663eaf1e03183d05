"""Periodic deletion of expired and revoked refresh tokens."""

import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from authcore.shared import clock

from .ledger import RefreshTokenLedger

logger = logging.getLogger(__name__)


async def sweep_once(session_factory: async_sessionmaker[AsyncSession]) -> int:
    """Run one sweep in its own transaction. Returns the number of deleted rows."""
    async with session_factory() as session:
        deleted = await RefreshTokenLedger.sweep_expired(session, clock.utc_now())
        await session.commit()
    logger.info(f"Refresh token sweep deleted {deleted} row(s)")
    return deleted


async def run_token_sweep(session_factory: async_sessionmaker[AsyncSession], interval_seconds: float) -> None:
    """Sweep forever until cancelled.

    A failed sweep is logged and retried on the next tick; only dead rows are
    touched, so an interrupted sweep is safe to repeat.
    """
    try:
        while True:
            try:
                await sweep_once(session_factory)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.error(f"Refresh token sweep failed: {exc}")
            await asyncio.sleep(interval_seconds)
    except asyncio.CancelledError:
        logger.info("Refresh token sweep task cancelled")
        raise
