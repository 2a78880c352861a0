"""
IP Platform - Credential Expiry Sweep

Removes refresh sessions that are expired or revoked and password reset
tokens that are used or expired.

Runs on its own schedule, never on the request path. A failed sweep is
logged and retried on the next cycle.

Usage:
    task = asyncio.create_task(token_cleanup_loop(session_factory, 24 * 3600))
    ...
    task.cancel()
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlmodel import Session as DBSession

from ipplatform.auth import reset_tokens
from ipplatform.auth import sessions as session_store


logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    sessions_deleted: int
    reset_tokens_deleted: int


def run_token_cleanup(db: DBSession, now: Optional[datetime] = None) -> CleanupResult:
    """
    Run one sweep.

    Args:
        db: Database session
        now: Reference time (defaults to current UTC time)

    Returns:
        Counts of deleted rows per table
    """
    now = now or datetime.utcnow()
    result = CleanupResult(
        sessions_deleted=session_store.sweep_expired_or_revoked(db, now),
        reset_tokens_deleted=reset_tokens.sweep_used_or_expired(db, now),
    )
    logger.info(
        "Token cleanup removed %d refresh sessions and %d reset tokens",
        result.sessions_deleted,
        result.reset_tokens_deleted,
    )
    return result


def _sweep_once(session_factory: Callable[[], DBSession]) -> CleanupResult:
    with session_factory() as db:
        return run_token_cleanup(db)


async def token_cleanup_loop(
    session_factory: Callable[[], DBSession],
    interval_seconds: float,
) -> None:
    """
    Sweep forever at a fixed interval until cancelled.

    The blocking database work runs in a worker thread.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await asyncio.to_thread(_sweep_once, session_factory)
        except Exception:
            logger.exception("Token cleanup failed; retrying next cycle")
