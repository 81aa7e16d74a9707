"""
SQLAlchemy declarative base, async engine/session factory and the
request-scoped transaction helper.
"""
from __future__ import annotations

import functools
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, List, Union

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Session

from anpl.config import settings

logger = logging.getLogger(__name__)

_AFTER_COMMIT_KEY = "anpl_after_commit"


class Base(DeclarativeBase):
    pass


engine = create_async_engine(
    settings.async_database_url,
    echo=False,
    pool_pre_ping=True,
)

AsyncSessionFactory: async_sessionmaker[AsyncSession] = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Post-commit callbacks ─────────────────────────────────────────────────────

def defer_until_commit(
    session: AsyncSession,
    func: Callable[..., Awaitable[Any]],
    *args: Any,
) -> None:
    """Queue `await func(*args)` to run once the current transaction commits."""
    session.info.setdefault(_AFTER_COMMIT_KEY, []).append(functools.partial(func, *args))


def drop_deferred(session: Union[AsyncSession, Session]) -> int:
    """Forget everything queued on a transaction that is being rolled back."""
    dropped = len(session.info.pop(_AFTER_COMMIT_KEY, []))
    if dropped:
        logger.debug("Dropped %d post-commit callbacks", dropped)
    return dropped


@event.listens_for(Session, "after_soft_rollback")
def _drop_on_rollback(session: Session, previous_transaction) -> None:
    drop_deferred(session)


async def run_deferred(session: AsyncSession) -> int:
    """Run the queued callbacks after a commit. Returns how many ran."""
    pending: List[Callable[[], Awaitable[Any]]] = session.info.pop(_AFTER_COMMIT_KEY, [])
    for callback in pending:
        try:
            await callback()
        except Exception:
            logger.exception("Post-commit callback %r failed", callback)
    return len(pending)


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] = AsyncSessionFactory,
) -> AsyncIterator[AsyncSession]:
    """
    One inbound operation == one transaction.
    Commits when the block exits cleanly, rolls back if it raises.
    Callbacks queued with defer_until_commit run only after a successful
    commit; any rollback discards them.
    """
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        await run_deferred(session)
