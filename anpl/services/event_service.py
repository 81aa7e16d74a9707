"""
Event catalogue: what residents can register for, and the organiser's
open / close switch.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from anpl.errors import NotFound, domain_operation
from anpl.models.models import Event

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


async def list_events(
    session: AsyncSession,
    event_type: Optional[str] = None,
) -> List[Event]:
    q = select(Event).order_by(Event.year.desc(), Event.created_at.desc(), Event.id.desc())
    if event_type:
        q = q.where(Event.event_type == event_type.upper())
    result = await session.execute(q)
    return list(result.scalars().all())


async def list_active_events(
    session: AsyncSession,
    event_type: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[Event]:
    """Events visible to residents: active and inside the registration window."""
    now = now or _now()
    q = (
        select(Event)
        .where(
            Event.active.is_(True),
            or_(Event.registration_start_date.is_(None), Event.registration_start_date <= now),
            or_(Event.registration_end_date.is_(None), Event.registration_end_date > now),
        )
        .order_by(Event.event_start_date.asc().nullslast(), Event.id)
    )
    if event_type:
        q = q.where(Event.event_type == event_type.upper())
    result = await session.execute(q)
    return list(result.scalars().all())


@domain_operation
async def get_event(session: AsyncSession, event_id: int) -> Event:
    event = await session.get(Event, event_id)
    if event is None:
        raise NotFound("Event not found")
    return event


@domain_operation
async def toggle_event(session: AsyncSession, event_id: int) -> Event:
    """Open or close registrations for an event. Existing registrations are kept."""
    event = await session.get(Event, event_id)
    if event is None:
        raise NotFound("Event not found")
    event.active = not event.active
    await session.flush()
    logger.info("Event %d (%s) is now %s", event.id, event.name, "active" if event.active else "inactive")
    return event
