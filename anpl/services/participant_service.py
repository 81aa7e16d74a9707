"""
Participant directory: partner lookup for doubles and family entries.
"""
from __future__ import annotations

from typing import List

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from anpl.models.models import Participant

MIN_QUERY_LENGTH = 3
MAX_RESULTS      = 10


async def search_participants(
    session: AsyncSession,
    query: str,
    limit: int = MAX_RESULTS,
) -> List[Participant]:
    """
    Case-insensitive substring match on name or registration number.
    Queries shorter than three characters return nothing.
    """
    needle = (query or "").strip()
    if len(needle) < MIN_QUERY_LENGTH:
        return []
    pattern = f"%{needle}%"
    result = await session.execute(
        select(Participant)
        .where(
            or_(
                Participant.full_name.ilike(pattern),
                Participant.registration_number.ilike(pattern),
            )
        )
        .order_by(Participant.full_name, Participant.id)
        .limit(limit)
    )
    return list(result.scalars().all())
