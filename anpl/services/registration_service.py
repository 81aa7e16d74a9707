"""
Single-entry registration lifecycle (cricket and generic events).

    PENDING ──► APPROVED
       │
       └──────► FAILED

APPROVED and FAILED are terminal. A participant holds at most one live
(non-FAILED) registration per event; jersey numbers are unique among live
registrations of an event. Both rules are backed by partial unique indexes,
and a violation raised by the database is reported as the matching domain
error rather than a generic failure.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from aiogram import Bot
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from anpl.errors import (
    AlreadyRegistered,
    AlreadyTaken,
    InvalidEvent,
    NotFound,
    ValidationFailed,
    domain_operation,
)
from anpl.models.base import defer_until_commit
from anpl.models.models import (
    Event,
    EventType,
    Participant,
    Registration,
    RegistrationStatus,
)
from anpl.services.notification_service import notify_registration_status
from anpl.validators import CricketRegistrationRequest, EventFields

logger = logging.getLogger(__name__)


def make_registration_number() -> str:
    """ANPL + 8 random upper-case characters."""
    return "ANPL" + uuid.uuid4().hex[:8].upper()


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ── Guarded transitions ───────────────────────────────────────────────────────

def transition_status(entity, new_status: str) -> bool:
    """
    Move a Registration or Bundle to a terminal status.

    Only PENDING → APPROVED / FAILED is a real transition. Re-applying the
    current status, or trying to leave a terminal one, is a no-op.
    Returns True when the status actually changed.
    """
    current = entity.status
    if current == new_status:
        return False
    if current in RegistrationStatus.TERMINAL or new_status not in RegistrationStatus.TERMINAL:
        logger.warning(
            "Ignoring %s transition %s → %s for id=%s",
            type(entity).__name__, current, new_status, entity.id,
        )
        return False
    entity.status = new_status
    for entry in getattr(entity, "entries", ()):
        entry.status = new_status
    logger.info("%s %s: %s → %s", type(entity).__name__, entity.id, current, new_status)
    return True


# ── Lookups ───────────────────────────────────────────────────────────────────

async def find_live_registration(
    session: AsyncSession,
    participant_id: int,
    event_id: int,
) -> Optional[Registration]:
    result = await session.execute(
        select(Registration)
        .where(
            Registration.participant_id == participant_id,
            Registration.event_id == event_id,
            Registration.status != RegistrationStatus.FAILED,
        )
        .order_by(Registration.id.desc())
    )
    return result.scalars().first()


async def jersey_taken(
    session: AsyncSession,
    event_id: int,
    jersey_number: int,
    exclude_registration_id: Optional[int] = None,
) -> bool:
    q = select(Registration.id).where(
        Registration.event_id == event_id,
        Registration.jersey_number == jersey_number,
        Registration.status != RegistrationStatus.FAILED,
    )
    if exclude_registration_id is not None:
        q = q.where(Registration.id != exclude_registration_id)
    result = await session.execute(q.limit(1))
    return result.scalar_one_or_none() is not None


async def load_registration(session: AsyncSession, registration_id: int) -> Optional[Registration]:
    result = await session.execute(
        select(Registration)
        .where(Registration.id == registration_id)
        .options(
            selectinload(Registration.participant),
            selectinload(Registration.event),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ── State machine operations ──────────────────────────────────────────────────

async def create_or_reuse(
    session: AsyncSession,
    participant_id: int,
    event_id: int,
) -> Registration:
    """
    APPROVED registration present → AlreadyRegistered.
    PENDING registration present  → reused as-is (idempotent resubmission).
    Otherwise a new PENDING registration is created.
    """
    existing = await find_live_registration(session, participant_id, event_id)
    if existing is not None:
        if existing.status == RegistrationStatus.APPROVED:
            raise AlreadyRegistered("You are already registered for this event")
        logger.info("Reusing pending registration %d", existing.id)
        return existing

    registration = Registration(
        participant_id=participant_id,
        event_id=event_id,
        status=RegistrationStatus.PENDING,
        registration_category=None,
        team_role=None,
        jersey_number=None,
        tshirt_name=None,
        available_all_days=None,
        unavailable_dates=None,
        terms_accepted=False,
        terms_accepted_at=None,
    )
    session.add(registration)
    try:
        await session.flush()
    except IntegrityError as e:
        # a concurrent request won the race for (participant, event)
        raise AlreadyRegistered("You are already registered for this event") from e
    logger.info(
        "Registration %d created for participant %d, event %d",
        registration.id, participant_id, event_id,
    )
    return registration


async def apply_event_specific_fields(
    session: AsyncSession,
    registration: Registration,
    fields: EventFields,
) -> Registration:
    """
    Jersey uniqueness first, then category / availability / terms.
    The terms timestamp is stamped on the first true acceptance only.
    """
    jersey = fields.jersey_number
    if jersey is not None and jersey != registration.jersey_number:
        if await jersey_taken(session, registration.event_id, jersey, registration.id):
            raise AlreadyTaken(f"Jersey number {jersey} is already taken for this event.")

    registration.jersey_number         = jersey
    registration.tshirt_name           = fields.tshirt_name
    registration.registration_category = fields.registration_category
    registration.team_role             = fields.team_role
    registration.available_all_days    = fields.available_all_days
    if fields.available_all_days:
        registration.unavailable_dates = None
    else:
        registration.unavailable_dates = ",".join(fields.unavailable_dates) or None

    if fields.terms_accepted:
        if not registration.terms_accepted or registration.terms_accepted_at is None:
            registration.terms_accepted_at = _now()
        registration.terms_accepted = True
    else:
        registration.terms_accepted = False

    try:
        await session.flush()
    except IntegrityError as e:
        raise AlreadyTaken(f"Jersey number {jersey} is already taken for this event.") from e
    return registration


# ── Public operations ─────────────────────────────────────────────────────────

async def _get_event(session: AsyncSession, event_id: int) -> Event:
    event = await session.get(Event, event_id)
    if event is None:
        raise NotFound("Event not found")
    return event


async def _get_participant(session: AsyncSession, participant_id: int) -> Participant:
    participant = await session.get(Participant, participant_id)
    if participant is None:
        raise NotFound("Participant not found")
    return participant


@domain_operation
async def create_registration(
    session: AsyncSession,
    participant_id: int,
    event_id: int,
    fields: Optional[EventFields] = None,
) -> Registration:
    """Generic single-entry registration (no sport-specific profile)."""
    await _get_participant(session, participant_id)
    event = await _get_event(session, event_id)
    if not event.registration_open(_now()):
        raise InvalidEvent("Registrations for this event are closed")
    registration = await create_or_reuse(session, participant_id, event_id)
    if fields is not None:
        await apply_event_specific_fields(session, registration, fields)
    return registration


def _event_dates(event: Event) -> List[str]:
    if event.event_start_date is None or event.event_end_date is None:
        return []
    if event.event_end_date < event.event_start_date:
        return []
    days = (event.event_end_date - event.event_start_date).days
    return [(event.event_start_date + timedelta(days=i)).isoformat() for i in range(days + 1)]


def _validate_availability(request: CricketRegistrationRequest, event: Event) -> None:
    if request.available_all_days is None:
        raise ValidationFailed("Availability selection is required")
    if request.available_all_days:
        return
    if not request.unavailable_dates:
        raise ValidationFailed("Please select at least one date you are unavailable")
    schedule = _event_dates(event)
    if not schedule:
        raise ValidationFailed("Event dates are not configured. Please contact the organizers.")
    for d in request.unavailable_dates:
        if d not in schedule:
            raise ValidationFailed(f"Selected date {d} is outside the event schedule")


def _refresh_profile(participant: Participant, request: CricketRegistrationRequest) -> None:
    participant.gender              = request.gender
    participant.tshirt_size         = request.tshirt_size
    participant.residential_address = request.residential_address
    participant.whatsapp_number     = request.whatsapp_number
    participant.id_front_photo      = request.id_front_photo
    participant.id_back_photo       = request.id_back_photo
    participant.player_photo        = request.player_photo


@domain_operation
async def register_for_event(
    session: AsyncSession,
    participant_id: int,
    request: CricketRegistrationRequest,
) -> Registration:
    """
    Cricket registration in one go: profile refresh, create-or-reuse and
    event fields. The result is PENDING and ready for payment.
    """
    event = await _get_event(session, request.event_id)
    if not event.is_type(EventType.CRICKET):
        raise InvalidEvent("This registration is only for cricket events")
    _validate_availability(request, event)

    participant = await _get_participant(session, participant_id)
    registration = await create_or_reuse(session, participant.id, event.id)
    await apply_event_specific_fields(session, registration, request)
    _refresh_profile(participant, request)
    await session.flush()
    logger.info("Cricket registration %d ready for payment", registration.id)
    return registration


@domain_operation
async def update_registration_status(
    session: AsyncSession,
    registration_id: int,
    status: str,
    bot: Optional[Bot] = None,
) -> Registration:
    """
    Administrative override outside the payment flow.
    Terminal states stay terminal; re-applying the current status is a no-op.
    The participant is messaged only once the surrounding transaction commits.
    """
    if status not in RegistrationStatus.TERMINAL:
        raise ValidationFailed(f"Unsupported status {status}")
    registration = await load_registration(session, registration_id)
    if registration is None:
        raise NotFound("Registration not found")
    if registration.status in RegistrationStatus.TERMINAL and registration.status != status:
        raise ValidationFailed(f"Registration is already {registration.status}")

    if transition_status(registration, status):
        await session.flush()
        if bot is not None:
            defer_until_commit(
                session, notify_registration_status,
                bot, registration.participant, registration.event, status,
            )
    return registration


@domain_operation
async def get_registration(session: AsyncSession, registration_id: int) -> Registration:
    registration = await load_registration(session, registration_id)
    if registration is None:
        raise NotFound("Registration not found")
    return registration


# ── Listings ──────────────────────────────────────────────────────────────────

@dataclass
class RegistrationSummary:
    """One row of the organiser's registration list."""
    registration_id:     int
    registration_number: str
    status:              str
    participant_id:      int
    full_name:           str
    phone_number:        Optional[str]
    event_id:            int
    event_name:          str
    event_type:          str
    jersey_number:       Optional[int]
    available_all_days:  Optional[bool]
    created_at:          Optional[datetime]


async def list_registrations(
    session: AsyncSession,
    event_type: Optional[str] = None,
    status: Optional[str] = None,
    include_failed: bool = False,
    participant_id: Optional[int] = None,
) -> List[RegistrationSummary]:
    q = (
        select(Registration)
        .join(Event, Registration.event_id == Event.id)
        .options(
            selectinload(Registration.participant),
            selectinload(Registration.event),
        )
        .order_by(Registration.created_at.desc(), Registration.id.desc())
        .execution_options(populate_existing=True)
    )
    if not include_failed:
        q = q.where(Registration.status != RegistrationStatus.FAILED)
    if event_type:
        q = q.where(Event.event_type == event_type.upper())
    if status:
        q = q.where(Registration.status == status)
    if participant_id is not None:
        q = q.where(Registration.participant_id == participant_id)
    result = await session.execute(q)
    return [
        RegistrationSummary(
            registration_id=r.id,
            registration_number=r.participant.registration_number,
            status=r.status,
            participant_id=r.participant.id,
            full_name=r.participant.full_name,
            phone_number=r.participant.phone_number,
            event_id=r.event.id,
            event_name=r.event.name,
            event_type=r.event.event_type,
            jersey_number=r.jersey_number,
            available_all_days=r.available_all_days,
            created_at=r.created_at,
        )
        for r in result.scalars().all()
    ]


async def get_participant_registrations(
    session: AsyncSession,
    participant_id: int,
) -> List[Registration]:
    """Every registration of one participant, newest first, FAILED ones included."""
    result = await session.execute(
        select(Registration)
        .where(Registration.participant_id == participant_id)
        .options(selectinload(Registration.event))
        .order_by(Registration.created_at.desc(), Registration.id.desc())
    )
    return list(result.scalars().all())


async def is_registration_complete(session: AsyncSession, registration_id: int) -> bool:
    """Everything needed before payment is in place (terms + documents)."""
    registration = await load_registration(session, registration_id)
    if registration is None or not registration.terms_accepted:
        return False
    return registration.participant.has_documents
