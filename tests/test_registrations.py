"""
Integration tests — Single-entry registrations (registration_service.py).

Coverage:
  - create / reuse / AlreadyRegistered
  - jersey uniqueness per event, including the database-level race
  - event-specific fields (availability, terms timestamp)
  - combined cricket registration
  - administrative status override and its notification
  - admin listing
"""
from __future__ import annotations

from datetime import date, datetime
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import func, select

from anpl.errors import ErrorKind
from anpl.models.base import run_deferred
from anpl.models.models import EventType, Participant, Registration, RegistrationStatus
from anpl.services import registration_service
from anpl.services.registration_service import (
    apply_event_specific_fields,
    create_registration,
    get_participant_registrations,
    get_registration,
    is_registration_complete,
    list_registrations,
    make_registration_number,
    register_for_event,
    transition_status,
    update_registration_status,
)
from anpl.validators import CricketRegistrationRequest, EventFields
from tests.conftest import make_event, make_participant


async def _live_count(session) -> int:
    return await session.scalar(
        select(func.count()).select_from(Registration)
        .where(Registration.status != RegistrationStatus.FAILED)
    )


async def _status(session, registration_id: int) -> str:
    return await session.scalar(select(Registration.status).where(Registration.id == registration_id))


def _cricket_request(event_id: int, **overrides) -> CricketRegistrationRequest:
    data = dict(
        event_id=event_id,
        gender="MALE",
        tshirt_size="L",
        residential_address="B-402, Green Park",
        whatsapp_number="9876543210",
        id_front_photo="docs/front.jpg",
        id_back_photo="docs/back.jpg",
        player_photo="docs/player.jpg",
        jersey_number=7,
        tshirt_name="Rahul",
        team_role="BATTING",
        available_all_days=True,
        terms_accepted=True,
    )
    data.update(overrides)
    return CricketRegistrationRequest(**data)


class TestRegistrationNumber:
    def test_format(self) -> None:
        n = make_registration_number()
        assert n.startswith("ANPL")
        assert len(n) == 12
        assert n[4:] == n[4:].upper()


# ─────────────────────────── Create / reuse ───────────────────────────────────

class TestCreateRegistration:
    async def test_new_registration_is_pending(self, async_session) -> None:
        p = await make_participant(async_session)
        e = await make_event(async_session)

        reg, err = await create_registration(async_session, p.id, e.id)
        await async_session.commit()

        assert err is None
        assert reg.status == RegistrationStatus.PENDING
        assert reg.participant_id == p.id

    async def test_pending_registration_is_reused(self, async_session) -> None:
        p = await make_participant(async_session)
        e = await make_event(async_session)

        first, _ = await create_registration(async_session, p.id, e.id)
        await async_session.commit()
        second, err = await create_registration(async_session, p.id, e.id)

        assert err is None
        assert second.id == first.id
        assert await _live_count(async_session) == 1

    async def test_approved_registration_blocks_new_one(self, async_session) -> None:
        p = await make_participant(async_session)
        e = await make_event(async_session)
        p_id, e_id = p.id, e.id
        reg, _ = await create_registration(async_session, p_id, e_id)
        reg.status = RegistrationStatus.APPROVED
        await async_session.commit()

        again, err = await create_registration(async_session, p_id, e_id)
        assert again is None
        assert err.kind == ErrorKind.ALREADY_EXISTS
        assert err.message == "You are already registered for this event"

    async def test_failed_registration_allows_retry(self, async_session) -> None:
        p = await make_participant(async_session)
        e = await make_event(async_session)
        old, _ = await create_registration(async_session, p.id, e.id)
        old.status = RegistrationStatus.FAILED
        await async_session.commit()

        new, err = await create_registration(async_session, p.id, e.id)
        await async_session.commit()

        assert err is None
        assert new.id != old.id
        assert new.status == RegistrationStatus.PENDING

    async def test_concurrent_insert_reported_as_already_registered(self, async_session, monkeypatch) -> None:
        p = await make_participant(async_session)
        e = await make_event(async_session)
        p_id, e_id = p.id, e.id
        await create_registration(async_session, p_id, e_id)
        await async_session.commit()

        # the other request's row is invisible to the lookup, only the index catches it
        async def _nothing(*args, **kwargs):
            return None
        monkeypatch.setattr(registration_service, "find_live_registration", _nothing)

        _, err = await create_registration(async_session, p_id, e_id)
        assert err.kind == ErrorKind.ALREADY_EXISTS
        assert await _live_count(async_session) == 1

    async def test_unknown_event(self, async_session) -> None:
        p = await make_participant(async_session)
        _, err = await create_registration(async_session, p.id, 404)
        assert err.kind == ErrorKind.NOT_FOUND

    async def test_inactive_event_is_closed(self, async_session) -> None:
        p = await make_participant(async_session)
        e = await make_event(async_session, active=False)
        _, err = await create_registration(async_session, p.id, e.id)
        assert err.message == "Registrations for this event are closed"
        assert await _live_count(async_session) == 0

    async def test_registration_window_has_ended(self, async_session) -> None:
        p = await make_participant(async_session)
        e = await make_event(async_session, registration_end_date=datetime(2020, 1, 1))
        _, err = await create_registration(async_session, p.id, e.id)
        assert err.message == "Registrations for this event are closed"


# ─────────────────────────── Jersey numbers ──────────────────────────────────

class TestJerseyNumbers:
    async def _registered(self, session, name: str, event_id: int, jersey: int) -> int:
        p = await make_participant(session, name)
        reg, err = await create_registration(session, p.id, event_id, EventFields(jersey_number=jersey))
        assert err is None
        await session.commit()
        return reg.id

    async def test_taken_number_rejected(self, async_session) -> None:
        e = await make_event(async_session)
        e_id = e.id
        await self._registered(async_session, "First Player", e_id, 7)
        other = await make_participant(async_session, "Second Player")
        other_id = other.id

        _, err = await create_registration(async_session, other_id, e_id, EventFields(jersey_number=7))
        assert err.kind == ErrorKind.ALREADY_TAKEN
        assert err.message == "Jersey number 7 is already taken for this event."

    async def test_resubmitting_own_number(self, async_session) -> None:
        e = await make_event(async_session)
        reg_id = await self._registered(async_session, "First Player", e.id, 7)
        reg = await async_session.get(Registration, reg_id)

        await apply_event_specific_fields(async_session, reg, EventFields(jersey_number=7, tshirt_name="Kohli"))
        await async_session.commit()
        assert reg.jersey_number == 7
        assert reg.tshirt_name == "Kohli"

    async def test_same_number_in_other_event(self, async_session) -> None:
        e1 = await make_event(async_session, "Cricket 2025")
        e2 = await make_event(async_session, "Cricket 2026")
        await self._registered(async_session, "First Player", e1.id, 7)
        await self._registered(async_session, "Second Player", e2.id, 7)

    async def test_failed_registration_frees_number(self, async_session) -> None:
        e = await make_event(async_session)
        reg_id = await self._registered(async_session, "First Player", e.id, 7)
        reg = await async_session.get(Registration, reg_id)
        reg.status = RegistrationStatus.FAILED
        await async_session.commit()

        await self._registered(async_session, "Second Player", e.id, 7)

    async def test_concurrent_jersey_claim_reported_as_taken(self, async_session, monkeypatch) -> None:
        e = await make_event(async_session)
        e_id = e.id
        await self._registered(async_session, "First Player", e_id, 7)
        other = await make_participant(async_session, "Second Player")
        other_id = other.id

        async def _free(*args, **kwargs):
            return False
        monkeypatch.setattr(registration_service, "jersey_taken", _free)

        _, err = await create_registration(async_session, other_id, e_id, EventFields(jersey_number=7))
        assert err.kind == ErrorKind.ALREADY_TAKEN
        assert await _live_count(async_session) == 1


# ─────────────────────────── Event fields ────────────────────────────────────

class TestEventFields:
    async def test_terms_timestamp_stamped_once(self, async_session) -> None:
        p = await make_participant(async_session)
        e = await make_event(async_session)
        reg, _ = await create_registration(async_session, p.id, e.id, EventFields(terms_accepted=True))
        await async_session.commit()
        stamped = reg.terms_accepted_at
        assert stamped is not None

        await apply_event_specific_fields(async_session, reg, EventFields(terms_accepted=True))
        assert reg.terms_accepted_at == stamped

    async def test_all_days_clears_exceptions(self, async_session) -> None:
        p = await make_participant(async_session)
        e = await make_event(async_session)
        reg, _ = await create_registration(
            async_session, p.id, e.id,
            EventFields(available_all_days=False, unavailable_dates=["2025-01-04"]),
        )
        assert reg.unavailable_date_list == ["2025-01-04"]

        await apply_event_specific_fields(async_session, reg, EventFields(available_all_days=True))
        assert reg.unavailable_dates is None

    async def test_registration_complete(self, async_session) -> None:
        p = await make_participant(async_session)
        e = await make_event(async_session)
        reg, _ = await create_registration(async_session, p.id, e.id)
        assert await is_registration_complete(async_session, reg.id) is False

        await apply_event_specific_fields(async_session, reg, EventFields(terms_accepted=True))
        assert await is_registration_complete(async_session, reg.id) is True


# ─────────────────────────── Cricket flow ────────────────────────────────────

class TestRegisterForEvent:
    async def _event(self, session):
        return await make_event(
            session, event_start_date=date(2025, 1, 4), event_end_date=date(2025, 1, 6),
        )

    async def test_full_registration(self, async_session) -> None:
        p = await make_participant(async_session, documents=False)
        e = await self._event(async_session)

        reg, err = await register_for_event(async_session, p.id, _cricket_request(e.id))
        await async_session.commit()

        assert err is None
        assert reg.status == RegistrationStatus.PENDING
        assert reg.jersey_number == 7
        assert reg.team_role == "BATTING"
        participant = await async_session.get(Participant, p.id)
        assert participant.has_documents
        assert participant.whatsapp_number == "9876543210"

    async def test_unavailable_dates_inside_schedule(self, async_session) -> None:
        p = await make_participant(async_session)
        e = await self._event(async_session)
        req = _cricket_request(e.id, available_all_days=False, unavailable_dates=["2025-01-05"])

        reg, err = await register_for_event(async_session, p.id, req)
        assert err is None
        assert reg.unavailable_date_list == ["2025-01-05"]

    async def test_date_outside_schedule(self, async_session) -> None:
        p = await make_participant(async_session)
        e = await self._event(async_session)
        p_id, e_id = p.id, e.id
        req = _cricket_request(e_id, available_all_days=False, unavailable_dates=["2025-02-01"])

        _, err = await register_for_event(async_session, p_id, req)
        assert err.kind == ErrorKind.VALIDATION
        assert err.message == "Selected date 2025-02-01 is outside the event schedule"

    async def test_requires_cricket_event(self, async_session) -> None:
        p = await make_participant(async_session)
        e = await make_event(async_session, "Badminton 2025", EventType.BADMINTON)
        p_id, e_id = p.id, e.id

        _, err = await register_for_event(async_session, p_id, _cricket_request(e_id))
        assert err.kind == ErrorKind.VALIDATION


# ─────────────────────────── Admin override ──────────────────────────────────

class TestUpdateRegistrationStatus:
    async def _pending(self, session, telegram_id=None) -> int:
        p = await make_participant(session, telegram_id=telegram_id)
        e = await make_event(session)
        reg, _ = await create_registration(session, p.id, e.id)
        await session.commit()
        return reg.id

    async def test_approve_notifies(self, async_session) -> None:
        reg_id = await self._pending(async_session, telegram_id=5551)
        bot = AsyncMock()

        reg, err = await update_registration_status(async_session, reg_id, RegistrationStatus.APPROVED, bot)
        await async_session.commit()

        assert err is None
        assert reg.status == RegistrationStatus.APPROVED
        bot.send_message.assert_not_awaited()
        assert await run_deferred(async_session) == 1
        bot.send_message.assert_awaited_once()
        assert bot.send_message.await_args.kwargs["chat_id"] == 5551

    async def test_same_status_is_noop(self, async_session) -> None:
        reg_id = await self._pending(async_session, telegram_id=5551)
        await update_registration_status(async_session, reg_id, RegistrationStatus.APPROVED)
        await async_session.commit()
        bot = AsyncMock()

        reg, err = await update_registration_status(async_session, reg_id, RegistrationStatus.APPROVED, bot)
        assert err is None
        bot.send_message.assert_not_awaited()

    async def test_terminal_status_is_final(self, async_session) -> None:
        reg_id = await self._pending(async_session)
        await update_registration_status(async_session, reg_id, RegistrationStatus.APPROVED)
        await async_session.commit()

        _, err = await update_registration_status(async_session, reg_id, RegistrationStatus.FAILED)
        assert err.kind == ErrorKind.VALIDATION
        assert await _status(async_session, reg_id) == RegistrationStatus.APPROVED

    async def test_pending_is_not_a_target(self, async_session) -> None:
        reg_id = await self._pending(async_session)
        _, err = await update_registration_status(async_session, reg_id, RegistrationStatus.PENDING)
        assert err.kind == ErrorKind.VALIDATION

    async def test_missing_registration(self, async_session) -> None:
        _, err = await update_registration_status(async_session, 404, RegistrationStatus.APPROVED)
        assert err.kind == ErrorKind.NOT_FOUND


class TestTransitionStatus:
    @pytest.mark.parametrize("current,target,changed", [
        (RegistrationStatus.PENDING,  RegistrationStatus.APPROVED, True),
        (RegistrationStatus.PENDING,  RegistrationStatus.FAILED,   True),
        (RegistrationStatus.APPROVED, RegistrationStatus.APPROVED, False),
        (RegistrationStatus.APPROVED, RegistrationStatus.FAILED,   False),
        (RegistrationStatus.FAILED,   RegistrationStatus.APPROVED, False),
        (RegistrationStatus.FAILED,   RegistrationStatus.PENDING,  False),
    ])
    def test_guard(self, current: str, target: str, changed: bool) -> None:
        reg = Registration(status=current)
        assert transition_status(reg, target) is changed
        assert reg.status == (target if changed else current)


# ─────────────────────────── Listing ─────────────────────────────────────────

class TestListRegistrations:
    async def test_filters(self, async_session) -> None:
        cricket = await make_event(async_session)
        badminton = await make_event(async_session, "Badminton 2025", EventType.BADMINTON)
        a = await make_participant(async_session, "Player A")
        b = await make_participant(async_session, "Player B")
        c = await make_participant(async_session, "Player C")
        await create_registration(async_session, a.id, cricket.id)
        failed, _ = await create_registration(async_session, b.id, cricket.id)
        failed.status = RegistrationStatus.FAILED
        await create_registration(async_session, c.id, badminton.id)
        await async_session.commit()

        rows = await list_registrations(async_session)
        assert {r.full_name for r in rows} == {"Player A", "Player C"}

        rows = await list_registrations(async_session, event_type="cricket", include_failed=True)
        assert {r.full_name for r in rows} == {"Player A", "Player B"}

        rows = await list_registrations(async_session, status=RegistrationStatus.FAILED, include_failed=True)
        assert [r.full_name for r in rows] == ["Player B"]

        rows = await list_registrations(async_session, participant_id=c.id)
        assert [(r.full_name, r.event_name) for r in rows] == [("Player C", "Badminton 2025")]

    async def test_participant_history_includes_failed(self, async_session) -> None:
        p = await make_participant(async_session)
        other = await make_participant(async_session, "Someone Else")
        e = await make_event(async_session)
        first, _ = await create_registration(async_session, p.id, e.id)
        first.status = RegistrationStatus.FAILED
        await async_session.commit()
        second, _ = await create_registration(async_session, p.id, e.id)
        await create_registration(async_session, other.id, e.id)
        await async_session.commit()

        history = await get_participant_registrations(async_session, p.id)
        assert [r.id for r in history] == [second.id, first.id]
        assert [r.status for r in history] == [RegistrationStatus.PENDING, RegistrationStatus.FAILED]
        assert history[0].event.name == "Cricket 2025"

    async def test_get_registration(self, async_session) -> None:
        p = await make_participant(async_session)
        e = await make_event(async_session)
        reg, _ = await create_registration(async_session, p.id, e.id)
        await async_session.commit()

        fetched, err = await get_registration(async_session, reg.id)
        assert err is None
        assert fetched.event.name == "Cricket 2025"
