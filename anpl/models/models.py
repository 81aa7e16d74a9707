"""
ORM models for the ANPL registration platform.

Domain overview
---------------
Participant  — a registered resident (may play, may be someone's partner)
Event        — a yearly tournament (CRICKET / BADMINTON)
  ├─ Registration  — single-entry enrollment (cricket and generic events)
  └─ Bundle        — badminton purchase unit, paid together
       └─ Entry    — one category registration inside the bundle
Category     — badminton division (SOLO / DOUBLE / FAMILY)
Payment      — one gateway order issued for a Registration or a Bundle
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from anpl.models.base import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ─────────────────────────── Constants ────────────────────────────────────────

class Gender:
    MALE   = "MALE"
    FEMALE = "FEMALE"

    ALL = (MALE, FEMALE)


class EventType:
    CRICKET   = "CRICKET"
    BADMINTON = "BADMINTON"


class CategoryType:
    SOLO   = "SOLO"    # single participant, no partner details
    DOUBLE = "DOUBLE"  # partner required, no relation metadata
    FAMILY = "FAMILY"  # partner required along with relationship context

    ALL = (SOLO, DOUBLE, FAMILY)

    PLAYERS_PER_ENTRY: dict[str, int] = {
        SOLO:   1,
        DOUBLE: 2,
        FAMILY: 2,
    }


class RegistrationStatus:
    PENDING  = "PENDING"   # created at validated submission, awaiting payment
    APPROVED = "APPROVED"  # payment confirmed (terminal)
    FAILED   = "FAILED"    # payment failed / rejected (terminal)

    ALL      = (PENDING, APPROVED, FAILED)
    TERMINAL = (APPROVED, FAILED)


class PaymentStatus:
    PENDING   = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED    = "FAILED"

    TERMINAL = (COMPLETED, FAILED)


# ─────────────────────────── Models ───────────────────────────────────────────

class Participant(Base):
    """A resident who can register, pay, or be named as someone's partner."""
    __tablename__ = "participants"

    id:                  Mapped[int]            = mapped_column(Integer, primary_key=True, autoincrement=True)
    registration_number: Mapped[str]            = mapped_column(String(20), unique=True, index=True)
    full_name:           Mapped[str]            = mapped_column(String(255))
    date_of_birth:       Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    gender:              Mapped[Optional[str]]  = mapped_column(String(10), nullable=True)  # Gender.*
    email:               Mapped[Optional[str]]  = mapped_column(String(255), nullable=True)
    phone_number:        Mapped[Optional[str]]  = mapped_column(String(20), nullable=True)
    whatsapp_number:     Mapped[Optional[str]]  = mapped_column(String(20), nullable=True)
    residential_address: Mapped[Optional[str]]  = mapped_column(String(500), nullable=True)
    tshirt_size:         Mapped[Optional[str]]  = mapped_column(String(10), nullable=True)
    telegram_id:         Mapped[Optional[int]]  = mapped_column(BigInteger, nullable=True)
    id_front_photo:      Mapped[Optional[str]]  = mapped_column(String(500), nullable=True)
    id_back_photo:       Mapped[Optional[str]]  = mapped_column(String(500), nullable=True)
    player_photo:        Mapped[Optional[str]]  = mapped_column(String(500), nullable=True)
    created_at:          Mapped[datetime]       = mapped_column(DateTime, default=_utcnow)

    @property
    def has_documents(self) -> bool:
        return bool(
            self.id_front_photo and self.id_front_photo.strip()
            and self.id_back_photo and self.id_back_photo.strip()
        )


class Event(Base):
    """A yearly tournament participants register for."""
    __tablename__ = "events"

    id:               Mapped[int]            = mapped_column(Integer, primary_key=True, autoincrement=True)
    name:             Mapped[str]            = mapped_column(String(255))
    event_type:       Mapped[str]            = mapped_column(String(50))     # EventType.*
    price:            Mapped[int]            = mapped_column(Integer)        # whole rupees
    year:             Mapped[int]            = mapped_column(Integer)
    active:           Mapped[bool]           = mapped_column(Boolean, default=True)
    event_start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    event_end_date:   Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    venue:            Mapped[Optional[str]]  = mapped_column(String(255), nullable=True)
    registration_start_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    registration_end_date:   Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at:       Mapped[datetime]       = mapped_column(DateTime, default=_utcnow)

    def is_type(self, event_type: str) -> bool:
        return (self.event_type or "").upper() == event_type

    def registration_open(self, now: datetime) -> bool:
        """Active and inside the registration window (a missing bound is open)."""
        if not self.active:
            return False
        if self.registration_start_date is not None and self.registration_start_date > now:
            return False
        if self.registration_end_date is not None and self.registration_end_date <= now:
            return False
        return True


class Category(Base):
    """Badminton competition division with its eligibility rule and price."""
    __tablename__ = "categories"

    id:               Mapped[int]           = mapped_column(Integer, primary_key=True, autoincrement=True)
    name:             Mapped[str]           = mapped_column(String(255), unique=True)
    category_type:    Mapped[str]           = mapped_column(String(20))      # CategoryType.*
    age_limit:        Mapped[Optional[str]] = mapped_column(String(50), nullable=True)  # "U15" | "35+" | "Open"
    gender_group:     Mapped[Optional[str]] = mapped_column(String(10), nullable=True)  # explicit Gender.* override
    price_per_player: Mapped[int]           = mapped_column(Integer, default=800)
    description:      Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    display_order:    Mapped[int]           = mapped_column(Integer, default=0)
    active:           Mapped[bool]          = mapped_column(Boolean, default=True)

    @property
    def players_per_entry(self) -> int:
        return CategoryType.PLAYERS_PER_ENTRY.get(self.category_type, 1)

    @property
    def entry_fee(self) -> int:
        return self.price_per_player * self.players_per_entry

    @property
    def needs_partner(self) -> bool:
        return self.category_type in (CategoryType.DOUBLE, CategoryType.FAMILY)


class Bundle(Base):
    """
    Badminton purchase unit: one payer, one event, many category entries.
    Entries live and die with their bundle.
    """
    __tablename__ = "bundles"

    id:                Mapped[int]           = mapped_column(Integer, primary_key=True, autoincrement=True)
    participant_id:    Mapped[int]           = mapped_column(ForeignKey("participants.id"))
    event_id:          Mapped[int]           = mapped_column(ForeignKey("events.id"))
    status:            Mapped[str]           = mapped_column(String(20), default=RegistrationStatus.PENDING)
    terms_accepted:    Mapped[bool]          = mapped_column(Boolean, default=False)
    total_amount:      Mapped[int]           = mapped_column(Integer, default=0)
    payment_order_id:  Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at:        Mapped[datetime]      = mapped_column(DateTime, default=_utcnow)
    updated_at:        Mapped[datetime]      = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    participant: Mapped["Participant"] = relationship()
    event:       Mapped["Event"]       = relationship()
    entries:     Mapped[List["Entry"]] = relationship(
        back_populates="bundle", cascade="all, delete-orphan", order_by="Entry.id"
    )

    def add_entry(self, entry: "Entry") -> None:
        entry.status = self.status
        self.entries.append(entry)


class Entry(Base):
    """One category registration inside a bundle, with snapshots of both players."""
    __tablename__ = "entries"

    id:                     Mapped[int]           = mapped_column(Integer, primary_key=True, autoincrement=True)
    bundle_id:              Mapped[int]           = mapped_column(ForeignKey("bundles.id", ondelete="CASCADE"))
    category_id:            Mapped[int]           = mapped_column(ForeignKey("categories.id"))
    category_type:          Mapped[str]           = mapped_column(String(20))
    price_per_player:       Mapped[int]           = mapped_column(Integer)
    entry_fee:              Mapped[int]           = mapped_column(Integer)
    status:                 Mapped[str]           = mapped_column(String(20), default=RegistrationStatus.PENDING)
    player_name:            Mapped[str]           = mapped_column(String(255))
    player_age:             Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    self_relation:          Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    partner_participant_id: Mapped[Optional[int]] = mapped_column(ForeignKey("participants.id"), nullable=True)
    partner_name:           Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    partner_age:            Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    partner_contact:        Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    partner_relation:       Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    bundle:   Mapped["Bundle"]   = relationship(back_populates="entries")
    category: Mapped["Category"] = relationship()


class Registration(Base):
    """Single-entry enrollment of a participant in a (cricket / generic) event."""
    __tablename__ = "registrations"
    __table_args__ = (
        # one live registration per participant and event
        Index(
            "uq_registrations_live_participant_event",
            "participant_id", "event_id",
            unique=True,
            sqlite_where=text("status != 'FAILED'"),
            postgresql_where=text("status != 'FAILED'"),
        ),
        # jersey numbers are unique among live registrations of an event
        Index(
            "uq_registrations_live_jersey",
            "event_id", "jersey_number",
            unique=True,
            sqlite_where=text("status != 'FAILED' AND jersey_number IS NOT NULL"),
            postgresql_where=text("status != 'FAILED' AND jersey_number IS NOT NULL"),
        ),
    )

    id:                    Mapped[int]                = mapped_column(Integer, primary_key=True, autoincrement=True)
    participant_id:        Mapped[int]                = mapped_column(ForeignKey("participants.id"))
    event_id:              Mapped[int]                = mapped_column(ForeignKey("events.id"))
    status:                Mapped[str]                = mapped_column(String(20), default=RegistrationStatus.PENDING)
    registration_category: Mapped[Optional[str]]      = mapped_column(String(50), nullable=True)
    team_role:             Mapped[Optional[str]]      = mapped_column(String(50), nullable=True)
    jersey_number:         Mapped[Optional[int]]      = mapped_column(Integer, nullable=True)
    tshirt_name:           Mapped[Optional[str]]      = mapped_column(String(50), nullable=True)
    available_all_days:    Mapped[Optional[bool]]     = mapped_column(Boolean, nullable=True)
    unavailable_dates:     Mapped[Optional[str]]      = mapped_column(String(500), nullable=True)  # "2025-01-04,2025-01-05"
    terms_accepted:        Mapped[bool]               = mapped_column(Boolean, default=False)
    terms_accepted_at:     Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at:            Mapped[datetime]           = mapped_column(DateTime, default=_utcnow)
    updated_at:            Mapped[datetime]           = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    participant: Mapped["Participant"] = relationship()
    event:       Mapped["Event"]       = relationship()

    @property
    def unavailable_date_list(self) -> list[str]:
        if not self.unavailable_dates:
            return []
        return [d.strip() for d in self.unavailable_dates.split(",") if d.strip()]


class Payment(Base):
    """A gateway order issued for either a registration or a bundle."""
    __tablename__ = "payments"

    id:                 Mapped[int]                = mapped_column(Integer, primary_key=True, autoincrement=True)
    registration_id:    Mapped[Optional[int]]      = mapped_column(ForeignKey("registrations.id"), nullable=True, index=True)
    bundle_id:          Mapped[Optional[int]]      = mapped_column(ForeignKey("bundles.id"), nullable=True, index=True)
    amount:             Mapped[int]                = mapped_column(Integer)          # whole rupees
    gateway_order_id:   Mapped[str]                = mapped_column(String(100), unique=True, index=True)
    gateway_payment_id: Mapped[Optional[str]]      = mapped_column(String(100), nullable=True)
    signature:          Mapped[Optional[str]]      = mapped_column(String(255), nullable=True)
    status:             Mapped[str]                = mapped_column(String(20), default=PaymentStatus.PENDING)
    payment_date:       Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at:         Mapped[datetime]           = mapped_column(DateTime, default=_utcnow)
