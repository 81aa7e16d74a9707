"""
Request payloads — Pydantic v2 models.

Shape checks only. Anything that needs the database lives in the services.
"""
from __future__ import annotations

import re
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

_TSHIRT_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z\s]*$")
_PHONE_RE = re.compile(r"^\d{10}$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


# ─────────────────────────── Badminton bundle ────────────────────────────────

class PartnerInfo(BaseModel):
    """Reference to an already-registered participant chosen as partner."""

    participant_id: int


class EntryRequest(BaseModel):
    """
    One category selection inside a bundle.

    Attributes
    ----------
    category_id   : target badminton category
    partner       : required for DOUBLE / FAMILY categories
    self_relation : owner's side of the family pairing ("Father", "Wife", ...)
    """

    category_id: int
    partner: Optional[PartnerInfo] = None
    self_relation: Optional[str] = None

    @field_validator("self_relation")
    @classmethod
    def strip_relation(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None


class BundleRequest(BaseModel):
    """
    Multi-entry badminton registration.

    total_amount is the client-declared price; when present it must match
    the server-side computation exactly.
    """

    event_id: int
    entries: List[EntryRequest] = Field(min_length=1)
    terms_accepted: bool = False
    total_amount: Optional[int] = Field(default=None, ge=1)
    player_photo: Optional[str] = None


# ─────────────────────────── Single-entry registration ───────────────────────

class EventFields(BaseModel):
    """Event-specific fields applied on top of a single-entry registration."""

    registration_category: Optional[str] = None
    team_role: Optional[str] = None
    jersey_number: Optional[int] = Field(default=None, ge=1, le=99)
    tshirt_name: Optional[str] = None
    available_all_days: Optional[bool] = None
    unavailable_dates: List[str] = Field(default_factory=list)
    terms_accepted: bool = False

    @field_validator("tshirt_name")
    @classmethod
    def validate_tshirt_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if len(v) > 50:
            raise ValueError("T-shirt name must not exceed 50 characters")
        if not _TSHIRT_NAME_RE.match(v):
            raise ValueError("T-shirt name must contain only letters")
        return v

    @field_validator("unavailable_dates")
    @classmethod
    def normalise_dates(cls, v: List[str]) -> List[str]:
        seen: list[str] = []
        for raw in v:
            d = raw.strip()
            if not d:
                continue
            if not _ISO_DATE_RE.match(d):
                raise ValueError(f"Date {d} must be in YYYY-MM-DD format")
            if d not in seen:
                seen.append(d)
        return seen


class CricketRegistrationRequest(EventFields):
    """
    Combined cricket registration: profile details + event fields.
    Everything must be filled in before payment.
    """

    event_id: int
    gender: Literal["MALE", "FEMALE"]
    tshirt_size: Literal["XS", "S", "M", "L", "XL", "XXL"]
    residential_address: str = Field(min_length=1, max_length=500)
    whatsapp_number: str
    id_front_photo: str = Field(min_length=1)
    id_back_photo: str = Field(min_length=1)
    player_photo: str = Field(min_length=1)
    jersey_number: int = Field(ge=1, le=99)
    tshirt_name: str
    team_role: Literal["BATTING", "BOWLING", "ALL_ROUNDER", "WICKET_KEEPER"]
    terms_accepted: bool

    @field_validator("whatsapp_number")
    @classmethod
    def validate_whatsapp(cls, v: str) -> str:
        v = v.strip()
        if not _PHONE_RE.match(v):
            raise ValueError("WhatsApp number must be 10 digits")
        return v

    @field_validator("terms_accepted")
    @classmethod
    def require_terms(cls, v: bool) -> bool:
        if not v:
            raise ValueError("You must accept terms and conditions to register")
        return v


# ─────────────────────────── Payments ────────────────────────────────────────

class PaymentVerification(BaseModel):
    """Client-submitted gateway callback values."""

    order_id: str
    payment_id: Optional[str] = None
    signature: Optional[str] = None
