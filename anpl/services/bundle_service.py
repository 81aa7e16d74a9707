"""
Badminton bundle service — multi-entry registrations paid in one go.

create_bundle validates every entry (category, owner eligibility, partner,
family relation) and computes the price before anything touches the session:
either the bundle and all of its entries are flushed together, or nothing is.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from anpl.config import settings
from anpl.errors import (
    AlreadyExists,
    AmountMismatch,
    InvalidEvent,
    NotFound,
    ValidationFailed,
    domain_operation,
)
from anpl.models.models import (
    Bundle,
    Category,
    CategoryType,
    Entry,
    Event,
    EventType,
    Participant,
    Payment,
    RegistrationStatus,
)
from anpl.services.eligibility_service import (
    calculate_age,
    ensure_documents,
    ensure_gender,
    validate_participant_for_category,
)
from anpl.services.relation_service import RelationDefinition, resolve_relation
from anpl.validators import BundleRequest, EntryRequest

logger = logging.getLogger(__name__)

# (name, type, age limit) as offered to residents
CATEGORY_SEEDS: Tuple[Tuple[str, str, str], ...] = (
    ("Boys Single U11",         CategoryType.SOLO,   "U11"),
    ("Boys Double U11",         CategoryType.DOUBLE, "U11"),
    ("Boys Single U15",         CategoryType.SOLO,   "U15"),
    ("Boys Double U15",         CategoryType.DOUBLE, "U15"),
    ("Boys Single U19",         CategoryType.SOLO,   "U19"),
    ("Boys Double U19",         CategoryType.DOUBLE, "U19"),
    ("Mens Single 20+",         CategoryType.SOLO,   "20+"),
    ("Mens Single 35+",         CategoryType.SOLO,   "35+"),
    ("Men Single 50+",          CategoryType.SOLO,   "50+"),
    ("Men's Double Event",      CategoryType.DOUBLE, "Open"),
    ("Mens Lucky Double Event", CategoryType.DOUBLE, "Open"),
    ("Women Single 35+",        CategoryType.SOLO,   "35+"),
    ("Womens Double 35+",       CategoryType.DOUBLE, "35+"),
    ("Husband & Wife",          CategoryType.FAMILY, "Open"),
    ("Father Daughter",         CategoryType.FAMILY, "Open"),
    ("Mother Daughter",         CategoryType.FAMILY, "Open"),
    ("Mother Son",              CategoryType.FAMILY, "Open"),
    ("Saas Bahu",               CategoryType.FAMILY, "Open"),
    ("Father Son 15+",          CategoryType.FAMILY, "15+"),
    ("Father Son U15",          CategoryType.FAMILY, "U15"),
    ("Girls Single U11",        CategoryType.SOLO,   "U11"),
    ("Girls Double U11",        CategoryType.DOUBLE, "U11"),
    ("Girls Single U15",        CategoryType.SOLO,   "U15"),
    ("Girls Double U15",        CategoryType.DOUBLE, "U15"),
    ("Girls Single U19",        CategoryType.SOLO,   "U19"),
    ("Girls Double U19",        CategoryType.DOUBLE, "U19"),
)


# ─────────────────────────── Projections ─────────────────────────────────────

@dataclass
class EntryView:
    """Read-only entry row."""
    entry_id:         int
    category_id:      int
    category_name:    str
    category_type:    str
    price_per_player: int
    entry_fee:        int
    status:           str
    player_name:      str
    player_age:       Optional[int] = None
    self_relation:    Optional[str] = None
    partner_id:       Optional[int] = None
    partner_name:     Optional[str] = None
    partner_age:      Optional[int] = None
    partner_contact:  Optional[str] = None
    partner_relation: Optional[str] = None


@dataclass
class BundleView:
    """Read-only bundle summary returned to the payer."""
    bundle_id:        int
    event_id:         int
    event_name:       str
    player_name:      str
    player_photo:     Optional[str]
    status:           str
    total_amount:     int
    payment_order_id: Optional[str]
    entries:          List[EntryView] = field(default_factory=list)

    @property
    def total_entries(self) -> int:
        return len(self.entries)

    @property
    def ready_for_payment(self) -> bool:
        return self.status == RegistrationStatus.PENDING


def _entry_view(entry: Entry, category: Category) -> EntryView:
    return EntryView(
        entry_id=entry.id,
        category_id=category.id,
        category_name=category.name,
        category_type=entry.category_type,
        price_per_player=entry.price_per_player,
        entry_fee=entry.entry_fee,
        status=entry.status,
        player_name=entry.player_name,
        player_age=entry.player_age,
        self_relation=entry.self_relation,
        partner_id=entry.partner_participant_id,
        partner_name=entry.partner_name,
        partner_age=entry.partner_age,
        partner_contact=entry.partner_contact,
        partner_relation=entry.partner_relation,
    )


def _bundle_view(bundle: Bundle, event: Event, owner: Participant) -> BundleView:
    return BundleView(
        bundle_id=bundle.id,
        event_id=event.id,
        event_name=event.name,
        player_name=owner.full_name,
        player_photo=owner.player_photo,
        status=bundle.status,
        total_amount=bundle.total_amount,
        payment_order_id=bundle.payment_order_id,
        entries=[_entry_view(e, e.category) for e in bundle.entries],
    )


# ── Category catalogue ────────────────────────────────────────────────────────

async def seed_categories(session: AsyncSession) -> int:
    """Insert the default catalogue once. Returns the number of rows created."""
    existing = await session.scalar(select(func.count()).select_from(Category))
    if existing:
        return 0
    cats = [
        Category(
            name=name,
            category_type=cat_type,
            age_limit=age_limit,
            price_per_player=settings.BADMINTON_PRICE_PER_PLAYER,
            display_order=i,
        )
        for i, (name, cat_type, age_limit) in enumerate(CATEGORY_SEEDS)
    ]
    session.add_all(cats)
    await session.flush()
    logger.info("Seeded %d badminton categories", len(cats))
    return len(cats)


async def list_categories(session: AsyncSession) -> List[Category]:
    result = await session.execute(
        select(Category)
        .where(Category.active.is_(True))
        .order_by(Category.display_order, Category.name)
    )
    return list(result.scalars().all())


# ── Bundle assembly ───────────────────────────────────────────────────────────

async def _get_partner(session: AsyncSession, owner: Participant, entry_request: EntryRequest,
                       category: Category) -> Participant:
    kind = category.category_type.lower()
    if entry_request.partner is None:
        raise ValidationFailed(f"Partner is required for {kind} categories")
    if entry_request.partner.participant_id == owner.id:
        raise ValidationFailed(f"Partner must be a different participant for {category.name}")
    partner = await session.get(Participant, entry_request.partner.participant_id)
    if partner is None:
        raise NotFound("Partner not found")
    ensure_documents(partner, "Partner")
    return partner


def _check_family(
    definition: RelationDefinition,
    category: Category,
    owner: Participant,
    partner: Participant,
) -> None:
    ensure_gender(definition.self_gender, owner, "Player", category.name)
    ensure_gender(definition.partner_gender, partner, "Partner", category.name)


def _snapshot_partner(entry: Entry, partner: Participant, today: Optional[date]) -> None:
    entry.partner_participant_id = partner.id
    entry.partner_name           = partner.full_name
    entry.partner_age            = calculate_age(partner.date_of_birth, today)
    entry.partner_contact        = partner.phone_number


async def _build_entry(
    session: AsyncSession,
    owner: Participant,
    entry_request: EntryRequest,
    today: Optional[date],
) -> Entry:
    category = await session.get(Category, entry_request.category_id)
    if category is None or not category.active:
        raise NotFound("Category not found")

    entry = Entry(
        category_type=category.category_type,
        price_per_player=category.price_per_player,
        entry_fee=category.entry_fee,
        player_name=owner.full_name,
        player_age=calculate_age(owner.date_of_birth, today),
        self_relation=None,
        partner_participant_id=None,
        partner_name=None,
        partner_age=None,
        partner_contact=None,
        partner_relation=None,
    )
    entry.category = category

    # the owner plays in every entry, whatever the category type
    validate_participant_for_category(category, owner, "Player", today)

    if category.category_type == CategoryType.DOUBLE:
        partner = await _get_partner(session, owner, entry_request, category)
        validate_participant_for_category(category, partner, "Partner", today)
        _snapshot_partner(entry, partner, today)

    elif category.category_type == CategoryType.FAMILY:
        definition = resolve_relation(category.name, entry_request.self_relation or "")
        partner = await _get_partner(session, owner, entry_request, category)
        _check_family(definition, category, owner, partner)
        _snapshot_partner(entry, partner, today)
        entry.self_relation    = definition.self_relation
        entry.partner_relation = definition.partner_relation

    elif category.category_type != CategoryType.SOLO:
        raise ValidationFailed(f"Unsupported category type {category.category_type}")

    return entry


@domain_operation
async def create_bundle(
    session: AsyncSession,
    owner_id: int,
    request: BundleRequest,
    today: Optional[date] = None,
) -> BundleView:
    """
    Validate and persist a multi-entry badminton registration.

    Returns a BundleView in PENDING status, ready for payment.
    Nothing is added to the session until every entry has passed.
    """
    event = await session.get(Event, request.event_id)
    if event is None:
        raise NotFound("Event not found")
    if not event.is_type(EventType.BADMINTON):
        raise InvalidEvent("Selected event is not a badminton event")
    if not request.terms_accepted:
        raise ValidationFailed("Terms must be accepted")

    owner = await session.get(Participant, owner_id)
    if owner is None:
        raise NotFound("Participant not found")
    ensure_documents(owner, "Player")

    bundle = Bundle(
        participant_id=owner.id,
        event_id=event.id,
        status=RegistrationStatus.PENDING,
        terms_accepted=True,
        total_amount=0,
        payment_order_id=None,
        payment_reference=None,
    )

    seen_categories: set[int] = set()
    total = 0
    for entry_request in request.entries:
        entry = await _build_entry(session, owner, entry_request, today)
        if entry.category.id in seen_categories:
            raise AlreadyExists(f"{entry.category.name} is selected more than once")
        seen_categories.add(entry.category.id)
        bundle.add_entry(entry)
        total += entry.entry_fee

    if request.total_amount is not None and request.total_amount != total:
        raise AmountMismatch(
            f"Total amount mismatch: expected {total}, got {request.total_amount}"
        )
    bundle.total_amount = total

    if request.player_photo:
        owner.player_photo = request.player_photo

    session.add(bundle)
    await session.flush()
    logger.info(
        "Bundle %d created for participant %d: %d entries, total %d",
        bundle.id, owner.id, len(bundle.entries), total,
    )
    return _bundle_view(bundle, event, owner)


async def load_bundle(session: AsyncSession, bundle_id: int) -> Optional[Bundle]:
    result = await session.execute(
        select(Bundle)
        .where(Bundle.id == bundle_id)
        .options(
            selectinload(Bundle.entries).selectinload(Entry.category),
            selectinload(Bundle.event),
            selectinload(Bundle.participant),
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


@domain_operation
async def get_bundle(session: AsyncSession, bundle_id: int) -> BundleView:
    bundle = await load_bundle(session, bundle_id)
    if bundle is None:
        raise NotFound("Bundle not found")
    return _bundle_view(bundle, bundle.event, bundle.participant)


@domain_operation
async def delete_bundle(session: AsyncSession, bundle_id: int) -> int:
    """
    Discard an abandoned bundle together with all of its entries.
    Only bundles that never had a gateway order issued can go.
    """
    bundle = await load_bundle(session, bundle_id)
    if bundle is None:
        raise NotFound("Bundle not found")
    has_payments = await session.scalar(
        select(func.count()).select_from(Payment).where(Payment.bundle_id == bundle_id)
    )
    if bundle.status != RegistrationStatus.PENDING or bundle.payment_order_id or has_payments:
        raise ValidationFailed("Only unpaid pending bundles can be deleted")
    removed = len(bundle.entries)
    await session.delete(bundle)
    await session.flush()
    logger.info("Bundle %d deleted with %d entries", bundle_id, removed)
    return removed
