"""
Shared pytest fixtures for ANPL tests.

Sets required environment variables BEFORE any anpl module is imported so that
pydantic-settings and SQLAlchemy engine initialisation use safe test values.
"""
from __future__ import annotations

import os
from datetime import date
from typing import AsyncGenerator, Optional

# ── Set env vars before any anpl import ───────────────────────────────────────
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")

# ── Third-party ───────────────────────────────────────────────────────────────
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# ── anpl imports (safe after env vars are set) ────────────────────────────────
from anpl.models.base import Base
from anpl.models.models import Category, CategoryType, Event, EventType, Gender, Participant
from anpl.services.gateway import GatewayError, GatewayOrder, SignatureVerificationError
from anpl.services.registration_service import make_registration_number


# ── DB fixtures ───────────────────────────────────────────────────────────────

@pytest.fixture
async def async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Yield a fresh AsyncSession backed by an isolated in-memory SQLite database.
    Schema is created fresh for every test function; engine is always disposed
    on teardown, even if the test raises an exception.
    """
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    try:
        async with factory() as session:
            yield session
    finally:
        await engine.dispose()


# ── Fake payment gateway ──────────────────────────────────────────────────────

class FakeGateway:
    """
    In-memory stand-in for RazorpayGateway.

    order_status    status every fetched order reports ("paid", "attempted", ...)
    fail_verify     verify_signature raises SignatureVerificationError
    fail_fetch      fetch_order raises GatewayError
    fail_create     create_order raises GatewayError
    calls           (method, args) tuples in call order
    """

    def __init__(self, order_status: str = "paid") -> None:
        self.order_status = order_status
        self.fail_verify  = False
        self.fail_fetch   = False
        self.fail_create  = False
        self.calls: list[tuple[str, tuple]] = []
        self._amounts: dict[str, int] = {}
        self._next = 1

    def called(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    async def create_order(self, amount: int, currency: str, receipt: str) -> GatewayOrder:
        self.calls.append(("create_order", (amount, currency, receipt)))
        if self.fail_create:
            raise GatewayError("gateway unavailable")
        order_id = f"order_test_{self._next}"
        self._next += 1
        self._amounts[order_id] = amount
        return GatewayOrder(id=order_id, status="created", amount=amount)

    async def fetch_order(self, order_id: str) -> GatewayOrder:
        self.calls.append(("fetch_order", (order_id,)))
        if self.fail_fetch:
            raise GatewayError("gateway timed out")
        return GatewayOrder(id=order_id, status=self.order_status, amount=self._amounts.get(order_id, 0))

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> None:
        self.calls.append(("verify_signature", (order_id, payment_id, signature)))
        if self.fail_verify:
            raise SignatureVerificationError(f"Signature mismatch for order {order_id}")


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


# ── Factory helpers ───────────────────────────────────────────────────────────

async def make_participant(
    session: AsyncSession,
    full_name: str = "Rahul Sharma",
    gender: Optional[str] = Gender.MALE,
    date_of_birth: Optional[date] = date(1990, 5, 17),
    documents: bool = True,
    telegram_id: Optional[int] = None,
    **kwargs,
) -> Participant:
    p = Participant(
        registration_number=kwargs.pop("registration_number", None) or make_registration_number(),
        full_name=full_name,
        gender=gender,
        date_of_birth=date_of_birth,
        phone_number=kwargs.pop("phone_number", "9876543210"),
        id_front_photo="docs/front.jpg" if documents else None,
        id_back_photo="docs/back.jpg" if documents else None,
        telegram_id=telegram_id,
        **kwargs,
    )
    session.add(p)
    await session.commit()
    return p


async def make_event(
    session: AsyncSession,
    name: str = "Cricket 2025",
    event_type: str = EventType.CRICKET,
    price: int = 500,
    **kwargs,
) -> Event:
    active = kwargs.pop("active", True)
    e = Event(name=name, event_type=event_type, price=price, year=2025, active=active, **kwargs)
    session.add(e)
    await session.commit()
    return e


async def make_category(
    session: AsyncSession,
    name: str,
    category_type: str = CategoryType.SOLO,
    age_limit: Optional[str] = "Open",
    price_per_player: int = 800,
    **kwargs,
) -> Category:
    c = Category(
        name=name,
        category_type=category_type,
        age_limit=age_limit,
        price_per_player=price_per_player,
        active=True,
        **kwargs,
    )
    session.add(c)
    await session.commit()
    return c
