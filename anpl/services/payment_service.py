"""
Payment reconciliation — drives registration / bundle state from the gateway.

Two paths converge on the same guarded transitions:

  verify_payment        client-submitted order / payment / signature
  check_payment_status  server-side poll of the latest order

Both only ever move PENDING → APPROVED / FAILED, so duplicate callbacks and
repeated polls cannot double-approve or double-fail. FAILED rows are kept,
never deleted.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from aiogram import Bot
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from anpl.config import settings
from anpl.errors import (
    InternalError,
    NotFound,
    PaymentVerificationFailed,
    ValidationFailed,
    domain_operation,
)
from anpl.models.base import defer_until_commit
from anpl.models.models import (
    Bundle,
    Payment,
    PaymentStatus,
    Registration,
    RegistrationStatus,
)
from anpl.services.bundle_service import load_bundle
from anpl.services.gateway import GatewayError, RazorpayGateway
from anpl.services.notification_service import (
    notify_bundle_status,
    notify_registration_status,
)
from anpl.services.registration_service import load_registration, transition_status
from anpl.validators import PaymentVerification

logger = logging.getLogger(__name__)


class TargetKind:
    REGISTRATION = "registration"
    BUNDLE       = "bundle"

    ALL = (REGISTRATION, BUNDLE)


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ─────────────────────────── Projections ─────────────────────────────────────

@dataclass
class OrderView:
    target_kind: str
    target_id:   int
    order_id:    str
    amount:      int      # whole rupees
    currency:    str


@dataclass
class PaymentStatusView:
    target_kind:    str
    target_id:      int
    status:         str            # registration / bundle status
    payment_status: Optional[str]
    order_id:       Optional[str]
    payment_id:     Optional[str]
    amount:         Optional[int]


# ─────────────────────────── Targets ─────────────────────────────────────────

Target = Union[Registration, Bundle]


async def _load_target(session: AsyncSession, kind: str, target_id: int) -> Target:
    if kind == TargetKind.REGISTRATION:
        target = await load_registration(session, target_id)
        if target is None:
            raise NotFound("Registration not found")
        return target
    if kind == TargetKind.BUNDLE:
        target = await load_bundle(session, target_id)
        if target is None:
            raise NotFound("Bundle not found")
        return target
    raise ValidationFailed(f"Unknown payment target {kind!r}")


def _amount(kind: str, target: Target) -> int:
    if kind == TargetKind.BUNDLE:
        return target.total_amount
    return target.event.price


def _receipt(kind: str, target: Target) -> str:
    if kind == TargetKind.BUNDLE:
        return f"badminton_bundle_{target.id}"
    return f"rcpt_{target.id}"


def _belongs_to(payment: Payment, kind: str, target: Target) -> bool:
    if kind == TargetKind.BUNDLE:
        return payment.bundle_id == target.id
    return payment.registration_id == target.id


def _status_view(kind: str, target: Target, payment: Optional[Payment]) -> PaymentStatusView:
    return PaymentStatusView(
        target_kind=kind,
        target_id=target.id,
        status=target.status,
        payment_status=payment.status if payment else None,
        order_id=payment.gateway_order_id if payment else None,
        payment_id=payment.gateway_payment_id if payment else None,
        amount=payment.amount if payment else None,
    )


def _notify_after_commit(session: AsyncSession, bot: Optional[Bot], kind: str, target: Target) -> None:
    if bot is None:
        return
    if kind == TargetKind.BUNDLE:
        defer_until_commit(session, notify_bundle_status, bot, target)
    else:
        defer_until_commit(
            session, notify_registration_status, bot, target.participant, target.event, target.status
        )


def _ensure_owner(target: Target, participant_id: int) -> None:
    if target.participant_id != participant_id:
        raise ValidationFailed("You can only pay for your own registrations")


# ─────────────────────────── Transitions ─────────────────────────────────────

def _settle_payment(payment: Payment, status: str) -> bool:
    """PENDING → COMPLETED / FAILED; terminal payments are left alone."""
    if payment.status != PaymentStatus.PENDING:
        return False
    payment.status = status
    if status == PaymentStatus.COMPLETED:
        payment.payment_date = _now()
    return True


async def _approve(
    session: AsyncSession,
    kind: str,
    target: Target,
    payment: Payment,
    bot: Optional[Bot],
) -> None:
    if target.status == RegistrationStatus.FAILED:
        # money arrived after the target was failed; needs a manual refund / review
        logger.warning(
            "Order %s is paid but %s %d is already FAILED",
            payment.gateway_order_id, kind, target.id,
        )
        _settle_payment(payment, PaymentStatus.COMPLETED)
        await session.flush()
        return

    _settle_payment(payment, PaymentStatus.COMPLETED)
    changed = transition_status(target, RegistrationStatus.APPROVED)
    if kind == TargetKind.BUNDLE and changed:
        target.payment_order_id  = payment.gateway_order_id
        target.payment_reference = payment.gateway_payment_id
    await session.flush()
    if changed:
        _notify_after_commit(session, bot, kind, target)


async def _fail(
    session: AsyncSession,
    kind: str,
    target: Target,
    payment: Payment,
    bot: Optional[Bot],
) -> None:
    _settle_payment(payment, PaymentStatus.FAILED)
    changed = transition_status(target, RegistrationStatus.FAILED)
    await session.flush()
    if changed:
        _notify_after_commit(session, bot, kind, target)


# ─────────────────────────── Operations ──────────────────────────────────────

@domain_operation
async def create_order(
    session: AsyncSession,
    gateway: RazorpayGateway,
    participant_id: int,
    target_kind: str,
    target_id: int,
) -> OrderView:
    """
    Issue a fresh gateway order for the target's current amount and record a
    PENDING payment. The target's own status is not touched.
    """
    target = await _load_target(session, target_kind, target_id)
    _ensure_owner(target, participant_id)
    if target.status != RegistrationStatus.PENDING:
        raise ValidationFailed(f"This {target_kind} is already {target.status.lower()}")

    amount = _amount(target_kind, target)
    currency = settings.PAYMENT_CURRENCY
    try:
        order = await gateway.create_order(amount * 100, currency, _receipt(target_kind, target))
    except GatewayError as e:
        logger.warning("Order creation failed for %s %d: %s", target_kind, target.id, e)
        raise InternalError("Failed to initiate payment, please try again") from e

    payment = Payment(
        registration_id=target.id if target_kind == TargetKind.REGISTRATION else None,
        bundle_id=target.id if target_kind == TargetKind.BUNDLE else None,
        amount=amount,
        gateway_order_id=order.id,
        gateway_payment_id=None,
        signature=None,
        status=PaymentStatus.PENDING,
        payment_date=None,
    )
    session.add(payment)
    if target_kind == TargetKind.BUNDLE:
        target.payment_order_id = order.id
    await session.flush()
    logger.info("Payment %d (order %s) opened for %s %d", payment.id, order.id, target_kind, target.id)
    return OrderView(target_kind, target.id, order.id, amount, currency)


async def _payment_for_order(
    session: AsyncSession,
    kind: str,
    target: Target,
    order_id: str,
) -> Payment:
    result = await session.execute(select(Payment).where(Payment.gateway_order_id == order_id))
    payment = result.scalar_one_or_none()
    if payment is None:
        # callback for an order this system never recorded; track it from now on
        payment = Payment(
            registration_id=target.id if kind == TargetKind.REGISTRATION else None,
            bundle_id=target.id if kind == TargetKind.BUNDLE else None,
            amount=_amount(kind, target),
            gateway_order_id=order_id,
            gateway_payment_id=None,
            signature=None,
            status=PaymentStatus.PENDING,
            payment_date=None,
        )
        session.add(payment)
        return payment
    if not _belongs_to(payment, kind, target):
        raise ValidationFailed(f"Order {order_id} does not belong to this {kind}")
    return payment


@domain_operation
async def verify_payment(
    session: AsyncSession,
    gateway: RazorpayGateway,
    participant_id: int,
    target_kind: str,
    target_id: int,
    verification: PaymentVerification,
    bot: Optional[Bot] = None,
) -> PaymentStatusView:
    """
    Reconcile a client-submitted payment callback.

    blank signature          → FAILED, the gateway is not called
    verify / fetch raises    → FAILED is kept, PaymentVerificationFailed returned
    order status "paid"      → APPROVED, payment COMPLETED
    any other order status   → FAILED
    """
    target = await _load_target(session, target_kind, target_id)
    _ensure_owner(target, participant_id)
    payment = await _payment_for_order(session, target_kind, target, verification.order_id)
    if payment.status == PaymentStatus.PENDING:
        payment.gateway_payment_id = verification.payment_id
        payment.signature          = verification.signature

    if not verification.signature or not verification.signature.strip():
        logger.info("Blank signature for order %s, failing %s %d",
                    verification.order_id, target_kind, target.id)
        await _fail(session, target_kind, target, payment, bot)
        return _status_view(target_kind, target, payment)

    try:
        gateway.verify_signature(
            verification.order_id, verification.payment_id or "", verification.signature
        )
        order = await gateway.fetch_order(verification.order_id)
    except Exception as e:
        logger.warning("Payment verification failed for order %s: %s", verification.order_id, e)
        await _fail(session, target_kind, target, payment, bot)
        raise PaymentVerificationFailed(f"Payment verification failed for order {verification.order_id}") from e

    if order.paid:
        await _approve(session, target_kind, target, payment, bot)
    else:
        logger.info("Order %s has status %r, failing %s %d",
                    order.id, order.status, target_kind, target.id)
        await _fail(session, target_kind, target, payment, bot)
    return _status_view(target_kind, target, payment)


async def latest_payment(session: AsyncSession, kind: str, target_id: int) -> Optional[Payment]:
    column = Payment.bundle_id if kind == TargetKind.BUNDLE else Payment.registration_id
    result = await session.execute(
        select(Payment)
        .where(column == target_id)
        .order_by(Payment.created_at.desc(), Payment.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


@domain_operation
async def check_payment_status(
    session: AsyncSession,
    gateway: RazorpayGateway,
    target_kind: str,
    target_id: int,
    bot: Optional[Bot] = None,
    participant_id: Optional[int] = None,
) -> PaymentStatusView:
    """
    Poll the gateway for the latest order of the target.
    "paid" approves (a no-op when already APPROVED); anything else leaves the
    target as it is. Without participant_id the caller is the server-side sweep.
    """
    target = await _load_target(session, target_kind, target_id)
    if participant_id is not None:
        _ensure_owner(target, participant_id)
    payment = await latest_payment(session, target_kind, target.id)
    if payment is None:
        raise NotFound(f"No payment found for this {target_kind}")

    try:
        order = await gateway.fetch_order(payment.gateway_order_id)
    except GatewayError as e:
        logger.warning("Status check failed for order %s: %s", payment.gateway_order_id, e)
        raise PaymentVerificationFailed(
            f"Could not check payment status for order {payment.gateway_order_id}",
            rollback=True,
        ) from e

    if order.paid:
        await _approve(session, target_kind, target, payment, bot)
    return _status_view(target_kind, target, payment)
