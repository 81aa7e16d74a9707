"""
ANPL — registration and payment reconciliation core.
Entry point: prepares the schema, seeds the badminton catalogue and runs one
reconciliation sweep over every PENDING registration / bundle with an order.
"""
import asyncio
import logging
import sys
from typing import Optional

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from sqlalchemy import select

from anpl.config import settings
from anpl.models.base import Base, engine, session_scope
from anpl.models.models import Bundle, Payment, Registration, RegistrationStatus
from anpl.services.bundle_service import seed_categories
from anpl.services.gateway import RazorpayGateway
from anpl.services.payment_service import TargetKind, check_payment_status

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)


async def create_tables() -> None:
    """Create all database tables on startup."""
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables ready.")
    except Exception as e:
        logger.critical(
            "Cannot connect to database!\n"
            "   URL: %s\n"
            "   Error: %s\n\n"
            "   → Locally: start PostgreSQL or use SQLite "
            "(DATABASE_URL=sqlite+aiosqlite:///./anpl.db)",
            settings.DATABASE_URL.split("@")[-1],   # hide credentials in log
            e,
        )
        sys.exit(1)


async def _pending_targets() -> list[tuple[str, int]]:
    async with session_scope() as session:
        regs = await session.execute(
            select(Registration.id)
            .join(Payment, Payment.registration_id == Registration.id)
            .where(Registration.status == RegistrationStatus.PENDING)
            .distinct()
        )
        bundles = await session.execute(
            select(Bundle.id)
            .join(Payment, Payment.bundle_id == Bundle.id)
            .where(Bundle.status == RegistrationStatus.PENDING)
            .distinct()
        )
        return (
            [(TargetKind.REGISTRATION, rid) for rid in regs.scalars()]
            + [(TargetKind.BUNDLE, bid) for bid in bundles.scalars()]
        )


async def reconcile_pending(gateway: RazorpayGateway, bot: Optional[Bot] = None) -> int:
    """Poll the gateway for every pending target. Returns how many got approved."""
    approved = 0
    for kind, target_id in await _pending_targets():
        async with session_scope() as session:
            view, err = await check_payment_status(session, gateway, kind, target_id, bot)
        if err:
            logger.warning("Status check for %s %d failed: %s", kind, target_id, err.message)
        elif view.status == RegistrationStatus.APPROVED:
            approved += 1
    logger.info("Reconciliation sweep done: %d approved", approved)
    return approved


async def main() -> None:
    logger.info("Starting ANPL reconciliation…")
    await create_tables()

    async with session_scope() as session:
        await seed_categories(session)

    bot = None
    if settings.notifications_enabled:
        bot = Bot(
            token=settings.BOT_TOKEN,
            default=DefaultBotProperties(parse_mode=ParseMode.MARKDOWN),
        )

    try:
        if settings.RAZORPAY_KEY_ID:
            async with RazorpayGateway() as gateway:
                await reconcile_pending(gateway, bot)
        else:
            logger.warning("RAZORPAY_KEY_ID is not set, skipping reconciliation")
    finally:
        logger.info("Shutting down…")
        if bot is not None:
            await bot.session.close()
        await engine.dispose()
        logger.info("Shutdown complete.")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
