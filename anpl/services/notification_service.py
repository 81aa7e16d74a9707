"""
Participant notification service.

When a registration or a badminton bundle reaches a terminal status the
participant gets a Telegram message. Delivery is best-effort: a missing bot,
a missing chat id or a Telegram error never affects the state change.
Services queue these with defer_until_commit, so nothing is sent for a
transaction that ends up rolled back.
"""
from __future__ import annotations

import logging
from typing import Optional

from aiogram import Bot
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError

from anpl.models.models import Bundle, Event, Participant, RegistrationStatus

logger = logging.getLogger(__name__)

_STATUS_LINES = {
    RegistrationStatus.APPROVED: "✅ *Payment received, your registration is confirmed!*",
    RegistrationStatus.FAILED:   "❌ *Your payment could not be completed.*",
}


async def _send(bot: Optional[Bot], participant: Participant, text: str) -> bool:
    if bot is None:
        return False
    telegram_id = participant.telegram_id
    if not telegram_id:
        logger.debug("Participant %d has no telegram_id, skipping notification", participant.id)
        return False
    try:
        await bot.send_message(chat_id=telegram_id, text=text, parse_mode=ParseMode.MARKDOWN)
    except TelegramAPIError as e:
        logger.warning("Could not notify participant telegram_id=%d: %s", telegram_id, e)
        return False
    except Exception:
        logger.exception("Notification to telegram_id=%d failed", telegram_id)
        return False
    return True


async def notify_registration_status(
    bot: Optional[Bot],
    participant: Participant,
    event: Event,
    status: str,
) -> bool:
    """Tell a participant their single-entry registration was approved / failed."""
    headline = _STATUS_LINES.get(status)
    if headline is None:
        return False
    text = (
        f"{headline}\n\n"
        f"🏆 Event: *{event.name}*\n"
        f"👤 Player: {participant.full_name}\n"
        f"🆔 Registration no.: `{participant.registration_number}`"
    )
    return await _send(bot, participant, text)


async def notify_bundle_status(bot: Optional[Bot], bundle: Bundle) -> bool:
    """
    Same as above for a badminton bundle; lists every category in it.
    The bundle must be loaded with participant, event and entries.
    """
    headline = _STATUS_LINES.get(bundle.status)
    if headline is None:
        return False
    lines = [f"• {e.category.name}" for e in bundle.entries]
    text = (
        f"{headline}\n\n"
        f"🏸 Event: *{bundle.event.name}*\n"
        f"👤 Player: {bundle.participant.full_name}\n"
        f"💰 Amount: `₹{bundle.total_amount}`\n\n"
        + "\n".join(lines)
    )
    return await _send(bot, bundle.participant, text)
