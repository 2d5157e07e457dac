"""
Алерты администраторам в Telegram (фрод-флаги, новые заявки на выплату).
Без BOT_TOKEN или ADMIN_TG_IDS — тихо ничего не делаем.
"""

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from affiliate_engine.config import get_settings
from affiliate_engine.logger import log_notify

settings = get_settings()


async def notify_admins(text: str) -> int:
    """Разослать сообщение всем админам. Возвращает число доставленных."""
    if not settings.bot_token or not settings.admin_ids:
        log_notify.debug("Telegram не настроен, алерт пропущен")
        return 0

    bot = Bot(token=settings.bot_token)
    delivered = 0
    try:
        for admin_id in settings.admin_ids:
            try:
                await bot.send_message(admin_id, text)
                delivered += 1
            except TelegramAPIError as e:
                log_notify.error(f"Не удалось отправить алерт admin_id={admin_id}: {e}")
    finally:
        await bot.session.close()

    return delivered


def format_fraud_alert(affiliate_id: int, referral_id: int, fraud) -> str:
    reasons = "\n".join(f"• {reason}" for reason in fraud.reasons)
    return (
        f"🚨 Подозрительная конверсия ({fraud.severity}, risk={fraud.risk_score})\n"
        f"Партнёр: {affiliate_id}, реферал: {referral_id}\n"
        f"{reasons}"
    )


def format_payout_request(payout) -> str:
    return (
        f"💸 Новая заявка на выплату #{payout.id}\n"
        f"Партнёр: {payout.affiliate_id}\n"
        f"Сумма: {payout.amount / 100:.2f} $, способ: {payout.method.value}"
    )
