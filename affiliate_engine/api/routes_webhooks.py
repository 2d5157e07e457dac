"""
Webhook endpoints для приёма оплат и возвратов от платёжных провайдеров.
"""

from fastapi import APIRouter, Request, Depends, HTTPException, Header
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import hmac
import json

from affiliate_engine.config import get_settings
from affiliate_engine.db.session import get_session
from affiliate_engine.db.crud import (
    save_webhook_event, get_webhook_event_by_hash, mark_webhook_processed,
)
from affiliate_engine.services.webhook_parser import (
    EVENT_PAYMENT, WebhookConfig, WebhookParser, calculate_payload_hash,
)
from affiliate_engine.services.commission_processor import process_commission
from affiliate_engine.services.refund_processor import process_refund
from affiliate_engine.logger import log_webhook

router = APIRouter()
settings = get_settings()


@router.post("/payments/{provider}")
async def webhook_payment(
    provider: str,
    request: Request,
    session: AsyncSession = Depends(get_session),
    x_webhook_secret: Optional[str] = Header(None),
):
    """
    Вебхук оплаты/возврата.

    Проверяет:
    - Secret для авторизации
    - Идемпотентность по payload_hash (повтор уже обработанного события — no-op)
    - Парсит payload универсальным парсером
    - Начисляет или отменяет комиссию
    """

    # 1. Проверка secret
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret.encode(), settings.webhook_secret.encode()):
        log_webhook.warning(f"Неверный webhook secret: provider={provider}")
        raise HTTPException(status_code=401, detail="Unauthorized")

    if not WebhookConfig(provider).get_mapping():
        raise HTTPException(status_code=404, detail=f"Unknown provider: {provider}")

    # 2. Получить raw payload
    body = await request.body()
    payload_hash = calculate_payload_hash(body)

    try:
        payload = json.loads(body)
    except ValueError as e:
        log_webhook.error(f"Ошибка парсинга JSON: {e}")
        return {"ok": False, "error": "Invalid JSON"}

    # 3. Проверка идемпотентности (по хешу)
    event = await get_webhook_event_by_hash(session, provider=provider, payload_hash=payload_hash)

    if event and event.processed_at:
        log_webhook.info(f"Вебхук уже обработан (дубликат): payload_hash={payload_hash}")
        return {"ok": True, "duplicate": True}

    # 4. Парсим через универсальный парсер
    parsed = WebhookParser(provider=provider, payload=payload).parse()

    if not parsed:
        # Сохраняем событие так, чтобы не обрабатывать снова
        if event is None:
            event = await save_webhook_event(
                session,
                provider=provider,
                event_id=payload.get("id") if isinstance(payload, dict) else None,
                event_type="unknown",
                payload_hash=payload_hash,
                raw_payload_json=payload,
            )
        await mark_webhook_processed(session, event.id)

        return {"ok": False, "error": "Could not parse webhook"}

    # 5. Сохраняем сырое событие (если это не повтор после сбоя)
    if event is None:
        event = await save_webhook_event(
            session,
            provider=provider,
            event_id=parsed["event_id"],
            event_type=parsed["kind"],
            payload_hash=payload_hash,
            raw_payload_json=payload,
        )

    # 6. Начисление / отмена
    if parsed["kind"] == EVENT_PAYMENT:
        result = await process_commission(
            session,
            parsed["user_id"],
            parsed["amount"],
            parsed["transaction_type"],
            parsed["reference_id"],
        )
    else:
        result = await process_refund(
            session,
            parsed["user_id"],
            parsed["reference_id"],
            parsed["type"],
        )

    # 7. Отмечаем обработанным
    await mark_webhook_processed(session, event.id)

    log_webhook.info(
        f"Вебхук обработан: event_id={event.id}, kind={parsed['kind']}, "
        f"processed={result.processed}, reason={result.reason}"
    )

    return {"ok": True, "kind": parsed["kind"], **result.to_dict()}
