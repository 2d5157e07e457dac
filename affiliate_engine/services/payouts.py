"""
Заявки на выплату и их модерация.

PENDING -> APPROVED -> PAID
PENDING -> REJECTED
Балансы меняются только при PAID.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pytz
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_engine.config import get_settings
from affiliate_engine.db import crud
from affiliate_engine.db.models import (
    AffiliateStatus, LedgerEntryKind, Payout, PayoutMethod, PayoutStatus,
)
from affiliate_engine.db.session import transactional
from affiliate_engine.logger import log_service
from affiliate_engine.services.commission_calculator import format_cents
from affiliate_engine.services.errors import InvalidStateTransition, ValidationError

settings = get_settings()


@dataclass
class PayoutResult:
    success: bool
    payout: Optional[Payout] = None
    error: Optional[str] = None


def _fail(error: str, **context) -> PayoutResult:
    log_service.info(f"Выплата отклонена: {error} ({context})")
    return PayoutResult(success=False, error=error)


def _now_local() -> datetime:
    """Момент обработки в таймзоне админки (хранится naive)"""
    return datetime.now(pytz.utc).astimezone(settings.tz).replace(tzinfo=None)


def _parse_method(method) -> Optional[PayoutMethod]:
    if isinstance(method, PayoutMethod):
        return method
    try:
        return PayoutMethod(str(method).upper())
    except ValueError:
        return None


def _ensure_status(payout: Payout, expected: PayoutStatus, attempted: PayoutStatus):
    if payout.status != expected:
        raise InvalidStateTransition("Payout", payout.id, payout.status.value, attempted.value)


@transactional()
async def request_payout(
    session: AsyncSession,
    user_id: str,
    amount: int,
    method,
    notes: Optional[str] = None,
) -> PayoutResult:
    """
    Создать заявку на выплату.

    Доступно = pending - сумма открытых заявок (PENDING + APPROVED).
    Инкремент версии партнёра сериализует параллельные заявки.
    """
    affiliate = await crud.get_affiliate_by_user_id(session, user_id, for_update=True)
    if not affiliate:
        return _fail("affiliate not found", user_id=user_id)

    if affiliate.status != AffiliateStatus.ACTIVE:
        return _fail("affiliate not active", affiliate_id=affiliate.id)

    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        return _fail("invalid payout amount", affiliate_id=affiliate.id, amount=amount)

    if amount < settings.min_payout:
        return _fail(
            f"minimum payout is {format_cents(settings.min_payout)}",
            affiliate_id=affiliate.id, amount=amount,
        )

    payout_method = _parse_method(method)
    if payout_method is None:
        return _fail(f"unknown payout method: {method}", affiliate_id=affiliate.id)

    reserved = await crud.open_payouts_total(session, affiliate.id)
    available = affiliate.pending_earnings - reserved
    if amount > available:
        return _fail(
            "insufficient pending earnings",
            affiliate_id=affiliate.id, amount=amount, available=available,
        )

    # Только версия: конкурирующая заявка получит LedgerConflict
    await crud.apply_earnings_delta(session, affiliate)

    payout = await crud.create_payout(
        session,
        affiliate_id=affiliate.id,
        amount=amount,
        method=payout_method,
        notes=notes,
    )

    log_service.info(
        f"Заявка на выплату создана: payout_id={payout.id}, affiliate_id={affiliate.id}, "
        f"amount={amount}, method={payout_method.value}"
    )
    return PayoutResult(success=True, payout=payout)


@transactional()
async def approve_payout(session: AsyncSession, payout_id: int) -> PayoutResult:
    payout = await crud.get_payout(session, payout_id, for_update=True)
    if not payout:
        return _fail("payout not found", payout_id=payout_id)

    _ensure_status(payout, PayoutStatus.PENDING, PayoutStatus.APPROVED)
    await crud.transition_payout(session, payout, PayoutStatus.PENDING, PayoutStatus.APPROVED)

    log_service.info(f"Выплата одобрена: payout_id={payout.id}")
    return PayoutResult(success=True, payout=payout)


@transactional()
async def reject_payout(session: AsyncSession, payout_id: int, reason: str) -> PayoutResult:
    if not reason or not reason.strip():
        raise ValidationError("Rejection reason is required")

    payout = await crud.get_payout(session, payout_id, for_update=True)
    if not payout:
        return _fail("payout not found", payout_id=payout_id)

    _ensure_status(payout, PayoutStatus.PENDING, PayoutStatus.REJECTED)
    await crud.transition_payout(
        session,
        payout,
        PayoutStatus.PENDING,
        PayoutStatus.REJECTED,
        reason=reason.strip(),
        processed_at=_now_local(),
    )

    log_service.info(f"Выплата отклонена админом: payout_id={payout.id}, reason={reason!r}")
    return PayoutResult(success=True, payout=payout)


@transactional()
async def mark_payout_paid(session: AsyncSession, payout_id: int) -> PayoutResult:
    """APPROVED -> PAID, сумма переносится из pending в paid"""
    payout = await crud.get_payout(session, payout_id, for_update=True)
    if not payout:
        return _fail("payout not found", payout_id=payout_id)

    _ensure_status(payout, PayoutStatus.APPROVED, PayoutStatus.PAID)

    affiliate = await crud.get_affiliate(session, payout.affiliate_id, for_update=True)
    if not affiliate:
        return _fail("affiliate not found", payout_id=payout.id)

    if affiliate.pending_earnings < payout.amount:
        return _fail(
            "insufficient pending earnings",
            payout_id=payout.id, pending=affiliate.pending_earnings, amount=payout.amount,
        )

    await crud.transition_payout(
        session,
        payout,
        PayoutStatus.APPROVED,
        PayoutStatus.PAID,
        processed_at=_now_local(),
    )
    await crud.apply_earnings_delta(
        session, affiliate, pending_delta=-payout.amount, paid_delta=payout.amount
    )
    await crud.add_ledger_entry(
        session,
        affiliate_id=affiliate.id,
        payout_id=payout.id,
        kind=LedgerEntryKind.PAYOUT,
        amount=-payout.amount,
        reference_id=f"payout-{payout.id}",
    )

    log_service.info(
        f"Выплата проведена: payout_id={payout.id}, affiliate_id={affiliate.id}, "
        f"amount={format_cents(payout.amount)}"
    )
    return PayoutResult(success=True, payout=payout)
