"""
Отмена комиссии при возврате или чарджбэке.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_engine.db import crud
from affiliate_engine.db.models import LedgerEntryKind, ReferralStatus
from affiliate_engine.db.session import transactional
from affiliate_engine.logger import log_service
from affiliate_engine.services.commission_calculator import (
    chargeback_adjustment, format_cents, refund_adjustment,
)

REFUND_KINDS = {
    "refund": LedgerEntryKind.REFUND,
    "chargeback": LedgerEntryKind.CHARGEBACK,
}


@dataclass
class ProcessRefundResult:
    processed: bool
    referral_id: Optional[int] = None
    affiliate_id: Optional[int] = None
    adjustment: int = 0  # отрицательная, в центах
    shortfall: int = 0  # сколько не удалось списать с pending
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "referral_id": self.referral_id,
            "affiliate_id": self.affiliate_id,
            "adjustment": self.adjustment,
            "shortfall": self.shortfall,
            "reason": self.reason,
        }


def _skip(reason: str, **fields) -> ProcessRefundResult:
    log_service.info(f"Возврат не обработан: {reason} ({fields})")
    return ProcessRefundResult(processed=False, reason=reason, **fields)


@transactional()
async def process_refund(
    session: AsyncSession,
    user_id: str,
    reference_id: str,
    type: str = "refund",
) -> ProcessRefundResult:
    """
    Отменить комиссию по сконвертированному рефералу.

    Возврат всегда полный. С pending списывается не больше, чем там есть;
    остаток фиксируется как shortfall и с paid не забирается.
    """
    kind = REFUND_KINDS.get(type)

    referral = await crud.get_referral_by_referred_user(session, user_id, for_update=True)
    if not referral:
        return _skip("no referral")

    if kind is None:
        return _skip("invalid type", referral_id=referral.id, affiliate_id=referral.affiliate_id)

    if await crud.ledger_entry_exists(session, kind, reference_id):
        return _skip("duplicate reference", referral_id=referral.id, affiliate_id=referral.affiliate_id)

    if referral.status != ReferralStatus.CONVERTED:
        return _skip("not converted", referral_id=referral.id, affiliate_id=referral.affiliate_id)

    affiliate = await crud.get_affiliate(session, referral.affiliate_id, for_update=True)
    if not affiliate:
        return _skip("affiliate not found", referral_id=referral.id)

    commission = referral.commission
    if kind == LedgerEntryKind.CHARGEBACK:
        adjustment = chargeback_adjustment(commission)
    else:
        adjustment = refund_adjustment(commission)

    applied = min(affiliate.pending_earnings, commission)
    shortfall = commission - applied

    await crud.transition_referral(
        session,
        referral,
        expected=ReferralStatus.CONVERTED,
        target=ReferralStatus.CANCELED,
        canceled_at=datetime.utcnow(),
    )
    await crud.apply_earnings_delta(session, affiliate, pending_delta=-applied)

    try:
        await crud.add_ledger_entry(
            session,
            affiliate_id=affiliate.id,
            referral_id=referral.id,
            kind=kind,
            amount=-applied,
            shortfall=shortfall,
            reference_id=reference_id,
        )
    except IntegrityError:
        await session.rollback()
        return _skip("duplicate reference")

    if shortfall:
        log_service.warning(
            f"Недосписание при {type}: affiliate_id={affiliate.id}, referral_id={referral.id}, "
            f"commission={format_cents(commission)}, shortfall={format_cents(shortfall)}"
        )

    log_service.info(
        f"Комиссия отменена ({type}): affiliate_id={affiliate.id}, referral_id={referral.id}, "
        f"adjustment={adjustment}, applied={applied}, reference_id={reference_id}"
    )

    return ProcessRefundResult(
        processed=True,
        referral_id=referral.id,
        affiliate_id=affiliate.id,
        adjustment=adjustment,
        shortfall=shortfall,
    )
