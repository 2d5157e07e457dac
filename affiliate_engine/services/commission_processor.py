"""
Начисление комиссии при оплате приглашённым пользователем.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_engine.db import crud
from affiliate_engine.db.models import (
    AffiliateStatus, LedgerEntryKind, ReferralStatus,
)
from affiliate_engine.db.session import transactional
from affiliate_engine.logger import log_service
from affiliate_engine.services import commission_calculator
from affiliate_engine.services.errors import LedgerInvariantError
from affiliate_engine.services.fraud_detector import FraudCheckResult, check_conversion
from affiliate_engine.services.notifications import format_fraud_alert, notify_admins

TRANSACTION_TYPES = ("subscription", "credit_purchase")


@dataclass
class ProcessCommissionResult:
    processed: bool
    referral_id: Optional[int] = None
    affiliate_id: Optional[int] = None
    commission: int = 0
    reason: Optional[str] = None
    fraud: Optional[FraudCheckResult] = None

    def to_dict(self) -> dict:
        return {
            "processed": self.processed,
            "referral_id": self.referral_id,
            "affiliate_id": self.affiliate_id,
            "commission": self.commission,
            "reason": self.reason,
            "fraud": self.fraud.to_dict() if self.fraud else None,
        }


def _skip(reason: str, **fields) -> ProcessCommissionResult:
    log_service.info(f"Комиссия не начислена: {reason} ({fields})")
    return ProcessCommissionResult(processed=False, reason=reason, **fields)


def _calculate(amount: int, transaction_type: str, rate, tier: int):
    if transaction_type == "subscription":
        return commission_calculator.calculate_subscription_commission(amount, rate, tier)
    return commission_calculator.calculate_credit_purchase_commission(amount, rate, tier)


@transactional()
async def _convert(
    session: AsyncSession,
    user_id: str,
    amount: int,
    transaction_type: str,
    reference_id: str,
    now: datetime,
) -> ProcessCommissionResult:
    if await crud.ledger_entry_exists(session, LedgerEntryKind.COMMISSION, reference_id):
        return _skip("duplicate reference")

    referral = await crud.get_referral_by_referred_user(session, user_id, for_update=True)
    if not referral:
        return _skip("no referral")

    if referral.status == ReferralStatus.CONVERTED:
        return _skip("already converted", referral_id=referral.id, affiliate_id=referral.affiliate_id)

    if referral.status == ReferralStatus.CANCELED:
        return _skip("canceled", referral_id=referral.id, affiliate_id=referral.affiliate_id)

    affiliate = await crud.get_affiliate(session, referral.affiliate_id, for_update=True)
    if not affiliate:
        return _skip("affiliate not found", referral_id=referral.id)

    if affiliate.status != AffiliateStatus.ACTIVE:
        return _skip("affiliate not active", referral_id=referral.id, affiliate_id=affiliate.id)

    # Фрод-скоринг считается до перехода статуса, на текущем состоянии реферала
    elapsed_ms = int((now - referral.created_at).total_seconds() * 1000)
    fraud = check_conversion(referral, affiliate, amount, elapsed_ms)

    result = _calculate(amount, transaction_type, affiliate.commission_rate, affiliate.tier)
    if not commission_calculator.is_valid_commission(result.commission, amount):
        raise LedgerInvariantError(
            f"Commission {result.commission} is invalid for amount {amount} "
            f"(affiliate {affiliate.id}, rate {result.rate})"
        )

    await crud.transition_referral(
        session,
        referral,
        expected=ReferralStatus.PENDING,
        target=ReferralStatus.CONVERTED,
        conversion_value=amount,
        commission=result.commission,
        converted_at=now,
        conversion_reference_id=reference_id,
    )
    await crud.apply_earnings_delta(session, affiliate, pending_delta=result.commission)

    try:
        await crud.add_ledger_entry(
            session,
            affiliate_id=affiliate.id,
            referral_id=referral.id,
            kind=LedgerEntryKind.COMMISSION,
            amount=result.commission,
            reference_id=reference_id,
        )
    except IntegrityError:
        # Тот же reference_id прошёл параллельно: откатываем всю попытку
        await session.rollback()
        return _skip("duplicate reference")

    log_service.info(
        f"Комиссия начислена: affiliate_id={affiliate.id}, referral_id={referral.id}, "
        f"amount={amount}, rate={result.rate}, commission={result.commission}, "
        f"reference_id={reference_id}, risk={fraud.risk_score}"
    )

    return ProcessCommissionResult(
        processed=True,
        referral_id=referral.id,
        affiliate_id=affiliate.id,
        commission=result.commission,
        fraud=fraud,
    )


async def process_commission(
    session: AsyncSession,
    user_id: str,
    amount: int,
    transaction_type: str,
    reference_id: str,
    now: Optional[datetime] = None,
) -> ProcessCommissionResult:
    """
    Обработать оплату приглашённого пользователя.

    Отказы (нет реферала, уже сконвертирован, партнёр неактивен и т.п.)
    возвращаются как processed=False с reason. Фрод-оценка прикладывается
    к результату и уходит админам, но конверсию не блокирует.
    """
    if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
        return _skip("invalid amount")

    if transaction_type not in TRANSACTION_TYPES:
        return _skip("invalid transaction type")

    now = now or datetime.utcnow()
    result = await _convert(session, user_id, amount, transaction_type, reference_id, now)

    if result.processed and result.fraud and result.fraud.is_fraudulent:
        log_service.warning(
            f"Фрод-флаг конверсии: affiliate_id={result.affiliate_id}, "
            f"referral_id={result.referral_id}, risk={result.fraud.risk_score}, "
            f"reasons={result.fraud.reasons}"
        )
        await notify_admins(format_fraud_alert(result.affiliate_id, result.referral_id, result.fraud))

    return result
