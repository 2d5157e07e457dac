"""
Статистика партнёров: личный кабинет, лидерборд, фрод-отчёт для админки.
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, func, desc
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_engine.db import crud
from affiliate_engine.db.models import (
    Affiliate, AffiliateStatus, Referral, ReferralStatus,
)
from affiliate_engine.logger import log_service
from affiliate_engine.services.errors import ValidationError
from affiliate_engine.services.fraud_detector import (
    HOUR_MS, aggregate, check_activity, check_velocity,
)

LEADERBOARD_METRICS = ("earnings", "referrals", "conversions")
LEADERBOARD_PERIODS = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "all": None,
}
MAX_LEADERBOARD_LIMIT = 100


@dataclass
class AffiliateStats:
    affiliate_id: int
    code: str
    total_referrals: int
    converted_referrals: int
    conversion_rate: float  # в процентах
    total_earnings: int
    pending_earnings: int
    paid_earnings: int
    lifetime_value: int

    def to_dict(self) -> dict:
        return asdict(self)


async def get_affiliate_stats(session: AsyncSession, user_id: str) -> Optional[AffiliateStats]:
    """None, если пользователь не партнёр"""
    affiliate = await crud.get_affiliate_by_user_id(session, user_id)
    if not affiliate:
        return None

    total = await crud.count_referrals(session, affiliate.id)
    converted = await crud.count_referrals(session, affiliate.id, status=ReferralStatus.CONVERTED)
    rate = round(converted / total * 100, 2) if total > 0 else 0.0

    return AffiliateStats(
        affiliate_id=affiliate.id,
        code=affiliate.code,
        total_referrals=total,
        converted_referrals=converted,
        conversion_rate=rate,
        total_earnings=affiliate.total_earnings,
        pending_earnings=affiliate.pending_earnings,
        paid_earnings=affiliate.paid_earnings,
        lifetime_value=affiliate.total_earnings,
    )


async def get_leaderboard(
    session: AsyncSession,
    metric: str = "earnings",
    period: str = "30d",
    limit: int = 10,
    now: Optional[datetime] = None,
) -> List[dict]:
    """
    Топ активных партнёров.

    earnings — сумма комиссий по конверсиям за период (минус отменённые),
    referrals — новые рефералы за период, conversions — конверсии за период.
    """
    if metric not in LEADERBOARD_METRICS:
        raise ValidationError(f"Unknown leaderboard metric: {metric}")
    if period not in LEADERBOARD_PERIODS:
        raise ValidationError(f"Unknown leaderboard period: {period}")

    limit = max(1, min(limit, MAX_LEADERBOARD_LIMIT))
    window = LEADERBOARD_PERIODS[period]
    since = (now or datetime.utcnow()) - window if window else None

    if metric == "referrals":
        value = func.count(Referral.id)
        conditions = []
        if since is not None:
            conditions.append(Referral.created_at >= since)
    else:
        value = (
            func.coalesce(func.sum(Referral.commission), 0)
            if metric == "earnings"
            else func.count(Referral.id)
        )
        conditions = [Referral.status == ReferralStatus.CONVERTED]
        if since is not None:
            conditions.append(Referral.converted_at >= since)

    query = (
        select(Affiliate.id, Affiliate.code, value.label("value"))
        .join(Referral, Referral.affiliate_id == Affiliate.id)
        .where(Affiliate.status == AffiliateStatus.ACTIVE, *conditions)
        .group_by(Affiliate.id, Affiliate.code)
        .order_by(desc("value"), Affiliate.id)
        .limit(limit)
    )
    rows = (await session.execute(query)).all()

    return [
        {"rank": i, "affiliate_id": row.id, "code": row.code, "value": int(row.value)}
        for i, row in enumerate(rows, start=1)
    ]


async def _affiliate_fraud_check(session: AsyncSession, affiliate: Affiliate, now: datetime):
    referrals = await crud.list_referrals(session, affiliate.id)

    converted_at = [r.converted_at for r in referrals if r.converted_at is not None]
    canceled_after_conversion = sum(
        1 for r in referrals
        if r.status == ReferralStatus.CANCELED and r.converted_at is not None
    )
    activity = check_activity(len(referrals), converted_at, canceled_after_conversion)

    last_hour = sum(1 for r in referrals if r.created_at >= now - timedelta(hours=1))
    velocity = check_velocity(last_hour, HOUR_MS)

    return aggregate([activity, velocity])


async def build_fraud_report(
    session: AsyncSession,
    affiliate_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> List[dict]:
    """Подозрительные партнёры, самые рискованные первыми"""
    now = now or datetime.utcnow()

    if affiliate_id is not None:
        affiliate = await crud.get_affiliate(session, affiliate_id)
        affiliates = [affiliate] if affiliate else []
    else:
        affiliates = await crud.list_affiliates(session)

    flagged = []
    for affiliate in affiliates:
        result = await _affiliate_fraud_check(session, affiliate, now)
        if result.risk_score == 0:
            continue
        flagged.append({
            "affiliate_id": affiliate.id,
            "code": affiliate.code,
            "status": affiliate.status.value,
            **result.to_dict(),
        })

    flagged.sort(key=lambda item: item["risk_score"], reverse=True)

    if flagged:
        log_service.info(f"Фрод-отчёт: {len(flagged)} подозрительных партнёров")
    return flagged
