"""
Фрод-эвристики партнёрской программы.

Только скоринг по данным, которые уже есть в домене (email, тайминги, статусы).
Результат — рекомендация для модерации; сам модуль никого не блокирует.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from affiliate_engine.config import get_settings
from affiliate_engine.db.models import AffiliateStatus, ReferralStatus

settings = get_settings()

FIVE_MINUTES_MS = 5 * 60 * 1000
HOUR_MS = 60 * 60 * 1000
DAY_MS = 24 * HOUR_MS

FRAUD_THRESHOLD = 50
MAX_RISK = 100

_NUMERIC_SUFFIX = re.compile(r"^(.+?)(\d+)$")


@dataclass
class FraudCheckResult:
    is_fraudulent: bool = False
    risk_score: int = 0  # 0-100
    reasons: List[str] = field(default_factory=list)
    severity: str = "low"  # low | medium | high | critical

    def to_dict(self) -> dict:
        return {
            "is_fraudulent": self.is_fraudulent,
            "risk_score": self.risk_score,
            "reasons": list(self.reasons),
            "severity": self.severity,
        }


def severity_for(risk_score: int) -> str:
    if risk_score >= 80:
        return "critical"
    if risk_score >= 50:
        return "high"
    if risk_score >= 25:
        return "medium"
    return "low"


def _result(risk_score: int, reasons: List[str]) -> FraudCheckResult:
    risk_score = min(risk_score, MAX_RISK)
    return FraudCheckResult(
        is_fraudulent=risk_score >= FRAUD_THRESHOLD,
        risk_score=risk_score,
        reasons=reasons,
        severity=severity_for(risk_score),
    )


def is_self_referral(affiliate_user_id: str, referred_user_id: str) -> bool:
    return affiliate_user_id == referred_user_id


def check_referral(affiliate_user_id: str, referred_user_id: str) -> FraudCheckResult:
    """Проверка при регистрации реферала"""
    reasons = []
    risk = 0

    if is_self_referral(affiliate_user_id, referred_user_id):
        reasons.append("self-referral")
        risk += 100

    return _result(risk, reasons)


def check_conversion(
    referral,
    affiliate,
    conversion_amount: int,
    time_since_referral_ms: int,
    average_conversion: Optional[int] = None,
) -> FraudCheckResult:
    """
    Проверка конверсии.

    referral/affiliate — объекты с полем status (ORM-модели или что угодно похожее).
    """
    if average_conversion is None:
        average_conversion = settings.average_conversion

    reasons = []
    risk = 0

    if time_since_referral_ms < FIVE_MINUTES_MS:
        reasons.append("Suspiciously fast conversion (< 5 minutes)")
        risk += 30

    if conversion_amount > average_conversion * 10:
        reasons.append("Unusually high conversion amount")
        risk += 25

    if affiliate.status == AffiliateStatus.SUSPENDED:
        reasons.append("Affiliate account is suspended")
        risk += 100

    if referral.status == ReferralStatus.CONVERTED:
        reasons.append("Referral already converted")
        risk += 50

    return _result(risk, reasons)


def check_velocity(referral_count: int, time_window_ms: int) -> FraudCheckResult:
    """Слишком много рефералов за окно времени"""
    reasons = []
    risk = 0

    if time_window_ms <= 0:
        return _result(0, reasons)

    per_hour = referral_count / (time_window_ms / HOUR_MS)

    if per_hour > 10:
        reasons.append(f"Suspicious referral velocity: {per_hour:.1f} per hour")
        risk += 40

    if per_hour > 20:
        reasons.append("Extremely high referral velocity")
        risk += 40

    return _result(risk, reasons)


def _local_part(email: str) -> str:
    return email.split("@")[0].lower()


def check_email_pattern(affiliate_email: str, referred_email: str) -> FraudCheckResult:
    """Похожие email партнёра и приглашённого: совпадение, plus-алиас, user1/user2"""
    reasons = []
    risk = 0

    affiliate_user = _local_part(affiliate_email)
    referred_user = _local_part(referred_email)

    if affiliate_user == referred_user:
        reasons.append("Identical email usernames")
        risk += 40

    affiliate_base = affiliate_user.split("+")[0]
    referred_base = referred_user.split("+")[0]
    if affiliate_base == referred_base and affiliate_user != referred_user:
        reasons.append("Email plus addressing detected")
        risk += 50

    affiliate_match = _NUMERIC_SUFFIX.match(affiliate_user)
    referred_match = _NUMERIC_SUFFIX.match(referred_user)
    if affiliate_match and referred_match:
        if affiliate_match.group(1) == referred_match.group(1):
            diff = abs(int(affiliate_match.group(2)) - int(referred_match.group(2)))
            if diff <= 5:
                reasons.append("Sequential email pattern detected")
                risk += 35

    return _result(risk, reasons)


def check_activity(
    total_referrals: int,
    converted_at: Sequence[datetime],
    canceled_after_conversion: int,
) -> FraudCheckResult:
    """
    Паттерны по всей истории партнёра (для админского отчёта).

    converted_at — моменты конверсий по сконвертированным рефералам.
    """
    reasons = []
    risk = 0

    conversions = sorted(converted_at)
    if len(conversions) > 5:
        span_ms = (conversions[-1] - conversions[0]).total_seconds() * 1000
        if span_ms < DAY_MS:
            reasons.append(
                f"Rapid conversions: {len(conversions)} in {span_ms / HOUR_MS:.1f} hours"
            )
            risk += 30

    if total_referrals > 10:
        conversion_rate = len(conversions) / total_referrals * 100
        if conversion_rate > 80:
            reasons.append(f"Unusually high conversion rate: {conversion_rate:.1f}%")
            risk += 20

    if canceled_after_conversion > 2:
        reasons.append(f"Referrals canceled after conversion: {canceled_after_conversion}")
        risk += 40

    return _result(risk, reasons)


def aggregate(results: Iterable[FraudCheckResult]) -> FraudCheckResult:
    results = list(results)
    if not results:
        return FraudCheckResult()

    risk = max(r.risk_score for r in results)
    return FraudCheckResult(
        is_fraudulent=any(r.is_fraudulent for r in results),
        risk_score=risk,
        reasons=[reason for r in results for reason in r.reasons],
        severity=severity_for(risk),
    )
