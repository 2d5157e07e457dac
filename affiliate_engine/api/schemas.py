"""
Pydantic-модели запросов и сериализация ORM-объектов в ответы.
"""

from typing import Optional

from pydantic import BaseModel, Field

from affiliate_engine.db.models import Affiliate, Payout, Referral


class CreateAffiliateRequest(BaseModel):
    code: Optional[str] = None
    commission_rate: Optional[float] = None
    tier: Optional[int] = None


class SignupRequest(BaseModel):
    # Явный код имеет приоритет над cookie атрибуции
    code: Optional[str] = None


class PayoutRequest(BaseModel):
    amount: int = Field(..., description="Сумма в центах")
    method: str
    notes: Optional[str] = None


class RejectPayoutRequest(BaseModel):
    reason: str


def affiliate_to_dict(affiliate: Affiliate) -> dict:
    return {
        "id": affiliate.id,
        "user_id": affiliate.user_id,
        "code": affiliate.code,
        "commission_rate": str(affiliate.commission_rate),
        "tier": affiliate.tier,
        "status": affiliate.status.value,
        "total_earnings": affiliate.total_earnings,
        "pending_earnings": affiliate.pending_earnings,
        "paid_earnings": affiliate.paid_earnings,
        "created_at": affiliate.created_at.isoformat() if affiliate.created_at else None,
    }


def referral_to_dict(referral: Referral) -> dict:
    return {
        "id": referral.id,
        "affiliate_id": referral.affiliate_id,
        "referred_user_id": referral.referred_user_id,
        "status": referral.status.value,
        "conversion_value": referral.conversion_value,
        "commission": referral.commission,
        "converted_at": referral.converted_at.isoformat() if referral.converted_at else None,
        "canceled_at": referral.canceled_at.isoformat() if referral.canceled_at else None,
        "created_at": referral.created_at.isoformat() if referral.created_at else None,
    }


def payout_to_dict(payout: Payout) -> dict:
    return {
        "id": payout.id,
        "affiliate_id": payout.affiliate_id,
        "amount": payout.amount,
        "method": payout.method.value,
        "status": payout.status.value,
        "notes": payout.notes,
        "reason": payout.reason,
        "processed_at": payout.processed_at.isoformat() if payout.processed_at else None,
        "created_at": payout.created_at.isoformat() if payout.created_at else None,
    }
