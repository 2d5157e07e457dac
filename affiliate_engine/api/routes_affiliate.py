"""
Публичные endpoints партнёрской программы: трекинг переходов, регистрация,
личный кабинет (статистика, рефералы, выплаты), лидерборд.

Пользователь определяется заголовком X-User-Id (аутентификация — вне сервиса).
"""

import secrets
from typing import Optional

from fastapi import APIRouter, Cookie, Depends, Header, HTTPException, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_engine.api.schemas import (
    CreateAffiliateRequest, PayoutRequest, SignupRequest,
    affiliate_to_dict, payout_to_dict, referral_to_dict,
)
from affiliate_engine.config import get_settings
from affiliate_engine.db.crud import (
    get_affiliate_by_code, get_affiliate_by_user_id, list_payouts, list_referrals,
)
from affiliate_engine.db.models import AffiliateStatus, PayoutStatus, ReferralStatus
from affiliate_engine.db.session import get_session
from affiliate_engine.logger import log_api
from affiliate_engine.services.attribution import sign_attribution, verify_attribution
from affiliate_engine.services.errors import ValidationError
from affiliate_engine.services.notifications import format_payout_request, notify_admins
from affiliate_engine.services.payouts import request_payout
from affiliate_engine.services.referral_codes import extract_code_from_url
from affiliate_engine.services.referrals import (
    create_affiliate, track_referral, track_referral_from_attribution,
)
from affiliate_engine.services.stats import get_affiliate_stats, get_leaderboard

router = APIRouter(tags=["affiliates"])
settings = get_settings()


def current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="X-User-Id header is required")
    return x_user_id.strip()


def _parse_status(enum_cls, value: Optional[str]):
    if not value:
        return None
    try:
        return enum_cls(value.upper())
    except ValueError:
        raise ValidationError(f"Unknown status: {value}")


async def _current_affiliate(session: AsyncSession, user_id: str):
    affiliate = await get_affiliate_by_user_id(session, user_id)
    if not affiliate:
        raise HTTPException(status_code=404, detail="Affiliate not found")
    return affiliate


# ============= ATTRIBUTION =============

@router.get("/track")
async def track_visit(
    request: Request,
    response: Response,
    session: AsyncSession = Depends(get_session),
):
    """
    Переход по реферальной ссылке.
    Выдаёт подписанную cookie атрибуции; действующая атрибуция не перезаписывается.
    """
    cookie_name = settings.attribution_cookie_name
    existing = verify_attribution(request.cookies.get(cookie_name))
    if existing:
        return {"tracked": False, "code": existing.code, "reason": "already attributed"}

    code = extract_code_from_url(str(request.url))
    if not code:
        return {"tracked": False, "code": None, "reason": "no code"}

    affiliate = await get_affiliate_by_code(session, code)
    if not affiliate or affiliate.status != AffiliateStatus.ACTIVE:
        log_api.info(f"Переход по неизвестному/неактивному коду: {code}")
        return {"tracked": False, "code": code, "reason": "invalid code"}

    visitor_id = request.cookies.get(settings.visitor_cookie_name)
    if not visitor_id or not visitor_id.isalnum():
        visitor_id = secrets.token_hex(16)

    max_age = settings.attribution_window_days * 24 * 60 * 60
    token = sign_attribution(code, visitor_id)
    response.set_cookie(cookie_name, token, max_age=max_age, httponly=True, samesite="lax")
    response.set_cookie(settings.visitor_cookie_name, visitor_id, max_age=max_age, httponly=True, samesite="lax")

    log_api.info(f"Атрибуция выдана: code={code}, visitor={visitor_id}")
    return {"tracked": True, "code": code}


# ============= AFFILIATE =============

@router.post("/affiliates", status_code=201)
async def create_affiliate_endpoint(
    body: CreateAffiliateRequest,
    user_id: str = Depends(current_user_id),
    session: AsyncSession = Depends(get_session),
):
    affiliate = await create_affiliate(
        session,
        user_id,
        code=body.code,
        commission_rate=body.commission_rate,
        tier=body.tier,
    )
    return affiliate_to_dict(affiliate)


@router.post("/affiliates/signup")
async def signup_referral(
    response: Response,
    body: Optional[SignupRequest] = None,
    user_id: str = Depends(current_user_id),
    session: AsyncSession = Depends(get_session),
    attribution: Optional[str] = Cookie(None, alias=settings.attribution_cookie_name),
):
    """Зарегистрировать нового пользователя как реферала (по коду или по cookie)"""
    if body and body.code:
        referral = await track_referral(session, body.code, user_id)
    else:
        referral = await track_referral_from_attribution(session, attribution, user_id)

    # Атрибуция потреблена или бесполезна, чистим cookie
    response.delete_cookie(settings.attribution_cookie_name)

    if referral is None:
        return {"referred": False, "referral": None}
    return {"referred": True, "referral": referral_to_dict(referral)}


@router.get("/affiliates/me/stats")
async def my_stats(
    user_id: str = Depends(current_user_id),
    session: AsyncSession = Depends(get_session),
):
    stats = await get_affiliate_stats(session, user_id)
    if stats is None:
        raise HTTPException(status_code=404, detail="Affiliate not found")
    return stats.to_dict()


@router.get("/affiliates/me/referrals")
async def my_referrals(
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Рефералы партнёра, новые сверху; status=CONVERTED даёт список конверсий"""
    referral_status = _parse_status(ReferralStatus, status)
    affiliate = await _current_affiliate(session, user_id)

    referrals = await list_referrals(
        session, affiliate.id, status=referral_status, limit=limit, offset=offset,
    )
    return {
        "referrals": [referral_to_dict(r) for r in referrals],
        "limit": limit,
        "offset": offset,
    }


@router.get("/affiliates/me/payouts")
async def my_payouts(
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user_id: str = Depends(current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """История заявок на выплату"""
    payout_status = _parse_status(PayoutStatus, status)
    affiliate = await _current_affiliate(session, user_id)

    payouts = await list_payouts(
        session, status=payout_status, affiliate_id=affiliate.id, limit=limit, offset=offset,
    )
    return {
        "payouts": [payout_to_dict(p) for p in payouts],
        "limit": limit,
        "offset": offset,
    }


@router.post("/affiliates/me/payouts")
async def create_payout_request(
    body: PayoutRequest,
    response: Response,
    user_id: str = Depends(current_user_id),
    session: AsyncSession = Depends(get_session),
):
    result = await request_payout(session, user_id, body.amount, body.method, notes=body.notes)

    if not result.success:
        if result.error == "affiliate not found":
            raise HTTPException(status_code=404, detail="Affiliate not found")
        return {"success": False, "error": result.error}

    await notify_admins(format_payout_request(result.payout))

    response.status_code = 201
    return {"success": True, "payout": payout_to_dict(result.payout)}


@router.get("/affiliates/leaderboard")
async def leaderboard(
    metric: str = "earnings",
    period: str = "30d",
    limit: int = 10,
    session: AsyncSession = Depends(get_session),
):
    entries = await get_leaderboard(session, metric=metric, period=period, limit=limit)
    return {"metric": metric, "period": period, "entries": entries}
