"""
Бизнес-логика реферальной программы: создание партнёра и привязка реферала.
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from affiliate_engine.config import get_settings
from affiliate_engine.db import crud
from affiliate_engine.db.models import Affiliate, AffiliateStatus, Referral
from affiliate_engine.db.session import transactional
from affiliate_engine.logger import log_service
from affiliate_engine.services.attribution import verify_attribution
from affiliate_engine.services.errors import (
    AlreadyExists, AlreadyReferred, CodeGenerationExhausted, CodeTaken,
    InvalidCode, InvalidCodeFormat, NotActive, SelfReferral, ValidationError,
)
from affiliate_engine.services.fraud_detector import check_referral
from affiliate_engine.services.referral_codes import generate_code, is_valid_code

settings = get_settings()

CODE_GENERATION_ATTEMPTS = 10


async def generate_unique_code(session: AsyncSession, seed_id: str) -> str:
    """Сгенерировать код, которого ещё нет в БД (не больше 10 попыток)"""
    for _ in range(CODE_GENERATION_ATTEMPTS):
        code = generate_code(seed_id)
        if not await crud.code_exists(session, code):
            return code

    raise CodeGenerationExhausted(CODE_GENERATION_ATTEMPTS)


def _normalize_rate(commission_rate) -> Decimal:
    if commission_rate is None:
        commission_rate = settings.default_commission_rate
    try:
        rate = Decimal(str(commission_rate))
    except InvalidOperation:
        raise ValidationError(f"Invalid commission rate: {commission_rate!r}")

    if not rate.is_finite() or rate < 0 or rate > 1:
        raise ValidationError(f"Commission rate must be between 0 and 1, got {commission_rate}")
    return rate


@transactional()
async def create_affiliate(
    session: AsyncSession,
    user_id: str,
    code: Optional[str] = None,
    commission_rate=None,
    tier: Optional[int] = None,
) -> Affiliate:
    """
    Зарегистрировать пользователя в партнёрской программе.

    Ошибки:
    - AlreadyExists — у пользователя уже есть партнёрский аккаунт
    - InvalidCodeFormat — свой код не проходит ^[A-Za-z0-9]{6,20}$
    - CodeTaken — свой код уже занят
    """
    rate = _normalize_rate(commission_rate)
    tier = 1 if tier is None else tier
    if tier < 1:
        raise ValidationError(f"Tier must be >= 1, got {tier}")

    if await crud.get_affiliate_by_user_id(session, user_id):
        raise AlreadyExists(user_id)

    if code is not None:
        if not is_valid_code(code):
            raise InvalidCodeFormat(code)
        if await crud.code_exists(session, code):
            raise CodeTaken(code)
    else:
        code = await generate_unique_code(session, user_id)

    try:
        affiliate = await crud.create_affiliate(
            session,
            user_id=user_id,
            code=code,
            commission_rate=rate,
            tier=tier,
            status=AffiliateStatus.ACTIVE,
            total_earnings=0,
            pending_earnings=0,
            paid_earnings=0,
        )
    except IntegrityError:
        # Параллельная регистрация успела раньше
        await session.rollback()
        if await crud.get_affiliate_by_user_id(session, user_id):
            raise AlreadyExists(user_id)
        raise CodeTaken(code)

    log_service.info(
        f"Партнёр создан: affiliate_id={affiliate.id}, user_id={user_id}, "
        f"code={affiliate.code}, rate={rate}, tier={tier}"
    )
    return affiliate


@transactional()
async def track_referral(
    session: AsyncSession,
    affiliate_code: str,
    referred_user_id: str,
) -> Referral:
    """
    Привязать нового пользователя к партнёру по коду.

    Правила:
    - код должен существовать, партнёр — быть ACTIVE
    - self-referral запрещён всегда
    - пользователь может быть приглашён только один раз
    """
    if not is_valid_code(affiliate_code):
        raise InvalidCode(affiliate_code)

    affiliate = await crud.get_affiliate_by_code(session, affiliate_code)
    if not affiliate:
        raise InvalidCode(affiliate_code)

    if affiliate.status != AffiliateStatus.ACTIVE:
        raise NotActive(affiliate.id, affiliate.status.value)

    fraud = check_referral(affiliate.user_id, referred_user_id)
    if fraud.is_fraudulent:
        log_service.warning(
            f"Попытка self-ref: affiliate_id={affiliate.id}, user_id={referred_user_id}, "
            f"risk={fraud.risk_score}, reasons={fraud.reasons}"
        )
        raise SelfReferral(referred_user_id)

    if await crud.get_referral_by_referred_user(session, referred_user_id):
        raise AlreadyReferred(referred_user_id)

    try:
        referral = await crud.create_referral(session, affiliate.id, referred_user_id)
    except IntegrityError:
        await session.rollback()
        raise AlreadyReferred(referred_user_id)

    log_service.info(
        f"Реферал зарегистрирован: referral_id={referral.id}, affiliate_id={affiliate.id}, "
        f"referred_user_id={referred_user_id}"
    )
    return referral


async def track_referral_from_attribution(
    session: AsyncSession,
    token: Optional[str],
    referred_user_id: str,
    now: Optional[datetime] = None,
) -> Optional[Referral]:
    """
    Потребить подписанную запись атрибуции при регистрации.
    Нет записи / подделка / истекла -> None (пользователь просто не реферал).
    """
    record = verify_attribution(token, now=now)
    if record is None:
        return None

    return await track_referral(session, record.code, referred_user_id)
