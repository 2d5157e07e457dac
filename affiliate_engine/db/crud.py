"""
CRUD операции и репозиторий бухгалтерии партнёров.

Функции для Affiliate/Referral/Payout/LedgerEntry не коммитят: транзакцию
закрывает use-case (см. db.session.transactional). Вебхуки коммитятся сразу.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, and_
from datetime import datetime
from typing import Optional, List

from affiliate_engine.db.models import (
    Affiliate, Referral, ReferralStatus, Payout, PayoutStatus,
    OPEN_PAYOUT_STATUSES, LedgerEntry, LedgerEntryKind, WebhookEvent,
)
from affiliate_engine.services.errors import LedgerConflict, LedgerInvariantError


# ============= AFFILIATE =============

async def get_affiliate(
    session: AsyncSession, affiliate_id: int, for_update: bool = False
) -> Optional[Affiliate]:
    query = select(Affiliate).where(Affiliate.id == affiliate_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def get_affiliate_by_user_id(
    session: AsyncSession, user_id: str, for_update: bool = False
) -> Optional[Affiliate]:
    query = select(Affiliate).where(Affiliate.user_id == user_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def get_affiliate_by_code(session: AsyncSession, code: str) -> Optional[Affiliate]:
    result = await session.execute(select(Affiliate).where(Affiliate.code == code))
    return result.scalar_one_or_none()


async def code_exists(session: AsyncSession, code: str) -> bool:
    result = await session.execute(
        select(func.count(Affiliate.id)).where(Affiliate.code == code)
    )
    return (result.scalar() or 0) > 0


async def create_affiliate(session: AsyncSession, **kwargs) -> Affiliate:
    affiliate = Affiliate(**kwargs)
    session.add(affiliate)
    await session.flush()
    await session.refresh(affiliate)
    return affiliate


async def list_affiliates(session: AsyncSession, status=None) -> List[Affiliate]:
    query = select(Affiliate).order_by(Affiliate.id)
    if status is not None:
        query = query.where(Affiliate.status == status)
    result = await session.execute(query)
    return result.scalars().all()


async def apply_earnings_delta(
    session: AsyncSession,
    affiliate: Affiliate,
    pending_delta: int = 0,
    paid_delta: int = 0,
) -> Affiliate:
    """
    Единственная точка изменения балансов партнёра.

    total меняется на pending_delta + paid_delta, поэтому
    total == pending + paid сохраняется. UPDATE выполняется только если
    version не изменилась с момента чтения, иначе LedgerConflict.
    """
    new_pending = affiliate.pending_earnings + pending_delta
    new_paid = affiliate.paid_earnings + paid_delta
    new_total = affiliate.total_earnings + pending_delta + paid_delta

    if new_pending < 0 or new_paid < 0 or new_total < 0:
        raise LedgerInvariantError(
            f"Affiliate {affiliate.id}: negative earnings "
            f"(total={new_total}, pending={new_pending}, paid={new_paid})"
        )

    result = await session.execute(
        update(Affiliate)
        .where(
            Affiliate.id == affiliate.id,
            Affiliate.version == affiliate.version,
        )
        .values(
            total_earnings=Affiliate.total_earnings + pending_delta + paid_delta,
            pending_earnings=Affiliate.pending_earnings + pending_delta,
            paid_earnings=Affiliate.paid_earnings + paid_delta,
            version=Affiliate.version + 1,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        raise LedgerConflict(f"Affiliate {affiliate.id} changed concurrently (version {affiliate.version})")

    await session.refresh(affiliate)
    return affiliate


# ============= REFERRAL =============

async def get_referral(session: AsyncSession, referral_id: int) -> Optional[Referral]:
    result = await session.execute(select(Referral).where(Referral.id == referral_id))
    return result.scalar_one_or_none()


async def get_referral_by_referred_user(
    session: AsyncSession, user_id: str, for_update: bool = False
) -> Optional[Referral]:
    query = select(Referral).where(Referral.referred_user_id == user_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def create_referral(session: AsyncSession, affiliate_id: int, referred_user_id: str) -> Referral:
    referral = Referral(
        affiliate_id=affiliate_id,
        referred_user_id=referred_user_id,
        status=ReferralStatus.PENDING,
        conversion_value=0,
        commission=0,
    )
    session.add(referral)
    await session.flush()
    await session.refresh(referral)
    return referral


async def transition_referral(
    session: AsyncSession,
    referral: Referral,
    expected: ReferralStatus,
    target: ReferralStatus,
    **values,
) -> Referral:
    """Compare-and-swap статуса реферала"""
    result = await session.execute(
        update(Referral)
        .where(Referral.id == referral.id, Referral.status == expected)
        .values(status=target, updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        raise LedgerConflict(f"Referral {referral.id} is no longer {expected.value}")

    await session.refresh(referral)
    return referral


async def list_referrals(
    session: AsyncSession,
    affiliate_id: int,
    status: Optional[ReferralStatus] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[Referral]:
    query = (
        select(Referral)
        .where(Referral.affiliate_id == affiliate_id)
        .order_by(Referral.created_at.desc(), Referral.id.desc())
        .offset(offset)
    )
    if status is not None:
        query = query.where(Referral.status == status)
    if limit is not None:
        query = query.limit(limit)
    result = await session.execute(query)
    return result.scalars().all()


async def count_referrals(
    session: AsyncSession,
    affiliate_id: int,
    status: Optional[ReferralStatus] = None,
    since: Optional[datetime] = None,
) -> int:
    conditions = [Referral.affiliate_id == affiliate_id]
    if status is not None:
        conditions.append(Referral.status == status)
    if since is not None:
        conditions.append(Referral.created_at >= since)

    result = await session.execute(select(func.count(Referral.id)).where(and_(*conditions)))
    return result.scalar() or 0


# ============= PAYOUT =============

async def get_payout(
    session: AsyncSession, payout_id: int, for_update: bool = False
) -> Optional[Payout]:
    query = select(Payout).where(Payout.id == payout_id)
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)
    result = await session.execute(query)
    return result.scalar_one_or_none()


async def create_payout(session: AsyncSession, **kwargs) -> Payout:
    payout = Payout(status=PayoutStatus.PENDING, **kwargs)
    session.add(payout)
    await session.flush()
    await session.refresh(payout)
    return payout


async def open_payouts_total(session: AsyncSession, affiliate_id: int) -> int:
    """Сумма заявок, которые ещё не выплачены и не отклонены"""
    result = await session.execute(
        select(func.coalesce(func.sum(Payout.amount), 0)).where(
            Payout.affiliate_id == affiliate_id,
            Payout.status.in_(OPEN_PAYOUT_STATUSES),
        )
    )
    return int(result.scalar() or 0)


async def transition_payout(
    session: AsyncSession,
    payout: Payout,
    expected: PayoutStatus,
    target: PayoutStatus,
    **values,
) -> Payout:
    """Compare-and-swap статуса выплаты"""
    result = await session.execute(
        update(Payout)
        .where(Payout.id == payout.id, Payout.status == expected)
        .values(status=target, updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        raise LedgerConflict(f"Payout {payout.id} is no longer {expected.value}")

    await session.refresh(payout)
    return payout


async def list_payouts(
    session: AsyncSession,
    status: Optional[PayoutStatus] = None,
    affiliate_id: Optional[int] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[Payout]:
    query = (
        select(Payout)
        .order_by(Payout.created_at.desc(), Payout.id.desc())
        .limit(limit)
        .offset(offset)
    )
    if status is not None:
        query = query.where(Payout.status == status)
    if affiliate_id is not None:
        query = query.where(Payout.affiliate_id == affiliate_id)
    result = await session.execute(query)
    return result.scalars().all()


# ============= LEDGER =============

async def ledger_entry_exists(session: AsyncSession, kind: LedgerEntryKind, reference_id: str) -> bool:
    result = await session.execute(
        select(func.count(LedgerEntry.id)).where(
            LedgerEntry.kind == kind,
            LedgerEntry.reference_id == reference_id,
        )
    )
    return (result.scalar() or 0) > 0


async def add_ledger_entry(session: AsyncSession, **kwargs) -> LedgerEntry:
    entry = LedgerEntry(**kwargs)
    session.add(entry)
    await session.flush()
    return entry


async def list_ledger_entries(session: AsyncSession, affiliate_id: int) -> List[LedgerEntry]:
    result = await session.execute(
        select(LedgerEntry)
        .where(LedgerEntry.affiliate_id == affiliate_id)
        .order_by(LedgerEntry.id)
    )
    return result.scalars().all()


# ============= WEBHOOK =============

async def save_webhook_event(session: AsyncSession, **kwargs) -> WebhookEvent:
    """Сохранить сырое событие вебхука"""
    event = WebhookEvent(**kwargs)
    session.add(event)
    await session.commit()
    await session.refresh(event)
    return event


async def get_webhook_event_by_hash(
    session: AsyncSession, provider: str, payload_hash: str
) -> Optional[WebhookEvent]:
    """Проверить, приходило ли уже это событие"""
    result = await session.execute(
        select(WebhookEvent).where(
            and_(
                WebhookEvent.provider == provider,
                WebhookEvent.payload_hash == payload_hash,
            )
        )
    )
    return result.scalars().first()


async def mark_webhook_processed(session: AsyncSession, webhook_event_id: int):
    """Отметить событие как обработанное"""
    await session.execute(
        update(WebhookEvent)
        .where(WebhookEvent.id == webhook_event_id)
        .values(processed_at=datetime.utcnow())
    )
    await session.commit()
