"""
Тесты регистрации партнёров и привязки рефералов.
"""

from decimal import Decimal

import pytest
from sqlalchemy import update

from affiliate_engine.db.models import Affiliate, AffiliateStatus, ReferralStatus
from affiliate_engine.services import referrals
from affiliate_engine.services.attribution import sign_attribution
from affiliate_engine.services.errors import (
    AlreadyExists, AlreadyReferred, CodeGenerationExhausted, CodeTaken,
    InvalidCode, InvalidCodeFormat, NotActive, SelfReferral, ValidationError,
)
from affiliate_engine.services.referrals import (
    create_affiliate, generate_unique_code, track_referral,
    track_referral_from_attribution,
)


async def test_create_affiliate_defaults(session):
    affiliate = await create_affiliate(session, "user-1")

    assert affiliate.id is not None
    assert affiliate.code.startswith("USER1")
    assert affiliate.commission_rate == Decimal("0.1")
    assert affiliate.tier == 1
    assert affiliate.status == AffiliateStatus.ACTIVE
    assert affiliate.total_earnings == 0
    assert affiliate.pending_earnings == 0
    assert affiliate.paid_earnings == 0


async def test_create_affiliate_custom_code(session):
    affiliate = await create_affiliate(session, "user-1", code="MyCode2026", commission_rate=0.2, tier=3)

    assert affiliate.code == "MyCode2026"
    assert affiliate.commission_rate == Decimal("0.2")
    assert affiliate.tier == 3


async def test_create_affiliate_twice(session):
    await create_affiliate(session, "user-1")

    with pytest.raises(AlreadyExists):
        await create_affiliate(session, "user-1")


async def test_create_affiliate_code_taken(session):
    await create_affiliate(session, "user-1", code="TAKEN123")

    with pytest.raises(CodeTaken):
        await create_affiliate(session, "user-2", code="TAKEN123")


async def test_create_affiliate_bad_code(session):
    with pytest.raises(InvalidCodeFormat):
        await create_affiliate(session, "user-1", code="no!")


@pytest.mark.parametrize("kwargs", [{"commission_rate": 1.5}, {"commission_rate": -0.1}, {"tier": 0}])
async def test_create_affiliate_validation(session, kwargs):
    with pytest.raises(ValidationError):
        await create_affiliate(session, "user-1", **kwargs)


async def test_generate_unique_code_exhausted(session, monkeypatch):
    await create_affiliate(session, "user-1", code="FIXED00001")
    monkeypatch.setattr(referrals, "generate_code", lambda seed: "FIXED00001")

    with pytest.raises(CodeGenerationExhausted):
        await generate_unique_code(session, "user-2")


async def test_track_referral(session, affiliate):
    referral = await track_referral(session, "PARTNER01", "new-user")

    assert referral.affiliate_id == affiliate.id
    assert referral.referred_user_id == "new-user"
    assert referral.status == ReferralStatus.PENDING
    assert referral.commission == 0


async def test_track_referral_unknown_code(session, affiliate):
    with pytest.raises(InvalidCode):
        await track_referral(session, "NOPE0000", "new-user")

    with pytest.raises(InvalidCode):
        await track_referral(session, "bad code", "new-user")


async def test_track_referral_self(session, affiliate):
    with pytest.raises(SelfReferral):
        await track_referral(session, "PARTNER01", "aff-user")


async def test_track_referral_only_once(session, affiliate):
    await create_affiliate(session, "aff-2", code="PARTNER02")
    await track_referral(session, "PARTNER01", "new-user")

    with pytest.raises(AlreadyReferred):
        await track_referral(session, "PARTNER02", "new-user")


async def test_track_referral_inactive_affiliate(session, affiliate):
    await session.execute(
        update(Affiliate).where(Affiliate.id == affiliate.id).values(status=AffiliateStatus.SUSPENDED)
    )
    await session.commit()
    await session.refresh(affiliate)

    with pytest.raises(NotActive):
        await track_referral(session, "PARTNER01", "new-user")


async def test_track_referral_from_attribution(session, affiliate):
    token = sign_attribution("PARTNER01", "visitor1")

    referral = await track_referral_from_attribution(session, token, "new-user")

    assert referral is not None
    assert referral.affiliate_id == affiliate.id


async def test_track_referral_from_invalid_attribution(session, affiliate):
    assert await track_referral_from_attribution(session, None, "new-user") is None
    assert await track_referral_from_attribution(session, "PARTNER01.v.1.sig", "new-user") is None
