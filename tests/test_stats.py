"""
Тесты статистики партнёра, лидерборда и фрод-отчёта.
"""

from datetime import datetime, timedelta

import pytest

from affiliate_engine.services.commission_processor import process_commission
from affiliate_engine.services.errors import ValidationError
from affiliate_engine.services.referrals import create_affiliate, track_referral
from affiliate_engine.services.refund_processor import process_refund
from affiliate_engine.services.stats import (
    build_fraud_report, get_affiliate_stats, get_leaderboard,
)


async def test_affiliate_stats(session, affiliate):
    await track_referral(session, "PARTNER01", "buyer-1")
    await track_referral(session, "PARTNER01", "buyer-2")
    await process_commission(session, "buyer-1", 10000, "subscription", "inv-1")

    stats = await get_affiliate_stats(session, "aff-user")

    assert stats.affiliate_id == affiliate.id
    assert stats.code == "PARTNER01"
    assert stats.total_referrals == 2
    assert stats.converted_referrals == 1
    assert stats.conversion_rate == 50.0
    assert stats.total_earnings == 1500
    assert stats.pending_earnings == 1500
    assert stats.paid_earnings == 0
    assert stats.lifetime_value == 1500


async def test_affiliate_stats_empty(session, affiliate):
    stats = await get_affiliate_stats(session, "aff-user")

    assert stats.total_referrals == 0
    assert stats.conversion_rate == 0.0


async def test_stats_for_non_affiliate(session):
    assert await get_affiliate_stats(session, "nobody") is None


async def test_leaderboard(session, affiliate):
    await create_affiliate(session, "aff-2", code="PARTNER02", commission_rate=0.1)
    for i in range(3):
        await track_referral(session, "PARTNER02", f"b2-{i}")
    await track_referral(session, "PARTNER01", "b1-0")

    await process_commission(session, "b1-0", 100000, "subscription", "inv-a")
    await process_commission(session, "b2-0", 10000, "subscription", "inv-b")

    by_earnings = await get_leaderboard(session, metric="earnings", period="all")
    assert [e["code"] for e in by_earnings] == ["PARTNER01", "PARTNER02"]
    assert by_earnings[0]["value"] == 15000
    assert by_earnings[0]["rank"] == 1

    by_referrals = await get_leaderboard(session, metric="referrals", period="30d")
    assert by_referrals[0]["code"] == "PARTNER02"
    assert by_referrals[0]["value"] == 3

    by_conversions = await get_leaderboard(session, metric="conversions", period="7d", limit=1)
    assert len(by_conversions) == 1
    assert by_conversions[0]["value"] == 1


async def test_leaderboard_period_excludes_old(session, affiliate):
    await track_referral(session, "PARTNER01", "buyer-1")
    await process_commission(session, "buyer-1", 10000, "subscription", "inv-1")

    in_a_year = datetime.utcnow() + timedelta(days=365)
    assert await get_leaderboard(session, metric="earnings", period="90d", now=in_a_year) == []


async def test_leaderboard_ignores_refunded(session, affiliate):
    await track_referral(session, "PARTNER01", "buyer-1")
    await process_commission(session, "buyer-1", 10000, "subscription", "inv-1")
    await process_refund(session, "buyer-1", "re-1", "refund")

    assert await get_leaderboard(session, metric="earnings", period="all") == []


@pytest.mark.parametrize("metric,period", [("clicks", "30d"), ("earnings", "1y")])
async def test_leaderboard_validation(session, metric, period):
    with pytest.raises(ValidationError):
        await get_leaderboard(session, metric=metric, period=period)


async def test_fraud_report_flags_velocity(session, affiliate):
    await create_affiliate(session, "quiet", code="QUIET0001")
    await track_referral(session, "QUIET0001", "q-1")
    for i in range(12):
        await track_referral(session, "PARTNER01", f"burst-{i}")

    report = await build_fraud_report(session)

    assert [item["code"] for item in report] == ["PARTNER01"]
    assert report[0]["risk_score"] == 40
    assert report[0]["severity"] == "medium"


async def test_fraud_report_single_affiliate(session, affiliate):
    for i in range(3):
        await track_referral(session, "PARTNER01", f"buyer-{i}")
        await process_commission(session, f"buyer-{i}", 10000, "subscription", f"inv-{i}")
        await process_refund(session, f"buyer-{i}", f"re-{i}", "chargeback")

    report = await build_fraud_report(session, affiliate_id=affiliate.id)

    assert len(report) == 1
    assert report[0]["risk_score"] == 40
    assert any("canceled after conversion" in reason for reason in report[0]["reasons"])

    assert await build_fraud_report(session, affiliate_id=999) == []
