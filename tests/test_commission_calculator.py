"""
Тесты калькулятора комиссий.
"""

from decimal import Decimal

import pytest

from affiliate_engine.services.commission_calculator import (
    MAX_RATE,
    audit_commission,
    calculate,
    calculate_credit_purchase_commission,
    calculate_subscription_commission,
    chargeback_adjustment,
    format_cents,
    is_valid_commission,
    refund_adjustment,
    tier_adjusted_rate,
    tier_multiplier,
)


def test_calculate_basic():
    """$100 при 15% -> $15"""
    result = calculate(10000, 0.15)

    assert result.commission == 1500
    assert result.rate == Decimal("0.15")
    assert result.amount == 10000


@pytest.mark.parametrize(
    "tier,expected",
    [(1, 1000), (2, 1100), (3, 1200), (4, 1300), (5, 1500)],
)
def test_calculate_tier_multipliers(tier, expected):
    assert calculate(10000, 0.10, tier).commission == expected


def test_unknown_tier_uses_base_rate():
    assert tier_multiplier(99) == Decimal("1.0")
    assert calculate(10000, 0.10, 99).commission == 1000


def test_rate_capped_at_max():
    """0.4 * 1.5 = 0.6, но потолок 0.5"""
    result = calculate(10000, 0.4, 5)

    assert result.rate == MAX_RATE
    assert result.commission == 5000


def test_round_half_up():
    """333 * 0.15 = 49.95 -> 50; 5 * 0.1 = 0.5 -> 1"""
    assert calculate(333, 0.15).commission == 50
    assert calculate(5, 0.10).commission == 1


def test_float_rate_has_no_binary_drift():
    """0.1 как float не должен давать 0.1000000000000000055..."""
    assert tier_adjusted_rate(0.1) == Decimal("0.1")
    assert calculate(1005, 0.1).commission == 101


def test_commission_never_exceeds_amount():
    for amount in (1, 7, 99, 1000, 123457):
        for tier in range(1, 6):
            result = calculate(amount, 0.5, tier)
            assert 0 <= result.commission <= amount
            assert is_valid_commission(result.commission, amount)


def test_aliases_match_calculate():
    assert calculate_subscription_commission(2999, "0.2", 3) == calculate(2999, "0.2", 3)
    assert calculate_credit_purchase_commission(2999, "0.2", 3) == calculate(2999, "0.2", 3)


@pytest.mark.parametrize(
    "calculator,amount,rate,expected",
    [
        (calculate_subscription_commission, 5000, 0.15, 750),
        (calculate_subscription_commission, 10000, 0.15, 1500),
        (calculate_credit_purchase_commission, 20000, 0.08, 1600),
        (calculate_credit_purchase_commission, 5000, 0.15, 750),
    ],
)
def test_transaction_type_scenarios(calculator, amount, rate, expected):
    """$50 при 15% -> $7.50; $200 кредитов при 8% -> $16.00"""
    result = calculator(amount, rate)

    assert result.commission == expected
    assert result.amount == amount


def test_adjustments_are_full_reversal():
    assert refund_adjustment(1500) == -1500
    assert chargeback_adjustment(1500) == -1500


def test_is_valid_commission():
    assert is_valid_commission(0, 100)
    assert is_valid_commission(100, 100)
    assert not is_valid_commission(-1, 100)
    assert not is_valid_commission(101, 100)


def test_audit_commission():
    assert audit_commission(1500, 1501) == (True, 1)
    assert audit_commission(1500, 1497) == (False, 3)
    assert audit_commission(1500, 1497, tolerance=5) == (True, 3)


def test_format_cents():
    assert format_cents(1000) == "$10.00"
    assert format_cents(5) == "$0.05"
    assert format_cents(-1550) == "-$15.50"
