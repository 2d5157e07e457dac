"""
Расчёт комиссий партнёров.
Чистые функции: никаких обращений к БД, только Decimal-арифметика по центам.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Tuple, Union

# Множители ставки по уровню партнёра
TIER_MULTIPLIERS = {
    1: Decimal("1.0"),
    2: Decimal("1.10"),
    3: Decimal("1.20"),
    4: Decimal("1.30"),
    5: Decimal("1.50"),
}
DEFAULT_TIER_MULTIPLIER = Decimal("1.0")

# Абсолютный потолок ставки, независимо от уровня
MAX_RATE = Decimal("0.5")

Rate = Union[Decimal, float, str]


@dataclass(frozen=True)
class CommissionResult:
    commission: int  # центы
    rate: Decimal  # применённая ставка
    amount: int  # исходная сумма, центы


def _to_decimal(value: Rate) -> Decimal:
    # float через str, чтобы 0.1 не превратился в 0.1000000000000000055...
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def tier_multiplier(tier: int) -> Decimal:
    return TIER_MULTIPLIERS.get(tier, DEFAULT_TIER_MULTIPLIER)


def tier_adjusted_rate(base_rate: Rate, tier: int = 1) -> Decimal:
    """Ставка с учётом уровня, но не выше MAX_RATE"""
    return min(_to_decimal(base_rate) * tier_multiplier(tier), MAX_RATE)


def round_cents(value: Decimal) -> int:
    """Округление до цента, половина — вверх"""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate(amount: int, base_rate: Rate, tier: int = 1) -> CommissionResult:
    """
    Рассчитать комиссию с суммы покупки.

    rate = min(base_rate * multiplier(tier), 0.5)
    commission = round_half_up(amount * rate)
    """
    rate = tier_adjusted_rate(base_rate, tier)
    commission = round_cents(Decimal(amount) * rate)
    return CommissionResult(commission=commission, rate=rate, amount=amount)


def calculate_subscription_commission(amount: int, base_rate: Rate, tier: int = 1) -> CommissionResult:
    return calculate(amount, base_rate, tier)


def calculate_credit_purchase_commission(amount: int, base_rate: Rate, tier: int = 1) -> CommissionResult:
    return calculate(amount, base_rate, tier)


def refund_adjustment(original_commission: int) -> int:
    """Корректировка при возврате: всегда полная отмена исходной комиссии"""
    return -original_commission


def chargeback_adjustment(original_commission: int) -> int:
    return -original_commission


def is_valid_commission(commission: int, amount: int) -> bool:
    if commission < 0:
        return False
    if commission > amount:
        return False
    return True


def audit_commission(expected: int, actual: int, tolerance: int = 1) -> Tuple[bool, int]:
    """Сверка комиссии с ожидаемой. Возвращает (в пределах допуска, разница в центах)"""
    difference = abs(expected - actual)
    return difference <= tolerance, difference


def format_cents(cents: int) -> str:
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}${cents // 100}.{cents % 100:02d}"
