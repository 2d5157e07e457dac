"""
Тесты реферальных кодов и подписанной атрибуции.
"""

from datetime import datetime, timedelta

import pytest

from affiliate_engine.services.attribution import sign_attribution, verify_attribution
from affiliate_engine.services.referral_codes import (
    extract_code_from_url,
    generate_code,
    is_valid_code,
)


def test_generate_code_format():
    code = generate_code("user-42")

    assert code.startswith("USER42")
    assert is_valid_code(code)


def test_generate_code_long_seed_is_truncated():
    code = generate_code("a-very-long-user-identifier-123")

    assert code.startswith("AVERYLON")
    assert len(code) == 14
    assert is_valid_code(code)


def test_generate_code_empty_seed():
    """Даже без префикса длина не меньше 6"""
    assert is_valid_code(generate_code("---"))


def test_generate_code_is_random():
    assert generate_code("user") != generate_code("user")


@pytest.mark.parametrize("code", ["ABC123", "a" * 20, "Partner2026"])
def test_valid_codes(code):
    assert is_valid_code(code)


@pytest.mark.parametrize("code", ["ABC12", "a" * 21, "ABC-123", "ABC 123", "", None, 123456])
def test_invalid_codes(code):
    assert not is_valid_code(code)


def test_extract_code_from_url():
    assert extract_code_from_url("https://app.example.com/?ref=PARTNER01") == "PARTNER01"
    assert extract_code_from_url("https://app.example.com/p?utm=x&referral=PARTNER02") == "PARTNER02"
    assert extract_code_from_url("https://app.example.com/?affiliate=PARTNER03") == "PARTNER03"


def test_extract_code_priority_and_validity():
    """ref важнее referral, но невалидный ref пропускается"""
    assert extract_code_from_url("https://x.io/?referral=SECOND01&ref=FIRST001") == "FIRST001"
    assert extract_code_from_url("https://x.io/?ref=bad!&referral=SECOND01") == "SECOND01"


def test_extract_code_no_code():
    assert extract_code_from_url("https://x.io/?ref=ab") is None
    assert extract_code_from_url("https://x.io/") is None
    assert extract_code_from_url("http://[::1") is None
    assert extract_code_from_url(None) is None


# ============= ATTRIBUTION =============

def test_attribution_round_trip():
    now = datetime(2026, 3, 1, 10, 0)
    token = sign_attribution("PARTNER01", "visitor1", now=now)

    record = verify_attribution(token, now=now + timedelta(days=29))

    assert record is not None
    assert record.code == "PARTNER01"
    assert record.visitor_id == "visitor1"
    assert record.issued_at == now


def test_attribution_expires():
    now = datetime(2026, 3, 1, 10, 0)
    token = sign_attribution("PARTNER01", "visitor1", now=now)

    assert verify_attribution(token, now=now + timedelta(days=30)) is None


def test_attribution_tampered():
    token = sign_attribution("PARTNER01", "visitor1")
    header, claims, signature = token.split(".")
    forged_claims = sign_attribution("PARTNER02", "visitor1").split(".")[1]

    assert verify_attribution(f"{header}.{forged_claims}.{signature}") is None
    assert verify_attribution(token, secret="other-secret") is None
    assert verify_attribution("garbage") is None
    assert verify_attribution(None) is None


@pytest.mark.parametrize(
    "token",
    ["PARTNER01.abc.1700000000.é", "ё.ж.з", "PARTNER01.abc.1.\xe9"],
)
def test_attribution_non_ascii_token(token):
    """Подделка с не-ASCII символами — просто невалидный токен"""
    assert verify_attribution(token) is None


def test_sign_attribution_rejects_bad_input():
    with pytest.raises(ValueError):
        sign_attribution("bad!", "visitor1")
    with pytest.raises(ValueError):
        sign_attribution("PARTNER01", "visitor.1")
