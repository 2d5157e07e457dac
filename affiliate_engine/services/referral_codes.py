"""
Реферальные коды: генерация, проверка формата, извлечение из ссылок.
"""

import re
import secrets
from typing import Optional
from urllib.parse import urlsplit, parse_qs

CODE_PATTERN = re.compile(r"^[A-Za-z0-9]{6,20}$")
CODE_PREFIX_LEN = 8
CODE_SUFFIX_BYTES = 3  # 6 hex-символов

# Порядок важен: первый найденный валидный код побеждает
URL_CODE_PARAMS = ("ref", "referral", "affiliate")


def is_valid_code(code) -> bool:
    """Только формат, без проверки существования"""
    return isinstance(code, str) and bool(CODE_PATTERN.match(code))


def sanitize_seed(seed_id: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "", str(seed_id)).upper()[:CODE_PREFIX_LEN]


def generate_code(seed_id: str) -> str:
    """
    Код = очищенный префикс seed_id + случайный суффикс.

    Пример: "user-42" -> "USER42A1B2C3"
    """
    prefix = sanitize_seed(seed_id)
    suffix = secrets.token_hex(CODE_SUFFIX_BYTES).upper()
    return f"{prefix}{suffix}"


def extract_code_from_url(url: str) -> Optional[str]:
    """Достать код из ?ref= / ?referral= / ?affiliate=. Битая ссылка -> None"""
    try:
        query = urlsplit(url).query
        params = parse_qs(query)
    except (ValueError, TypeError, AttributeError):
        return None

    for name in URL_CODE_PARAMS:
        for value in params.get(name, []):
            if is_valid_code(value):
                return value

    return None
