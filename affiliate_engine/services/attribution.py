"""
Атрибуция посетителя к реферальному коду.

При первом визите с валидным кодом выдаём подписанный JWT (cookie),
живущий attribution_window_days. При регистрации токен проверяется и
потребляется для создания Referral. От логина не зависит.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import pytz
from jose import ExpiredSignatureError, JWTError, jwt

from affiliate_engine.config import get_settings
from affiliate_engine.logger import log_service
from affiliate_engine.services.referral_codes import is_valid_code

settings = get_settings()

ALGORITHM = "HS256"


@dataclass(frozen=True)
class AttributionRecord:
    code: str
    visitor_id: str
    issued_at: datetime

    @property
    def expires_at(self) -> datetime:
        return self.issued_at + timedelta(days=settings.attribution_window_days)


def sign_attribution(
    code: str,
    visitor_id: str,
    now: Optional[datetime] = None,
    secret: Optional[str] = None,
) -> str:
    """JWT с claims code, vid, iat, exp"""
    if not is_valid_code(code):
        raise ValueError(f"Invalid referral code: {code!r}")
    if not visitor_id or not visitor_id.isalnum():
        raise ValueError("visitor_id must be alphanumeric")

    issued_at = (now or datetime.utcnow()).replace(microsecond=0)
    to_encode = {
        "code": code,
        "vid": visitor_id,
        "iat": issued_at,
        "exp": issued_at + timedelta(days=settings.attribution_window_days),
    }
    return jwt.encode(to_encode, secret or settings.attribution_secret, algorithm=ALGORITHM)


def verify_attribution(
    token: Optional[str],
    now: Optional[datetime] = None,
    secret: Optional[str] = None,
) -> Optional[AttributionRecord]:
    """
    Проверить подпись и срок действия.
    Любая проблема (нет токена, подделка, истёк) -> None.

    now задаётся явно только для проверки на произвольный момент,
    тогда exp сверяется с ним, а не с текущими часами.
    """
    if not token:
        return None

    try:
        payload = jwt.decode(
            token,
            secret or settings.attribution_secret,
            algorithms=[ALGORITHM],
            options={"verify_exp": now is None},
        )
    except ExpiredSignatureError:
        log_service.info("Атрибуция истекла")
        return None
    except JWTError as e:
        log_service.warning(f"Невалидный токен атрибуции: {e}")
        return None

    code = payload.get("code")
    visitor_id = payload.get("vid")
    issued_ts = payload.get("iat")
    expires_ts = payload.get("exp")

    if not isinstance(code, str) or not is_valid_code(code):
        return None
    if not isinstance(visitor_id, str) or not isinstance(issued_ts, int) or not isinstance(expires_ts, int):
        return None

    if now is not None and calendar.timegm(now.utctimetuple()) >= expires_ts:
        log_service.info(f"Атрибуция истекла: code={code}, visitor={visitor_id}")
        return None

    issued_at = datetime.fromtimestamp(issued_ts, pytz.utc).replace(tzinfo=None)
    return AttributionRecord(code=code, visitor_id=visitor_id, issued_at=issued_at)
