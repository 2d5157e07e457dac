"""
Исключения партнёрской программы.

Бизнес-отказы (нет реферала, уже сконвертирован, партнёр неактивен) — это
не исключения, а результаты с processed=False. Исключения бросаются только
для ошибок валидации, конфликтов уникальности, недопустимых переходов
статуса и нарушений инвариантов.
"""


class AffiliateError(Exception):
    """Базовое исключение партнёрской программы"""


# ============= VALIDATION =============

class ValidationError(AffiliateError):
    pass


class InvalidCodeFormat(ValidationError):
    def __init__(self, code: str):
        super().__init__(f"Invalid referral code format: {code!r}")
        self.code = code


class InvalidCode(ValidationError):
    def __init__(self, code: str):
        super().__init__(f"Invalid referral code: {code!r}")
        self.code = code


# ============= CONFLICTS =============

class AlreadyExists(AffiliateError):
    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} already has an affiliate account")
        self.user_id = user_id


class CodeTaken(AffiliateError):
    def __init__(self, code: str):
        super().__init__(f"Referral code already exists: {code}")
        self.code = code


class AlreadyReferred(AffiliateError):
    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} was already referred")
        self.user_id = user_id


class SelfReferral(AffiliateError):
    def __init__(self, user_id: str):
        super().__init__(f"Self-referrals are not allowed (user {user_id})")
        self.user_id = user_id


class NotActive(AffiliateError):
    def __init__(self, affiliate_id: int, status: str):
        super().__init__(f"Affiliate {affiliate_id} is not active (status={status})")
        self.affiliate_id = affiliate_id
        self.status = status


class CodeGenerationExhausted(AffiliateError):
    def __init__(self, attempts: int):
        super().__init__(f"Could not generate a unique referral code in {attempts} attempts")
        self.attempts = attempts


class InvalidStateTransition(AffiliateError):
    def __init__(self, entity: str, entity_id: int, current: str, attempted: str):
        super().__init__(
            f"{entity} {entity_id}: cannot transition from {current} to {attempted}"
        )
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.attempted = attempted


# ============= LEDGER =============

class LedgerConflict(AffiliateError):
    """Проигранный compare-and-swap (строку успел изменить параллельный запрос)"""


class TransientLedgerError(AffiliateError):
    """Конфликт не разрешился повтором — вызывающий может повторить позже"""


class LedgerInvariantError(AssertionError):
    """Нарушение инварианта бухгалтерии. Ошибка программиста, транзакция откатывается."""
