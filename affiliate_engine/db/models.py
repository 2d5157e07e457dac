"""
SQLAlchemy модели партнёрской программы.
Все денежные суммы — целые центы.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


class AffiliateStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    BANNED = "BANNED"


class Affiliate(Base):
    __tablename__ = "affiliates"
    __table_args__ = (
        UniqueConstraint("user_id", name="uq_affiliates_user_id"),
        UniqueConstraint("code", name="uq_affiliates_code"),
        Index("ix_affiliates_status", "status"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    code = Column(String(20), nullable=False)
    commission_rate = Column(Numeric(5, 4), nullable=False)  # 0.1000 = 10%
    tier = Column(Integer, nullable=False, default=1)
    status = Column(SAEnum(AffiliateStatus, name="affiliate_status"), nullable=False, default=AffiliateStatus.ACTIVE)
    total_earnings = Column(Integer, nullable=False, default=0)
    pending_earnings = Column(Integer, nullable=False, default=0)
    paid_earnings = Column(Integer, nullable=False, default=0)
    # Оптимистическая блокировка: каждое изменение балансов инкрементирует version
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    referrals = relationship("Referral", back_populates="affiliate")
    payouts = relationship("Payout", back_populates="affiliate")


class ReferralStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONVERTED = "CONVERTED"
    CANCELED = "CANCELED"


class Referral(Base):
    __tablename__ = "referrals"
    __table_args__ = (
        UniqueConstraint("referred_user_id", name="uq_referrals_referred_user_id"),
        UniqueConstraint("conversion_reference_id", name="uq_referrals_conversion_reference_id"),
        Index("ix_referrals_affiliate_id", "affiliate_id"),
        Index("ix_referrals_status", "status"),
        Index("ix_referrals_created_at", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    affiliate_id = Column(Integer, ForeignKey("affiliates.id"), nullable=False)
    referred_user_id = Column(String(64), nullable=False)
    status = Column(SAEnum(ReferralStatus, name="referral_status"), nullable=False, default=ReferralStatus.PENDING)
    conversion_value = Column(Integer, nullable=False, default=0)
    commission = Column(Integer, nullable=False, default=0)
    conversion_reference_id = Column(String(100), nullable=True)  # invoice / transaction id
    converted_at = Column(DateTime, nullable=True)
    canceled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    affiliate = relationship("Affiliate", back_populates="referrals")


class PayoutMethod(str, enum.Enum):
    PAYPAL = "PAYPAL"
    STRIPE = "STRIPE"
    BANK_TRANSFER = "BANK_TRANSFER"


class PayoutStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    PAID = "PAID"
    REJECTED = "REJECTED"


OPEN_PAYOUT_STATUSES = (PayoutStatus.PENDING, PayoutStatus.APPROVED)


class Payout(Base):
    __tablename__ = "payouts"
    __table_args__ = (
        Index("ix_payouts_affiliate_id", "affiliate_id"),
        Index("ix_payouts_status", "status"),
        Index("ix_payouts_created_at", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    affiliate_id = Column(Integer, ForeignKey("affiliates.id"), nullable=False)
    amount = Column(Integer, nullable=False)  # в центах
    method = Column(SAEnum(PayoutMethod, name="payout_method"), nullable=False)
    status = Column(SAEnum(PayoutStatus, name="payout_status"), nullable=False, default=PayoutStatus.PENDING)
    notes = Column(Text, nullable=True)
    reason = Column(Text, nullable=True)  # причина отклонения
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    affiliate = relationship("Affiliate", back_populates="payouts")


class LedgerEntryKind(str, enum.Enum):
    COMMISSION = "commission"
    REFUND = "refund"
    CHARGEBACK = "chargeback"
    PAYOUT = "payout"


class LedgerEntry(Base):
    """Журнал движений по балансам партнёра (append-only)"""

    __tablename__ = "ledger_entries"
    __table_args__ = (
        UniqueConstraint("kind", "reference_id", name="uq_ledger_entries_kind_reference"),
        Index("ix_ledger_entries_affiliate_id", "affiliate_id"),
        Index("ix_ledger_entries_created_at", "created_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    affiliate_id = Column(Integer, ForeignKey("affiliates.id"), nullable=False)
    referral_id = Column(Integer, ForeignKey("referrals.id"), nullable=True)
    payout_id = Column(Integer, ForeignKey("payouts.id"), nullable=True)
    kind = Column(SAEnum(LedgerEntryKind, name="ledger_entry_kind"), nullable=False)
    amount = Column(Integer, nullable=False)  # со знаком: + начисление, - списание
    shortfall = Column(Integer, nullable=False, default=0)  # недосписание при возврате
    reference_id = Column(String(100), nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class WebhookEvent(Base):
    __tablename__ = "webhook_events"
    __table_args__ = (
        Index("ix_webhook_events_provider", "provider"),
        Index("ix_webhook_events_event_id", "event_id"),
        Index("ix_webhook_events_received_at", "received_at"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    provider = Column(String(50), nullable=False)  # "internal", "stripe"
    event_id = Column(String(100), nullable=True)
    event_type = Column(String(50), nullable=False)  # "subscription", "refund", ...
    payload_hash = Column(String(64), nullable=False)
    received_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    processed_at = Column(DateTime, nullable=True)
    raw_payload_json = Column(JSON, nullable=True)
