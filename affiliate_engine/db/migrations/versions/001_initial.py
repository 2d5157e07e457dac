"""Initial migration: affiliates, referrals, payouts, ledger, webhooks.

Revision ID: 001
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Upgrade database."""

    # Create affiliates table
    op.create_table(
        'affiliates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=False),
        sa.Column('commission_rate', sa.Numeric(5, 4), nullable=False),
        sa.Column('tier', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('status', sa.Enum('ACTIVE', 'SUSPENDED', 'BANNED', name='affiliate_status'), nullable=False, server_default='ACTIVE'),
        sa.Column('total_earnings', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pending_earnings', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('paid_earnings', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', name='uq_affiliates_user_id'),
        sa.UniqueConstraint('code', name='uq_affiliates_code'),
    )
    op.create_index('ix_affiliates_status', 'affiliates', ['status'], unique=False)

    # Create referrals table
    op.create_table(
        'referrals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('affiliate_id', sa.Integer(), nullable=False),
        sa.Column('referred_user_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'CONVERTED', 'CANCELED', name='referral_status'), nullable=False, server_default='PENDING'),
        sa.Column('conversion_value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('commission', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conversion_reference_id', sa.String(length=100), nullable=True),
        sa.Column('converted_at', sa.DateTime(), nullable=True),
        sa.Column('canceled_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['affiliate_id'], ['affiliates.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('referred_user_id', name='uq_referrals_referred_user_id'),
        sa.UniqueConstraint('conversion_reference_id', name='uq_referrals_conversion_reference_id'),
    )
    op.create_index('ix_referrals_affiliate_id', 'referrals', ['affiliate_id'], unique=False)
    op.create_index('ix_referrals_status', 'referrals', ['status'], unique=False)
    op.create_index('ix_referrals_created_at', 'referrals', ['created_at'], unique=False)

    # Create payouts table
    op.create_table(
        'payouts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('affiliate_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('method', sa.Enum('PAYPAL', 'STRIPE', 'BANK_TRANSFER', name='payout_method'), nullable=False),
        sa.Column('status', sa.Enum('PENDING', 'APPROVED', 'PAID', 'REJECTED', name='payout_status'), nullable=False, server_default='PENDING'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['affiliate_id'], ['affiliates.id'], ),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payouts_affiliate_id', 'payouts', ['affiliate_id'], unique=False)
    op.create_index('ix_payouts_status', 'payouts', ['status'], unique=False)
    op.create_index('ix_payouts_created_at', 'payouts', ['created_at'], unique=False)

    # Create ledger_entries table
    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('affiliate_id', sa.Integer(), nullable=False),
        sa.Column('referral_id', sa.Integer(), nullable=True),
        sa.Column('payout_id', sa.Integer(), nullable=True),
        sa.Column('kind', sa.Enum('COMMISSION', 'REFUND', 'CHARGEBACK', 'PAYOUT', name='ledger_entry_kind'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('shortfall', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reference_id', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['affiliate_id'], ['affiliates.id'], ),
        sa.ForeignKeyConstraint(['referral_id'], ['referrals.id'], ),
        sa.ForeignKeyConstraint(['payout_id'], ['payouts.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('kind', 'reference_id', name='uq_ledger_entries_kind_reference'),
    )
    op.create_index('ix_ledger_entries_affiliate_id', 'ledger_entries', ['affiliate_id'], unique=False)
    op.create_index('ix_ledger_entries_created_at', 'ledger_entries', ['created_at'], unique=False)

    # Create webhook_events table
    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False),
        sa.Column('event_id', sa.String(length=100), nullable=True),
        sa.Column('event_type', sa.String(length=50), nullable=False),
        sa.Column('payload_hash', sa.String(length=64), nullable=False),
        sa.Column('received_at', sa.DateTime(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('raw_payload_json', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_webhook_events_provider', 'webhook_events', ['provider'], unique=False)
    op.create_index('ix_webhook_events_event_id', 'webhook_events', ['event_id'], unique=False)
    op.create_index('ix_webhook_events_received_at', 'webhook_events', ['received_at'], unique=False)


def downgrade() -> None:
    """Downgrade database."""

    op.drop_index('ix_webhook_events_received_at', table_name='webhook_events')
    op.drop_index('ix_webhook_events_event_id', table_name='webhook_events')
    op.drop_index('ix_webhook_events_provider', table_name='webhook_events')
    op.drop_table('webhook_events')

    op.drop_index('ix_ledger_entries_created_at', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_affiliate_id', table_name='ledger_entries')
    op.drop_table('ledger_entries')

    op.drop_index('ix_payouts_created_at', table_name='payouts')
    op.drop_index('ix_payouts_status', table_name='payouts')
    op.drop_index('ix_payouts_affiliate_id', table_name='payouts')
    op.drop_table('payouts')

    op.drop_index('ix_referrals_created_at', table_name='referrals')
    op.drop_index('ix_referrals_status', table_name='referrals')
    op.drop_index('ix_referrals_affiliate_id', table_name='referrals')
    op.drop_table('referrals')

    op.drop_index('ix_affiliates_status', table_name='affiliates')
    op.drop_table('affiliates')
