"""create_affiliate_ledger_tables

Revision ID: 9d2f4a1c7e55
Revises:
Create Date: 2026-01-12 10:30:00.000000+05:30

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '9d2f4a1c7e55'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
    ]


def upgrade() -> None:
    # Users: students, admins and affiliates
    op.create_table(
        'users',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('mobile', sa.String(length=20), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False, server_default='USER', comment='ADMIN/USER/JYOTISHI'),
        sa.Column('affiliate_code', sa.String(length=10), nullable=True, comment='Initials + 3-digit sequence, e.g. AV001'),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=True, comment='Commission percent, 10.00 = 10%'),
        sa.Column('bank_account_number', sa.Text(), nullable=True),
        sa.Column('bank_ifsc_code', sa.Text(), nullable=True),
        sa.Column('bank_account_holder_name', sa.Text(), nullable=True),
        sa.Column('bank_name', sa.Text(), nullable=True),
        sa.Column('bank_branch_name', sa.Text(), nullable=True),
        sa.Column('pan_number', sa.String(length=20), nullable=True),
        sa.Column('telegram_chat_id', sa.BigInteger(), nullable=True, comment='Telegram chat for payout notifications'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('last_payout_activity_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_role'), 'users', ['role'], unique=False)
    op.create_index(op.f('ix_users_affiliate_code'), 'users', ['affiliate_code'], unique=True)

    op.create_table(
        'courses',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'coupon_types',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('type_code', sa.String(length=2), nullable=False, comment='Two-digit sequence 01-99'),
        sa.Column('type_name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('discount_type', sa.String(length=20), nullable=False, comment='PERCENTAGE or FIXED_AMOUNT'),
        sa.Column('max_discount_limit', sa.Numeric(10, 2), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_by', sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], ondelete='SET NULL'),
    )
    op.create_index(op.f('ix_coupon_types_type_code'), 'coupon_types', ['type_code'], unique=True)

    op.create_table(
        'coupons',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('code', sa.String(length=50), nullable=False),
        sa.Column('coupon_type_id', sa.BigInteger(), nullable=False),
        sa.Column('created_by_affiliate_id', sa.BigInteger(), nullable=False),
        sa.Column('discount_type', sa.String(length=20), nullable=False),
        sa.Column('discount_value', sa.Numeric(12, 2), nullable=False),
        sa.Column('max_usage_count', sa.Integer(), nullable=True, comment='Max uses (NULL = unlimited)'),
        sa.Column('current_usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('valid_from', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('valid_until', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('description', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['coupon_type_id'], ['coupon_types.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by_affiliate_id'], ['users.id'], ondelete='CASCADE'),
    )
    op.create_index(op.f('ix_coupons_code'), 'coupons', ['code'], unique=True)
    op.create_index(op.f('ix_coupons_coupon_type_id'), 'coupons', ['coupon_type_id'], unique=False)
    op.create_index(op.f('ix_coupons_created_by_affiliate_id'), 'coupons', ['created_by_affiliate_id'], unique=False)

    op.create_table(
        'payments',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False, comment='Student who paid'),
        sa.Column('course_id', sa.BigInteger(), nullable=False),
        sa.Column('coupon_id', sa.BigInteger(), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False, comment='List price'),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('final_amount', sa.Numeric(12, 2), nullable=False, comment='Amount actually paid'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('affiliate_id', sa.BigInteger(), nullable=True, comment='Affiliate credited with this sale'),
        sa.Column('commission_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('commission_paid', sa.Boolean(), nullable=False, server_default='false'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['affiliate_id'], ['users.id'], ondelete='SET NULL'),
    )
    op.create_index(op.f('ix_payments_user_id'), 'payments', ['user_id'], unique=False)
    op.create_index(op.f('ix_payments_course_id'), 'payments', ['course_id'], unique=False)
    op.create_index(op.f('ix_payments_coupon_id'), 'payments', ['coupon_id'], unique=False)
    op.create_index(op.f('ix_payments_status'), 'payments', ['status'], unique=False)
    op.create_index(op.f('ix_payments_affiliate_id'), 'payments', ['affiliate_id'], unique=False)

    op.create_table(
        'payouts',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('affiliate_id', sa.BigInteger(), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('requested_amount', sa.Numeric(12, 2), nullable=True, comment='Amount asked for by the affiliate, null for bulk payouts'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('payment_method', sa.String(length=50), nullable=False),
        sa.Column('transaction_id', sa.String(length=255), nullable=True),
        sa.Column('transaction_proof', sa.Text(), nullable=True),
        sa.Column('bank_details', sa.JSON(), nullable=True, comment='Bank details snapshot taken at request time'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('requested_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('approved_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('processed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('processed_by', sa.BigInteger(), nullable=True, comment='Admin who approved, settled or rejected'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['affiliate_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['processed_by'], ['users.id'], ondelete='SET NULL'),
    )
    op.create_index(op.f('ix_payouts_affiliate_id'), 'payouts', ['affiliate_id'], unique=False)
    op.create_index(op.f('ix_payouts_status'), 'payouts', ['status'], unique=False)
    op.create_index('ix_payouts_affiliate_status', 'payouts', ['affiliate_id', 'status'], unique=False)

    op.create_table(
        'commissions',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('affiliate_id', sa.BigInteger(), nullable=False),
        sa.Column('payment_id', sa.BigInteger(), nullable=False, comment='One commission per payment'),
        sa.Column('student_id', sa.BigInteger(), nullable=False),
        sa.Column('course_id', sa.BigInteger(), nullable=False),
        sa.Column('coupon_id', sa.BigInteger(), nullable=True),
        sa.Column('sale_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=False, comment='Affiliate rate snapshot at accrual, percent'),
        sa.Column('commission_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('payout_id', sa.BigInteger(), nullable=True, comment='Set exactly when status is PAID'),
        sa.Column('paid_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_id'),
        sa.ForeignKeyConstraint(['affiliate_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['student_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['course_id'], ['courses.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['coupon_id'], ['coupons.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['payout_id'], ['payouts.id'], ondelete='SET NULL'),
    )
    op.create_index(op.f('ix_commissions_affiliate_id'), 'commissions', ['affiliate_id'], unique=False)
    op.create_index(op.f('ix_commissions_student_id'), 'commissions', ['student_id'], unique=False)
    op.create_index(op.f('ix_commissions_status'), 'commissions', ['status'], unique=False)
    op.create_index(op.f('ix_commissions_payout_id'), 'commissions', ['payout_id'], unique=False)
    op.create_index(
        'ix_commissions_affiliate_status_created',
        'commissions',
        ['affiliate_id', 'status', 'created_at'],
        unique=False
    )


def downgrade() -> None:
    op.drop_index('ix_commissions_affiliate_status_created', table_name='commissions')
    op.drop_index(op.f('ix_commissions_payout_id'), table_name='commissions')
    op.drop_index(op.f('ix_commissions_status'), table_name='commissions')
    op.drop_index(op.f('ix_commissions_student_id'), table_name='commissions')
    op.drop_index(op.f('ix_commissions_affiliate_id'), table_name='commissions')
    op.drop_table('commissions')

    op.drop_index('ix_payouts_affiliate_status', table_name='payouts')
    op.drop_index(op.f('ix_payouts_status'), table_name='payouts')
    op.drop_index(op.f('ix_payouts_affiliate_id'), table_name='payouts')
    op.drop_table('payouts')

    op.drop_index(op.f('ix_payments_affiliate_id'), table_name='payments')
    op.drop_index(op.f('ix_payments_status'), table_name='payments')
    op.drop_index(op.f('ix_payments_coupon_id'), table_name='payments')
    op.drop_index(op.f('ix_payments_course_id'), table_name='payments')
    op.drop_index(op.f('ix_payments_user_id'), table_name='payments')
    op.drop_table('payments')

    op.drop_index(op.f('ix_coupons_created_by_affiliate_id'), table_name='coupons')
    op.drop_index(op.f('ix_coupons_coupon_type_id'), table_name='coupons')
    op.drop_index(op.f('ix_coupons_code'), table_name='coupons')
    op.drop_table('coupons')

    op.drop_index(op.f('ix_coupon_types_type_code'), table_name='coupon_types')
    op.drop_table('coupon_types')

    op.drop_table('courses')

    op.drop_index(op.f('ix_users_affiliate_code'), table_name='users')
    op.drop_index(op.f('ix_users_role'), table_name='users')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_table('users')
