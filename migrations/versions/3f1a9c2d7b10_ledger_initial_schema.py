"""ledger initial schema

Revision ID: 3f1a9c2d7b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2d7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint("role in ('employer','employee')", name='ck_user_role'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'employments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employer_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('employee_user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('employment_type', sa.String(length=20), nullable=False),
        sa.Column('working_hours_per_day', sa.Numeric(5, 2), nullable=True),
        sa.Column('working_days_per_month', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('linked_at', sa.DateTime(), nullable=False),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('employer_id', 'employee_user_id', name='uq_employment_pair'),
        sa.CheckConstraint("employment_type in ('full_time','part_time','contract')", name='ck_employment_type'),
    )
    op.create_index('ix_employments_employer_id', 'employments', ['employer_id'])
    op.create_index('ix_employments_employee_user_id', 'employments', ['employee_user_id'])

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('token', sa.String(length=255), nullable=False),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('employer_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('subject', sa.String(length=32), nullable=False),
        sa.Column('employment_id', sa.Integer(), sa.ForeignKey('employments.id', ondelete='SET NULL'), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('redeemed_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('issuer_notified_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint("status in ('pending','completed','cancelled')", name='ck_tx_status'),
    )
    op.create_index('ix_transactions_token', 'transactions', ['token'], unique=True)
    op.create_index('ix_transactions_status', 'transactions', ['status'])
    op.create_index('ix_transactions_employer_id', 'transactions', ['employer_id'])
    op.create_index('ix_tx_employer_status', 'transactions', ['employer_id', 'status'])

    op.create_table(
        'wage_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employment_id', sa.Integer(), sa.ForeignKey('employments.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('monthly_wage', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('hourly_rate', sa.Numeric(12, 4), nullable=False),
        sa.Column('deductions_total', sa.Numeric(12, 2), nullable=False),
        sa.Column('last_paid_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employment_id', sa.Integer(), sa.ForeignKey('employments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('transaction_id', sa.Integer(), sa.ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('period', sa.String(length=7), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("kind in ('wage','contract')", name='ck_payment_kind'),
    )
    op.create_index('ix_payments_employment_id', 'payments', ['employment_id'])

    op.create_table(
        'loans',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employment_id', sa.Integer(), sa.ForeignKey('employments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('transaction_id', sa.Integer(), sa.ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('principal', sa.Numeric(12, 2), nullable=False),
        sa.Column('interest_rate', sa.Numeric(6, 2), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('remaining_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('monthly_deduction', sa.Numeric(12, 2), nullable=False),
        sa.Column('tenure_months', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('granted_at', sa.DateTime(), nullable=False),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint("status in ('active','paid','foreclosed')", name='ck_loan_status'),
        sa.CheckConstraint('remaining_amount is null or remaining_amount >= 0', name='ck_loan_remaining_nonneg'),
    )
    op.create_index('ix_loans_employment_id', 'loans', ['employment_id'])
    op.create_index('ix_loan_employment_status', 'loans', ['employment_id', 'status'])

    op.create_table(
        'bonus_entries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employment_id', sa.Integer(), sa.ForeignKey('employments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('period', sa.String(length=7), nullable=False),
        sa.Column('category', sa.String(length=20), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("category in ('merit','demerit','advance','loan_deduction')", name='ck_bonus_category'),
        sa.CheckConstraint('amount > 0', name='ck_bonus_amount_pos'),
    )
    op.create_index('ix_bonus_entries_employment_id', 'bonus_entries', ['employment_id'])
    op.create_index('ix_bonus_employment_period', 'bonus_entries', ['employment_id', 'period'])

    op.create_table(
        'attendance_records',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('employment_id', sa.Integer(), sa.ForeignKey('employments.id', ondelete='CASCADE'), nullable=False),
        sa.Column('employer_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('employee_user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('work_date', sa.Date(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('login_time', sa.DateTime(), nullable=True),
        sa.Column('logout_time', sa.DateTime(), nullable=True),
        sa.Column('total_hours', sa.Numeric(6, 2), nullable=True),
        sa.Column('scanned_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('employment_id', 'work_date', name='uq_attendance_employment_date'),
        sa.CheckConstraint(
            "status in ('present_pending','present_complete','leave','sick_leave')",
            name='ck_attendance_status',
        ),
    )
    op.create_index('ix_attendance_records_employment_id', 'attendance_records', ['employment_id'])
    op.create_index('ix_attendance_records_employer_id', 'attendance_records', ['employer_id'])
    op.create_index('ix_attendance_records_employee_user_id', 'attendance_records', ['employee_user_id'])

    op.create_table(
        'statements',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('transaction_id', sa.Integer(), sa.ForeignKey('transactions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('kind', sa.String(length=32), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_statements_user_id', 'statements', ['user_id'])


def downgrade() -> None:
    op.drop_table('statements')
    op.drop_table('attendance_records')
    op.drop_table('bonus_entries')
    op.drop_table('loans')
    op.drop_table('payments')
    op.drop_table('wage_records')
    op.drop_table('transactions')
    op.drop_table('employments')
    op.drop_table('users')
