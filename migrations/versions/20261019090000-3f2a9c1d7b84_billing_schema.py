"""Billing schema

Revision ID: 3f2a9c1d7b84
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7b84'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# Enum types and their stored values
ENUMS = {
    'contractstatus': ['draft', 'confirmed', 'sent'],
    'billingmode': ['prepaid', 'postpaid'],
    'absencepolicy': ['carry_over', 'deduct_next', 'vanish'],
    'pricingmode': ['sessions', 'amount', 'calendar'],
    'extensionkind': ['sessions', 'amount', 'period'],
    'attendancestatus': ['present', 'absent', 'substitute', 'vanish'],
    'sendstatus': ['not_sent', 'sent', 'partial'],
    'paymentstatus': ['unpaid', 'paid'],
}


def create_enum(name: str, values: list):
    """Create an enum type safely."""
    enum = postgresql.ENUM(*values, name=name, create_type=False)
    enum.create(op.get_bind(), checkfirst=True)
    return enum


def money() -> sa.Numeric:
    return sa.Numeric(precision=14, scale=2)


def timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    enums = {name: create_enum(name, values) for name, values in ENUMS.items()}

    op.create_table(
        'provider',
        *timestamps(),
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('business_name', sa.String(), nullable=True),
        sa.Column('default_billing_mode', enums['billingmode'], nullable=False),
        sa.Column('default_absence_policy', enums['absencepolicy'], nullable=False),
        sa.Column('bank_name', sa.String(), nullable=True),
        sa.Column('account_holder', sa.String(), nullable=True),
        sa.Column('encrypted_account_number', sa.String(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'client',
        *timestamps(),
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('encrypted_phone', sa.String(), nullable=True),
        sa.Column('guardian_name', sa.String(), nullable=True),
        sa.Column('encrypted_guardian_phone', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['provider_id'], ['provider.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_client_provider_id'), 'client', ['provider_id'], unique=False)
    op.create_index(op.f('ix_client_is_active'), 'client', ['is_active'], unique=False)

    op.create_table(
        'contract',
        *timestamps(),
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('subject', sa.String(), nullable=False),
        sa.Column('billing_mode', enums['billingmode'], nullable=False),
        sa.Column('absence_policy', enums['absencepolicy'], nullable=False),
        sa.Column('pricing_mode', enums['pricingmode'], nullable=False),
        sa.Column('base_price', money(), nullable=False),
        sa.Column('billing_day', sa.Integer(), nullable=True),
        sa.Column('weekdays', sa.JSON(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('end_date', sa.Date(), nullable=True),
        sa.Column('total_sessions', sa.Integer(), nullable=True),
        sa.Column('total_amount', money(), nullable=True),
        sa.Column('status', enums['contractstatus'], nullable=False),
        sa.Column('teacher_signature', sa.String(), nullable=True),
        sa.Column('client_signature', sa.String(), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('policy_snapshot', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['provider_id'], ['provider.id']),
        sa.ForeignKeyConstraint(['client_id'], ['client.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_contract_provider_id'), 'contract', ['provider_id'], unique=False)
    op.create_index(op.f('ix_contract_client_id'), 'contract', ['client_id'], unique=False)
    op.create_index(op.f('ix_contract_pricing_mode'), 'contract', ['pricing_mode'], unique=False)
    op.create_index(op.f('ix_contract_status'), 'contract', ['status'], unique=False)

    op.create_table(
        'contractextension',
        *timestamps(),
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('contract_id', sa.Integer(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('kind', enums['extensionkind'], nullable=False),
        sa.Column('added_sessions', sa.Integer(), nullable=True),
        sa.Column('added_amount', money(), nullable=True),
        sa.Column('extension_price', money(), nullable=True),
        sa.Column('previous_total', money(), nullable=True),
        sa.Column('new_total', money(), nullable=True),
        sa.Column('previous_end_date', sa.Date(), nullable=True),
        sa.Column('new_end_date', sa.Date(), nullable=True),
        sa.Column('extended_at', sa.DateTime(), nullable=False),
        sa.Column('extended_by', sa.String(), nullable=True),
        sa.ForeignKeyConstraint(['contract_id'], ['contract.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('contract_id', 'sequence', name='uq_contractextension_sequence'),
    )
    op.create_index(op.f('ix_contractextension_contract_id'), 'contractextension', ['contract_id'], unique=False)
    op.create_index(op.f('ix_contractextension_extended_at'), 'contractextension', ['extended_at'], unique=False)

    op.create_table(
        'attendancerecord',
        *timestamps(),
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('contract_id', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(), nullable=False),
        sa.Column('status', enums['attendancestatus'], nullable=False),
        sa.Column('substitute_at', sa.DateTime(), nullable=True),
        sa.Column('amount', money(), nullable=True),
        sa.Column('voided', sa.Boolean(), nullable=False),
        sa.Column('void_reason', sa.String(), nullable=True),
        sa.Column('memo_public', sa.String(), nullable=True),
        sa.Column('memo_internal', sa.String(), nullable=True),
        sa.Column('recorded_by', sa.String(), nullable=True),
        sa.Column('modified_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('modified_by', sa.String(), nullable=True),
        sa.Column('change_reason', sa.String(), nullable=True),
        sa.ForeignKeyConstraint(['contract_id'], ['contract.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_attendancerecord_contract_id'), 'attendancerecord', ['contract_id'], unique=False)
    op.create_index(op.f('ix_attendancerecord_occurred_at'), 'attendancerecord', ['occurred_at'], unique=False)
    op.create_index(op.f('ix_attendancerecord_voided'), 'attendancerecord', ['voided'], unique=False)

    op.create_table(
        'invoice',
        *timestamps(),
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('contract_id', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.Integer(), nullable=False),
        sa.Column('base_amount', money(), nullable=False),
        sa.Column('auto_adjustment', money(), nullable=False),
        sa.Column('manual_adjustment', money(), nullable=False),
        sa.Column('manual_reason', sa.String(), nullable=True),
        sa.Column('final_amount', money(), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=True),
        sa.Column('period_end', sa.Date(), nullable=True),
        sa.Column('planned_count', sa.Integer(), nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('send_status', enums['sendstatus'], nullable=False),
        sa.Column('send_history', sa.JSON(), nullable=True),
        sa.Column('force_to_today_billing', sa.Boolean(), nullable=False),
        sa.Column('account_snapshot', sa.JSON(), nullable=True),
        sa.Column('payment_status', enums['paymentstatus'], nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['client_id'], ['client.id']),
        sa.ForeignKeyConstraint(['contract_id'], ['contract.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('client_id', 'contract_id', 'year', 'month', 'invoice_number',
                            name='uq_invoice_billing_key'),
    )
    op.create_index(op.f('ix_invoice_client_id'), 'invoice', ['client_id'], unique=False)
    op.create_index(op.f('ix_invoice_contract_id'), 'invoice', ['contract_id'], unique=False)
    op.create_index(op.f('ix_invoice_due_date'), 'invoice', ['due_date'], unique=False)
    op.create_index(op.f('ix_invoice_send_status'), 'invoice', ['send_status'], unique=False)

    op.create_table(
        'notification',
        *timestamps(),
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('provider_id', sa.Integer(), nullable=True),
        sa.Column('event', sa.String(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['provider_id'], ['provider.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_notification_provider_id'), 'notification', ['provider_id'], unique=False)
    op.create_index(op.f('ix_notification_event'), 'notification', ['event'], unique=False)
    op.create_index(op.f('ix_notification_is_read'), 'notification', ['is_read'], unique=False)

    op.create_table(
        'deliveryerror',
        *timestamps(),
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('channel', sa.String(), nullable=False),
        sa.Column('operation_type', sa.String(), nullable=False),
        sa.Column('entity_type', sa.String(), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('error_message', sa.String(), nullable=False),
        sa.Column('error_details', sa.JSON(), nullable=True),
        sa.Column('contract_id', sa.Integer(), nullable=True),
        sa.Column('is_resolved', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['contract_id'], ['contract.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_deliveryerror_channel'), 'deliveryerror', ['channel'], unique=False)
    op.create_index(op.f('ix_deliveryerror_operation_type'), 'deliveryerror', ['operation_type'], unique=False)
    op.create_index(op.f('ix_deliveryerror_entity_id'), 'deliveryerror', ['entity_id'], unique=False)
    op.create_index(op.f('ix_deliveryerror_is_resolved'), 'deliveryerror', ['is_resolved'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    for table in ('deliveryerror', 'notification', 'invoice', 'attendancerecord',
                  'contractextension', 'contract', 'client', 'provider'):
        op.drop_table(table)

    for name in ENUMS:
        postgresql.ENUM(name=name).drop(op.get_bind(), checkfirst=True)
