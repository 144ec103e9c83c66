"""Create gift voucher, payment event log and email template tables

Revision ID: 001_voucher_tables
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_voucher_tables'
down_revision = None
branch_labels = None
depends_on = None

voucher_type = sa.Enum('AMOUNT', 'EVENT', 'PACK', name='vouchertype')
payment_status = sa.Enum('PENDING', 'COMPLETED', 'FAILED', name='paymentstatus')
voucher_status = sa.Enum('PENDING', 'ACTIVE', 'REDEEMED', 'CANCELLED', 'EXPIRED', name='voucherstatus')


def upgrade() -> None:
    op.create_table(
        'gift_vouchers',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('type', voucher_type, nullable=False),
        sa.Column('original_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('current_balance', sa.Numeric(10, 2), nullable=False),
        sa.Column('purchaser_name', sa.String(length=255), nullable=False),
        sa.Column('purchaser_email', sa.String(length=255), nullable=False),
        sa.Column('recipient_name', sa.String(length=255), nullable=True),
        sa.Column('recipient_email', sa.String(length=255), nullable=True),
        sa.Column('personal_message', sa.Text(), nullable=True),
        sa.Column('template_used', sa.String(length=50), nullable=False),
        sa.Column('event_title', sa.String(length=255), nullable=True),
        sa.Column('ticket_quantity', sa.Integer(), nullable=True),
        sa.Column('expiry_date', sa.DateTime(), nullable=False),
        sa.Column('scheduled_delivery_date', sa.DateTime(), nullable=True),
        sa.Column('payment_status', payment_status, nullable=False),
        sa.Column('status', voucher_status, nullable=False),
        sa.Column('external_session_ref', sa.String(length=255), nullable=True),
        sa.Column('external_payment_ref', sa.String(length=255), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('purchaser_email_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('purchaser_email_sent_at', sa.DateTime(), nullable=True),
        sa.Column('recipient_email_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('recipient_email_sent_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_gift_vouchers_code'), 'gift_vouchers', ['code'], unique=True)
    op.create_index(op.f('ix_gift_vouchers_payment_status'), 'gift_vouchers', ['payment_status'], unique=False)
    op.create_index(op.f('ix_gift_vouchers_status'), 'gift_vouchers', ['status'], unique=False)
    op.create_index(op.f('ix_gift_vouchers_external_session_ref'), 'gift_vouchers', ['external_session_ref'], unique=False)
    op.create_index(op.f('ix_gift_vouchers_created_at'), 'gift_vouchers', ['created_at'], unique=False)

    op.create_table(
        'payment_event_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('event_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('session_ref', sa.String(length=255), nullable=True),
        sa.Column('outcome', sa.String(length=50), nullable=False),
        sa.Column('delivery_count', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_payment_event_logs_id'), 'payment_event_logs', ['id'], unique=False)
    op.create_index(op.f('ix_payment_event_logs_event_id'), 'payment_event_logs', ['event_id'], unique=True)
    op.create_index(op.f('ix_payment_event_logs_session_ref'), 'payment_event_logs', ['session_ref'], unique=False)

    op.create_table(
        'email_templates',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('subject', sa.String(length=500), nullable=False),
        sa.Column('html_body', sa.Text(), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_email_templates_id'), 'email_templates', ['id'], unique=False)
    op.create_index(op.f('ix_email_templates_name'), 'email_templates', ['name'], unique=True)


def downgrade() -> None:
    op.drop_index(op.f('ix_email_templates_name'), table_name='email_templates')
    op.drop_index(op.f('ix_email_templates_id'), table_name='email_templates')
    op.drop_table('email_templates')

    op.drop_index(op.f('ix_payment_event_logs_session_ref'), table_name='payment_event_logs')
    op.drop_index(op.f('ix_payment_event_logs_event_id'), table_name='payment_event_logs')
    op.drop_index(op.f('ix_payment_event_logs_id'), table_name='payment_event_logs')
    op.drop_table('payment_event_logs')

    op.drop_index(op.f('ix_gift_vouchers_created_at'), table_name='gift_vouchers')
    op.drop_index(op.f('ix_gift_vouchers_external_session_ref'), table_name='gift_vouchers')
    op.drop_index(op.f('ix_gift_vouchers_status'), table_name='gift_vouchers')
    op.drop_index(op.f('ix_gift_vouchers_payment_status'), table_name='gift_vouchers')
    op.drop_index(op.f('ix_gift_vouchers_code'), table_name='gift_vouchers')
    op.drop_table('gift_vouchers')

    voucher_status.drop(op.get_bind(), checkfirst=True)
    payment_status.drop(op.get_bind(), checkfirst=True)
    voucher_type.drop(op.get_bind(), checkfirst=True)
