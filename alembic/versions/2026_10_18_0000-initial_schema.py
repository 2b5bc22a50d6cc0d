"""initial schema

Revision ID: 2026_10_18_0000
Revises:
Create Date: 2026-10-18 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID


# revision identifiers, used by Alembic.
revision: str = '2026_10_18_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create initial database schema."""

    # ========================================================================
    # Create videos table
    # ========================================================================
    op.create_table(
        'videos',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False, server_default=''),
        sa.Column('video_url', sa.Text(), nullable=False),
        sa.Column('thumbnail_url', sa.Text(), nullable=True),
        sa.Column('price', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.Column('category', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        sa.CheckConstraint('price >= 0', name='ck_video_price_non_negative'),
    )

    # ========================================================================
    # Create profiles table (identity provider mirror)
    # ========================================================================
    op.create_table(
        'profiles',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('uq_profiles_email_lower', 'profiles', [sa.text('lower(email)')], unique=True)

    # ========================================================================
    # Create purchases table
    # ========================================================================
    op.create_table(
        'purchases',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('video_id', UUID(as_uuid=True), sa.ForeignKey('videos.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount_paid', sa.BigInteger(), nullable=False),
        sa.Column('processor_reference', sa.String(100), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint('amount_paid > 0', name='ck_purchase_amount_positive'),
        sa.CheckConstraint("status IN ('pending', 'success', 'failed')", name='ck_purchase_status'),
        sa.UniqueConstraint('processor_reference', name='uq_purchases_processor_reference'),
    )

    op.create_index('ix_purchases_user_id', 'purchases', ['user_id'])
    op.create_index('idx_purchases_user_status', 'purchases', ['user_id', 'status'])
    # At most one successful purchase per (user, video)
    op.create_index(
        'uq_purchases_user_video_success',
        'purchases',
        ['user_id', 'video_id'],
        unique=True,
        postgresql_where=sa.text("status = 'success'"),
    )

    # ========================================================================
    # Create subscriptions table
    # ========================================================================
    op.create_table(
        'subscriptions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('processor_customer_id', sa.String(100), nullable=True),
        sa.Column('processor_subscription_code', sa.String(100), nullable=True),
        sa.Column('plan_code', sa.String(100), nullable=False),
        sa.Column('current_period_start', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('current_period_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_event_type', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),

        # Constraints
        sa.CheckConstraint("status IN ('active', 'canceled', 'past_due')", name='ck_subscription_status'),
        sa.UniqueConstraint('user_id', 'plan_code', name='uq_subscriptions_user_plan'),
    )

    op.create_index('idx_subscriptions_user_status', 'subscriptions', ['user_id', 'status'])

    # ========================================================================
    # Create webhook_events table (audit log)
    # ========================================================================
    op.create_table(
        'webhook_events',
        sa.Column('id', UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('event_type', sa.String(64), nullable=False),
        sa.Column('reference', sa.String(100), nullable=True),
        sa.Column('outcome', sa.String(32), nullable=False),
        sa.Column('payload', JSONB(), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )

    op.create_index('idx_webhook_events_reference', 'webhook_events', ['reference'], postgresql_where=sa.text('reference IS NOT NULL'))
    op.create_index('idx_webhook_events_received_at', 'webhook_events', ['received_at'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('webhook_events')
    op.drop_table('subscriptions')
    op.drop_table('purchases')
    op.drop_table('profiles')
    op.drop_table('videos')
