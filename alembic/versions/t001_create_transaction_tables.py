"""Create negotiation, scheduling and payment tables

Revision ID: t001_create_transaction_tables
Revises:
Create Date: 2026-10-17

This migration creates the tables of the transactions service:
- profiles: artist/studio rows used as the per-profile booking lock
- tattoo_requests / tattoo_offers: the negotiation workflow
- appointments: half-open booking intervals per profile
- payment_intents / payment_webhook_events / payment_audit_logs: payment reconciliation
- notifications: deduplicated in-app notification intents
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = 't001_create_transaction_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'profiles',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('profile_type', sa.String(20), nullable=False),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('booking_version', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )

    op.create_table(
        'tattoo_requests',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('client_id', sa.String(), nullable=False),
        sa.Column('artist_id', sa.String(), nullable=True),
        sa.Column('studio_id', sa.String(), nullable=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('style', sa.String(100), nullable=False),
        sa.Column('size', sa.String(100), nullable=False),
        sa.Column('placement', sa.String(100), nullable=False),
        sa.Column('reference_images', sa.JSON(), nullable=True),
        sa.Column('preferred_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deadline', sa.DateTime(timezone=True), nullable=True),
        sa.Column('budget_min', sa.Integer(), nullable=True),
        sa.Column('budget_max', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default="open"),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint(
            'budget_min IS NULL OR budget_max IS NULL OR budget_min <= budget_max',
            name='ck_tattoo_requests_budget_range',
        ),
    )
    op.create_index('ix_tattoo_requests_client_id', 'tattoo_requests', ['client_id'])
    op.create_index('ix_tattoo_requests_artist_id', 'tattoo_requests', ['artist_id'])
    op.create_index('ix_tattoo_requests_studio_id', 'tattoo_requests', ['studio_id'])
    op.create_index('ix_tattoo_requests_status_active', 'tattoo_requests', ['status', 'is_active'])

    op.create_table(
        'tattoo_offers',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('request_id', sa.String(), sa.ForeignKey('tattoo_requests.id'), nullable=False),
        sa.Column('responder_id', sa.String(), nullable=False),
        sa.Column('responder_type', sa.String(20), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('estimated_duration', sa.Float(), nullable=False),
        sa.Column('availability_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('availability_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('portfolio_images', sa.JSON(), nullable=True),
        sa.Column('terms_conditions', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default="pending"),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('request_id', 'responder_id', name='uq_tattoo_offers_request_responder'),
        sa.CheckConstraint('price > 0', name='ck_tattoo_offers_price_positive'),
        sa.CheckConstraint('estimated_duration > 0', name='ck_tattoo_offers_duration_positive'),
    )
    op.create_index('ix_tattoo_offers_request_id', 'tattoo_offers', ['request_id'])
    op.create_index('ix_tattoo_offers_responder_id', 'tattoo_offers', ['responder_id'])
    op.create_index('ix_tattoo_offers_request_status', 'tattoo_offers', ['request_id', 'status'])

    op.create_table(
        'appointments',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('profile_id', sa.String(), sa.ForeignKey('profiles.id'), nullable=False),
        sa.Column('client_id', sa.String(), nullable=False),
        sa.Column(
            'offer_id', sa.String(),
            sa.ForeignKey('tattoo_offers.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column('start_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration_hours', sa.Float(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default="pending"),
        sa.Column('service_type', sa.String(100), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('estimated_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.CheckConstraint('end_at > start_at', name='ck_appointments_interval'),
    )
    op.create_index('ix_appointments_profile_id', 'appointments', ['profile_id'])
    op.create_index('ix_appointments_client_id', 'appointments', ['client_id'])
    op.create_index('ix_appointments_offer_id', 'appointments', ['offer_id'])
    # Conflict lookups filter on profile + blocking status + interval
    op.create_index(
        'ix_appointments_profile_status_start', 'appointments', ['profile_id', 'status', 'start_at']
    )

    op.create_table(
        'payment_intents',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('user_id', sa.String(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('processor', sa.String(20), nullable=False),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default="pending"),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('external_id', name='uq_payment_intents_external_id'),
        sa.CheckConstraint('amount > 0', name='ck_payment_intents_amount_positive'),
    )
    op.create_index('ix_payment_intents_user_id', 'payment_intents', ['user_id'])

    op.create_table(
        'payment_webhook_events',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('provider_code', sa.String(50), nullable=False),
        sa.Column('provider_event_id', sa.String(255), nullable=False),
        sa.Column('provider_event_type', sa.String(100), nullable=False),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('status', sa.String(50), nullable=False, server_default="pending"),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('signature_verified', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('processing_error', sa.Text(), nullable=True),
        sa.Column(
            'related_payment_intent_id', sa.String(),
            sa.ForeignKey('payment_intents.id', ondelete='SET NULL'), nullable=True,
        ),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.UniqueConstraint(
            'provider_code', 'provider_event_id', name='uq_payment_webhook_events_provider_event'
        ),
    )
    op.create_index('ix_payment_webhook_events_external_id', 'payment_webhook_events', ['external_id'])

    op.create_table(
        'payment_audit_logs',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('actor_type', sa.String(50), nullable=False),
        sa.Column('actor_id', sa.String(), nullable=True),
        sa.Column('entity_type', sa.String(50), nullable=False),
        sa.Column('entity_id', sa.String(), nullable=False),
        sa.Column('external_id', sa.String(255), nullable=True),
        sa.Column('previous_state', sa.JSON(), nullable=True),
        sa.Column('new_state', sa.JSON(), nullable=True),
        sa.Column('change_details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_index('ix_payment_audit_logs_action', 'payment_audit_logs', ['action'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('recipient_id', sa.String(), nullable=False),
        sa.Column('sender_id', sa.String(), nullable=True),
        sa.Column('type', sa.String(50), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.text('false')),
        sa.Column('dedupe_key', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('NOW()')),
        sa.UniqueConstraint('dedupe_key', name='uq_notifications_dedupe_key'),
    )
    op.create_index('ix_notifications_recipient_id', 'notifications', ['recipient_id'])
    op.create_index(
        'ix_notifications_recipient_read_created', 'notifications',
        ['recipient_id', 'is_read', 'created_at'],
    )


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('payment_audit_logs')
    op.drop_table('payment_webhook_events')
    op.drop_table('payment_intents')
    op.drop_table('appointments')
    op.drop_table('tattoo_offers')
    op.drop_table('tattoo_requests')
    op.drop_table('profiles')
