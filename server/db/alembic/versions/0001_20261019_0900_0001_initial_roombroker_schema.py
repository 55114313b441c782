"""Initial room broker schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

UUID = postgresql.UUID(as_uuid=True)
MONEY = sa.Numeric(precision=12, scale=2)


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table('hotels',
        sa.Column('id', UUID, server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('supplier_hotel_id', sa.String(length=64), nullable=True),
        sa.Column('channel_hotel_code', sa.String(length=64), nullable=True),
        sa.Column('channel_rate_plan_code', sa.String(length=32), server_default='STD', nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_hotels_name'), 'hotels', ['name'], unique=False)
    op.create_index(op.f('ix_hotels_supplier_hotel_id'), 'hotels', ['supplier_hotel_id'], unique=False)

    op.create_table('room_categories',
        sa.Column('id', UUID, server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('channel_room_code', sa.String(length=64), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('boards',
        sa.Column('id', UUID, server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('code', sa.String(length=16), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('opportunities',
        sa.Column('id', UUID, server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('hotel_id', UUID, nullable=False),
        sa.Column('category_id', UUID, nullable=True),
        sa.Column('board_id', UUID, nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('buy_price', MONEY, nullable=False),
        sa.Column('push_price', MONEY, nullable=False),
        sa.Column('max_rooms', sa.Integer(), server_default='1', nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('is_purchased', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('booking_id', UUID, nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint('end_date > start_date', name='ck_opportunity_dates'),
        sa.CheckConstraint('max_rooms > 0', name='ck_opportunity_max_rooms_positive'),
        sa.ForeignKeyConstraint(['hotel_id'], ['hotels.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['category_id'], ['room_categories.id']),
        sa.ForeignKeyConstraint(['board_id'], ['boards.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_opportunities_hotel_id'), 'opportunities', ['hotel_id'], unique=False)
    op.create_index(op.f('ix_opportunities_is_active'), 'opportunities', ['is_active'], unique=False)
    op.create_index(op.f('ix_opportunities_is_purchased'), 'opportunities', ['is_purchased'], unique=False)
    op.create_index(op.f('ix_opportunities_updated_at'), 'opportunities', ['updated_at'], unique=False)

    op.create_table('holds',
        sa.Column('id', UUID, server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('opportunity_id', UUID, nullable=True),
        sa.Column('hotel_id', UUID, nullable=False),
        sa.Column('category_id', UUID, nullable=True),
        sa.Column('board_id', UUID, nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('price', MONEY, nullable=False),
        sa.Column('supplier_hold_id', sa.String(length=128), nullable=True),
        sa.Column('token', sa.String(length=512), nullable=True),
        sa.Column('cancellation_type', sa.String(length=64), nullable=True),
        sa.Column('cancellation_deadline', sa.DateTime(), nullable=True),
        sa.Column('provider', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['opportunity_id'], ['opportunities.id']),
        sa.ForeignKeyConstraint(['hotel_id'], ['hotels.id']),
        sa.ForeignKeyConstraint(['category_id'], ['room_categories.id']),
        sa.ForeignKeyConstraint(['board_id'], ['boards.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_holds_opportunity_id'), 'holds', ['opportunity_id'], unique=False)
    op.create_index(op.f('ix_holds_hotel_id'), 'holds', ['hotel_id'], unique=False)

    op.create_table('bookings',
        sa.Column('id', UUID, server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('hold_id', UUID, nullable=False),
        sa.Column('opportunity_id', UUID, nullable=True),
        sa.Column('hotel_id', UUID, nullable=False),
        sa.Column('category_id', UUID, nullable=True),
        sa.Column('board_id', UUID, nullable=True),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('confirmation_ref', sa.String(length=128), nullable=True),
        sa.Column('supplier_reference', sa.String(length=128), nullable=True),
        sa.Column('price', MONEY, nullable=False),
        sa.Column('last_price', MONEY, nullable=True),
        sa.Column('push_price', MONEY, nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default=sa.true(), nullable=False),
        sa.Column('is_sold', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='confirmed', nullable=False),
        sa.Column('cancellation_type', sa.String(length=64), nullable=True),
        sa.Column('cancellation_deadline', sa.DateTime(), nullable=True),
        sa.Column('provider', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint("status IN ('confirmed', 'cancelled')", name='ck_booking_status_valid'),
        sa.ForeignKeyConstraint(['hold_id'], ['holds.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['opportunity_id'], ['opportunities.id']),
        sa.ForeignKeyConstraint(['hotel_id'], ['hotels.id']),
        sa.ForeignKeyConstraint(['category_id'], ['room_categories.id']),
        sa.ForeignKeyConstraint(['board_id'], ['boards.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('hold_id')
    )
    op.create_index(op.f('ix_bookings_hold_id'), 'bookings', ['hold_id'], unique=True)
    op.create_index(op.f('ix_bookings_opportunity_id'), 'bookings', ['opportunity_id'], unique=False)
    op.create_index(op.f('ix_bookings_hotel_id'), 'bookings', ['hotel_id'], unique=False)
    op.create_index(op.f('ix_bookings_confirmation_ref'), 'bookings', ['confirmation_ref'], unique=False)
    op.create_index(op.f('ix_bookings_is_active'), 'bookings', ['is_active'], unique=False)
    op.create_index(op.f('ix_bookings_is_sold'), 'bookings', ['is_sold'], unique=False)
    op.create_index(op.f('ix_bookings_status'), 'bookings', ['status'], unique=False)
    op.create_index(op.f('ix_bookings_cancellation_deadline'), 'bookings', ['cancellation_deadline'], unique=False)

    op.create_table('cancellations',
        sa.Column('id', UUID, server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('booking_id', UUID, nullable=False),
        sa.Column('hold_id', UUID, nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('refund_amount', MONEY, nullable=True),
        sa.Column('fee', MONEY, nullable=True),
        sa.Column('supplier_cancellation_id', sa.String(length=128), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['hold_id'], ['holds.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_cancellations_booking_id'), 'cancellations', ['booking_id'], unique=False)

    op.create_table('push_log',
        sa.Column('id', UUID, server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('booking_id', UUID, nullable=True),
        sa.Column('opportunity_id', UUID, nullable=True),
        sa.Column('push_type', sa.String(length=20), nullable=False),
        sa.Column('request_body', sa.Text(), nullable=False),
        sa.Column('response_body', sa.Text(), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('retry_count', sa.Integer(), server_default='0', nullable=False),
        sa.Column('processing_ms', sa.Integer(), server_default='0', nullable=False),
        sa.Column('pushed_price', MONEY, nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint("push_type IN ('availability', 'rate')", name='ck_push_log_type_valid'),
        sa.CheckConstraint('retry_count >= 0', name='ck_push_log_retry_count_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_push_log_booking_id'), 'push_log', ['booking_id'], unique=False)
    op.create_index(op.f('ix_push_log_opportunity_id'), 'push_log', ['opportunity_id'], unique=False)
    op.create_index(op.f('ix_push_log_push_type'), 'push_log', ['push_type'], unique=False)
    op.create_index(op.f('ix_push_log_success'), 'push_log', ['success'], unique=False)
    op.create_index(op.f('ix_push_log_created_at'), 'push_log', ['created_at'], unique=False)

    op.create_table('push_queue',
        sa.Column('id', UUID, server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('booking_id', UUID, nullable=True),
        sa.Column('opportunity_id', UUID, nullable=True),
        sa.Column('is_pushed', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('pushed_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=20), server_default='queued', nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint("status IN ('queued', 'verified', 'error')", name='ck_push_queue_status_valid'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_push_queue_booking_id'), 'push_queue', ['booking_id'], unique=False)
    op.create_index(op.f('ix_push_queue_is_pushed'), 'push_queue', ['is_pushed'], unique=False)
    op.create_index(op.f('ix_push_queue_status'), 'push_queue', ['status'], unique=False)


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_table('push_queue')
    op.drop_table('push_log')
    op.drop_table('cancellations')
    op.drop_table('bookings')
    op.drop_table('holds')
    op.drop_table('opportunities')
    op.drop_table('boards')
    op.drop_table('room_categories')
    op.drop_table('hotels')
