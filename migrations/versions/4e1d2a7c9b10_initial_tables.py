"""initial tables

Revision ID: 4e1d2a7c9b10
Revises:
Create Date: 2026-09-02 10:12:31.518204
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4e1d2a7c9b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _status(name, *values):
    return sa.Enum(*values, name=name, native_enum=False, create_constraint=True, length=32)


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('phone'),
    )
    op.create_index('ix_users_id', 'users', ['id'])

    op.create_table(
        'rides',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('departure_location_name', sa.String(length=255), nullable=False),
        sa.Column('departure_lat', sa.Float(), nullable=True),
        sa.Column('departure_lng', sa.Float(), nullable=True),
        sa.Column('arrival_location_name', sa.String(length=255), nullable=False),
        sa.Column('arrival_lat', sa.Float(), nullable=True),
        sa.Column('arrival_lng', sa.Float(), nullable=True),
        sa.Column('departure_date', sa.Date(), nullable=False),
        sa.Column('departure_time', sa.Time(), nullable=False),
        sa.Column('total_seats', sa.Integer(), nullable=False),
        sa.Column('status', _status('ride_status', 'active', 'archived', 'cancelled'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('total_seats >= 1 AND total_seats <= 5', name='ck_rides_total_seats_range'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_rides_user_id', 'rides', ['user_id'])
    op.create_index('ix_rides_status_departure', 'rides', ['status', 'departure_date'])

    op.create_table(
        'participants',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('ride_id', sa.String(length=36), nullable=False),
        sa.Column(
            'status',
            _status('participant_status', 'pending_payment', 'active', 'left', 'cancelled_ride'),
            nullable=False,
        ),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['ride_id'], ['rides.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'ride_id', name='uq_participants_user_ride'),
    )
    op.create_index('ix_participants_user_id', 'participants', ['user_id'])
    op.create_index('ix_participants_ride_id', 'participants', ['ride_id'])
    op.create_index('ix_participants_ride_status', 'participants', ['ride_id', 'status'])

    op.create_table(
        'payments',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('ride_id', sa.String(length=36), nullable=True),
        sa.Column('participant_id', sa.String(length=36), nullable=True),
        sa.Column('intent_id', sa.String(length=64), nullable=False),
        sa.Column('status', _status('payment_status', 'pending', 'succeeded', 'failed'), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['ride_id'], ['rides.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['participant_id'], ['participants.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_payments_user_id', 'payments', ['user_id'])
    op.create_index('ix_payments_ride_id', 'payments', ['ride_id'])
    op.create_index('ix_payments_participant_id', 'payments', ['participant_id'])
    op.create_index('ix_payments_intent_id', 'payments', ['intent_id'], unique=True)
    op.create_index('ix_payments_user_status', 'payments', ['user_id', 'status'])


def downgrade() -> None:
    op.drop_table('payments')
    op.drop_table('participants')
    op.drop_table('rides')
    op.drop_index('ix_users_id', table_name='users')
    op.drop_table('users')
