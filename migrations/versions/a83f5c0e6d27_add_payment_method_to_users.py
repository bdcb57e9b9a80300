"""add saved payment method to users

Revision ID: a83f5c0e6d27
Revises: 4e1d2a7c9b10
Create Date: 2026-09-19 16:40:05.002913
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a83f5c0e6d27'
down_revision: Union[str, Sequence[str], None] = '4e1d2a7c9b10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.add_column(sa.Column('payment_method_id', sa.String(length=64), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.drop_column('payment_method_id')
