"""create room and participant tables

Revision ID: 1a7c0d2e9b41
Revises:
Create Date: 2026-10-16 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a7c0d2e9b41'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'room',
        sa.Column('code', sa.String(length=6), primary_key=True),
        sa.Column('banker_identity', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_room_banker_identity', 'room', ['banker_identity'])
    op.create_table(
        'participant',
        sa.Column('identity', sa.String(length=64), primary_key=True),
        sa.Column('room_code', sa.String(length=6), sa.ForeignKey('room.code'), primary_key=True),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('display_name', sa.String(length=64), nullable=False, server_default=''),
        sa.Column('base_stake', sa.String(length=40), nullable=False, server_default='0'),
        sa.Column('current_net', sa.String(length=40), nullable=False, server_default='0'),
        sa.Column('last_delta', sa.String(length=40), nullable=False, server_default='0'),
        sa.Column('round_history', sa.Text(), nullable=False, server_default='[]'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    )


def downgrade():
    op.drop_table('participant')
    op.drop_index('ix_room_banker_identity', table_name='room')
    op.drop_table('room')
