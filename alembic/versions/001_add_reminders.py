"""add reminders and announcements tables

Revision ID: 001_add_reminders
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_add_reminders'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'reminders',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('channel_id', sa.Integer(), nullable=False),
        sa.Column('author_moderator_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('text', sa.String(), nullable=False),
        sa.Column('priority', sa.String(), nullable=False, server_default='NORMAL'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('next_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('interval_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('ignore_next_firing', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('creation_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('modification_date', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_reminders_channel_id', 'reminders', ['channel_id'])
    op.create_index('ix_reminders_active_next_date', 'reminders', ['is_active', 'next_date'])

    op.create_table(
        'announcements',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('channel_id', sa.Integer(), nullable=False),
        sa.Column('message_number', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('text', sa.String(), nullable=False),
        sa.Column('priority', sa.String(), nullable=False, server_default='NORMAL'),
        sa.Column('author_moderator_id', sa.Integer(), nullable=False),
        sa.Column('reminder_id', sa.Integer(), nullable=True),
        sa.Column('creation_date', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_announcements_channel_id', 'announcements', ['channel_id'])
    op.create_index('ix_announcements_reminder_id', 'announcements', ['reminder_id'])
    op.create_index('ux_announcements_channel_number', 'announcements', ['channel_id', 'message_number'], unique=True)


def downgrade() -> None:
    op.drop_index('ux_announcements_channel_number', table_name='announcements')
    op.drop_index('ix_announcements_reminder_id', table_name='announcements')
    op.drop_index('ix_announcements_channel_id', table_name='announcements')
    op.drop_table('announcements')
    op.drop_index('ix_reminders_active_next_date', table_name='reminders')
    op.drop_index('ix_reminders_channel_id', table_name='reminders')
    op.drop_table('reminders')
