"""initial schema

Revision ID: 001
Revises: 
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- users ---
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('display_name', sa.String(length=128), nullable=False),
        sa.Column('role', sa.String(length=16), server_default='student', nullable=False),
        sa.Column('avatar_url', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    # --- videos ---
    op.create_table(
        'videos',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.Column('video_url', sa.String(length=1024), nullable=False),
        sa.Column('thumbnail_url', sa.String(length=1024), nullable=True),
        sa.Column('uploader_id', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['uploader_id'], ['users.id'], name='fk_videos_uploader'),
        sa.PrimaryKeyConstraint('id')
    )

    # --- class_sessions ---
    op.create_table(
        'class_sessions',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('public_slug', sa.String(length=64), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('scheduled_start', sa.DateTime(), nullable=False),
        sa.Column('video_id', sa.String(length=64), nullable=False),
        sa.Column('status', sa.String(length=16), server_default='scheduled', nullable=False),
        sa.Column('created_by', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['video_id'], ['videos.id'], name='fk_sessions_video'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], name='fk_sessions_creator'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('public_slug')
    )
    op.create_index('idx_sessions_status_start', 'class_sessions', ['status', 'scheduled_start'], unique=False)

    # --- guest_registrations ---
    op.create_table(
        'guest_registrations',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('session_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['class_sessions.id'], name='fk_guest_session', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_guest_user', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', 'user_id', name='uq_guest_session_user')
    )
    op.create_index('idx_guest_session', 'guest_registrations', ['session_id'], unique=False)

    # --- scheduled_messages ---
    op.create_table(
        'scheduled_messages',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('session_id', sa.String(length=64), nullable=False),
        sa.Column('offset_seconds', sa.Integer(), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('sender_name', sa.String(length=128), server_default='Admin', nullable=False),
        sa.Column('sender_avatar', sa.String(length=512), nullable=True),
        sa.Column('sent', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['class_sessions.id'], name='fk_scheduled_session', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', 'offset_seconds', name='uq_scheduled_session_offset')
    )
    op.create_index('idx_scheduled_due', 'scheduled_messages', ['session_id', 'sent', 'offset_seconds'], unique=False)

    # --- chat_messages ---
    op.create_table(
        'chat_messages',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('session_id', sa.String(length=64), nullable=False),
        sa.Column('sender_id', sa.String(length=64), nullable=True),
        sa.Column('sender_name', sa.String(length=128), nullable=False),
        sa.Column('avatar_url', sa.String(length=512), nullable=True),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('type', sa.String(length=8), server_default='user', nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['class_sessions.id'], name='fk_chat_session', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], name='fk_chat_sender', ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_chat_session_created', 'chat_messages', ['session_id', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_table('chat_messages')
    op.drop_table('scheduled_messages')
    op.drop_table('guest_registrations')
    op.drop_table('class_sessions')
    op.drop_table('videos')
    op.drop_table('users')
