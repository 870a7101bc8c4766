"""create user, room, story, vote and room_participant tables

Revision ID: 4c7d2e91a0b3
Revises:
Create Date: 2026-10-18 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c7d2e91a0b3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.String(length=128), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('avatar_url', sa.String(length=512), nullable=True),
        sa.Column('is_spectator', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_table(
        'room',
        sa.Column('id', sa.String(length=6), primary_key=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('owner_id', sa.String(length=128), nullable=False, server_default=''),
        sa.Column('current_story_id', sa.String(length=36), nullable=True),
        sa.Column('card_deck_id', sa.String(length=64), nullable=False, server_default='fibonacci'),
        sa.Column('is_voting_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('password_hash', sa.String(length=256), nullable=True),
        sa.Column('timer_duration', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_room_owner_id', 'room', ['owner_id'])
    op.create_index('ix_room_created_at', 'room', ['created_at'])
    op.create_table(
        'story',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('room_id', sa.String(length=6), sa.ForeignKey('room.id'), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.String(length=1000), nullable=True),
        sa.Column('acceptance_criteria', sa.Text(), nullable=True),
        sa.Column('is_revealed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('final_estimate', sa.String(length=16), nullable=True),
        sa.Column('timer_state', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_story_room_id', 'story', ['room_id'])
    op.create_index('ix_story_created_at', 'story', ['created_at'])
    with op.batch_alter_table('room') as batch_op:
        batch_op.create_foreign_key('fk_room_current_story_id', 'story', ['current_story_id'], ['id'])
    op.create_table(
        'vote',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('story_id', sa.String(length=36), sa.ForeignKey('story.id'), nullable=False),
        sa.Column('user_id', sa.String(length=128), nullable=False),
        sa.Column('value', sa.String(length=16), nullable=False),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('story_id', 'user_id', name='uq_vote_story_user'),
    )
    op.create_index('ix_vote_story_id', 'vote', ['story_id'])
    op.create_table(
        'room_participant',
        sa.Column('room_id', sa.String(length=6), sa.ForeignKey('room.id'), primary_key=True),
        sa.Column('user_id', sa.String(length=128), sa.ForeignKey('user.id'), primary_key=True),
    )


def downgrade():
    op.drop_table('room_participant')
    op.drop_index('ix_vote_story_id', table_name='vote')
    op.drop_table('vote')
    with op.batch_alter_table('room') as batch_op:
        batch_op.drop_constraint('fk_room_current_story_id', type_='foreignkey')
    op.drop_index('ix_story_created_at', table_name='story')
    op.drop_index('ix_story_room_id', table_name='story')
    op.drop_table('story')
    op.drop_index('ix_room_created_at', table_name='room')
    op.drop_index('ix_room_owner_id', table_name='room')
    op.drop_table('room')
    op.drop_table('user')
