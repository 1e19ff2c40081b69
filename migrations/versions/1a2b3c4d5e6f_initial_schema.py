"""initial schema: users, topics, games, players, rounds, rankings, guesses, round scores

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '1a2b3c4d5e6f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'topic',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False, unique=True),
        sa.Column('is_editable', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('user.id', ondelete='SET NULL'), nullable=True),
    )

    op.create_table(
        'topic_item',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('topic_id', sa.Integer(), sa.ForeignKey('topic.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.UniqueConstraint('topic_id', 'position', name='uq_topic_item_position'),
    )
    op.create_index('ix_topic_item_topic_id', 'topic_item', ['topic_id'])

    op.create_table(
        'game',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(length=16), nullable=False),
        sa.Column('creator_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('current_vip_id', sa.Integer(), sa.ForeignKey('user.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='waiting'),
        sa.Column('target_score', sa.Integer(), nullable=False, server_default='1000'),
        sa.Column('points_per_correct', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('bonus_all_correct', sa.Integer(), nullable=False, server_default='200'),
        sa.Column('penalty_all_wrong', sa.Integer(), nullable=False, server_default='-50'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("status IN ('waiting', 'playing', 'finished')", name='ck_game_status'),
    )
    op.create_index('ix_game_code', 'game', ['code'], unique=True)

    op.create_table(
        'player',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.Column('score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('game_id', 'user_id', name='uq_player_game_user'),
    )
    op.create_index('ix_player_game_id', 'player', ['game_id'])

    op.create_table(
        'round',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id', ondelete='CASCADE'), nullable=False),
        sa.Column('round_number', sa.Integer(), nullable=False),
        sa.Column('topic_id', sa.Integer(), sa.ForeignKey('topic.id'), nullable=False),
        sa.Column('vip_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='topic_selection'),
        sa.Column('reveal_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('scored_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('game_id', 'round_number', name='uq_round_game_number'),
        sa.CheckConstraint(
            "status IN ('topic_selection', 'vip_ranking', 'player_guessing', 'revealing', 'complete')",
            name='ck_round_status',
        ),
    )
    op.create_index('ix_round_game_id', 'round', ['game_id'])

    op.create_table(
        'ranking',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('round_id', sa.Integer(), sa.ForeignKey('round.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('topic_item.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.UniqueConstraint('round_id', 'item_id', name='uq_ranking_round_item'),
        sa.UniqueConstraint('round_id', 'position', name='uq_ranking_round_position'),
    )
    op.create_index('ix_ranking_round_id', 'ranking', ['round_id'])

    op.create_table(
        'guess',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('round_id', sa.Integer(), sa.ForeignKey('round.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('item_id', sa.Integer(), sa.ForeignKey('topic_item.id'), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('is_correct', sa.Boolean(), nullable=True),
        sa.UniqueConstraint('round_id', 'user_id', 'item_id', name='uq_guess_round_user_item'),
        sa.UniqueConstraint('round_id', 'user_id', 'position', name='uq_guess_round_user_position'),
    )
    op.create_index('ix_guess_round_id', 'guess', ['round_id'])

    op.create_table(
        'round_score',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('round_id', sa.Integer(), sa.ForeignKey('round.id', ondelete='CASCADE'), nullable=False),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
        sa.Column('delta', sa.Integer(), nullable=False),
        sa.Column('correct_count', sa.Integer(), nullable=False),
        sa.Column('guess_count', sa.Integer(), nullable=False),
        sa.Column('score_after', sa.Integer(), nullable=False),
        sa.UniqueConstraint('round_id', 'player_id', name='uq_round_score_round_player'),
    )
    op.create_index('ix_round_score_round_id', 'round_score', ['round_id'])


def downgrade():
    op.drop_index('ix_round_score_round_id', table_name='round_score')
    op.drop_table('round_score')
    op.drop_index('ix_guess_round_id', table_name='guess')
    op.drop_table('guess')
    op.drop_index('ix_ranking_round_id', table_name='ranking')
    op.drop_table('ranking')
    op.drop_index('ix_round_game_id', table_name='round')
    op.drop_table('round')
    op.drop_index('ix_player_game_id', table_name='player')
    op.drop_table('player')
    op.drop_index('ix_game_code', table_name='game')
    op.drop_table('game')
    op.drop_index('ix_topic_item_topic_id', table_name='topic_item')
    op.drop_table('topic_item')
    op.drop_table('topic')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
