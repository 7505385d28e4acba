"""create user, team, player, round and best-ball tables

Revision ID: 3c7d9e21b4f0
Revises:
Create Date: 2026-10-18 09:00:00

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '3c7d9e21b4f0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
            sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('token', sa.String(length=64), nullable=True),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)
        op.create_index('ix_user_token', 'user', ['token'], unique=True)

    if 'team' not in existing_tables:
        op.create_table(
            'team',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=64), nullable=False),
            sa.Column('short_name', sa.String(length=16), nullable=False),
            sa.Column('color_code', sa.String(length=16), nullable=False),
        )

    if 'player' not in existing_tables:
        op.create_table(
            'player',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=64), nullable=False),
            sa.Column('team_id', sa.Integer(), sa.ForeignKey('team.id'), nullable=False),
        )

    if 'round' not in existing_tables:
        op.create_table(
            'round',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=128), nullable=False),
            sa.Column('course_name', sa.String(length=128), nullable=True),
        )

    op.create_table(
        'best_ball_match',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('round_id', sa.Integer(), sa.ForeignKey('round.id'), nullable=False),
        sa.Column('team1_id', sa.Integer(), sa.ForeignKey('team.id'), nullable=False),
        sa.Column('team2_id', sa.Integer(), sa.ForeignKey('team.id'), nullable=False),
        sa.Column('team1_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('team2_score', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('team1_id <> team2_id', name='ck_best_ball_match_distinct_teams'),
        sa.CheckConstraint("status IN ('pending', 'in_progress', 'completed')", name='ck_best_ball_match_status'),
    )
    op.create_index('ix_best_ball_match_round_id', 'best_ball_match', ['round_id'])

    op.create_table(
        'best_ball_player_score',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('match_id', sa.Integer(), sa.ForeignKey('best_ball_match.id'), nullable=False),
        sa.Column('player_id', sa.Integer(), sa.ForeignKey('player.id'), nullable=False),
        sa.Column('hole_number', sa.Integer(), nullable=False),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('handicap_strokes', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('net_score', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('match_id', 'player_id', 'hole_number', name='uq_best_ball_player_score_key'),
    )
    op.create_index('ix_best_ball_player_score_match_id', 'best_ball_player_score', ['match_id'])


def downgrade():
    op.drop_index('ix_best_ball_player_score_match_id', table_name='best_ball_player_score')
    op.drop_table('best_ball_player_score')
    op.drop_index('ix_best_ball_match_round_id', table_name='best_ball_match')
    op.drop_table('best_ball_match')
    op.drop_table('round')
    op.drop_table('player')
    op.drop_table('team')
    op.drop_index('ix_user_token', table_name='user')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
