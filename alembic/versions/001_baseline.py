"""baseline schema - users, daily records, monthly summaries

Revision ID: 001_baseline
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

revision = '001_baseline'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Users table
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Daily records table - one entry per user per day
    op.create_table('daily_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.String(10), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'date', name='uq_daily_records_user_date')
    )
    op.create_index('ix_daily_records_user_id', 'daily_records', ['user_id'])
    op.create_index('ix_daily_records_date', 'daily_records', ['date'])

    # Monthly summaries table - cached reviews keyed by YYYY-MM
    op.create_table('monthly_summaries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('month', sa.String(7), nullable=False),
        sa.Column('summary', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'month', name='uq_monthly_summaries_user_month')
    )
    op.create_index('ix_monthly_summaries_user_id', 'monthly_summaries', ['user_id'])
    op.create_index('ix_monthly_summaries_month', 'monthly_summaries', ['month'])


def downgrade():
    op.drop_index('ix_monthly_summaries_month', table_name='monthly_summaries')
    op.drop_index('ix_monthly_summaries_user_id', table_name='monthly_summaries')
    op.drop_table('monthly_summaries')
    op.drop_index('ix_daily_records_date', table_name='daily_records')
    op.drop_index('ix_daily_records_user_id', table_name='daily_records')
    op.drop_table('daily_records')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
