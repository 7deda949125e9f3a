# alembic/versions/001_initial.py

"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # Create profiles table
    op.create_table('profiles',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('onboarding_completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('investing_paused', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('max_per_trade', sa.Numeric(precision=12, scale=2), nullable=False, server_default='100'),
        sa.Column('max_per_month', sa.Numeric(precision=12, scale=2), nullable=False, server_default='500'),
        sa.Column('selected_asset', sa.String(length=10), nullable=True),
        sa.Column('brokerage_account_id', sa.String(length=64), nullable=True),
        sa.Column('push_token', sa.String(length=255), nullable=True),
        sa.Column('push_token_updated_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )

    # Create rules table
    op.create_table('rules',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('category', sa.String(length=20), nullable=False),
        sa.Column('merchant_pattern', sa.String(length=100), nullable=True),
        sa.Column('period', sa.String(length=20), nullable=False, server_default='weekly'),
        sa.Column('target_spend', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('invest_type', sa.String(length=20), nullable=False),
        sa.Column('invest_amount', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('streak_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_rules_user_id', 'rules', ['user_id'])

    # Create transactions table
    op.create_table('transactions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('provider_transaction_id', sa.String(length=128), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('merchant_name', sa.String(length=255), nullable=True),
        sa.Column('category', sa.JSON(), nullable=True),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('excluded', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider_transaction_id')
    )
    op.create_index('ix_transactions_user_date', 'transactions', ['user_id', 'date'])

    # Create evaluations table
    op.create_table('evaluations',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('rule_id', sa.String(length=36), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('actual_spend', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('target_spend', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('calculated_invest', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('final_invest', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('streak_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('matching_transaction_ids', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['rule_id'], ['rules.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('rule_id', 'period_start', name='uq_evaluation_rule_period')
    )
    op.create_index('ix_evaluations_user_id', 'evaluations', ['user_id'])
    op.create_index('ix_evaluations_status', 'evaluations', ['status'])

    # Create orders table
    op.create_table('orders',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('evaluation_id', sa.String(length=36), nullable=True),
        sa.Column('brokerage_order_id', sa.String(length=128), nullable=True),
        sa.Column('symbol', sa.String(length=10), nullable=False),
        sa.Column('amount_dollars', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('shares', sa.Numeric(precision=18, scale=6), nullable=True),
        sa.Column('order_type', sa.String(length=20), nullable=False, server_default='market'),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('filled_at', sa.DateTime(), nullable=True),
        sa.Column('filled_price', sa.Numeric(precision=12, scale=4), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id']),
        sa.ForeignKeyConstraint(['evaluation_id'], ['evaluations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_user_filled', 'orders', ['user_id', 'status', 'filled_at'])

    # At most one in-flight or completed order per evaluation
    op.create_index(
        'ux_orders_active_evaluation',
        'orders',
        ['evaluation_id'],
        unique=True,
        postgresql_where=sa.text("status <> 'failed'"),
        sqlite_where=sa.text("status <> 'failed'"),
    )

    # Create bank_connections table
    op.create_table('bank_connections',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=False),
        sa.Column('access_token', sa.String(length=255), nullable=False),
        sa.Column('item_id', sa.String(length=128), nullable=True),
        sa.Column('institution_name', sa.String(length=255), nullable=True),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['profiles.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_bank_connections_user_id', 'bank_connections', ['user_id'])

    # Create job_runs table
    op.create_table('job_runs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_name', sa.String(length=50), nullable=False),
        sa.Column('target', sa.String(length=64), nullable=True),
        sa.Column('started_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('finished_at', sa.DateTime(), nullable=True),
        sa.Column('succeeded', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('skipped', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('failed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_job_runs_name_finished', 'job_runs', ['job_name', 'finished_at'])


def downgrade():
    op.drop_index('ix_job_runs_name_finished', table_name='job_runs')
    op.drop_table('job_runs')
    op.drop_index('ix_bank_connections_user_id', table_name='bank_connections')
    op.drop_table('bank_connections')
    op.drop_index('ux_orders_active_evaluation', table_name='orders')
    op.drop_index('ix_orders_user_filled', table_name='orders')
    op.drop_index('ix_orders_user_id', table_name='orders')
    op.drop_table('orders')
    op.drop_index('ix_evaluations_status', table_name='evaluations')
    op.drop_index('ix_evaluations_user_id', table_name='evaluations')
    op.drop_table('evaluations')
    op.drop_index('ix_transactions_user_date', table_name='transactions')
    op.drop_table('transactions')
    op.drop_index('ix_rules_user_id', table_name='rules')
    op.drop_table('rules')
    op.drop_table('profiles')
