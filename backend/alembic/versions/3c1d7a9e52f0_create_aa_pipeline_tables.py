"""create account aggregator pipeline tables

Revision ID: 3c1d7a9e52f0
Revises:
Create Date: 2026-10-19 10:14:52.318204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3c1d7a9e52f0'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('aa_consents',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('user_id', sa.String(), nullable=False),
    sa.Column('consent_handle', sa.String(), nullable=False),
    sa.Column('consent_id', sa.String(), nullable=True),
    sa.Column('fiu_id', sa.String(), nullable=True),
    sa.Column('provider_name', sa.String(), nullable=False),
    sa.Column('status', sa.String(), nullable=False),
    sa.Column('consent_mode', sa.String(), nullable=False),
    sa.Column('fetch_type', sa.String(), nullable=False),
    sa.Column('fi_types', sa.JSON(), nullable=False),
    sa.Column('purpose', sa.Text(), nullable=True),
    sa.Column('consent_start', sa.DateTime(), nullable=True),
    sa.Column('consent_expiry', sa.DateTime(), nullable=True),
    sa.Column('data_range_from', sa.DateTime(), nullable=True),
    sa.Column('data_range_to', sa.DateTime(), nullable=True),
    sa.Column('frequency_unit', sa.String(), nullable=True),
    sa.Column('frequency_value', sa.Integer(), nullable=True),
    sa.Column('data_life_unit', sa.String(), nullable=True),
    sa.Column('data_life_value', sa.Integer(), nullable=True),
    sa.Column('metadata_json', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('consent_handle'),
    sa.UniqueConstraint('consent_id')
    )
    op.create_index(op.f('ix_aa_consents_user_id'), 'aa_consents', ['user_id'], unique=False)

    op.create_table('aa_consent_events',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('consent_handle', sa.String(), nullable=False),
    sa.Column('event_type', sa.String(), nullable=False),
    sa.Column('event_source', sa.String(), nullable=False),
    sa.Column('previous_status', sa.String(), nullable=True),
    sa.Column('new_status', sa.String(), nullable=True),
    sa.Column('metadata_json', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_aa_consent_events_consent_handle'), 'aa_consent_events', ['consent_handle'], unique=False)

    op.create_table('fi_accounts',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('user_id', sa.String(), nullable=False),
    sa.Column('consent_id', sa.String(length=36), nullable=True),
    sa.Column('fip_id', sa.String(), nullable=False),
    sa.Column('account_ref', sa.String(), nullable=False),
    sa.Column('masked_account_number', sa.String(), nullable=True),
    sa.Column('fi_type', sa.String(), nullable=False),
    sa.Column('account_type', sa.String(), nullable=True),
    sa.Column('account_status', sa.String(), nullable=False),
    sa.Column('link_ref_number', sa.String(), nullable=True),
    sa.Column('metadata_json', sa.JSON(), nullable=True),
    sa.Column('linked_at', sa.DateTime(), nullable=True),
    sa.Column('last_fetched_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['consent_id'], ['aa_consents.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('user_id', 'account_ref', 'fi_type', name='uix_fi_account_user_ref_type')
    )
    op.create_index(op.f('ix_fi_accounts_consent_id'), 'fi_accounts', ['consent_id'], unique=False)
    op.create_index(op.f('ix_fi_accounts_user_id'), 'fi_accounts', ['user_id'], unique=False)

    op.create_table('fi_holdings',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('account_id', sa.String(length=36), nullable=False),
    sa.Column('batch_id', sa.String(), nullable=True),
    sa.Column('fi_type', sa.String(), nullable=False),
    sa.Column('instrument_name', sa.String(), nullable=False),
    sa.Column('instrument_id', sa.String(), nullable=True),
    sa.Column('quantity', sa.Numeric(precision=20, scale=6), nullable=False),
    sa.Column('average_price', sa.Numeric(precision=20, scale=6), nullable=False),
    sa.Column('current_value', sa.Numeric(precision=20, scale=2), nullable=False),
    sa.Column('invested_amount', sa.Numeric(precision=20, scale=2), nullable=False),
    sa.Column('holding_details', sa.JSON(), nullable=True),
    sa.Column('as_of_date', sa.Date(), nullable=False),
    sa.Column('idempotency_key', sa.String(length=64), nullable=False),
    sa.Column('fetched_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['account_id'], ['fi_accounts.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('idempotency_key')
    )
    op.create_index(op.f('ix_fi_holdings_account_id'), 'fi_holdings', ['account_id'], unique=False)

    op.create_table('fi_transactions',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('account_id', sa.String(length=36), nullable=False),
    sa.Column('batch_id', sa.String(), nullable=True),
    sa.Column('fi_type', sa.String(), nullable=False),
    sa.Column('transaction_ref', sa.String(), nullable=True),
    sa.Column('transaction_type', sa.String(), nullable=False),
    sa.Column('transaction_date', sa.Date(), nullable=False),
    sa.Column('amount', sa.Numeric(precision=20, scale=2), nullable=False),
    sa.Column('narration', sa.Text(), nullable=True),
    sa.Column('reference', sa.String(), nullable=True),
    sa.Column('transaction_details', sa.JSON(), nullable=True),
    sa.Column('idempotency_key', sa.String(length=64), nullable=False),
    sa.Column('fetched_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['account_id'], ['fi_accounts.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('idempotency_key')
    )
    op.create_index(op.f('ix_fi_transactions_account_id'), 'fi_transactions', ['account_id'], unique=False)

    op.create_table('fi_batches',
    sa.Column('id', sa.String(length=36), nullable=False),
    sa.Column('session_id', sa.String(), nullable=False),
    sa.Column('consent_handle', sa.String(), nullable=True),
    sa.Column('consent_id', sa.String(length=36), nullable=True),
    sa.Column('user_id', sa.String(), nullable=True),
    sa.Column('fi_type', sa.String(), nullable=True),
    sa.Column('status', sa.String(), nullable=False),
    sa.Column('records_fetched', sa.Integer(), nullable=False),
    sa.Column('records_processed', sa.Integer(), nullable=False),
    sa.Column('raw_payload', sa.JSON(), nullable=True),
    sa.Column('error_details', sa.JSON(), nullable=True),
    sa.Column('delivery_count', sa.Integer(), nullable=False),
    sa.Column('fetch_started_at', sa.DateTime(), nullable=True),
    sa.Column('fetch_completed_at', sa.DateTime(), nullable=True),
    sa.Column('created_at', sa.DateTime(), nullable=True),
    sa.Column('updated_at', sa.DateTime(), nullable=True),
    sa.ForeignKeyConstraint(['consent_id'], ['aa_consents.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('session_id')
    )
    op.create_index(op.f('ix_fi_batches_consent_handle'), 'fi_batches', ['consent_handle'], unique=False)
    op.create_index(op.f('ix_fi_batches_consent_id'), 'fi_batches', ['consent_id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_fi_batches_consent_id'), table_name='fi_batches')
    op.drop_index(op.f('ix_fi_batches_consent_handle'), table_name='fi_batches')
    op.drop_table('fi_batches')
    op.drop_index(op.f('ix_fi_transactions_account_id'), table_name='fi_transactions')
    op.drop_table('fi_transactions')
    op.drop_index(op.f('ix_fi_holdings_account_id'), table_name='fi_holdings')
    op.drop_table('fi_holdings')
    op.drop_index(op.f('ix_fi_accounts_user_id'), table_name='fi_accounts')
    op.drop_index(op.f('ix_fi_accounts_consent_id'), table_name='fi_accounts')
    op.drop_table('fi_accounts')
    op.drop_index(op.f('ix_aa_consent_events_consent_handle'), table_name='aa_consent_events')
    op.drop_table('aa_consent_events')
    op.drop_index(op.f('ix_aa_consents_user_id'), table_name='aa_consents')
    op.drop_table('aa_consents')
