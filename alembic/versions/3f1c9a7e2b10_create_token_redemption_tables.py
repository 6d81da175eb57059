"""create_token_redemption_tables

Revision ID: 3f1c9a7e2b10
Revises:
Create Date: 2026-10-17 09:12:41.208317

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c9a7e2b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

json_type = sa.Text().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('username', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username'),
    )

    op.create_table(
        'redeemable_tokens',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('restricted_contact', sa.String(length=64), nullable=True),
        sa.Column('creator_id', sa.String(length=36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('usage_limit >= 1', name='ck_redeemable_tokens_usage_limit_positive'),
        sa.CheckConstraint(
            'usage_count >= 0 AND usage_count <= usage_limit',
            name='ck_redeemable_tokens_usage_count_bounds',
        ),
    )
    op.create_index('ix_redeemable_tokens_code', 'redeemable_tokens', ['code'], unique=True)
    op.create_index('ix_redeemable_tokens_creator_id', 'redeemable_tokens', ['creator_id'])
    op.create_index(
        'ix_redeemable_tokens_active_expiry', 'redeemable_tokens', ['is_active', 'expires_at']
    )

    op.create_table(
        'token_usage_records',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('token_id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.String(length=36), nullable=True),
        sa.Column('purpose', sa.String(length=255), nullable=False),
        sa.Column('metadata', json_type, nullable=True),
        sa.Column('user_info', json_type, nullable=True),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['token_id'], ['redeemable_tokens.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_token_usage_records_token_id', 'token_usage_records', ['token_id'])
    op.create_index('ix_token_usage_records_used_at', 'token_usage_records', ['used_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_token_usage_records_used_at', table_name='token_usage_records')
    op.drop_index('ix_token_usage_records_token_id', table_name='token_usage_records')
    op.drop_table('token_usage_records')
    op.drop_index('ix_redeemable_tokens_active_expiry', table_name='redeemable_tokens')
    op.drop_index('ix_redeemable_tokens_creator_id', table_name='redeemable_tokens')
    op.drop_index('ix_redeemable_tokens_code', table_name='redeemable_tokens')
    op.drop_table('redeemable_tokens')
    op.drop_table('users')
