"""Add ledger tables

Revision ID: 5d1c0a7e9b3f
Revises:
Create Date: 2026-10-17 09:12:41.318204

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

import lendledger.database.models

# revision identifiers, used by Alembic.
revision: str = "5d1c0a7e9b3f"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Upgrade schema."""

    op.create_table(
        "lending_markets",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("chain_id", sa.Integer(), nullable=False),
        sa.Column("symbol", sa.Text(), nullable=False),
        sa.Column("address", sa.String(length=42), nullable=False),
        sa.Column("decimals", sa.Integer(), nullable=False),
        sa.Column("last_update_block", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("lending_markets", schema=None) as batch_op:
        batch_op.create_index(
            "ix_lending_markets_address_chain", ["address", "chain_id"], unique=True
        )

    op.create_table(
        "processing_faults",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("context", sa.Text(), nullable=False),
        sa.Column("token_symbol", sa.Text(), nullable=True),
        sa.Column("transaction_hash", sa.String(length=66), nullable=True),
        sa.Column("log_index", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "user_addresses",
        sa.Column("user_address", sa.String(length=42), nullable=False),
        sa.Column("token_symbol", sa.String(length=32), nullable=False),
        sa.Column("token_address", sa.String(length=42), nullable=False),
        sa.PrimaryKeyConstraint("user_address", "token_symbol"),
    )

    op.create_table(
        "user_positions",
        sa.Column("user_address", sa.String(length=42), nullable=False),
        sa.PrimaryKeyConstraint("user_address"),
    )

    op.create_table(
        "user_token_balances",
        sa.Column("user_address", sa.String(length=42), nullable=False),
        sa.Column("token_symbol", sa.String(length=32), nullable=False),
        sa.Column(
            "amount_supplied",
            lendledger.database.models.base.IntMappedToString(length=78),
            nullable=False,
        ),
        sa.Column(
            "amount_borrowed",
            lendledger.database.models.base.IntMappedToString(length=78),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["user_address"],
            ["user_positions.user_address"],
        ),
        sa.PrimaryKeyConstraint("user_address", "token_symbol"),
    )

    op.create_table(
        "user_transactions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("transaction_hash", sa.String(length=66), nullable=False),
        sa.Column("log_index", sa.Integer(), nullable=False),
        sa.Column("user_address", sa.String(length=42), nullable=False),
        sa.Column("m_token_address", sa.String(length=42), nullable=False),
        sa.Column("token_symbol", sa.Text(), nullable=False),
        sa.Column("transaction_type", sa.Text(), nullable=False),
        sa.Column(
            "amount",
            lendledger.database.models.base.IntMappedToString(length=78),
            nullable=False,
        ),
        sa.Column(
            "token_amount",
            lendledger.database.models.base.IntMappedToString(length=78),
            nullable=True,
        ),
        sa.Column("related_address", sa.String(length=42), nullable=True),
        sa.Column(
            "account_borrows",
            lendledger.database.models.base.IntMappedToString(length=78),
            nullable=True,
        ),
        sa.Column("block_number", sa.Integer(), nullable=False),
        sa.Column("block_timestamp", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    with op.batch_alter_table("user_transactions", schema=None) as batch_op:
        batch_op.create_index(
            "ix_user_transactions_transaction_hash_log_index",
            ["transaction_hash", "log_index"],
            unique=True,
        )
        batch_op.create_index("ix_user_transactions_user_address", ["user_address"], unique=False)
        batch_op.create_index(
            "ix_user_transactions_m_token_address", ["m_token_address"], unique=False
        )
        batch_op.create_index(
            "ix_user_transactions_transaction_type", ["transaction_type"], unique=False
        )
        batch_op.create_index("ix_user_transactions_block_number", ["block_number"], unique=False)


def downgrade() -> None:
    """Downgrade schema."""

    with op.batch_alter_table("user_transactions", schema=None) as batch_op:
        batch_op.drop_index("ix_user_transactions_block_number")
        batch_op.drop_index("ix_user_transactions_transaction_type")
        batch_op.drop_index("ix_user_transactions_m_token_address")
        batch_op.drop_index("ix_user_transactions_user_address")
        batch_op.drop_index("ix_user_transactions_transaction_hash_log_index")

    op.drop_table("user_transactions")
    op.drop_table("user_token_balances")
    op.drop_table("user_positions")
    op.drop_table("user_addresses")
    op.drop_table("processing_faults")

    with op.batch_alter_table("lending_markets", schema=None) as batch_op:
        batch_op.drop_index("ix_lending_markets_address_chain")

    op.drop_table("lending_markets")
