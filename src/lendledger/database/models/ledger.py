from datetime import datetime

from sqlalchemy import Index
from sqlalchemy.orm import Mapped, attribute_keyed_dict, relationship

from .base import Address, Base, BigInteger
from .types import (
    PrimaryForeignKeyUserAddress,
    PrimaryKeyAddress,
    PrimaryKeyInt,
    PrimaryKeyTokenSymbol,
    TransactionHash,
)


class UserPositionsTable(Base):
    """
    One row per user address. Per-token balances hang off this row in `user_token_balances`,
    exposed as a mapping keyed by token symbol.
    """

    __tablename__ = "user_positions"

    user_address: Mapped[PrimaryKeyAddress]

    # Relationships
    balances: Mapped[dict[str, "UserTokenBalancesTable"]] = relationship(
        "UserTokenBalancesTable",
        collection_class=attribute_keyed_dict("token_symbol"),
        back_populates="position",
    )


class UserTokenBalancesTable(Base):
    __tablename__ = "user_token_balances"

    user_address: Mapped[PrimaryForeignKeyUserAddress]
    token_symbol: Mapped[PrimaryKeyTokenSymbol]

    amount_supplied: Mapped[BigInteger]
    amount_borrowed: Mapped[BigInteger]

    # Relationships
    position: Mapped["UserPositionsTable"] = relationship(
        "UserPositionsTable",
        back_populates="balances",
    )


class UserAddressesTable(Base):
    """
    Membership of a user address in a market, written once per (address, symbol) pair.
    """

    __tablename__ = "user_addresses"

    user_address: Mapped[PrimaryKeyAddress]
    token_symbol: Mapped[PrimaryKeyTokenSymbol]
    token_address: Mapped[Address]


class UserTransactionsTable(Base):
    __tablename__ = "user_transactions"

    id: Mapped[PrimaryKeyInt]
    transaction_hash: Mapped[TransactionHash]
    log_index: Mapped[int]

    user_address: Mapped[Address]
    m_token_address: Mapped[Address]
    token_symbol: Mapped[str]
    transaction_type: Mapped[str]
    amount: Mapped[BigInteger]
    token_amount: Mapped[BigInteger | None]
    related_address: Mapped[Address | None]
    account_borrows: Mapped[BigInteger | None]
    block_number: Mapped[int]
    block_timestamp: Mapped[int]


# The (transaction hash, log index) tuple is unique for chain logs
Index(
    "ix_user_transactions_transaction_hash_log_index",
    UserTransactionsTable.transaction_hash,
    UserTransactionsTable.log_index,
    unique=True,
)
Index("ix_user_transactions_user_address", UserTransactionsTable.user_address)
Index("ix_user_transactions_m_token_address", UserTransactionsTable.m_token_address)
Index("ix_user_transactions_transaction_type", UserTransactionsTable.transaction_type)
Index("ix_user_transactions_block_number", UserTransactionsTable.block_number)


class ProcessingFaultsTable(Base):
    __tablename__ = "processing_faults"

    id: Mapped[PrimaryKeyInt]
    created_at: Mapped[datetime]
    kind: Mapped[str]
    context: Mapped[str]
    token_symbol: Mapped[str | None]
    transaction_hash: Mapped[TransactionHash | None]
    log_index: Mapped[int | None]
