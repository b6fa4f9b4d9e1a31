"""
Idempotent persistence for the transaction log, per-user token balances, and address links.

The store does not interpret balance semantics. It offers insert-or-ignore appends keyed by
`(transaction_hash, log_index)`, insert-or-update writes of a single (user, token) balance pair,
and point reads. Every function takes the caller's session and never commits, so the caller
decides the transaction boundary.
"""

from dataclasses import dataclass, field

from eth_typing import ChecksumAddress
from sqlalchemy import Table, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from lendledger.database.models.ledger import (
    UserAddressesTable,
    UserPositionsTable,
    UserTokenBalancesTable,
    UserTransactionsTable,
)
from lendledger.events.types import IndexedEvent
from lendledger.exceptions import LendLedgerValueError
from lendledger.functions import raise_if_invalid_uint256


@dataclass(frozen=True, slots=True)
class TokenBalance:
    """Supplied and borrowed amounts for one user in one market."""

    amount_supplied: int = 0
    amount_borrowed: int = 0


@dataclass(frozen=True, slots=True)
class UserPosition:
    user_address: ChecksumAddress
    balances: dict[str, TokenBalance] = field(default_factory=dict)

    def get(self, token_symbol: str) -> TokenBalance:
        return self.balances.get(token_symbol, TokenBalance())


def _insert(session: Session, table: Table) -> sqlite.Insert | postgresql.Insert:
    """
    Build a dialect-specific INSERT, which carries the ON CONFLICT clauses used for idempotent
    writes.
    """

    match dialect_name := session.get_bind().dialect.name:
        case "sqlite":
            return sqlite.insert(table)
        case "postgresql":
            return postgresql.insert(table)
        case _:
            raise LendLedgerValueError(message=f"Unsupported database dialect {dialect_name}")


def append_transaction(session: Session, event: IndexedEvent) -> bool:
    """
    Append the event to the transaction log. Returns True if a new row was created, or False if a
    row with the same `(transaction_hash, log_index)` already exists.
    """

    transaction_hash, log_index = event.key
    result = session.execute(
        _insert(session, UserTransactionsTable.__table__)
        .values(
            transaction_hash=transaction_hash,
            log_index=log_index,
            user_address=event.user,
            m_token_address=event.token_address,
            token_symbol=event.token,
            transaction_type=event.event_type.value,
            amount=event.amount,
            token_amount=event.token_amount,
            related_address=event.related_address,
            account_borrows=event.account_borrows,
            block_number=event.block_number,
            block_timestamp=event.block_timestamp,
        )
        .on_conflict_do_nothing(
            index_elements=["transaction_hash", "log_index"],
        )
    )
    return result.rowcount == 1  # type: ignore[attr-defined]


def link_address(
    session: Session,
    user_address: ChecksumAddress,
    token_symbol: str,
    token_address: ChecksumAddress,
) -> None:
    session.execute(
        _insert(session, UserAddressesTable.__table__)
        .values(
            user_address=user_address,
            token_symbol=token_symbol,
            token_address=token_address,
        )
        .on_conflict_do_nothing(
            index_elements=["user_address", "token_symbol"],
        )
    )


def upsert_balance(
    session: Session,
    user_address: ChecksumAddress,
    token_symbol: str,
    balance: TokenBalance,
) -> None:
    """
    Set the (supplied, borrowed) pair for the user and token, creating the user's position row if
    it does not exist.
    """

    raise_if_invalid_uint256(balance.amount_supplied)
    raise_if_invalid_uint256(balance.amount_borrowed)

    session.execute(
        _insert(session, UserPositionsTable.__table__)
        .values(user_address=user_address)
        .on_conflict_do_nothing(
            index_elements=["user_address"],
        )
    )

    statement = _insert(session, UserTokenBalancesTable.__table__).values(
        user_address=user_address,
        token_symbol=token_symbol,
        amount_supplied=balance.amount_supplied,
        amount_borrowed=balance.amount_borrowed,
    )
    session.execute(
        statement.on_conflict_do_update(
            index_elements=["user_address", "token_symbol"],
            set_={
                "amount_supplied": statement.excluded.amount_supplied,
                "amount_borrowed": statement.excluded.amount_borrowed,
            },
        )
    )


def read_token_balance(
    session: Session,
    user_address: ChecksumAddress,
    token_symbol: str,
) -> TokenBalance:
    """
    Read the current pair for one user and token. A pair that was never written reads as zero.
    """

    row = session.execute(
        select(
            UserTokenBalancesTable.amount_supplied,
            UserTokenBalancesTable.amount_borrowed,
        ).where(
            UserTokenBalancesTable.user_address == user_address,
            UserTokenBalancesTable.token_symbol == token_symbol,
        )
    ).one_or_none()

    if row is None:
        return TokenBalance()
    return TokenBalance(amount_supplied=row.amount_supplied, amount_borrowed=row.amount_borrowed)


def read_balance(session: Session, user_address: ChecksumAddress) -> UserPosition | None:
    """
    Read every token pair held by the user, or None if the user has no position row.
    """

    if (
        session.scalar(
            select(UserPositionsTable.user_address).where(
                UserPositionsTable.user_address == user_address
            )
        )
        is None
    ):
        return None

    rows = session.execute(
        select(
            UserTokenBalancesTable.token_symbol,
            UserTokenBalancesTable.amount_supplied,
            UserTokenBalancesTable.amount_borrowed,
        ).where(UserTokenBalancesTable.user_address == user_address)
    ).all()

    return UserPosition(
        user_address=user_address,
        balances={
            row.token_symbol: TokenBalance(
                amount_supplied=row.amount_supplied,
                amount_borrowed=row.amount_borrowed,
            )
            for row in rows
        },
    )
