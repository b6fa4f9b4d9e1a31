"""Decoded market events, their chain locations, and the canonical indexed event."""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from eth_typing import ChecksumAddress
from hexbytes import HexBytes

if TYPE_CHECKING:
    from lendledger.registry import Token


class EventType(Enum):
    """Protocol event kinds handled by the engine."""

    BORROW = "Borrow"
    REPAY_BORROW = "RepayBorrow"
    MINT = "Mint"
    REDEEM = "Redeem"
    LIQUIDATE_BORROW = "LiquidateBorrow"
    TRANSFER = "Transfer"


@dataclass(frozen=True, slots=True)
class BorrowEvent:
    borrower: str
    borrow_amount: int
    account_borrows: int
    total_borrows: int


@dataclass(frozen=True, slots=True)
class RepayBorrowEvent:
    payer: str
    borrower: str
    repay_amount: int
    account_borrows: int
    total_borrows: int


@dataclass(frozen=True, slots=True)
class MintEvent:
    minter: str
    mint_amount: int
    mint_tokens: int


@dataclass(frozen=True, slots=True)
class RedeemEvent:
    redeemer: str
    redeem_amount: int
    redeem_tokens: int


@dataclass(frozen=True, slots=True)
class LiquidateBorrowEvent:
    liquidator: str
    borrower: str
    repay_amount: int
    m_token_collateral: str
    seize_tokens: int


@dataclass(frozen=True, slots=True)
class TransferEvent:
    from_: str
    to: str
    amount: int


type MarketEventData = (
    BorrowEvent | RepayBorrowEvent | MintEvent | RedeemEvent | LiquidateBorrowEvent | TransferEvent
)


@dataclass(frozen=True, slots=True)
class EventLocation:
    """Where a log sits on chain."""

    block_number: int
    block_timestamp: int
    transaction_hash: HexBytes
    log_index: int


@dataclass(frozen=True, slots=True)
class MarketEvent:
    """
    A decoded event emitted by one market's contract, with its chain location. This is the unit of
    work delivered to the engine.
    """

    token: "Token"
    data: MarketEventData
    location: EventLocation


@dataclass(frozen=True, slots=True)
class IndexedEvent:
    """
    Canonical form of a protocol event.

    `(transaction_hash, log_index)` identifies the event instance; replaying the same log yields the
    same key.
    """

    event_type: EventType
    user: ChecksumAddress
    token: str
    token_address: ChecksumAddress
    amount: int
    block_number: int
    block_timestamp: int
    transaction_hash: HexBytes
    log_index: int
    token_amount: int | None = None
    related_address: ChecksumAddress | None = None
    account_borrows: int | None = None

    @property
    def key(self) -> tuple[str, int]:
        return self.transaction_hash.to_0x_hex(), self.log_index

    @property
    def id(self) -> str:
        return f"{self.transaction_hash.to_0x_hex()}-{self.log_index}"

    def describe(self) -> str:
        return (
            f"{self.event_type.value} {self.id} token={self.token} user={self.user} "
            f"related={self.related_address} amount={self.amount}"
        )
