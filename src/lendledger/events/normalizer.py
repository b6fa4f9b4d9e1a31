"""
Convert decoded market events into canonical `IndexedEvent` records.

Normalization is a pure function of its inputs. Any missing or malformed field raises
`EventNormalizationError` instead of being defaulted, since it points to a fault in the decoding
layer rather than a condition the engine should paper over.
"""

from eth_typing import ChecksumAddress
from hexbytes import HexBytes

from lendledger.checksum_cache import get_checksum_address
from lendledger.events.types import (
    BorrowEvent,
    EventLocation,
    EventType,
    IndexedEvent,
    LiquidateBorrowEvent,
    MarketEvent,
    MarketEventData,
    MintEvent,
    RedeemEvent,
    RepayBorrowEvent,
    TransferEvent,
)
from lendledger.exceptions.events import EventNormalizationError
from lendledger.exceptions.evm import InvalidUint256
from lendledger.functions import raise_if_invalid_uint256
from lendledger.registry import Token

TRANSACTION_HASH_LENGTH = 32


def _checked_address(value: object, field_name: str) -> ChecksumAddress:
    if not isinstance(value, str | bytes):
        raise EventNormalizationError(reason=f"{field_name} is not an address: {value!r}")
    try:
        return get_checksum_address(value)
    except (ValueError, TypeError):
        raise EventNormalizationError(
            reason=f"{field_name} is not an address: {value!r}"
        ) from None


def _checked_uint256(value: object, field_name: str) -> int:
    # bool is a subclass of int, but never a valid amount
    if not isinstance(value, int) or isinstance(value, bool):
        raise EventNormalizationError(reason=f"{field_name} is not an integer: {value!r}")
    try:
        raise_if_invalid_uint256(value)
    except InvalidUint256:
        raise EventNormalizationError(
            reason=f"{field_name} is out of uint256 range: {value!r}"
        ) from None
    return value


def _checked_location(location: object) -> EventLocation:
    if not isinstance(location, EventLocation):
        raise EventNormalizationError(reason=f"Missing event location: {location!r}")

    for field_name in ("block_number", "block_timestamp", "log_index"):
        value = getattr(location, field_name)
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise EventNormalizationError(reason=f"Invalid {field_name}: {value!r}")

    if not isinstance(location.transaction_hash, str | bytes):
        raise EventNormalizationError(
            reason=f"Invalid transaction hash: {location.transaction_hash!r}"
        )
    try:
        transaction_hash = HexBytes(location.transaction_hash)
    except (ValueError, TypeError):
        raise EventNormalizationError(
            reason=f"Invalid transaction hash: {location.transaction_hash!r}"
        ) from None
    if len(transaction_hash) != TRANSACTION_HASH_LENGTH:
        raise EventNormalizationError(
            reason=f"Invalid transaction hash: {location.transaction_hash!r}"
        )

    return EventLocation(
        block_number=location.block_number,
        block_timestamp=location.block_timestamp,
        transaction_hash=transaction_hash,
        log_index=location.log_index,
    )


def normalize_event(
    event: MarketEventData,
    location: EventLocation,
    token: Token,
) -> IndexedEvent:
    """
    Build the canonical event for a decoded market event emitted by `token`'s contract.
    """

    location = _checked_location(location)
    common = {
        "token": token.symbol,
        "token_address": token.address,
        "block_number": location.block_number,
        "block_timestamp": location.block_timestamp,
        "transaction_hash": location.transaction_hash,
        "log_index": location.log_index,
    }

    match event:
        case BorrowEvent():
            return IndexedEvent(
                event_type=EventType.BORROW,
                user=_checked_address(event.borrower, "borrower"),
                amount=_checked_uint256(event.borrow_amount, "borrow_amount"),
                account_borrows=_checked_uint256(event.account_borrows, "account_borrows"),
                **common,
            )

        case RepayBorrowEvent():
            borrower = _checked_address(event.borrower, "borrower")
            payer = _checked_address(event.payer, "payer")
            return IndexedEvent(
                event_type=EventType.REPAY_BORROW,
                user=borrower,
                related_address=payer if payer != borrower else None,
                amount=_checked_uint256(event.repay_amount, "repay_amount"),
                account_borrows=_checked_uint256(event.account_borrows, "account_borrows"),
                **common,
            )

        case MintEvent():
            return IndexedEvent(
                event_type=EventType.MINT,
                user=_checked_address(event.minter, "minter"),
                amount=_checked_uint256(event.mint_amount, "mint_amount"),
                token_amount=_checked_uint256(event.mint_tokens, "mint_tokens"),
                **common,
            )

        case RedeemEvent():
            return IndexedEvent(
                event_type=EventType.REDEEM,
                user=_checked_address(event.redeemer, "redeemer"),
                amount=_checked_uint256(event.redeem_amount, "redeem_amount"),
                token_amount=_checked_uint256(event.redeem_tokens, "redeem_tokens"),
                **common,
            )

        case LiquidateBorrowEvent():
            return IndexedEvent(
                event_type=EventType.LIQUIDATE_BORROW,
                user=_checked_address(event.liquidator, "liquidator"),
                related_address=_checked_address(event.borrower, "borrower"),
                amount=_checked_uint256(event.repay_amount, "repay_amount"),
                token_amount=_checked_uint256(event.seize_tokens, "seize_tokens"),
                **common,
            )

        case TransferEvent():
            from_address = _checked_address(event.from_, "from")
            to_address = _checked_address(event.to, "to")
            return IndexedEvent(
                event_type=EventType.TRANSFER,
                user=from_address,
                related_address=to_address if to_address != from_address else None,
                amount=_checked_uint256(event.amount, "amount"),
                **common,
            )

        case _:
            raise EventNormalizationError(reason=f"Unsupported event record {event!r}", event=event)


def normalize_market_event(market_event: MarketEvent) -> IndexedEvent:
    return normalize_event(
        event=market_event.data,
        location=market_event.location,
        token=market_event.token,
    )
