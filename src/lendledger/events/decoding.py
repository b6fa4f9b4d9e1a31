"""
Decode raw market contract logs into `MarketEvent` records.

Compound-style markets emit their protocol events with every argument in the data section. Only
the ERC-20 `Transfer` event uses indexed topics (`from`, `to`).
"""

from collections.abc import Callable
from enum import Enum

import eth_abi.abi
from eth_abi.exceptions import DecodingError
from eth_typing import ChecksumAddress
from eth_utils.crypto import keccak
from hexbytes import HexBytes
from web3.types import LogReceipt

from lendledger.checksum_cache import get_checksum_address
from lendledger.events.types import (
    BorrowEvent,
    EventLocation,
    LiquidateBorrowEvent,
    MarketEvent,
    MarketEventData,
    MintEvent,
    RedeemEvent,
    RepayBorrowEvent,
    TransferEvent,
)
from lendledger.exceptions.events import LogDecodingError
from lendledger.registry import MarketRegistry


def _topic(signature: str) -> HexBytes:
    return HexBytes(keccak(text=signature))


class MarketEventTopic(Enum):
    BORROW = _topic("Borrow(address,uint256,uint256,uint256)")
    REPAY_BORROW = _topic("RepayBorrow(address,address,uint256,uint256,uint256)")
    MINT = _topic("Mint(address,uint256,uint256)")
    REDEEM = _topic("Redeem(address,uint256,uint256)")
    LIQUIDATE_BORROW = _topic("LiquidateBorrow(address,address,uint256,address,uint256)")
    TRANSFER = _topic("Transfer(address,address,uint256)")


MARKET_EVENT_TOPICS: list[HexBytes] = [topic.value for topic in MarketEventTopic]


def _decode_address(input_: bytes) -> ChecksumAddress:
    """
    Get the checksummed address from the given byte stream.
    """

    (address,) = eth_abi.abi.decode(types=["address"], data=input_)
    return get_checksum_address(address)


def _decode_borrow(log: LogReceipt) -> BorrowEvent:
    # EVENT DEFINITION
    # event Borrow(
    #     address borrower,
    #     uint borrowAmount,
    #     uint accountBorrows,
    #     uint totalBorrows
    # );
    borrower, borrow_amount, account_borrows, total_borrows = eth_abi.abi.decode(
        types=["address", "uint256", "uint256", "uint256"],
        data=log["data"],
    )
    return BorrowEvent(
        borrower=get_checksum_address(borrower),
        borrow_amount=borrow_amount,
        account_borrows=account_borrows,
        total_borrows=total_borrows,
    )


def _decode_repay_borrow(log: LogReceipt) -> RepayBorrowEvent:
    # EVENT DEFINITION
    # event RepayBorrow(
    #     address payer,
    #     address borrower,
    #     uint repayAmount,
    #     uint accountBorrows,
    #     uint totalBorrows
    # );
    payer, borrower, repay_amount, account_borrows, total_borrows = eth_abi.abi.decode(
        types=["address", "address", "uint256", "uint256", "uint256"],
        data=log["data"],
    )
    return RepayBorrowEvent(
        payer=get_checksum_address(payer),
        borrower=get_checksum_address(borrower),
        repay_amount=repay_amount,
        account_borrows=account_borrows,
        total_borrows=total_borrows,
    )


def _decode_mint(log: LogReceipt) -> MintEvent:
    # EVENT DEFINITION
    # event Mint(
    #     address minter,
    #     uint mintAmount,
    #     uint mintTokens
    # );
    minter, mint_amount, mint_tokens = eth_abi.abi.decode(
        types=["address", "uint256", "uint256"],
        data=log["data"],
    )
    return MintEvent(
        minter=get_checksum_address(minter),
        mint_amount=mint_amount,
        mint_tokens=mint_tokens,
    )


def _decode_redeem(log: LogReceipt) -> RedeemEvent:
    # EVENT DEFINITION
    # event Redeem(
    #     address redeemer,
    #     uint redeemAmount,
    #     uint redeemTokens
    # );
    redeemer, redeem_amount, redeem_tokens = eth_abi.abi.decode(
        types=["address", "uint256", "uint256"],
        data=log["data"],
    )
    return RedeemEvent(
        redeemer=get_checksum_address(redeemer),
        redeem_amount=redeem_amount,
        redeem_tokens=redeem_tokens,
    )


def _decode_liquidate_borrow(log: LogReceipt) -> LiquidateBorrowEvent:
    # EVENT DEFINITION
    # event LiquidateBorrow(
    #     address liquidator,
    #     address borrower,
    #     uint repayAmount,
    #     address mTokenCollateral,
    #     uint seizeTokens
    # );
    liquidator, borrower, repay_amount, collateral, seize_tokens = eth_abi.abi.decode(
        types=["address", "address", "uint256", "address", "uint256"],
        data=log["data"],
    )
    return LiquidateBorrowEvent(
        liquidator=get_checksum_address(liquidator),
        borrower=get_checksum_address(borrower),
        repay_amount=repay_amount,
        m_token_collateral=get_checksum_address(collateral),
        seize_tokens=seize_tokens,
    )


def _decode_transfer(log: LogReceipt) -> TransferEvent:
    # EVENT DEFINITION
    # event Transfer(
    #     address indexed from,
    #     address indexed to,
    #     uint amount
    # );
    (amount,) = eth_abi.abi.decode(types=["uint256"], data=log["data"])
    return TransferEvent(
        from_=_decode_address(log["topics"][1]),
        to=_decode_address(log["topics"][2]),
        amount=amount,
    )


EVENT_DECODERS: dict[HexBytes, Callable[[LogReceipt], MarketEventData]] = {
    MarketEventTopic.BORROW.value: _decode_borrow,
    MarketEventTopic.REPAY_BORROW.value: _decode_repay_borrow,
    MarketEventTopic.MINT.value: _decode_mint,
    MarketEventTopic.REDEEM.value: _decode_redeem,
    MarketEventTopic.LIQUIDATE_BORROW.value: _decode_liquidate_borrow,
    MarketEventTopic.TRANSFER.value: _decode_transfer,
}


def decode_log(
    log: LogReceipt,
    registry: MarketRegistry,
    block_timestamp: int | None = None,
) -> MarketEvent:
    """
    Decode a log emitted by one of the registry's markets.

    Some nodes attach `blockTimestamp` to each log. If it is absent, the caller must supply the
    timestamp of the log's block.
    """

    if not log["topics"]:
        raise LogDecodingError(reason="Log has no topics.")

    topic = HexBytes(log["topics"][0])
    if (decoder := EVENT_DECODERS.get(topic)) is None:
        raise LogDecodingError(reason=f"Unknown event topic: {topic.to_0x_hex()}")

    token = registry.get_by_address(log["address"])

    if block_timestamp is None:
        raw_timestamp = log.get("blockTimestamp")
        if raw_timestamp is None:
            raise LogDecodingError(reason="Block timestamp is not available for log.")
        block_timestamp = (
            raw_timestamp if isinstance(raw_timestamp, int) else int(str(raw_timestamp), 16)
        )

    try:
        data = decoder(log)
    except (DecodingError, IndexError) as exc:
        raise LogDecodingError(reason=f"Malformed {topic.to_0x_hex()} log: {exc}") from exc

    return MarketEvent(
        token=token,
        data=data,
        location=EventLocation(
            block_number=log["blockNumber"],
            block_timestamp=block_timestamp,
            transaction_hash=HexBytes(log["transactionHash"]),
            log_index=log["logIndex"],
        ),
    )
