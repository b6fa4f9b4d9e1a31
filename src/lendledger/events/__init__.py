from .decoding import MARKET_EVENT_TOPICS, MarketEventTopic, decode_log
from .normalizer import normalize_event, normalize_market_event
from .types import (
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

__all__ = (
    "MARKET_EVENT_TOPICS",
    "BorrowEvent",
    "EventLocation",
    "EventType",
    "IndexedEvent",
    "LiquidateBorrowEvent",
    "MarketEvent",
    "MarketEventData",
    "MarketEventTopic",
    "MintEvent",
    "RedeemEvent",
    "RepayBorrowEvent",
    "TransferEvent",
    "decode_log",
    "normalize_event",
    "normalize_market_event",
)
