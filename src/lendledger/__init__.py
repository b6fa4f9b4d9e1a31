from .checksum_cache import get_checksum_address
from .config import settings
from .version import __version__

# isort: split

from .deployments import BaseMainnetMoonwell, LendingDeployment
from .engine import ProcessingOutcome, ProcessingReport, ProcessingResult, ReconciliationEngine
from .events import (
    EventLocation,
    EventType,
    IndexedEvent,
    MarketEvent,
    decode_log,
    normalize_event,
    normalize_market_event,
)
from .faults import FaultKind, FaultRecorder
from .ledger import TokenBalance, UserPosition, read_balance, read_token_balance
from .logging import logger
from .pipeline import ReconciliationPipeline, partition_by_market
from .reconciler import AnomalyKind, BalanceAnomaly, BalanceReconciler
from .registry import MarketRegistry, Token

__all__ = (
    "AnomalyKind",
    "BalanceAnomaly",
    "BalanceReconciler",
    "BaseMainnetMoonwell",
    "EventLocation",
    "EventType",
    "FaultKind",
    "FaultRecorder",
    "IndexedEvent",
    "LendingDeployment",
    "MarketEvent",
    "MarketRegistry",
    "ProcessingOutcome",
    "ProcessingReport",
    "ProcessingResult",
    "ReconciliationEngine",
    "ReconciliationPipeline",
    "Token",
    "TokenBalance",
    "UserPosition",
    "__version__",
    "decode_log",
    "get_checksum_address",
    "logger",
    "normalize_event",
    "normalize_market_event",
    "partition_by_market",
    "read_balance",
    "read_token_balance",
    "settings",
)
