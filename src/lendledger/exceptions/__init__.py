from lendledger.exceptions.base import LendLedgerError, LendLedgerTypeError, LendLedgerValueError
from lendledger.exceptions.database import BackupExists
from lendledger.exceptions.events import EventNormalizationError, LogDecodingError
from lendledger.exceptions.evm import InvalidUint256
from lendledger.exceptions.fetching import FetchingError, LogFetchingTimeout
from lendledger.exceptions.registry import DuplicateMarket, RegistryError, UnknownMarket

from . import database, events, evm, fetching, registry

__all__ = (
    "BackupExists",
    "DuplicateMarket",
    "EventNormalizationError",
    "FetchingError",
    "InvalidUint256",
    "LendLedgerError",
    "LendLedgerTypeError",
    "LendLedgerValueError",
    "LogDecodingError",
    "LogFetchingTimeout",
    "RegistryError",
    "UnknownMarket",
    "database",
    "events",
    "evm",
    "fetching",
    "registry",
)
