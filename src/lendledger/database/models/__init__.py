from .base import Base
from .ledger import (
    ProcessingFaultsTable,
    UserAddressesTable,
    UserPositionsTable,
    UserTokenBalancesTable,
    UserTransactionsTable,
)
from .markets import LendingMarketsTable

__all__ = (
    "Base",
    "LendingMarketsTable",
    "ProcessingFaultsTable",
    "UserAddressesTable",
    "UserPositionsTable",
    "UserTokenBalancesTable",
    "UserTransactionsTable",
)
