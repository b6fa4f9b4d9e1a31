from lendledger.exceptions.base import LendLedgerError

"""
Exceptions defined here are raised by the market registry.
"""


class RegistryError(LendLedgerError):
    """
    Exception raised inside registries.
    """


class DuplicateMarket(RegistryError):
    """
    Raised when two markets share a symbol or a contract address.
    """

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(message=f"Market {key} is already registered.")


class UnknownMarket(RegistryError):
    """
    Raised when a lookup does not match any registered market.
    """

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(message=f"No market is registered for {key}.")
