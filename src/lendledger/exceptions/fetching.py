"""
Data fetching exceptions for the lendledger package.
"""

from lendledger.exceptions.base import LendLedgerError


class FetchingError(LendLedgerError):
    """
    Base exception for data fetching errors.
    """


class LogFetchingTimeout(FetchingError):
    """
    Raised when log fetching operations timeout after multiple retry attempts.
    """

    def __init__(self, max_retries: int) -> None:
        self.max_retries = max_retries
        super().__init__(message=f"Timed out fetching logs after {max_retries} tries.")
