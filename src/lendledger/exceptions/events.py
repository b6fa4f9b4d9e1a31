"""
Exceptions raised while turning chain logs into canonical events.
"""

from lendledger.exceptions.base import LendLedgerError


class EventNormalizationError(LendLedgerError):
    """
    Raised when a decoded protocol event or its chain location is missing a required field or holds
    a value of the wrong shape. These indicate an integration error upstream of the engine.
    """

    def __init__(self, reason: str, event: object | None = None) -> None:
        self.reason = reason
        self.event = event
        super().__init__(message=f"Could not normalize event: {reason}")


class LogDecodingError(LendLedgerError):
    """
    Raised when a raw log cannot be decoded into a market event.
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(message=f"Could not decode log: {reason}")
