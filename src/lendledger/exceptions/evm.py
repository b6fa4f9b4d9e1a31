from lendledger.exceptions.base import LendLedgerValueError


class InvalidUint256(LendLedgerValueError):
    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(message=f"{value!r} is not a valid uint256")
