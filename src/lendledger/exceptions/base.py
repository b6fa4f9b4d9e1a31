class LendLedgerError(Exception):
    """
    Base exception used as the parent class for all exceptions raised by this package.

    Calling code should catch `LendLedgerError` and derived classes separately before general
    exceptions, e.g.:

    ```
    try:
        lendledger.some_function()
    except SpecificLendLedgerError:
        ... # handle a specific exception
    except LendLedgerError:
        ... # handle non-specific lendledger exception
    except Exception:
        ... # handle exceptions raised by 3rd party dependencies or Python built-ins
    ```

    An optional string-formatted message may be attached to the exception and retrieved by accessing
    the `.message` attribute.
    """

    message: str | None = None

    def __init__(self, message: str | None = None) -> None:
        if message:
            self.message = message
            super().__init__(message)


class LendLedgerValueError(LendLedgerError): ...


class LendLedgerTypeError(LendLedgerError): ...
