"""
Append-only record of processing faults.

Faults are written through a dedicated session so that rolling back a failed event does not also
remove the record of its failure. Recording is best effort: an error while writing a fault is
logged and dropped, never raised to the event loop.
"""

from datetime import UTC, datetime
from enum import Enum

from sqlalchemy.orm import Session, sessionmaker

from lendledger.database.models.ledger import ProcessingFaultsTable
from lendledger.events.types import IndexedEvent
from lendledger.logging import logger


class FaultKind(Enum):
    NORMALIZATION = "NORMALIZATION"
    ANOMALY = "ANOMALY"
    STORAGE = "STORAGE"
    PROCESSING = "PROCESSING"


class FaultRecorder:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self.session_factory = session_factory

    def record(
        self,
        kind: FaultKind,
        context: str,
        event: IndexedEvent | None = None,
        token_symbol: str | None = None,
        transaction_hash: str | None = None,
        log_index: int | None = None,
    ) -> None:
        """
        Append a fault row. Event identifiers are taken from `event` when it is given, otherwise
        from the explicit keyword arguments.
        """

        if event is not None:
            token_symbol = event.token
            transaction_hash, log_index = event.key

        match kind:
            case FaultKind.ANOMALY:
                logger.warning(f"[{kind.value}] {context}")
            case _:
                logger.error(f"[{kind.value}] {context}")

        try:
            with self.session_factory() as session:
                session.add(
                    ProcessingFaultsTable(
                        created_at=datetime.now(UTC),
                        kind=kind.value,
                        context=context,
                        token_symbol=token_symbol,
                        transaction_hash=transaction_hash,
                        log_index=log_index,
                    )
                )
                session.commit()
        except Exception:  # noqa: BLE001
            logger.exception(f"Failed to record {kind.value} fault: {context}")
