"""
Per-event control flow for the balance reconciliation engine.

For each market event:
    1. Normalize it into a canonical `IndexedEvent`.
    2. Open a database transaction and append the event to the transaction log. If the
       `(transaction_hash, log_index)` key already exists the event is a redelivery, and nothing
       else is written. This makes the log insert the idempotency gate for the delta balance paths.
    3. Link the user (and related address) to the market, reconcile balances, and commit.
    4. Record any balance anomalies with the fault recorder.

Any exception is caught at the event boundary: the transaction is rolled back, the failure is
recorded with its context, and the caller moves on to the next event.
"""

import traceback
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from hexbytes import HexBytes
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from lendledger.events.normalizer import normalize_market_event
from lendledger.events.types import IndexedEvent, MarketEvent
from lendledger.exceptions import LendLedgerValueError
from lendledger.exceptions.events import EventNormalizationError
from lendledger.faults import FaultKind, FaultRecorder
from lendledger.ledger import append_transaction, link_address
from lendledger.logging import logger
from lendledger.reconciler import BalanceAnomaly, BalanceReconciler
from lendledger.registry import MarketRegistry


class ProcessingOutcome(Enum):
    APPLIED = "APPLIED"
    DUPLICATE = "DUPLICATE"
    FAILED = "FAILED"


@dataclass(frozen=True, slots=True)
class ProcessingResult:
    outcome: ProcessingOutcome
    event: IndexedEvent | None = None
    anomalies: tuple[BalanceAnomaly, ...] = ()


@dataclass(slots=True)
class ProcessingReport:
    applied: int = 0
    duplicate: int = 0
    failed: int = 0
    anomalies: int = 0
    out_of_order: int = 0
    results: list[ProcessingResult] = field(default_factory=list, repr=False)

    @property
    def total(self) -> int:
        return self.applied + self.duplicate + self.failed

    def add(self, result: ProcessingResult) -> None:
        match result.outcome:
            case ProcessingOutcome.APPLIED:
                self.applied += 1
            case ProcessingOutcome.DUPLICATE:
                self.duplicate += 1
            case ProcessingOutcome.FAILED:
                self.failed += 1
        self.anomalies += len(result.anomalies)
        self.results.append(result)

    def merge(self, other: "ProcessingReport") -> None:
        self.applied += other.applied
        self.duplicate += other.duplicate
        self.failed += other.failed
        self.anomalies += other.anomalies
        self.out_of_order += other.out_of_order
        self.results.extend(other.results)


def _location_key(market_event: MarketEvent) -> tuple[str | None, int | None]:
    """
    Best-effort event key for fault records when the event could not be normalized.
    """

    location = market_event.location
    try:
        tx_hash = HexBytes(location.transaction_hash).to_0x_hex()
    except (TypeError, ValueError):
        tx_hash = None
    log_index = location.log_index
    return tx_hash, log_index if isinstance(log_index, int) else None


def _ordering_key(market_event: MarketEvent) -> tuple[int, int] | None:
    # Locations are only validated during normalization
    block_number = market_event.location.block_number
    log_index = market_event.location.log_index
    if isinstance(block_number, int) and isinstance(log_index, int):
        return block_number, log_index
    return None


class ReconciliationEngine:
    def __init__(
        self,
        registry: MarketRegistry,
        session_factory: sessionmaker[Session],
        fault_recorder: FaultRecorder | None = None,
    ) -> None:
        self.registry = registry
        self.session_factory = session_factory
        self.reconciler = BalanceReconciler()
        self.faults = (
            fault_recorder if fault_recorder is not None else FaultRecorder(session_factory)
        )

    def apply(self, session: Session, event: IndexedEvent) -> tuple[bool, list[BalanceAnomaly]]:
        """
        Write the event and its balance changes through the session without committing. Returns
        whether the event was new, and the anomalies produced by reconciliation.
        """

        if self.registry.get_by_symbol(event.token).address != event.token_address:
            raise LendLedgerValueError(
                message=f"{event.token_address} is not the registered {event.token} market"
            )

        if not append_transaction(session=session, event=event):
            return False, []

        link_address(
            session=session,
            user_address=event.user,
            token_symbol=event.token,
            token_address=event.token_address,
        )
        if event.related_address is not None:
            link_address(
                session=session,
                user_address=event.related_address,
                token_symbol=event.token,
                token_address=event.token_address,
            )

        return True, self.reconciler.reconcile(session=session, event=event)

    def process(self, market_event: MarketEvent) -> ProcessingResult:
        event: IndexedEvent | None = None

        try:
            event = normalize_market_event(market_event)
            with self.session_factory() as session, session.begin():
                created, anomalies = self.apply(session=session, event=event)
        except EventNormalizationError as exc:
            self._record_failure(FaultKind.NORMALIZATION, market_event, event, exc)
            return ProcessingResult(outcome=ProcessingOutcome.FAILED, event=event)
        except SQLAlchemyError as exc:
            self._record_failure(FaultKind.STORAGE, market_event, event, exc)
            return ProcessingResult(outcome=ProcessingOutcome.FAILED, event=event)
        except Exception as exc:  # noqa: BLE001
            self._record_failure(FaultKind.PROCESSING, market_event, event, exc)
            return ProcessingResult(outcome=ProcessingOutcome.FAILED, event=event)

        if not created:
            logger.debug(f"Skipped duplicate {event.describe()}")
            return ProcessingResult(outcome=ProcessingOutcome.DUPLICATE, event=event)

        for anomaly in anomalies:
            self.faults.record(kind=FaultKind.ANOMALY, context=anomaly.describe(), event=event)

        logger.debug(f"Processed {event.describe()}")
        return ProcessingResult(
            outcome=ProcessingOutcome.APPLIED,
            event=event,
            anomalies=tuple(anomalies),
        )

    def process_all(self, market_events: Iterable[MarketEvent]) -> ProcessingReport:
        """
        Process events sequentially, in the order given. Events are expected in non-decreasing
        (block number, log index) order per market; a regression is logged but not reordered.
        """

        report = ProcessingReport()
        last_seen: dict[str, tuple[int, int]] = {}

        for market_event in market_events:
            symbol = market_event.token.symbol
            position = _ordering_key(market_event)
            if position is not None:
                if symbol in last_seen and position < last_seen[symbol]:
                    report.out_of_order += 1
                    logger.warning(
                        f"{symbol} event at {position[0]}.{position[1]} arrived after "
                        f"{last_seen[symbol][0]}.{last_seen[symbol][1]}"
                    )
                else:
                    last_seen[symbol] = position

            report.add(self.process(market_event))

        return report

    def _record_failure(
        self,
        kind: FaultKind,
        market_event: MarketEvent,
        event: IndexedEvent | None,
        exc: Exception,
    ) -> None:
        details = f"Error: {exc}\nStack: {''.join(traceback.format_exception(exc))}"

        if event is not None:
            header = (
                f"{event.event_type.value} event error for token {event.token} - "
                f"User: {event.user}, Related: {event.related_address} ({event.id})"
            )
            self.faults.record(
                kind=kind,
                context=f"{header}\n{details}",
                event=event,
            )
            return

        token_symbol = market_event.token.symbol
        transaction_hash, log_index = _location_key(market_event)
        header = (
            f"{type(market_event.data).__name__} event error for token {token_symbol} "
            f"({transaction_hash}-{log_index})"
        )
        self.faults.record(
            kind=kind,
            context=f"{header}\n{details}",
            token_symbol=token_symbol,
            transaction_hash=transaction_hash,
            log_index=log_index,
        )
