"""
Concurrent processing with a single writer per balance key.

Every balance key is a (user, token) pair, and every adjustment an event produces is confined to
the token of the market that emitted it. Partitioning the stream by token symbol therefore puts
all read-modify-write cycles for a given key in one partition. Partitions run in parallel, each on
one worker thread that processes its events strictly in arrival order.
"""

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor

from lendledger.engine import ProcessingReport, ReconciliationEngine
from lendledger.events.types import MarketEvent
from lendledger.exceptions import LendLedgerValueError
from lendledger.logging import logger


def partition_by_market(market_events: Iterable[MarketEvent]) -> dict[str, list[MarketEvent]]:
    """
    Split a mixed stream into per-market sequences, preserving the relative order of events within
    each market.
    """

    partitions: defaultdict[str, list[MarketEvent]] = defaultdict(list)
    for market_event in market_events:
        partitions[market_event.token.symbol].append(market_event)
    return dict(partitions)


class ReconciliationPipeline:
    def __init__(self, engine: ReconciliationEngine, max_workers: int | None = None) -> None:
        self.engine = engine
        self.max_workers = max_workers

    def run(
        self,
        market_events: Iterable[MarketEvent] | Mapping[str, Sequence[MarketEvent]],
    ) -> ProcessingReport:
        """
        Process the events, one worker per market partition. Accepts either a mixed stream or a
        mapping of pre-partitioned per-market sequences keyed by token symbol.
        """

        if isinstance(market_events, Mapping):
            partitions = {symbol: list(events) for symbol, events in market_events.items()}
            for symbol, events in partitions.items():
                for market_event in events:
                    if market_event.token.symbol != symbol:
                        raise LendLedgerValueError(
                            message=f"{market_event.token.symbol} event found in the {symbol} "
                            "partition"
                        )
        else:
            partitions = partition_by_market(market_events)

        report = ProcessingReport()
        if not partitions:
            return report

        max_workers = self.max_workers or len(partitions)
        logger.debug(
            f"Processing {sum(len(events) for events in partitions.values())} events across "
            f"{len(partitions)} markets with {max_workers} workers"
        )

        with ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="lendledger-market",
        ) as executor:
            futures = {
                symbol: executor.submit(self.engine.process_all, events)
                for symbol, events in partitions.items()
            }
            for symbol, future in futures.items():
                partition_report = future.result()
                logger.debug(
                    f"{symbol}: {partition_report.applied} applied, "
                    f"{partition_report.duplicate} duplicate, {partition_report.failed} failed"
                )
                report.merge(partition_report)

        return report
