"""
Lending market CLI commands.

CLI Commands:
    markets list - Show the configured markets and the last block synchronized for each
    markets update - Fetch market events from the chain and reconcile user balances through the
        given block

Event Processing:
    Logs for all configured markets are fetched in block chunks, sorted by (blockNumber, logIndex),
    decoded, and handed to the reconciliation pipeline, which processes each market's events on its
    own worker. Each market's `last_update_block` is stamped at the end of every chunk, so an
    interrupted update resumes from the last completed chunk. Events already in the transaction log
    from a partially completed chunk are skipped as duplicates.
"""

import operator

import click
import tqdm
from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker
from web3 import Web3
from web3.types import LogReceipt

from lendledger.cli import cli
from lendledger.cli.utils import get_web3_from_config
from lendledger.config import settings
from lendledger.database import check_database_version, db_session, initialize_database
from lendledger.database.models.markets import LendingMarketsTable
from lendledger.database.operations import get_sqlite_engine
from lendledger.engine import ReconciliationEngine
from lendledger.events.decoding import MARKET_EVENT_TOPICS, decode_log
from lendledger.events.types import MarketEvent
from lendledger.exceptions import LogDecodingError, UnknownMarket
from lendledger.faults import FaultKind, FaultRecorder
from lendledger.functions import (
    fetch_logs_retrying,
    get_number_for_block_identifier,
    parse_block_range_end,
)
from lendledger.logging import logger
from lendledger.pipeline import ReconciliationPipeline
from lendledger.registry import MarketRegistry


@cli.group()
def markets() -> None:
    """
    Lending market commands
    """


def _sync_market_table(session: Session, registry: MarketRegistry, chain_id: int) -> None:
    """
    Add a progress row for every configured market that does not have one.
    """

    known_addresses = set(
        session.scalars(
            select(LendingMarketsTable.address).where(LendingMarketsTable.chain_id == chain_id)
        ).all()
    )
    for token in registry:
        if token.address in known_addresses:
            continue
        session.add(
            LendingMarketsTable(
                chain_id=chain_id,
                symbol=token.symbol,
                address=token.address,
                decimals=token.decimals,
                last_update_block=None,
            )
        )
    session.flush()


@markets.command("list")
def markets_list() -> None:
    """
    Show the configured markets.
    """

    initialize_database()
    registry = settings.market_registry()

    with db_session() as session:
        last_update_blocks: dict[ChecksumAddress, int | None] = {
            row.address: row.last_update_block
            for row in session.execute(
                select(
                    LendingMarketsTable.address,
                    LendingMarketsTable.last_update_block,
                ).where(LendingMarketsTable.chain_id == settings.chain_id)
            )
        }

    click.echo(f"Comptroller {registry.comptroller} (chain ID {settings.chain_id})")
    for token in registry:
        last_update_block = last_update_blocks.get(token.address)
        click.echo(
            f"{token.symbol:<10} {token.address} decimals={token.decimals:<3} "
            f"last update block: {'never' if last_update_block is None else last_update_block}"
        )


def _decode_logs(
    w3: Web3,
    logs: list[LogReceipt],
    registry: MarketRegistry,
    fault_recorder: FaultRecorder,
) -> list[MarketEvent]:
    """
    Decode the logs in (blockNumber, logIndex) order. Logs that fail to decode are recorded as
    faults and dropped.
    """

    block_timestamps: dict[int, int] = {}
    market_events: list[MarketEvent] = []

    for log in sorted(logs, key=operator.itemgetter("blockNumber", "logIndex")):
        block_timestamp: int | None = None
        if log.get("blockTimestamp") is None:
            block_number = log["blockNumber"]
            if block_number not in block_timestamps:
                block_timestamps[block_number] = w3.eth.get_block(block_number)["timestamp"]
            block_timestamp = block_timestamps[block_number]

        try:
            market_events.append(
                decode_log(log=log, registry=registry, block_timestamp=block_timestamp)
            )
        except (LogDecodingError, UnknownMarket) as exc:
            fault_recorder.record(
                kind=FaultKind.NORMALIZATION,
                context=f"Could not decode log from {log['address']}: {exc}",
                transaction_hash=HexBytes(log["transactionHash"]).to_0x_hex(),
                log_index=log["logIndex"],
            )

    return market_events


@markets.command("update")
@click.option(
    "--chunk",
    "chunk_size",
    default=10_000,
    show_default=True,
    help="The maximum number of blocks to process before committing changes to the database.",
)
@click.option(
    "--to-block",
    "to_block",
    default="latest:-64",
    show_default=True,
    help=(
        "The last block in the update range. Must be a valid block identifier: "
        "'earliest', 'finalized', 'safe', 'latest', 'pending'. An offset can be specified, "
        "e.g. 'latest:-64'."
    ),
)
@click.option(
    "--workers",
    "max_workers",
    default=None,
    type=click.IntRange(min=1),
    help="The maximum number of markets processed concurrently. Defaults to one per market.",
)
@click.option(
    "--no-progress",
    "no_progress",
    is_flag=True,
    default=False,
    show_default=True,
    help="Disable progress bars.",
)
def markets_update(
    *,
    chunk_size: int,
    to_block: str,
    max_workers: int | None,
    no_progress: bool,
) -> None:
    """
    Update user balances for the configured markets.

    Args:
        chunk_size: Maximum number of blocks to process before committing changes.
        to_block: Target block identifier (e.g., 'latest', 'latest:-64', 'finalized:128').
        max_workers: Maximum number of market partitions processed concurrently.
        no_progress: If True, disable progress bars.
    """

    initialize_database()
    check_database_version()

    chain_id = settings.chain_id
    registry = settings.market_registry()
    w3 = get_web3_from_config(chain_id=chain_id)

    session_factory = sessionmaker(bind=get_sqlite_engine(settings.database.path))
    fault_recorder = FaultRecorder(session_factory)
    pipeline = ReconciliationPipeline(
        engine=ReconciliationEngine(
            registry=registry,
            session_factory=session_factory,
            fault_recorder=fault_recorder,
        ),
        max_workers=max_workers,
    )

    with db_session() as session:
        _sync_market_table(session=session, registry=registry, chain_id=chain_id)
        session.commit()

        tracked_markets = session.scalars(
            select(LendingMarketsTable).where(
                LendingMarketsTable.chain_id == chain_id,
                LendingMarketsTable.address.in_(registry.addresses),
            )
        ).all()

        if not tracked_markets:
            click.echo(f"No markets are configured for chain {chain_id}.")
            return

        initial_start_block = working_start_block = min(
            settings.start_block
            if market.last_update_block is None
            else market.last_update_block + 1
            for market in tracked_markets
        )

        last_block = parse_block_range_end(to_block=to_block, w3=w3)
        current_block_number = get_number_for_block_identifier(identifier="latest", w3=w3)
        if last_block > current_block_number:
            msg = f"{to_block} is ahead of the current chain tip."
            raise ValueError(msg)

        if initial_start_block > last_block:
            click.echo(f"Chain {chain_id} has not advanced since the last update.")
            return

        block_pbar = tqdm.tqdm(
            total=last_block - initial_start_block + 1,
            bar_format="{desc} {percentage:3.1f}% |{bar}|",
            leave=False,
            disable=no_progress,
        )

        while working_start_block <= last_block:
            working_end_block = min(last_block, working_start_block + chunk_size - 1)

            block_pbar.set_description(
                f"Processing block range {working_start_block:,} -> {working_end_block:,}"
            )
            block_pbar.refresh()

            # A market synchronized partway into this chunk is fetched again from the chunk start,
            # and its already-logged events are skipped as duplicates
            markets_to_update = [
                market
                for market in tracked_markets
                if market.last_update_block is None
                or market.last_update_block < working_end_block
            ]
            if not markets_to_update:
                block_pbar.update(working_end_block - working_start_block + 1)
                working_start_block = working_end_block + 1
                continue

            logs = fetch_logs_retrying(
                w3=w3,
                start_block=working_start_block,
                end_block=working_end_block,
                address=[market.address for market in markets_to_update],
                topic_signature=[list(MARKET_EVENT_TOPICS)],
            )
            market_events = _decode_logs(
                w3=w3,
                logs=logs,
                registry=registry,
                fault_recorder=fault_recorder,
            )
            report = pipeline.run(market_events)
            logger.info(
                f"Blocks {working_start_block:,}-{working_end_block:,}: {report.applied} applied, "
                f"{report.duplicate} duplicate, {report.failed} failed, "
                f"{report.anomalies} anomalies"
            )

            for market in markets_to_update:
                market.last_update_block = working_end_block
            session.commit()

            block_pbar.update(working_end_block - working_start_block + 1)
            working_start_block = working_end_block + 1

        block_pbar.close()

    click.echo(f"Updated {len(tracked_markets)} markets on chain {chain_id} to block {last_block:,}.")
