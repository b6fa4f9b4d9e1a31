import logging
import os
import tempfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest
from eth_utils.crypto import keccak
from hexbytes import HexBytes
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

# The config module creates its directory and file on import, so point it somewhere disposable
# before anything from the package is imported
os.environ.setdefault("LENDLEDGER_CONFIG_DIR", tempfile.mkdtemp(prefix="lendledger-tests-"))

from lendledger.checksum_cache import get_checksum_address  # noqa: E402
from lendledger.database.models import Base  # noqa: E402
from lendledger.database.operations import get_sqlite_engine  # noqa: E402
from lendledger.engine import ReconciliationEngine  # noqa: E402
from lendledger.events.types import EventLocation, MarketEvent, MarketEventData  # noqa: E402
from lendledger.faults import FaultRecorder  # noqa: E402
from lendledger.logging import logger  # noqa: E402
from lendledger.registry import MarketRegistry  # noqa: E402

MOONWELL_COMPTROLLER = get_checksum_address("0xfBb21d0380beE3312B33c4353c8936a0F13EF26C")
MOONWELL_USDC = get_checksum_address("0xEdc817A28E8B93B03976FBd4a3dDBc9f7D176c22")
MOONWELL_WETH = get_checksum_address("0x628ff693426583D9a7FB391E54366292F509D457")
MOONWELL_DAI = get_checksum_address("0x73b06D8d18De422E269645eaCe15400DE7462417")

ALICE = get_checksum_address("0x1111111111111111111111111111111111111111")
BOB = get_checksum_address("0x2222222222222222222222222222222222222222")
CAROL = get_checksum_address("0x3333333333333333333333333333333333333333")


type MarketEventFactory = Callable[..., MarketEvent]


@pytest.fixture(scope="session", autouse=True)
def _set_lendledger_logging():
    """
    Set the logging level to DEBUG for the test run
    """
    logger.setLevel(logging.DEBUG)


@pytest.fixture
def registry() -> MarketRegistry:
    return MarketRegistry.from_tokens(
        comptroller=MOONWELL_COMPTROLLER,
        tokens=[
            ("USDC", MOONWELL_USDC, 6),
            ("WETH", MOONWELL_WETH, 18),
            ("DAI", MOONWELL_DAI, 18),
        ],
    )


@pytest.fixture
def database_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    """
    A fresh file-backed SQLite database with the full schema. A file is used instead of an
    in-memory database so that connections from worker threads see the same data.
    """

    engine = get_sqlite_engine(tmp_path / "lendledger.db")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(database_engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=database_engine)


@pytest.fixture
def fault_recorder(session_factory: sessionmaker[Session]) -> FaultRecorder:
    return FaultRecorder(session_factory)


@pytest.fixture
def reconciliation_engine(
    registry: MarketRegistry,
    session_factory: sessionmaker[Session],
    fault_recorder: FaultRecorder,
) -> ReconciliationEngine:
    return ReconciliationEngine(
        registry=registry,
        session_factory=session_factory,
        fault_recorder=fault_recorder,
    )


@pytest.fixture
def market_event(registry: MarketRegistry) -> MarketEventFactory:
    """
    Build a `MarketEvent` for the given market symbol. Each (block_number, log_index) pair gets a
    deterministic transaction hash unless one is given.
    """

    def _market_event(
        symbol: str,
        data: MarketEventData,
        block_number: int = 1_000,
        log_index: int = 0,
        transaction_hash: HexBytes | None = None,
    ) -> MarketEvent:
        return MarketEvent(
            token=registry.get_by_symbol(symbol),
            data=data,
            location=EventLocation(
                block_number=block_number,
                block_timestamp=1_700_000_000 + 2 * block_number,
                transaction_hash=(
                    transaction_hash
                    if transaction_hash is not None
                    else HexBytes(keccak(text=f"{symbol}-{block_number}-{log_index}"))
                ),
                log_index=log_index,
            ),
        )

    return _market_event
