import json
from unittest.mock import MagicMock

import eth_abi.abi
import pytest
from click.testing import CliRunner
from hexbytes import HexBytes
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from conftest import ALICE, BOB, MOONWELL_DAI, MOONWELL_USDC
from lendledger import __version__
from lendledger.cli import cli
from lendledger.config import settings
from lendledger.constants import ZERO_ADDRESS
from lendledger.database.models import LendingMarketsTable, ProcessingFaultsTable
from lendledger.database.operations import get_sqlite_engine
from lendledger.events.decoding import MarketEventTopic
from lendledger.ledger import read_token_balance

START_BLOCK = settings.start_block


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def fresh_database(runner: CliRunner) -> None:
    result = runner.invoke(cli, ["database", "reset"], input="y\n")
    assert result.exit_code == 0, result.output
    assert settings.database.path.exists()


def test_cli_help(runner: CliRunner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0


def test_cli_version(runner: CliRunner):
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_cli_config_show_default(runner: CliRunner):
    result = runner.invoke(cli, ["config", "show"])
    assert result.exit_code == 0
    assert "[database]" in result.output


def test_cli_config_show_json(runner: CliRunner):
    result = runner.invoke(cli, ["config", "show", "--json"])
    assert result.exit_code == 0
    config = json.loads(result.output)
    assert config["chain_id"] == settings.chain_id
    assert len(config["tokens"]) == len(settings.tokens)


def test_cli_config_show_toml(runner: CliRunner):
    result = runner.invoke(cli, ["config", "show", "--toml"])
    assert result.exit_code == 0
    assert "[database]" in result.output
    assert "[[tokens]]" in result.output


def test_cli_database_reset(runner: CliRunner):
    result = runner.invoke(cli, ["database", "reset"], input="n")
    assert result.exit_code == 1

    result = runner.invoke(cli, ["database", "reset"], input="")
    assert result.exit_code == 1


def test_cli_database_upgrade(runner: CliRunner, fresh_database):
    result = runner.invoke(cli, ["database", "upgrade"], input="n")
    assert result.exit_code == 1

    result = runner.invoke(cli, ["database", "upgrade"], input="")
    assert result.exit_code == 1

    result = runner.invoke(cli, ["database", "upgrade", "--force"])
    assert result.exit_code == 0, result.output


def test_cli_database_backup(runner: CliRunner, fresh_database):
    backup_path = settings.database.path.with_suffix(settings.database.path.suffix + ".bak")
    backup_path.unlink(missing_ok=True)

    result = runner.invoke(cli, ["database", "backup"])
    assert result.exit_code == 0, result.output
    assert backup_path.exists()

    # An existing backup is only replaced after confirmation
    result = runner.invoke(cli, ["database", "backup"], input="n")
    assert result.exit_code == 1

    result = runner.invoke(cli, ["database", "backup"], input="y\n")
    assert result.exit_code == 0
    assert backup_path.exists()


def test_cli_database_compact(runner: CliRunner, fresh_database):
    result = runner.invoke(cli, ["database", "compact"])
    assert result.exit_code == 0, result.output


def test_cli_markets_list(runner: CliRunner, fresh_database):
    result = runner.invoke(cli, ["markets", "list"])
    assert result.exit_code == 0, result.output
    assert settings.comptroller in result.output
    for token in settings.tokens:
        assert token.symbol in result.output
    assert "never" in result.output


def _address_topic(address: str) -> HexBytes:
    return HexBytes(eth_abi.abi.encode(["address"], [address]))


def _fake_web3(logs_by_block: dict[int, list[dict]], chain_tip: int) -> MagicMock:
    w3 = MagicMock()
    w3.eth.get_block.side_effect = lambda identifier: (
        {"number": chain_tip}
        if isinstance(identifier, str)
        else {"number": identifier, "timestamp": 1_700_000_000 + identifier}
    )

    def _get_logs(filter_params):
        return [
            log
            for block_number in range(filter_params["fromBlock"], filter_params["toBlock"] + 1)
            for log in logs_by_block.get(block_number, [])
            if log["address"] in filter_params["address"]
        ]

    w3.eth.get_logs.side_effect = _get_logs
    return w3


def _transfer_log(
    market: str,
    from_: str,
    to: str,
    amount: int,
    block_number: int,
    log_index: int,
) -> dict:
    return {
        "address": market,
        "topics": [MarketEventTopic.TRANSFER.value, _address_topic(from_), _address_topic(to)],
        "data": HexBytes(eth_abi.abi.encode(["uint256"], [amount])),
        "blockNumber": block_number,
        "transactionHash": HexBytes(
            block_number.to_bytes(16, "big") + log_index.to_bytes(16, "big")
        ),
        "logIndex": log_index,
    }


def test_cli_markets_update(runner: CliRunner, fresh_database, monkeypatch):
    logs_by_block = {
        START_BLOCK + 1: [
            _transfer_log(MOONWELL_USDC, ZERO_ADDRESS, ALICE, 500, START_BLOCK + 1, 0),
            _transfer_log(MOONWELL_DAI, ZERO_ADDRESS, BOB, 10**18, START_BLOCK + 1, 1),
        ],
        START_BLOCK + 7: [
            # Out-of-order log indices are sorted before processing
            _transfer_log(MOONWELL_USDC, BOB, ALICE, 1, START_BLOCK + 7, 5),
            _transfer_log(MOONWELL_USDC, ALICE, BOB, 200, START_BLOCK + 7, 2),
            {
                "address": MOONWELL_USDC,
                "topics": [MarketEventTopic.BORROW.value],
                "data": HexBytes(b"\x00" * 8),
                "blockNumber": START_BLOCK + 7,
                "transactionHash": HexBytes("0x" + "ee" * 32),
                "logIndex": 9,
            },
        ],
    }
    w3 = _fake_web3(logs_by_block=logs_by_block, chain_tip=START_BLOCK + 100)
    monkeypatch.setattr("lendledger.cli.markets.get_web3_from_config", lambda **_: w3)

    result = runner.invoke(
        cli,
        [
            "markets",
            "update",
            "--to-block",
            str(START_BLOCK + 9),
            "--chunk",
            "4",
            "--no-progress",
        ],
    )
    assert result.exit_code == 0, result.output

    session_factory = sessionmaker(bind=get_sqlite_engine(settings.database.path))
    with session_factory() as session:
        assert read_token_balance(session, ALICE, "USDC").amount_supplied == 301
        assert read_token_balance(session, BOB, "USDC").amount_supplied == 199
        assert read_token_balance(session, BOB, "DAI").amount_supplied == 10**18

        assert set(session.scalars(select(LendingMarketsTable.last_update_block)).all()) == {
            START_BLOCK + 9
        }

        # The malformed Borrow log is recorded and skipped
        (fault,) = session.scalars(select(ProcessingFaultsTable)).all()
        assert fault.kind == "NORMALIZATION"
        assert fault.log_index == 9

    result = runner.invoke(
        cli,
        ["markets", "update", "--to-block", str(START_BLOCK + 9), "--no-progress"],
    )
    assert result.exit_code == 0, result.output
    assert "has not advanced" in result.output


def test_cli_markets_update_rejects_future_block(
    runner: CliRunner,
    fresh_database,
    monkeypatch,
):
    w3 = _fake_web3(logs_by_block={}, chain_tip=START_BLOCK + 10)
    monkeypatch.setattr("lendledger.cli.markets.get_web3_from_config", lambda **_: w3)

    result = runner.invoke(cli, ["markets", "update", "--to-block", str(START_BLOCK + 11)])
    assert result.exit_code != 0
    assert isinstance(result.exception, ValueError)
