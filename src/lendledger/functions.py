from collections.abc import Sequence
from typing import TYPE_CHECKING

from eth_typing import BlockNumber, ChecksumAddress
from hexbytes import HexBytes
from requests.exceptions import RequestException
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)
from web3 import Web3
from web3._utils.threads import Timeout
from web3.exceptions import Web3Exception
from web3.types import BlockIdentifier, FilterParams, LogReceipt

from lendledger.constants import MAX_UINT256, MIN_UINT256
from lendledger.exceptions import LendLedgerValueError
from lendledger.exceptions.evm import InvalidUint256
from lendledger.exceptions.fetching import LogFetchingTimeout
from lendledger.logging import logger


def raise_if_invalid_uint256(number: int) -> None:
    if (MIN_UINT256 <= number <= MAX_UINT256) is False:
        raise InvalidUint256(number)


def _increase_working_span(
    working_span: int,
    percent: int,
    ceiling: int,
) -> int:
    """
    Increase the working span by the given percentage, not to exceed the given ceiling.
    """

    return min(
        ceiling,
        int(
            working_span + working_span * (percent / 100),
        ),
    )


def _reduce_working_span(
    working_span: int,
    percent: int,
) -> int:
    """
    Reduce the working span by the given percentage, not to fall below 1.
    """

    return max(
        1,
        int(
            working_span - working_span * (percent / 100),
        ),
    )


def fetch_logs_retrying(
    w3: Web3,
    start_block: int,
    end_block: int,
    max_retries: int = 10,
    max_blocks_per_request: int | None = None,
    address: list[ChecksumAddress] | None = None,
    topic_signature: Sequence[Sequence[HexBytes] | HexBytes] | None = None,
) -> list[LogReceipt]:
    """
    Fetch all event logs for the given topic signature (or all logs, if omitted), inclusive for the
    given block range.

    Max blocks per request is set to 5,000 if not specified.

    See `https://ethereum.org/developers/docs/apis/json-rpc/#eth_getfilterchanges` for formatting of
    topic signatures.
    """

    if end_block < start_block:
        msg = "End block cannot be earlier than start block."
        raise ValueError(msg)

    if address is None:
        address = []

    if topic_signature is None:
        topic_signature = []

    if max_blocks_per_request is None:
        max_blocks_per_request = 5_000

    # The working block span is dynamic. It will be reduced quickly if timeouts occur, and increased
    # slowly following successful fetches
    working_span = 100

    retrier = Retrying(
        stop=stop_after_attempt(max_retries),
        wait=wait_exponential_jitter(),
        retry=retry_if_exception_type(
            (Timeout, Web3Exception, RequestException),
        ),
    )

    event_logs: list[LogReceipt] = []

    while True:
        try:
            for attempt in retrier:
                chunk_end = min(end_block, start_block + working_span - 1)

                with attempt:
                    try:
                        logger.debug(
                            f"Fetching logs for range {start_block}-{chunk_end} "
                            f" ({chunk_end - start_block + 1} blocks)"
                        )
                        event_logs.extend(
                            w3.eth.get_logs(
                                FilterParams(
                                    address=address,
                                    fromBlock=BlockNumber(start_block),
                                    toBlock=BlockNumber(chunk_end),
                                    topics=topic_signature,
                                )
                            )
                        )
                    except Exception:
                        working_span = _reduce_working_span(
                            working_span=working_span,
                            percent=25,
                        )
                        logger.debug(
                            f"Attempt {attempt.retry_state.attempt_number} timed out "
                            f"fetching {chunk_end - start_block + 1} blocks. "
                            f"Reducing to {working_span}..."
                        )
                        raise
                    else:
                        working_span = _increase_working_span(
                            working_span=working_span,
                            percent=1,
                            ceiling=max_blocks_per_request,
                        )

            if chunk_end == end_block:
                return event_logs

            start_block = chunk_end + 1

        except RetryError:
            raise LogFetchingTimeout(max_retries=max_retries) from None


def get_number_for_block_identifier(identifier: BlockIdentifier | None, w3: Web3) -> BlockNumber:
    match identifier:
        case None:
            return w3.eth.get_block_number()
        case int() as block_number_as_int:
            return BlockNumber(block_number_as_int)
        case "latest" | "earliest" | "pending" | "safe" | "finalized" as block_tag:
            block = w3.eth.get_block(block_tag)
            block_number = block.get("number")
            if TYPE_CHECKING:
                assert block_number is not None
            return block_number
        case str() as block_number_as_str:
            try:
                return BlockNumber(int(block_number_as_str, 16))
            except ValueError:
                raise LendLedgerValueError(
                    message=f"Invalid block identifier {identifier!r}"
                ) from None
        case bytes() as block_number_as_bytes:
            return BlockNumber(int.from_bytes(block_number_as_bytes, byteorder="big"))
        case _:
            raise LendLedgerValueError(message=f"Invalid block identifier {identifier!r}")


def parse_block_range_end(to_block: str, w3: Web3) -> int:
    """
    Resolve a CLI block argument to a block number.

    Accepts a decimal block number, a block tag ('earliest', 'finalized', 'safe', 'latest',
    'pending'), or a tag with a signed offset, e.g. 'latest:-64'.
    """

    if to_block.isdigit():
        return int(to_block)

    if ":" in to_block:
        block_tag, offset = to_block.split(":", 1)
        block_offset = int(offset.strip())
    else:
        block_tag = to_block
        block_offset = 0

    if block_tag not in {"latest", "earliest", "pending", "safe", "finalized"}:
        raise LendLedgerValueError(message=f"Invalid block tag: {block_tag}")

    return get_number_for_block_identifier(identifier=block_tag, w3=w3) + block_offset  # type: ignore[arg-type]
