__all__ = (
    "MAX_UINT256",
    "MIN_UINT256",
    "ZERO_ADDRESS",
)

import typing

from eth_typing import ChecksumAddress

from lendledger.checksum_cache import get_checksum_address


def _max_uint(bits: int) -> int:
    return typing.cast("int", 2**bits - 1)


MIN_UINT256 = 0
MAX_UINT256 = _max_uint(256)

ZERO_ADDRESS: ChecksumAddress = get_checksum_address("0x0000000000000000000000000000000000000000")
