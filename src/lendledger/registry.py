"""
Immutable registry of the lending markets tracked by the engine.

The registry is built once at startup (from the configuration file or a deployment constant) and
passed explicitly to the normalizer, reconciler and engine.
"""

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from types import MappingProxyType

from eth_typing import ChecksumAddress

from lendledger.checksum_cache import get_checksum_address
from lendledger.exceptions.registry import DuplicateMarket, UnknownMarket


@dataclass(slots=True, frozen=True)
class Token:
    """
    A market's interest-bearing token.
    """

    symbol: str
    address: ChecksumAddress
    decimals: int


@dataclass(frozen=True)
class MarketRegistry:
    comptroller: ChecksumAddress
    tokens: tuple[Token, ...]
    _by_symbol: MappingProxyType[str, Token] = field(init=False, repr=False, compare=False)
    _by_address: MappingProxyType[ChecksumAddress, Token] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        by_symbol: dict[str, Token] = {}
        by_address: dict[ChecksumAddress, Token] = {}
        for token in self.tokens:
            if token.symbol in by_symbol:
                raise DuplicateMarket(key=token.symbol)
            if token.address in by_address:
                raise DuplicateMarket(key=token.address)
            by_symbol[token.symbol] = token
            by_address[token.address] = token

        # The dataclass is frozen, so the lookup tables are attached with object.__setattr__
        object.__setattr__(self, "_by_symbol", MappingProxyType(by_symbol))
        object.__setattr__(self, "_by_address", MappingProxyType(by_address))

    @classmethod
    def from_tokens(
        cls,
        comptroller: str,
        tokens: Iterable[tuple[str, str, int]],
    ) -> "MarketRegistry":
        """
        Build a registry from (symbol, address, decimals) tuples, checksumming the addresses.
        """

        return cls(
            comptroller=get_checksum_address(comptroller),
            tokens=tuple(
                Token(
                    symbol=symbol,
                    address=get_checksum_address(address),
                    decimals=decimals,
                )
                for symbol, address, decimals in tokens
            ),
        )

    def __iter__(self) -> Iterator[Token]:
        return iter(self.tokens)

    def __len__(self) -> int:
        return len(self.tokens)

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._by_symbol

    @property
    def addresses(self) -> list[ChecksumAddress]:
        return [token.address for token in self.tokens]

    @property
    def symbols(self) -> list[str]:
        return [token.symbol for token in self.tokens]

    def get_by_symbol(self, symbol: str) -> Token:
        try:
            return self._by_symbol[symbol]
        except KeyError:
            raise UnknownMarket(key=symbol) from None

    def get_by_address(self, address: str) -> Token:
        try:
            return self._by_address[get_checksum_address(address)]
        except KeyError:
            raise UnknownMarket(key=address) from None
