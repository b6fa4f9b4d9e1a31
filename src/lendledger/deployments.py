from dataclasses import dataclass

import eth_typing
from eth_typing import ChecksumAddress

from lendledger.checksum_cache import get_checksum_address
from lendledger.registry import MarketRegistry


@dataclass(slots=True, frozen=True)
class LendingDeployment:
    name: str
    chain_id: eth_typing.ChainId
    comptroller: ChecksumAddress
    start_block: int
    tokens: tuple[tuple[str, str, int], ...]

    def registry(self) -> MarketRegistry:
        return MarketRegistry.from_tokens(comptroller=self.comptroller, tokens=self.tokens)


# (symbol, market address, decimals)
BaseMainnetMoonwell = LendingDeployment(
    name="Base Mainnet Moonwell",
    chain_id=eth_typing.ChainId.BASE,
    comptroller=get_checksum_address("0xfBb21d0380beE3312B33c4353c8936a0F13EF26C"),
    start_block=2_300_000,
    tokens=(
        ("DAI", "0x73b06D8d18De422E269645eaCe15400DE7462417", 18),
        ("USDC", "0xEdc817A28E8B93B03976FBd4a3dDBc9f7D176c22", 6),
        ("USDbC", "0x703843C3379b52F9FF486c9f5892218d2a065cC8", 6),
        ("WETH", "0x628ff693426583D9a7FB391E54366292F509D457", 18),
        ("cbETH", "0x3bf93770f2d4a794c3d9EBEfBAeBAE2a8f09A5E5", 18),
        ("wstETH", "0x627Fe393Bc6EdDA28e99AE648fD6fF362514304b", 18),
        ("rETH", "0xcb1dacd30638ae38f2b94ea64f066045b7d45f44", 18),
        ("weETH", "0xb8051464C8c92209C92F3a4CD9C73746C4c3CFb3", 18),
        ("AERO", "0x73902f619CEB9B31FD8EFecf435CbDf89E369Ba6", 18),
        ("cbBTC", "0xF877ACaFA28c19b96727966690b2f44d35aD5976", 8),
        ("EURC", "0xb682c840B5F4FC58B20769E691A6fa1305A501a2", 6),
        ("wrsETH", "0xfC41B49d064Ac646015b459C522820DB9472F4B5", 18),
        ("WELL", "0xdC7810B47eAAb250De623F0eE07764afa5F71ED1", 18),
        ("USDS", "0xb6419c6C2e60c4025D6D06eE4F913ce89425a357", 6),
        ("tBTC", "0x9A858ebfF1bEb0D3495BB0e2897c1528eD84A218", 8),
        ("LBTC", "0x10fF57877b79e9bd949B3815220eC87B9fc5D2ee", 8),
        ("VIRTUAL", "0xdE8Df9d942D78edE3Ca06e60712582F79CFfFC64", 18),
    ),
)
