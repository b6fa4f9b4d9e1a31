from sqlalchemy import Index
from sqlalchemy.orm import Mapped

from .base import Address, Base
from .types import PrimaryKeyInt


class LendingMarketsTable(Base):
    """
    Sync progress for each tracked market.
    """

    __tablename__ = "lending_markets"

    id: Mapped[PrimaryKeyInt]
    chain_id: Mapped[int]
    symbol: Mapped[str]
    address: Mapped[Address]
    decimals: Mapped[int]
    last_update_block: Mapped[int | None]


# The (address, chain ID) tuple is unique for markets
Index(
    "ix_lending_markets_address_chain",
    LendingMarketsTable.address,
    LendingMarketsTable.chain_id,
    unique=True,
)
