from typing import Annotated

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import mapped_column

PrimaryKeyInt = Annotated[
    int,
    mapped_column(primary_key=True, autoincrement=True),
]
PrimaryKeyAddress = Annotated[
    str,
    mapped_column(String(42), primary_key=True),
]
PrimaryKeyTokenSymbol = Annotated[
    str,
    mapped_column(String(32), primary_key=True),
]
PrimaryForeignKeyUserAddress = Annotated[
    str,
    mapped_column(String(42), ForeignKey("user_positions.user_address"), primary_key=True),
]
TransactionHash = Annotated[
    str,
    mapped_column(String(66)),
]
