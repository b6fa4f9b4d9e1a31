import os
import tomllib
from pathlib import Path
from typing import Annotated

import tomlkit
from pydantic import (
    AfterValidator,
    BaseModel,
    Field,
    HttpUrl,
    PlainSerializer,
    WebsocketUrl,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from lendledger.checksum_cache import get_checksum_address
from lendledger.deployments import BaseMainnetMoonwell
from lendledger.logging import logger
from lendledger.registry import MarketRegistry

CONFIG_DIR = Path(
    os.environ.get("LENDLEDGER_CONFIG_DIR", Path.home() / ".config" / "lendledger")
).expanduser()
CONFIG_FILE = CONFIG_DIR / "config.toml"
DB_PATH = CONFIG_DIR / "lendledger.db"


ChecksummedAddress = Annotated[str, AfterValidator(get_checksum_address)]


class DatabaseSettings(BaseModel):
    # Serialize the path as a string representation of the absolute path
    path: Annotated[
        Path,
        PlainSerializer(lambda path: str(path.absolute()), return_type=str),
    ]


class TokenSettings(BaseModel):
    symbol: str = Field(min_length=1)
    address: ChecksummedAddress
    decimals: int = Field(ge=0, le=255)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LENDLEDGER_")

    database: DatabaseSettings
    rpc: dict[
        int,
        HttpUrl | WebsocketUrl | Path,
    ]
    chain_id: int = int(BaseMainnetMoonwell.chain_id)
    comptroller: ChecksummedAddress = BaseMainnetMoonwell.comptroller
    start_block: int = Field(default=BaseMainnetMoonwell.start_block, ge=0)
    tokens: list[TokenSettings] = Field(
        default_factory=lambda: [
            TokenSettings(symbol=symbol, address=address, decimals=decimals)
            for symbol, address, decimals in BaseMainnetMoonwell.tokens
        ]
    )

    @field_validator("rpc", mode="after")
    def validate_paths(
        cls,  # noqa: N805
        rpc_dict: dict[int, HttpUrl | WebsocketUrl | Path],
    ) -> dict[int, HttpUrl | WebsocketUrl | Path]:
        """
        Validate the endpoints.

        This will convert all file paths to an absolute reference, leaving HTTP and WS URLs as-is.
        """

        return {
            chain_id: endpoint.expanduser().absolute() if isinstance(endpoint, Path) else endpoint
            for chain_id, endpoint in rpc_dict.items()
        }

    @field_validator("tokens", mode="after")
    def validate_unique_tokens(
        cls,  # noqa: N805
        tokens: list[TokenSettings],
    ) -> list[TokenSettings]:
        symbols = [token.symbol for token in tokens]
        if len(set(symbols)) != len(symbols):
            msg = "Token symbols must be unique."
            raise ValueError(msg)

        addresses = [token.address for token in tokens]
        if len(set(addresses)) != len(addresses):
            msg = "Token addresses must be unique."
            raise ValueError(msg)

        return tokens

    def market_registry(self) -> MarketRegistry:
        return MarketRegistry.from_tokens(
            comptroller=self.comptroller,
            tokens=((token.symbol, token.address, token.decimals) for token in self.tokens),
        )

    def rpc_for_chain(self) -> HttpUrl | WebsocketUrl | Path | None:
        return self.rpc.get(self.chain_id)


def load_config_from_file(config_path: Path) -> Settings:
    return Settings.model_validate(
        tomllib.loads(
            config_path.read_text(),
        ),
    )


def save_config_to_file(config: Settings) -> None:
    CONFIG_FILE.write_text(
        tomlkit.dumps(
            config.model_dump(mode="json"),
        ),
    )


if not CONFIG_DIR.exists():
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    logger.info(f"Created a configuration directory at {CONFIG_DIR}.")

if CONFIG_FILE.exists():
    settings = load_config_from_file(CONFIG_FILE)
else:
    settings = Settings(
        database=DatabaseSettings(
            path=DB_PATH,
        ),
        rpc={},
    )

    save_config_to_file(settings)
    logger.info(f"Created a configuration file at {CONFIG_FILE}.")
