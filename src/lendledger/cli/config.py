from typing import Literal

import click
import tomlkit
from pydantic import TypeAdapter

from lendledger.cli import cli
from lendledger.config import settings


@cli.group()
def config() -> None:
    """
    Configuration commands
    """


@config.command("show")
@click.option(
    "--json",
    "output_format",
    flag_value="json",
    type=str,
    help="Show configuration in JSON format",
)
@click.option(
    "--toml",
    "output_format",
    flag_value="toml",
    type=str,
    help="Show configuration in TOML format (default)",
    default=True,
)
def config_show(output_format: Literal["json", "toml"]) -> None:
    """
    Show the active configuration.
    """

    match output_format:
        case "json":
            click.echo(
                TypeAdapter(dict).dump_json(
                    settings.model_dump(mode="json"),
                    indent=2,
                ),
            )
        case "toml":
            click.echo(
                tomlkit.dumps(
                    settings.model_dump(mode="json"),
                ),
            )
