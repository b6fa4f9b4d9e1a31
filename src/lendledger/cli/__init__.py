import click


@click.group()
@click.version_option(package_name="lendledger")
def cli() -> None: ...


from . import config, database, markets  # noqa: F401, E402
