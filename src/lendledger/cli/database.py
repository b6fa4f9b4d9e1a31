import click

from lendledger.cli import cli
from lendledger.config import settings
from lendledger.database import check_database_version, db_session
from lendledger.database.operations import (
    backup_sqlite_database,
    compact_sqlite_database,
    create_new_sqlite_database,
    upgrade_existing_sqlite_database,
)
from lendledger.exceptions.database import BackupExists
from lendledger.version import __version__


@cli.group()
def database() -> None:
    """
    Database commands
    """


@database.command("backup")
def database_backup() -> None:
    """
    Back up the database.
    """

    if not settings.database.path.exists():
        click.echo(f"No database found at {settings.database.path}.")
        raise click.Abort

    try:
        backup_sqlite_database(settings.database.path)
    except BackupExists as exc:
        user_confirm = click.confirm(
            f"An existing backup was found at {exc.path}. Do you want to remove it and continue?",
            default=False,
        )
        if user_confirm:
            exc.path.unlink()
            backup_sqlite_database(settings.database.path)
        else:
            raise click.Abort from None


@database.command("reset")
def database_reset() -> None:
    """
    Remove and recreate the database.
    """

    user_confirm = click.confirm(
        f"The existing database at {settings.database.path} will be removed and a new, empty database will be created and initialized using the schema included in {__package__} version {__version__}. Do you want to proceed?",  # noqa: E501
        default=False,
    )
    if user_confirm:
        # Release pooled connections to the file before it is removed
        db_session.remove()
        db_session.get_bind().dispose()
        for suffix in ("", "-wal", "-shm"):
            settings.database.path.with_name(settings.database.path.name + suffix).unlink(
                missing_ok=True
            )
        create_new_sqlite_database(settings.database.path)
    else:
        raise click.Abort


@database.command("upgrade")
@click.option(
    "--force",
    is_flag=True,
    help="Skip confirmation prompt",
)
def database_upgrade(*, force: bool) -> None:
    """
    Upgrade the database to the latest schema.
    """

    if not settings.database.path.exists():
        click.echo(f"No database found at {settings.database.path}.")
        raise click.Abort

    current_database_version, latest_database_version = check_database_version()

    if force or click.confirm(
        f"The database at {settings.database.path} will be upgraded from version {current_database_version} to {latest_database_version}. Do you want to proceed?",  # noqa:E501
        default=False,
    ):
        upgrade_existing_sqlite_database()
    else:
        raise click.Abort


@database.command("compact")
def database_compact() -> None:
    """
    Compact the database.
    """

    compact_sqlite_database(settings.database.path)
