from lendledger.config import settings
from lendledger.database.operations import (
    create_new_sqlite_database,
    get_database_versions,
    get_scoped_sqlite_session,
)
from lendledger.logging import logger
from lendledger.version import __version__

db_session = get_scoped_sqlite_session(database_path=settings.database.path)


def initialize_database() -> None:
    """
    Create the configured database if it does not exist yet.
    """

    if not settings.database.path.exists():
        create_new_sqlite_database(db_path=settings.database.path)


def check_database_version() -> tuple[str | None, str | None]:
    with db_session() as session:
        current_database_version, latest_database_version = get_database_versions(session)

    if current_database_version is not None and current_database_version != latest_database_version:
        logger.warning(
            f"The current database revision ({current_database_version}) does not match the latest "
            f"({latest_database_version}) for {__package__} version {__version__}!"
            "\n"
            "Database-related features may raise exceptions if you continue. Perform database "
            "migrations with 'lendledger database upgrade'."
        )

    return current_database_version, latest_database_version
