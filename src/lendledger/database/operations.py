import pathlib
import sqlite3

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy import URL, Engine, create_engine, event, text
from sqlalchemy.orm import Session, scoped_session, sessionmaker

from lendledger.config import settings
from lendledger.database.models import Base
from lendledger.exceptions.database import BackupExists
from lendledger.logging import logger

# Seconds a connection waits on a locked SQLite database before raising
SQLITE_BUSY_TIMEOUT = 30


def backup_sqlite_database(db_path: pathlib.Path) -> None:
    assert db_path.exists()

    backup_path = pathlib.Path(db_path).with_suffix(db_path.suffix + ".bak")
    if backup_path.exists():
        raise BackupExists(path=backup_path)

    engine = create_engine(
        f"sqlite:///{db_path.absolute()}",
    )
    with engine.connect() as connection:
        connection.execute(
            text("PRAGMA wal_checkpoint(FULL);"),
        )

    with sqlite3.connect(db_path) as src, sqlite3.connect(backup_path) as dest:
        src.backup(target=dest)


def create_new_sqlite_database(db_path: pathlib.Path) -> None:
    engine = create_engine(
        f"sqlite:///{db_path.absolute()}",
    )
    with engine.connect() as connection:
        assert (
            connection.execute(
                text("PRAGMA journal_mode=WAL;"),
            ).scalar()
            == "wal"
        )
        connection.execute(
            text("PRAGMA auto_vacuum=FULL;"),
        )

        Base.metadata.create_all(bind=engine)
        connection.execute(
            text("VACUUM;"),
        )

        logger.info(f"Initialized new SQLite database at {db_path}")
        command.stamp(get_alembic_config(db_path), "head")


def compact_sqlite_database(db_path: pathlib.Path) -> None:
    engine = create_engine(
        f"sqlite:///{db_path.absolute()}",
    )
    with engine.connect() as connection:
        connection.execute(
            text("VACUUM;"),
        )
        logger.info(f"Compacted SQLite database at {db_path}")


def upgrade_existing_sqlite_database() -> None:
    command.upgrade(get_alembic_config(), "head")
    logger.info("Updated existing SQLite database.")


def get_sqlite_engine(database_path: pathlib.Path) -> Engine:
    engine = create_engine(
        URL.create(
            drivername="sqlite",
            database=str(database_path.absolute()),
        ),
        connect_args={"timeout": SQLITE_BUSY_TIMEOUT},
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record) -> None:  # noqa: ANN001, ARG001
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()

    return engine


def get_scoped_sqlite_session(database_path: pathlib.Path) -> scoped_session[Session]:
    return scoped_session(
        session_factory=sessionmaker(
            bind=get_sqlite_engine(database_path),
        )
    )


def get_alembic_config(db_path: pathlib.Path | None = None) -> Config:
    if db_path is None:
        db_path = settings.database.path

    cfg = Config()
    cfg.set_main_option("sqlalchemy.url", f"sqlite:///{db_path.absolute()}")
    cfg.set_main_option("script_location", "lendledger:migrations")

    return cfg


def get_database_versions(session: Session) -> tuple[str | None, str | None]:
    """
    Return the (current, latest) schema revisions for the database bound to the session.
    """

    current_database_version = MigrationContext.configure(
        connection=session.connection()
    ).get_current_revision()
    latest_database_version = ScriptDirectory.from_config(
        config=get_alembic_config()
    ).get_current_head()

    return current_database_version, latest_database_version
