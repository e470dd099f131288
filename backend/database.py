"""
SQLite store setup for the media store.
Uses SQLAlchemy on top of the stdlib sqlite3 driver, in WAL mode with
foreign keys enforced.
"""
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from config import StorageSettings
from errors import ConstraintViolationError, InitializationError

logger = logging.getLogger(__name__)

# SQLAlchemy Base for model declarations
Base = declarative_base()

# bcrypt hashes start with $2a$, $2b$ or $2y$
BCRYPT_PREFIX = "$2"


def _set_sqlite_pragmas(dbapi_connection, connection_record) -> None:
    """Apply per-connection pragmas. foreign_keys is off by default in SQLite."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class StorageEngine:
    """
    Owns the single SQLAlchemy engine for one store file.

    Construct one per application (the composition root) and pass it to the
    collaborators that need it. open() is idempotent.
    """

    def __init__(self, settings: StorageSettings):
        self.settings = settings
        self._engine: Optional[Engine] = None
        self._SessionLocal = None

    @property
    def is_open(self) -> bool:
        return self._engine is not None

    def open(self) -> Engine:
        """Open the store, creating and bootstrapping it on first use."""
        if self._engine is not None:
            return self._engine

        db_path = self.settings.sqlite_db_path

        try:
            db_path.parent.mkdir(parents=True, exist_ok=True)
            logger.debug("Store directory ensured: %s", db_path.parent)
        except OSError as e:
            logger.exception("Failed to create store directory %s", db_path.parent)
            raise InitializationError(f"Cannot create store directory {db_path.parent}: {e}") from e

        first_run = not db_path.exists()
        if first_run and not self.settings.has_bootstrap_credentials():
            raise InitializationError(
                "ADMIN_USERNAME and ADMIN_PASSWORD are required to create a new store"
            )

        logger.info("Opening SQLite store at %s", db_path)
        engine = create_engine(
            f"sqlite:///{db_path}",
            connect_args={"check_same_thread": False, "timeout": self.settings.busy_timeout},
            echo=False,  # Set to True for SQL debugging
        )
        event.listen(engine, "connect", _set_sqlite_pragmas)

        try:
            # Import models to register them with Base
            import models  # noqa: F401

            Base.metadata.create_all(bind=engine)
            logger.debug("Store tables created/verified")

            _run_migrations(engine, self.settings)

            if first_run:
                _seed_owner(engine, self.settings)
        except SQLAlchemyError as e:
            engine.dispose()
            logger.exception("Failed to initialize store: %s", e)
            raise InitializationError(f"Cannot initialize store at {db_path}: {e}") from e

        self._engine = engine
        self._SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
        )
        logger.info("SQLite store opened successfully")
        return engine

    def get_engine(self) -> Engine:
        """Get the engine, opening the store if needed."""
        return self.open()

    def session(self) -> Session:
        """Get a new ORM session. Use as context manager or close manually."""
        if self._SessionLocal is None:
            self.open()
        return self._SessionLocal()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Yield a session wrapped in one transaction, committed on success and
        rolled back on error. Constraint failures surface as
        ConstraintViolationError.
        """
        session = self.session()
        try:
            with session.begin():
                yield session
        except IntegrityError as e:
            raise ConstraintViolationError(str(e.orig)) from e
        finally:
            session.close()

    def dispose(self) -> None:
        """Release pooled connections. The store can be reopened afterwards."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._SessionLocal = None
            logger.debug("Store engine disposed")


def _seed_owner(engine: Engine, settings: StorageSettings) -> None:
    """Insert the bootstrap owner account into a freshly created store."""
    from users import UserRepository

    with Session(engine) as session, session.begin():
        UserRepository(settings.password_hash_rounds).create_owner(
            session, settings.admin_username, settings.admin_password
        )


def _run_migrations(engine: Engine, settings: StorageSettings) -> None:
    """Bring stores written by older releases up to the current schema."""
    logger.debug("Checking for store migrations")
    with engine.connect() as conn:
        _add_user_group_columns(conn)
        _hash_legacy_passwords(conn, settings.password_hash_rounds)
    logger.debug("All migrations complete - schema is up to date")


def _add_user_group_columns(conn) -> None:
    """Add tags/enabled_apis columns to users tables that predate user groups."""
    result = conn.execute(text("PRAGMA table_info(users)"))
    columns = [row[1] for row in result.fetchall()]

    for column in ("tags", "enabled_apis"):
        if column not in columns:
            logger.info("Adding %s column to users", column)
            conn.execute(text(f"ALTER TABLE users ADD COLUMN {column} TEXT"))
            conn.commit()
            logger.info("Migration complete: added %s column to users", column)


def _hash_legacy_passwords(conn, rounds: int) -> None:
    """Replace plaintext passwords left by older releases with bcrypt hashes."""
    from users import hash_password

    result = conn.execute(text("SELECT username, password FROM users"))
    legacy = [(row[0], row[1]) for row in result.fetchall() if not str(row[1]).startswith(BCRYPT_PREFIX)]
    if not legacy:
        return

    logger.info("Hashing %s legacy plaintext password(s)", len(legacy))
    for username, password in legacy:
        conn.execute(
            text("UPDATE users SET password = :password WHERE username = :username"),
            {"password": hash_password(str(password), rounds), "username": username},
        )
    conn.commit()
    logger.info("Migration complete: legacy passwords hashed")
