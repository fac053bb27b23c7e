"""SQLite database integration for replay protection state."""

from __future__ import annotations

from pathlib import Path

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

# Default database location
DEFAULT_DB_DIR = Path.home() / ".samlrp"
DEFAULT_DB_PATH = DEFAULT_DB_DIR / "replay.db"


class DatabaseError(Exception):
    """Base exception for database errors."""


def create_database_engine(db_path: Path | None = None, echo: bool = False) -> Engine:
    """Create SQLAlchemy engine for the replay database.

    Args:
        db_path: Path to the database file. Defaults to DEFAULT_DB_PATH.
        echo: Whether to echo SQL statements (for debugging).

    Returns:
        Configured SQLAlchemy Engine.
    """
    if db_path is None:
        db_path = DEFAULT_DB_PATH

    # Ensure parent directory exists
    db_path.parent.mkdir(parents=True, exist_ok=True)

    return create_engine(
        f"sqlite:///{db_path}",
        echo=echo,
        pool_pre_ping=True,
        connect_args={"timeout": 30},
    )


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Create a session factory for the given engine.

    Args:
        engine: SQLAlchemy engine.

    Returns:
        Session factory.
    """
    return sessionmaker(bind=engine, expire_on_commit=False)


class Database:
    """Database manager for samlrp.

    Provides a high-level interface for the replay store.
    """

    def __init__(self, db_path: Path | None = None, echo: bool = False) -> None:
        """Initialize database manager.

        Args:
            db_path: Path to the database file.
            echo: Whether to echo SQL statements.
        """
        self._db_path = db_path or DEFAULT_DB_PATH
        self._engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None
        self._echo = echo

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def engine(self) -> Engine:
        """Get or create the database engine."""
        if self._engine is None:
            self._engine = create_database_engine(self._db_path, self._echo)
        return self._engine

    @property
    def session_factory(self) -> sessionmaker[Session]:
        """Get or create the session factory."""
        if self._session_factory is None:
            self._session_factory = create_session_factory(self.engine)
        return self._session_factory

    def get_session(self) -> Session:
        """Create a new database session.

        Returns:
            A new SQLAlchemy Session.
        """
        return self.session_factory()

    def init_db(self) -> None:
        """Initialize database schema.

        Creates all tables defined in the models.

        Raises:
            DatabaseError: If the database cannot be opened or created.
        """
        from samlrp.storage.models import Base

        try:
            Base.metadata.create_all(self.engine)
        except (SQLAlchemyError, OSError) as e:
            raise DatabaseError(f"Failed to initialize database {self._db_path}: {e}") from e

    def close(self) -> None:
        """Close database connections."""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None
