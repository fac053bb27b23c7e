"""Replay protection for consumed message and assertion identifiers.

Eviction policy, shared by every backend: an entry whose expiry has passed
is removed before the presence check, so an identifier becomes acceptable
again only after its recorded expiry and never before it.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from samlrp.core.config import ReplayBackend, ReplaySettings
from samlrp.core.saml.clock import utcnow
from samlrp.storage.database import Database, DatabaseError

logger = logging.getLogger("samlrp.validation")


class AlreadyUsedError(Exception):
    """Raised when an identifier has already been consumed."""

    def __init__(self, identifier: str) -> None:
        super().__init__(f"Identifier already used: {identifier}")
        self.identifier = identifier


@runtime_checkable
class ReplayCache(Protocol):
    """Records consumed identifiers and answers "seen before?" atomically."""

    def check_and_consume(self, identifier: str, expiry: datetime) -> None:
        """Consume ``identifier`` until ``expiry``.

        Raises:
            AlreadyUsedError: If the identifier is already present.
        """
        ...


class InMemoryReplayCache:
    """Process-local replay cache guarded by a lock."""

    def __init__(self, clock: Callable[[], datetime] = utcnow) -> None:
        self._clock = clock
        self._entries: dict[str, datetime] = {}
        self._lock = threading.Lock()

    def check_and_consume(self, identifier: str, expiry: datetime) -> None:
        """Consume ``identifier`` until ``expiry``.

        Args:
            identifier: Message or assertion ID.
            expiry: Instant after which the entry may be evicted.

        Raises:
            AlreadyUsedError: If the identifier is already present.
        """
        with self._lock:
            now = self._clock()
            current = self._entries.get(identifier)
            if current is not None and current > now:
                raise AlreadyUsedError(identifier)
            self._purge_locked(now)
            self._entries[identifier] = expiry

    def purge_expired(self, now: datetime | None = None) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            return self._purge_locked(now or self._clock())

    def _purge_locked(self, now: datetime) -> int:
        expired = [key for key, expiry in self._entries.items() if expiry <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __contains__(self, identifier: object) -> bool:
        with self._lock:
            expiry = self._entries.get(identifier)  # type: ignore[call-overload]
            return expiry is not None and expiry > self._clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class InsecureNoReplayCache:
    """Replay cache that accepts every identifier.

    INSECURE: replayed assertions are accepted. Only for tests and local
    development; configuration refuses it unless explicitly allowed.
    """

    def __init__(self) -> None:
        logger.warning(
            "Replay protection is DISABLED - replayed assertions will be accepted. "
            "Never use this configuration in production."
        )

    def check_and_consume(self, identifier: str, expiry: datetime) -> None:
        return None


def _naive_utc(value: datetime) -> datetime:
    """Convert to naive UTC for storage in SQLite."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


class SQLReplayCache:
    """Replay cache persisted in the samlrp database.

    The identifier is the table's primary key, so two concurrent inserts of
    the same identifier cannot both commit.
    """

    def __init__(self, database: Database, clock: Callable[[], datetime] = utcnow) -> None:
        self._database = database
        self._clock = clock

    def check_and_consume(self, identifier: str, expiry: datetime) -> None:
        """Consume ``identifier`` until ``expiry``.

        Raises:
            AlreadyUsedError: If the identifier is already present.
            DatabaseError: If the database cannot be written.
        """
        from samlrp.storage.models import ConsumedIdentifier

        now = _naive_utc(self._clock())
        try:
            with self._database.get_session() as session, session.begin():
                session.execute(
                    delete(ConsumedIdentifier).where(
                        ConsumedIdentifier.identifier == identifier,
                        ConsumedIdentifier.expires_at <= now,
                    )
                )
                session.add(
                    ConsumedIdentifier(identifier=identifier, expires_at=_naive_utc(expiry))
                )
                session.flush()
        except IntegrityError:
            raise AlreadyUsedError(identifier) from None
        except SQLAlchemyError as e:
            raise DatabaseError(f"Failed to record identifier {identifier}: {e}") from e

    def purge_expired(self, now: datetime | None = None) -> int:
        """Remove expired entries.

        Returns:
            Number of entries removed.
        """
        from samlrp.storage.models import ConsumedIdentifier

        cutoff = _naive_utc(now or self._clock())
        with self._database.get_session() as session, session.begin():
            result = session.execute(
                delete(ConsumedIdentifier).where(ConsumedIdentifier.expires_at <= cutoff)
            )
            return result.rowcount or 0

    def __len__(self) -> int:
        from samlrp.storage.models import ConsumedIdentifier

        with self._database.get_session() as session:
            count = session.scalar(select(func.count()).select_from(ConsumedIdentifier))
            return int(count or 0)


def create_replay_cache(
    settings: ReplaySettings,
    clock: Callable[[], datetime] = utcnow,
    database: Database | None = None,
) -> ReplayCache:
    """Create the replay cache selected by configuration.

    Args:
        settings: Replay section of the configuration.
        clock: Source of the current time.
        database: Database to use for the database backend. Created from
            ``settings.db_path`` when not given.

    Raises:
        ConfigError: If the cache is disabled without explicit opt-in.
        DatabaseError: If the database backend cannot be initialized.
    """
    settings.validate()

    if settings.backend == ReplayBackend.DISABLED:
        return InsecureNoReplayCache()

    if settings.backend == ReplayBackend.DATABASE:
        if database is None:
            database = Database(db_path=settings.db_path)
        database.init_db()
        return SQLReplayCache(database, clock=clock)

    return InMemoryReplayCache(clock=clock)
