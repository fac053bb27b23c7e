"""Storage module for samlrp.

Provides SQLite storage for consumed message and assertion identifiers.
"""

from samlrp.storage.database import (
    DEFAULT_DB_PATH,
    Database,
    DatabaseError,
    create_database_engine,
)
from samlrp.storage.models import Base, ConsumedIdentifier

__all__ = [
    # Database management
    "Database",
    "DatabaseError",
    "create_database_engine",
    # Constants
    "DEFAULT_DB_PATH",
    # Models
    "Base",
    "ConsumedIdentifier",
]
