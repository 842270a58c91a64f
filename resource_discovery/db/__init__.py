"""Database initialization and persistence layer."""

from resource_discovery.db.engine import (
    create_db_engine,
    get_database_url,
    get_engine,
    get_session,
    get_session_factory,
    init_db,
    reset_engine,
)
from resource_discovery.db.models import (
    AreaEligibilityDB,
    Base,
    DiscoveryEventDB,
    ResourceDB,
    TombstoneDB,
)
from resource_discovery.db.repositories import (
    DiscoveryEventRepository,
    ResourceRepository,
    TombstoneRepository,
)

__all__ = [
    # Engine
    "create_db_engine",
    "get_database_url",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_db",
    "reset_engine",
    # Models
    "Base",
    "ResourceDB",
    "AreaEligibilityDB",
    "DiscoveryEventDB",
    "TombstoneDB",
    # Repositories
    "ResourceRepository",
    "DiscoveryEventRepository",
    "TombstoneRepository",
]
