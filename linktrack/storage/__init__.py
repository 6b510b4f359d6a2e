"""Link store backends."""

from linktrack.core.config import Settings
from linktrack.core.database import get_session_factory
from linktrack.storage.base import LinkStore
from linktrack.storage.memory import MemoryLinkStore
from linktrack.storage.sql import SqlLinkStore


def build_store(settings: Settings) -> LinkStore:
    """Create the link store selected by ``settings.storage_backend``."""
    if settings.storage_backend == "memory":
        return MemoryLinkStore(max_code_attempts=settings.short_code_max_attempts)

    return SqlLinkStore(
        get_session_factory(),
        max_code_attempts=settings.short_code_max_attempts,
    )


__all__ = [
    "LinkStore",
    "MemoryLinkStore",
    "SqlLinkStore",
    "build_store",
]
