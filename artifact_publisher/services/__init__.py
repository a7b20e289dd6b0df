"""Services for the publish engine.

The Subversion backend lives in ``services.svn_store`` and needs the
``svn`` extra; it is imported on demand by the connection factory.
"""
from .store_client import RemoteStoreClient
from .connection_cache import RepositoryConnectionCache, connection_factory
from .memory_store import MemoryRepository, MemoryConnection

__all__ = [
    "RemoteStoreClient",
    "RepositoryConnectionCache",
    "connection_factory",
    "MemoryRepository",
    "MemoryConnection",
]
