"""
Artifact Publisher - batched publishing of artifacts to a versioned store.

Many "publish this file to that path" requests are grouped into one commit
against a Subversion-style store. Optionally every publish is mirrored to
an alias folder (e.g. LATEST) with a server-side copy.

Usage:
    from artifact_publisher import (
        ModuleRevision, PublishConfig, PublishOrchestrator,
        RepositoryConnectionCache, connection_factory,
    )

    cache = RepositoryConnectionCache(connection_factory("user", "secret"))
    publisher = PublishOrchestrator(cache, PublishConfig(alias_mode=True))

    publisher.begin_publish_transaction(ModuleRevision("org", "mod", "1.0"))
    publisher.put(Path("mod.jar"), "svn://host/repo/org/mod/1.0/mod.jar")
    publisher.put(Path("mod.jar.sha1"), "svn://host/repo/org/mod/1.0/mod.jar.sha1")
    result = publisher.commit_publish_transaction()
"""
from .errors import (
    AmbiguousRevisionPathError,
    IllegalConfigurationError,
    NotAFileError,
    NotInitializedError,
    PublishError,
    StoreError,
    TransactionStateError,
)
from .models import (
    CommitResult,
    ModuleRevision,
    NodeKind,
    PendingUpload,
    PublishConfig,
    RemoteResource,
    TransactionState,
)
from .orchestrator import PathTree, PublishOrchestrator, PublishTransaction
from .services import (
    MemoryRepository,
    RemoteStoreClient,
    RepositoryConnectionCache,
    connection_factory,
)
from .utils.events import EventEmitter

__version__ = "0.3.0"
__all__ = [
    # Main
    "PublishOrchestrator",
    "PublishTransaction",
    "PathTree",
    # Models
    "CommitResult",
    "ModuleRevision",
    "NodeKind",
    "PendingUpload",
    "PublishConfig",
    "RemoteResource",
    "TransactionState",
    # Services
    "MemoryRepository",
    "RemoteStoreClient",
    "RepositoryConnectionCache",
    "connection_factory",
    "EventEmitter",
    # Errors
    "PublishError",
    "TransactionStateError",
    "NotInitializedError",
    "AmbiguousRevisionPathError",
    "NotAFileError",
    "IllegalConfigurationError",
    "StoreError",
]
