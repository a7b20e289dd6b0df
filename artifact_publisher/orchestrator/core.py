"""Core orchestrator - publish and retrieval entry point."""
from pathlib import Path
from typing import Dict, List, Optional, Union
from urllib.parse import quote, unquote
import logging

from ..errors import TransactionStateError
from ..models import CommitResult, ModuleRevision, NodeKind, PublishConfig, RemoteResource
from ..protocols import IRemoteStore
from ..services.connection_cache import RepositoryConnectionCache
from ..services.store_client import RemoteStoreClient
from ..utils.events import (
    EventEmitter,
    TRANSFER_COMPLETED,
    TRANSFER_ERROR,
    TRANSFER_INITIATED,
)
from .transaction import PublishTransaction

logger = logging.getLogger(__name__)


class PublishOrchestrator:
    """
    Publishes artifacts to, and retrieves them from, a versioned store.

    Uploads put between begin_publish_transaction() and
    commit_publish_transaction() are committed together. Retrieval goes
    through the shared connection cache; publishing opens its own read and
    commit connections so that retrieval cannot move a publish session.

    Usage:
        cache = RepositoryConnectionCache(connection_factory(username, password))
        publisher = PublishOrchestrator(cache, PublishConfig())

        publisher.begin_publish_transaction(ModuleRevision("org", "mod", "1.0"))
        publisher.put(Path("mod.jar"), "svn://host/repo/org/mod/1.0/mod.jar")
        result = publisher.commit_publish_transaction()

        publisher.get("svn://host/repo/org/mod/LATEST/mod.jar", Path("mod.jar"))
    """

    def __init__(
        self,
        connections: RepositoryConnectionCache,
        config: Optional[PublishConfig] = None,
        events: Optional[EventEmitter] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            connections: Connection cache shared by retrieval calls
            config: Publish and retrieval configuration
            events: Event emitter for transfer and commit events
        """
        self._connections = connections
        self._config = config or PublishConfig()
        self._events = events or EventEmitter()
        self._module: Optional[ModuleRevision] = None
        self._transaction: Optional[PublishTransaction] = None
        self._publish_connections: List[IRemoteStore] = []
        self._repository_root: Optional[str] = None
        self._resources: Dict[str, RemoteResource] = {}

    @property
    def config(self) -> PublishConfig:
        return self._config

    @property
    def events(self) -> EventEmitter:
        return self._events

    @property
    def transaction(self) -> Optional[PublishTransaction]:
        return self._transaction

    # Publishing

    def begin_publish_transaction(self, module: ModuleRevision) -> None:
        if self._transaction is not None and self._transaction.is_open:
            raise TransactionStateError(
                f"Publish transaction for {self._transaction.module} is still open"
            )
        self._release_publish_connections()
        self._module = module
        self._transaction = None
        logger.info(f"Starting publish transaction for {module}")

    def put(self, source: Union[Path, bytes], destination: str, overwrite: bool = False) -> bool:
        """
        Schedule an upload into the current publish transaction.

        Args:
            source: Local file path or content
            destination: Full URL of the destination file
            overwrite: Replace the remote file if it exists

        Returns:
            True if scheduled, False if dropped (see PublishTransaction.schedule)
        """
        if self._module is None:
            raise TransactionStateError("begin_publish_transaction() must be called before put()")
        self._events.emit(TRANSFER_INITIATED, destination, "put")
        if self._transaction is None:
            self._transaction = self._open_transaction(destination)
        path = self._relative_path(destination)
        return self._transaction.schedule(source, path, overwrite)

    def commit_publish_transaction(self) -> CommitResult:
        if self._transaction is None:
            if self._module is None:
                raise TransactionStateError("No publish transaction has been started")
            logger.info(f"Nothing was put for {self._module}, nothing to commit")
            return CommitResult()
        result = self._transaction.commit()
        self._release_publish_connections()
        return result

    def abort_publish_transaction(self) -> None:
        transaction = self._transaction
        if transaction is None:
            logger.info("Publish transaction hasn't been started, nothing to abort")
            return
        if not transaction.has_commit_started():
            logger.info("Commit hasn't been started, nothing to abort")
            return
        transaction.abort()
        self._release_publish_connections()

    # Retrieval

    def get(self, source: str, destination: Path) -> int:
        """
        Download a remote file.

        Args:
            source: Full URL of the remote file
            destination: Local file path; replaced only on success

        Returns:
            Number of bytes written

        Raises:
            NotAFileError: If the URL is missing or names a folder
        """
        destination = Path(destination)
        partial = destination.with_name(destination.name + ".part")
        self._events.emit(TRANSFER_INITIATED, source, "get")
        try:
            client = RemoteStoreClient(self._connections.get(source))
            destination.parent.mkdir(parents=True, exist_ok=True)
            with partial.open("wb") as stream:
                client.fetch_file("", stream, self._config.retrieve_revision)
            partial.replace(destination)
        except Exception as e:
            partial.unlink(missing_ok=True)
            self._events.emit(TRANSFER_ERROR, source, e)
            raise

        size = destination.stat().st_size
        logger.info(f"Retrieved {source} ({size} bytes)")
        self._events.emit(TRANSFER_COMPLETED, source, size)
        return size

    def list(self, parent: str) -> List[str]:
        """URLs of the entries of a remote folder, empty if it does not exist."""
        client = RemoteStoreClient(self._connections.get(parent))
        names = client.list_folder("", self._config.retrieve_revision)
        base = parent.rstrip("/")
        return [f"{base}/{quote(name)}" for name in sorted(names)]

    def get_resource(self, url: str) -> RemoteResource:
        """Resolve a remote file, cached per URL until clear_resource_cache()."""
        resource = self._resources.get(url)
        if resource is None:
            resource = self._resolve_resource(url)
            self._resources[url] = resource
        return resource

    def clear_resource_cache(self) -> None:
        self._resources.clear()

    def close(self) -> None:
        """Release publish connections and every cached connection."""
        self._release_publish_connections()
        self._connections.clear()

    # Internals

    def _open_transaction(self, destination: str) -> PublishTransaction:
        read_connection = self._connections.create(destination)
        root = read_connection.get_repos_root()
        read_connection.reparent(root)
        commit_connection = self._connections.create(root)
        self._publish_connections = [read_connection, commit_connection]
        self._repository_root = root.rstrip("/")
        logger.debug(f"Publishing to repository {self._repository_root}")
        return PublishTransaction(
            RemoteStoreClient(read_connection),
            commit_connection,
            self._module,
            self._config,
            self._events,
        )

    def _relative_path(self, url: str) -> str:
        root = self._repository_root
        if url != root and not url.startswith(root + "/"):
            raise ValueError(f"'{url}' is not inside repository {root}")
        return unquote(url[len(root):]).strip("/")

    def _resolve_resource(self, url: str) -> RemoteResource:
        client = RemoteStoreClient(self._connections.get(url))
        dirent = client.stat("", self._config.retrieve_revision)
        if dirent is None or dirent.kind is not NodeKind.FILE:
            logger.debug(f"Resource {url} not found")
            return RemoteResource.missing(url)
        return RemoteResource(
            url=url,
            exists=True,
            last_modified=dirent.last_modified,
            content_length=dirent.size,
        )

    def _release_publish_connections(self) -> None:
        for connection in self._publish_connections:
            self._connections.release(connection)
        self._publish_connections = []
