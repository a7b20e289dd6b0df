"""
Connection cache - one store connection per (scheme, host).

Connection setup (handshake, authentication) is paid once per destination
rather than once per file. The cache is constructed by the caller and
passed in; nothing here is module-global.
"""
from typing import Dict, Mapping, Optional, Tuple
from urllib.parse import urlsplit
import logging
import threading

from ..protocols import ConnectionFactory, IRemoteStore
from ..utils.events import EventEmitter, CONNECTION_OPENED, CONNECTION_CLOSED

logger = logging.getLogger(__name__)

MEMORY_SCHEME = "memory"


class RepositoryConnectionCache:
    """
    Thread-safe registry of store connections.

    Lookup-or-create runs under a single lock. Connections handed out are
    not thread-safe themselves and must be used by one transaction at a
    time.
    """

    def __init__(self, factory: ConnectionFactory, events: Optional[EventEmitter] = None):
        """
        Initialize cache.

        Args:
            factory: Opens a new connection for a URL
            events: Receives connection_opened / connection_closed
        """
        self._factory = factory
        self._events = events or EventEmitter()
        self._connections: Dict[Tuple[str, str], IRemoteStore] = {}
        self._lock = threading.Lock()

    @property
    def events(self) -> EventEmitter:
        return self._events

    @staticmethod
    def cache_key(url: str) -> Tuple[str, str]:
        parts = urlsplit(url)
        return parts.scheme.lower(), (parts.hostname or "").lower()

    def get(self, url: str) -> IRemoteStore:
        """
        Return the cached connection for the URL's scheme and host.

        The connection is reparented to ``url`` before it is returned.
        """
        key = self.cache_key(url)
        with self._lock:
            connection = self._connections.get(key)
            if connection is None:
                connection = self._open(url)
                self._connections[key] = connection
        connection.reparent(url)
        return connection

    def create(self, url: str) -> IRemoteStore:
        """Open a new connection that is not cached."""
        return self._open(url)

    def release(self, connection: IRemoteStore) -> None:
        """Close an uncached connection."""
        self._close(connection)

    def clear(self) -> None:
        with self._lock:
            connections = list(self._connections.values())
            self._connections.clear()
        for connection in connections:
            self._close(connection)

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, url: str) -> bool:
        with self._lock:
            return self.cache_key(url) in self._connections

    def _open(self, url: str) -> IRemoteStore:
        logger.debug(f"Opening connection to {url}")
        connection = self._factory(url)
        self._events.emit(CONNECTION_OPENED, url)
        return connection

    def _close(self, connection: IRemoteStore) -> None:
        close = getattr(connection, "close", None)
        if callable(close):
            close()
        logger.debug(f"Closed connection to {connection.url}")
        self._events.emit(CONNECTION_CLOSED, connection.url)


def connection_factory(
    username: Optional[str] = None,
    password: Optional[str] = None,
    memory_repositories: Optional[Mapping[str, object]] = None,
) -> ConnectionFactory:
    """
    Build the default connection factory.

    ``memory://`` URLs are served by the given MemoryRepository instances,
    keyed by their root URL. Every other URL goes to Subversion through
    subvertpy, which must be installed (the ``svn`` extra).
    """
    repositories = dict(memory_repositories or {})

    def open_connection(url: str) -> IRemoteStore:
        if urlsplit(url).scheme == MEMORY_SCHEME:
            for root, repository in repositories.items():
                if url == root or url.startswith(root.rstrip("/") + "/"):
                    return repository.connect(url)
            raise ValueError(f"No in-memory repository registered for {url}")

        from .svn_store import SvnRemoteStore, create_auth

        return SvnRemoteStore(url, auth=create_auth(username, password))

    return open_connection
