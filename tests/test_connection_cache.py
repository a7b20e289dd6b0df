"""Tests for RepositoryConnectionCache and the default connection factory."""
import threading
import time
from unittest.mock import Mock

import pytest

from artifact_publisher.services.connection_cache import (
    RepositoryConnectionCache,
    connection_factory,
)
from artifact_publisher.services.memory_store import MemoryConnection, MemoryRepository
from artifact_publisher.utils.events import CONNECTION_CLOSED, CONNECTION_OPENED, EventEmitter


@pytest.fixture
def factory():
    return Mock(side_effect=lambda url: Mock(url=url))


class TestRepositoryConnectionCache:
    def test_same_host_shares_connection(self, factory):
        cache = RepositoryConnectionCache(factory)

        first = cache.get("svn://host/repo/org/a")
        second = cache.get("svn://host/repo/org/b")

        assert first is second
        factory.assert_called_once_with("svn://host/repo/org/a")
        assert first.reparent.call_count == 2
        first.reparent.assert_called_with("svn://host/repo/org/b")
        assert len(cache) == 1

    def test_different_hosts(self, factory):
        cache = RepositoryConnectionCache(factory)
        assert cache.get("svn://one/repo") is not cache.get("svn://two/repo")
        assert cache.get("https://one/repo") is not cache.get("svn://one/repo")
        assert len(cache) == 3

    def test_cache_key(self):
        assert RepositoryConnectionCache.cache_key("SVN://User@Host.Example:3690/r") == (
            "svn",
            "host.example",
        )

    def test_contains(self, factory):
        cache = RepositoryConnectionCache(factory)
        cache.get("svn://host/repo")
        assert "svn://HOST/other" in cache
        assert "svn://elsewhere/repo" not in cache

    def test_create_is_not_cached(self, factory):
        cache = RepositoryConnectionCache(factory)
        cached = cache.get("svn://host/repo")

        fresh = cache.create("svn://host/repo")

        assert fresh is not cached
        assert len(cache) == 1
        assert cache.get("svn://host/repo") is cached

    def test_concurrent_get_opens_once(self):
        def slow_factory(url):
            time.sleep(0.05)
            return Mock(url=url)

        factory = Mock(side_effect=slow_factory)
        cache = RepositoryConnectionCache(factory)
        results = []

        def worker():
            results.append(cache.get("svn://host/repo"))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert factory.call_count == 1
        assert len(set(map(id, results))) == 1

    def test_events(self, factory):
        events = EventEmitter()
        opened, closed = Mock(), Mock()
        events.on(CONNECTION_OPENED, opened)
        events.on(CONNECTION_CLOSED, closed)
        cache = RepositoryConnectionCache(factory, events)

        connection = cache.create("svn://host/repo")
        cache.release(connection)

        opened.assert_called_once_with("svn://host/repo")
        closed.assert_called_once_with("svn://host/repo")
        connection.close.assert_called_once_with()

    def test_clear_closes_connections(self, factory):
        cache = RepositoryConnectionCache(factory)
        first = cache.get("svn://one/repo")
        second = cache.get("svn://two/repo")

        cache.clear()

        assert len(cache) == 0
        first.close.assert_called_once_with()
        second.close.assert_called_once_with()


class TestConnectionFactory:
    def test_memory_url(self):
        repository = MemoryRepository()
        open_connection = connection_factory(memory_repositories={repository.url: repository})

        connection = open_connection(f"{repository.url}/org/mod")

        assert isinstance(connection, MemoryConnection)
        assert connection.session_path == "org/mod"

    def test_unregistered_memory_url(self):
        open_connection = connection_factory()
        with pytest.raises(ValueError, match="No in-memory repository"):
            open_connection("memory://localhost/repo")

    def test_prefix_is_not_a_match(self):
        repository = MemoryRepository()
        open_connection = connection_factory(memory_repositories={repository.url: repository})
        with pytest.raises(ValueError):
            open_connection("memory://localhost/repository")

    def test_cache_with_memory_factory(self):
        repository = MemoryRepository()
        repository.seed({"org/mod/a.jar": b"a"})
        cache = RepositoryConnectionCache(
            connection_factory(memory_repositories={repository.url: repository})
        )

        connection = cache.get(f"{repository.url}/org")
        assert connection.list_dir("") == ["mod"]
        assert cache.get(f"{repository.url}/org/mod") is connection
        assert connection.list_dir("") == ["a.jar"]
