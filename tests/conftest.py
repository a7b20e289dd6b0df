"""Shared fixtures for artifact_publisher tests."""
import pytest

from artifact_publisher.models import ModuleRevision, PublishConfig
from artifact_publisher.orchestrator.transaction import PublishTransaction
from artifact_publisher.services.memory_store import MemoryRepository
from artifact_publisher.services.store_client import RemoteStoreClient


@pytest.fixture
def repository():
    return MemoryRepository()


@pytest.fixture
def module():
    return ModuleRevision("org", "mod", "1.0")


@pytest.fixture
def plain_config():
    """No alias folder, no cleanup."""
    return PublishConfig(alias_mode=False, cleanup_publish_folder=False)


@pytest.fixture
def make_transaction(repository, module):
    """Build a transaction on fresh read and commit connections."""
    def factory(config=None, module=module, client=None, events=None):
        client = client or RemoteStoreClient(repository.connect())
        return PublishTransaction(client, repository.connect(), module, config, events)
    return factory
