"""Tests for RemoteStoreClient."""
from io import BytesIO
from unittest.mock import Mock

import pytest

from artifact_publisher.errors import NotAFileError
from artifact_publisher.models import NodeKind
from artifact_publisher.services.store_client import RemoteStoreClient, join_path


def test_join_path():
    assert join_path("", "org", "/mod/", "") == "org/mod"
    assert join_path("") == ""


class TestExistenceCache:
    @pytest.fixture
    def store(self):
        store = Mock()
        store.check_path.return_value = NodeKind.DIR
        return store

    def test_cached_folder_checked_once(self, store):
        client = RemoteStoreClient(store)

        assert client.folder_exists("org/mod") is True
        assert client.folder_exists("org/mod") is True

        store.check_path.assert_called_once_with("org/mod", -1)
        assert client.is_cached("org/mod")

    def test_bypass_cache(self, store):
        client = RemoteStoreClient(store)
        client.folder_exists("org/mod")
        client.folder_exists("org/mod", use_cache=False)
        assert store.check_path.call_count == 2

    def test_missing_folder_not_cached(self, store):
        store.check_path.return_value = NodeKind.NONE
        client = RemoteStoreClient(store)

        assert client.folder_exists("org/mod") is False
        assert client.folder_exists("org/mod") is False

        assert store.check_path.call_count == 2
        assert not client.is_cached("org/mod")

    def test_file_is_not_a_folder(self, store):
        store.check_path.return_value = NodeKind.FILE
        client = RemoteStoreClient(store)
        assert client.folder_exists("org/mod.jar") is False
        assert client.file_exists("org/mod.jar") is True

    def test_old_revision_not_cached(self, store):
        client = RemoteStoreClient(store)
        client.folder_exists("org", revision=3)
        assert not client.is_cached("org")

    def test_file_exists_never_cached(self, store):
        store.check_path.return_value = NodeKind.FILE
        client = RemoteStoreClient(store)
        client.file_exists("org/a.jar")
        client.file_exists("org/a.jar")
        assert store.check_path.call_count == 2


class TestCommitPrimitives:
    @pytest.fixture
    def client(self, repository):
        return RemoteStoreClient(repository.connect())

    @pytest.fixture
    def editor(self, repository):
        return repository.connect().get_commit_editor("test")

    def test_create_folders_opens_existing_and_adds_missing(self, repository, client):
        repository.seed({"org/readme.txt": b"x"})
        editor = repository.connect().get_commit_editor("test")
        root = editor.open_root()

        opened = client.create_folders(root, "org/mod/1.0")
        assert len(opened) == 3
        for directory in reversed(opened):
            directory.close()
        root.close()
        editor.close()

        assert repository.exists("org/mod/1.0")
        record = repository.edits[-1]
        assert record.count("open_directory", "org") == 1
        assert record.count("add_directory", "org/mod") == 1
        assert record.count("add_directory", "org/mod/1.0") == 1

    def test_shared_prefix_created_once(self, repository, client, editor):
        root = editor.open_root()
        for folder in ("org/mod/1.0", "org/mod/2.0"):
            for directory in reversed(client.create_folders(root, folder)):
                directory.close()
        root.close()
        editor.close()

        record = repository.edits[-1]
        assert record.count("add_directory", "org/mod") == 1
        assert record.count("open_directory", "org/mod") == 1
        assert repository.list("org/mod") == ["1.0", "2.0"]

    def test_create_folders_below_open_directory(self, client, editor):
        root = editor.open_root()
        org = client.add_folder(root, "org")
        assert client.create_folders(org, "org", "org") == []
        with pytest.raises(ValueError):
            client.create_folders(org, "other/mod", "org")

    def test_put_new_file_creates_folders(self, repository, client, editor):
        root = editor.open_root()
        assert client.put_file(root, b"content", "a/b", "f.txt", False, directory_path="") is True
        root.close()
        editor.close()

        assert repository.read_file("a/b/f.txt") == b"content"

    def test_put_existing_file_without_overwrite(self, repository, client):
        repository.seed({"org/f.txt": b"old"})
        editor = repository.connect().get_commit_editor("test")
        root = editor.open_root()

        assert client.put_file(root, b"new", "org", "f.txt", False, directory_path="") is False
        assert repository.edits[-1].count("open_file") == 0
        editor.abort()
        assert repository.read_file("org/f.txt") == b"old"

    def test_put_existing_file_with_overwrite(self, repository, client):
        repository.seed({"org/f.txt": b"old"})
        editor = repository.connect().get_commit_editor("test")
        root = editor.open_root()

        assert client.put_file(root, b"new", "org", "f.txt", True, directory_path="") is True
        root.close()
        editor.close()

        assert repository.read_file("org/f.txt") == b"new"
        assert repository.edits[-1].count("open_file", "org/f.txt") == 1

    def test_delete_and_copy(self, repository, client):
        first = repository.seed({"org/mod/LATEST/a.jar": b"a", "org/old.txt": b"x"})
        editor = repository.connect().get_commit_editor("test")
        root = editor.open_root()
        org = root.open_directory("org")
        client.delete_entry(org, "org/old.txt")
        client.copy_folder(org, "org/copy", "org/mod/LATEST", first)
        org.close()
        root.close()
        editor.close()

        assert repository.read_file("org/copy/a.jar") == b"a"
        assert not repository.exists("org/old.txt")
        assert client.is_cached("org/copy")


class TestReads:
    @pytest.fixture
    def client(self, repository):
        repository.seed({"org/mod/a.jar": b"jar", "org/mod/b.jar": b"jar2"})
        return RemoteStoreClient(repository.connect())

    def test_list_folder(self, client):
        assert client.list_folder("org/mod") == {"a.jar", "b.jar"}

    def test_list_missing_folder(self, client):
        assert client.list_folder("org/none") == set()

    def test_fetch_file(self, client):
        stream = BytesIO()
        client.fetch_file("org/mod/a.jar", stream)
        assert stream.getvalue() == b"jar"

    def test_fetch_missing(self, client):
        with pytest.raises(NotAFileError, match="does not exist"):
            client.fetch_file("org/mod/c.jar", BytesIO())

    def test_fetch_folder(self, client):
        with pytest.raises(NotAFileError, match="expected a file"):
            client.fetch_file("org/mod", BytesIO())

    def test_stat(self, client):
        dirent = client.stat("org/mod/b.jar")
        assert dirent.kind is NodeKind.FILE
        assert dirent.size == 4
        assert dirent.created_revision == 1
        assert client.stat("org/missing") is None
