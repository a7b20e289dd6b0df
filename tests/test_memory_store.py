"""Tests for the in-memory versioned store."""
from io import BytesIO

import pytest

from artifact_publisher.errors import (
    BusyError,
    ChecksumMismatchError,
    PathExistsError,
    PathNotFoundError,
    StoreError,
)
from artifact_publisher.models import NodeKind
from artifact_publisher.services.memory_store import MemoryRepository, content_checksum


class TestMemoryRepository:
    def test_seed_creates_parents(self, repository):
        revision = repository.seed({"org/mod/a.jar": b"a", "empty": None})

        assert revision == 1
        assert repository.youngest == 1
        assert repository.list("") == ["empty", "org"]
        assert repository.read_file("org/mod/a.jar") == b"a"
        assert repository.message(1) == "seed"

    def test_old_revisions_kept(self, repository):
        repository.seed({"a.txt": b"one"})
        repository.seed({"a.txt": b"two"})
        assert repository.read_file("a.txt", 1) == b"one"
        assert repository.read_file("a.txt") == b"two"

    def test_unknown_revision(self, repository):
        with pytest.raises(StoreError, match="No such revision"):
            repository.tree(5)

    def test_relative_path(self, repository):
        assert repository.relative_path("memory://localhost/repo") == ""
        assert repository.relative_path("memory://localhost/repo/org/my%20mod") == "org/my mod"
        with pytest.raises(StoreError):
            repository.relative_path("memory://localhost/other")


class TestMemoryConnection:
    @pytest.fixture
    def connection(self, repository):
        repository.seed({"org/mod/a.jar": b"jar"})
        return repository.connect()

    def test_check_path(self, connection):
        assert connection.check_path("org") is NodeKind.DIR
        assert connection.check_path("org/mod/a.jar") is NodeKind.FILE
        assert connection.check_path("nope") is NodeKind.NONE
        assert connection.check_path("org", 0) is NodeKind.NONE
        assert connection.calls["check_path"] == 4

    def test_session_relative_paths(self, repository, connection):
        connection.reparent(f"{repository.url}/org/mod")
        assert connection.session_path == "org/mod"
        assert connection.check_path("a.jar") is NodeKind.FILE
        assert connection.list_dir("") == ["a.jar"]

        stream = BytesIO()
        connection.get_file("a.jar", stream)
        assert stream.getvalue() == b"jar"

    def test_stat(self, connection):
        dirent = connection.stat("org/mod/a.jar")
        assert dirent.kind is NodeKind.FILE
        assert dirent.size == 3
        assert dirent.last_modified is not None
        assert connection.stat("nope") is None

    def test_busy_while_editor_open(self, connection):
        editor = connection.get_commit_editor("m")

        with pytest.raises(BusyError):
            connection.get_commit_editor("m")
        with pytest.raises(BusyError):
            connection.check_path("org")

        editor.abort()
        assert connection.check_path("org") is NodeKind.DIR


class TestMemoryCommitEditor:
    @pytest.fixture
    def editor(self, repository):
        repository.seed({"org/mod/a.jar": b"jar"})
        return repository.connect().get_commit_editor("change")

    def test_add_file(self, repository, editor):
        root = editor.open_root()
        org = root.open_directory("org")
        new_file = org.add_file("org/b.jar")
        checksum = new_file.apply_text(b"b")
        new_file.close(checksum)
        org.close()
        root.close()

        assert editor.close() == 2
        assert repository.read_file("org/b.jar") == b"b"
        assert repository.message(2) == "change"
        assert repository.edits[-1].outcome == "closed"

    def test_checksum(self):
        assert content_checksum(b"abc") == content_checksum(b"abc")
        assert len(content_checksum(b"abc")) == 64

    def test_checksum_mismatch(self, editor):
        root = editor.open_root()
        new_file = root.add_file("b.jar")
        new_file.apply_text(b"b")
        with pytest.raises(ChecksumMismatchError):
            new_file.close("0" * 64)

    def test_only_innermost_node_usable(self, editor):
        root = editor.open_root()
        root.add_directory("a")
        with pytest.raises(StoreError, match="innermost"):
            root.add_directory("b")

    def test_open_file_blocks_parent(self, editor):
        root = editor.open_root()
        root.add_file("x.txt")
        with pytest.raises(StoreError):
            root.close()

    def test_children_only(self, editor):
        root = editor.open_root()
        with pytest.raises(StoreError, match="not a child"):
            root.add_directory("org/deep")

    def test_add_existing(self, editor):
        root = editor.open_root()
        with pytest.raises(PathExistsError):
            root.add_directory("org")

    def test_open_missing(self, editor):
        root = editor.open_root()
        with pytest.raises(PathNotFoundError):
            root.open_directory("missing")
        with pytest.raises(PathNotFoundError):
            root.delete_entry("missing")

    def test_close_with_open_nodes(self, editor):
        editor.open_root()
        with pytest.raises(StoreError, match="open nodes"):
            editor.close()

    def test_root_opened_once(self, editor):
        editor.open_root()
        with pytest.raises(StoreError):
            editor.open_root()

    def test_abort_discards(self, repository, editor):
        root = editor.open_root()
        root.delete_entry("org")
        editor.abort()

        assert repository.youngest == 1
        assert repository.exists("org/mod/a.jar")
        assert repository.edits[-1].outcome == "aborted"
        with pytest.raises(StoreError):
            editor.close()

    def test_delete_then_readd(self, repository, editor):
        root = editor.open_root()
        root.delete_entry("org")
        root.add_directory("org").close()
        root.close()
        editor.close()

        assert repository.exists("org")
        assert not repository.exists("org/mod")

    def test_copy_from_revision(self, repository, editor):
        root = editor.open_root()
        root.add_directory("copy", "org/mod", 1).close()
        root.close()
        editor.close()

        assert repository.read_file("copy/a.jar") == b"jar"
        assert repository.edits[-1].count("copy_directory", "copy") == 1

    def test_copy_requires_folder(self, editor):
        root = editor.open_root()
        with pytest.raises(PathNotFoundError):
            root.add_directory("copy", "org/mod/a.jar", 1)

    def test_out_of_date(self, repository, editor):
        other = repository.connect().get_commit_editor("other")
        other_root = other.open_root()
        other_root.add_directory("x").close()
        other_root.close()
        other.close()

        editor.open_root().close()
        with pytest.raises(StoreError, match="out of date"):
            editor.close()


def test_custom_url():
    repository = MemoryRepository("memory://builds/artifacts/")
    assert repository.url == "memory://builds/artifacts"
    assert repository.connect().get_repos_root() == "memory://builds/artifacts"
