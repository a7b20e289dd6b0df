"""
In-memory versioned store.

Keeps every revision as a snapshot of path -> node and enforces the same
editor rules a Subversion server does: nodes are touched only through the
innermost open editor, a path is added at most once, reads cannot be
interleaved with an open commit on the same connection, and a commit based
on a stale revision is rejected.

Used by the test suite and by ``memory://`` URLs.
"""
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import BinaryIO, Dict, List, Optional, Tuple, Union
from urllib.parse import unquote
import logging
import threading

from blake3 import blake3

from ..errors import (
    BusyError,
    ChecksumMismatchError,
    PathExistsError,
    PathNotFoundError,
    StoreError,
)
from ..models import Dirent, HEAD_REVISION, NodeKind
from .store_client import join_path

logger = logging.getLogger(__name__)

DEFAULT_URL = "memory://localhost/repo"
_PENDING = -1


def content_checksum(data: bytes) -> str:
    """BLAKE3 hex digest used to verify file content on close."""
    return blake3(data).hexdigest()


def _parent(path: str) -> str:
    return path.rpartition("/")[0]


@dataclass(frozen=True)
class _Node:
    data: Optional[bytes]  # None for directories
    revision: int

    @property
    def is_dir(self) -> bool:
        return self.data is None


@dataclass
class EditRecord:
    """Trace of one commit editor, kept by the repository."""
    message: str
    base_revision: int
    operations: List[Tuple[str, str]] = field(default_factory=list)
    outcome: str = "open"  # open, closed, aborted
    revision: Optional[int] = None

    def count(self, operation: str, path: Optional[str] = None) -> int:
        return sum(
            1 for op, op_path in self.operations
            if op == operation and (path is None or op_path == path)
        )


class MemoryRepository:
    """In-process versioned tree with Subversion-like revisions."""

    def __init__(self, url: str = DEFAULT_URL):
        self.url = url.rstrip("/")
        self._revisions: List[Dict[str, _Node]] = [{"": _Node(None, 0)}]
        self._dates: List[datetime] = [datetime.now(timezone.utc)]
        self._messages: List[str] = [""]
        self._lock = threading.Lock()
        self.edits: List[EditRecord] = []

    @property
    def youngest(self) -> int:
        return len(self._revisions) - 1

    def tree(self, revision: int = HEAD_REVISION) -> Dict[str, _Node]:
        if revision == HEAD_REVISION:
            revision = self.youngest
        if revision < 0 or revision > self.youngest:
            raise StoreError(f"No such revision {revision}")
        return self._revisions[revision]

    def date(self, revision: int) -> datetime:
        return self._dates[revision]

    def message(self, revision: int) -> str:
        return self._messages[revision]

    def relative_path(self, url: str) -> str:
        url = url.rstrip("/")
        if url == self.url:
            return ""
        if not url.startswith(self.url + "/"):
            raise StoreError(f"'{url}' is not inside repository {self.url}")
        return unquote(url[len(self.url) + 1:]).strip("/")

    def connect(self, url: Optional[str] = None) -> "MemoryConnection":
        return MemoryConnection(self, url or self.url)

    # Test helpers

    def seed(self, files: Dict[str, Union[bytes, None]], message: str = "seed") -> int:
        """
        Commit files directly, creating parent folders as needed.

        A value of None creates an empty folder.
        """
        tree = dict(self.tree())
        for path, data in files.items():
            path = path.strip("/")
            parts = path.split("/")
            for index in range(1, len(parts)):
                parent = "/".join(parts[:index])
                if parent not in tree:
                    tree[parent] = _Node(None, _PENDING)
            tree[path] = _Node(None if data is None else bytes(data), _PENDING)
        return self._commit(tree, message, self.youngest)

    def exists(self, path: str, revision: int = HEAD_REVISION) -> bool:
        return path.strip("/") in self.tree(revision)

    def read_file(self, path: str, revision: int = HEAD_REVISION) -> bytes:
        node = self.tree(revision).get(path.strip("/"))
        if node is None or node.is_dir:
            raise PathNotFoundError(f"No file at '{path}'")
        return node.data

    def list(self, path: str = "", revision: int = HEAD_REVISION) -> List[str]:
        path = path.strip("/")
        tree = self.tree(revision)
        node = tree.get(path)
        if node is None or not node.is_dir:
            raise PathNotFoundError(f"No folder at '{path}'")
        return sorted(p.rpartition("/")[2] for p in tree if p and _parent(p) == path)

    def _commit(self, tree: Dict[str, _Node], message: str, base_revision: int) -> int:
        with self._lock:
            if base_revision != self.youngest:
                raise StoreError(
                    f"Transaction is out of date (based on r{base_revision}, "
                    f"youngest is r{self.youngest})"
                )
            revision = self.youngest + 1
            self._revisions.append({
                path: node if node.revision != _PENDING else _Node(node.data, revision)
                for path, node in tree.items()
            })
            self._dates.append(datetime.now(timezone.utc))
            self._messages.append(message)
        logger.debug(f"Committed revision {revision} to {self.url}")
        return revision


class MemoryConnection:
    """A session on a MemoryRepository; implements IRemoteStore."""

    def __init__(self, repository: MemoryRepository, url: str):
        self._repository = repository
        self._session_path = repository.relative_path(url)
        self.url = url.rstrip("/")
        self._editor: Optional["MemoryCommitEditor"] = None
        self.calls: Counter = Counter()
        self.closed = False

    @property
    def repository(self) -> MemoryRepository:
        return self._repository

    @property
    def session_path(self) -> str:
        return self._session_path

    @property
    def is_busy(self) -> bool:
        return self._editor is not None

    def _path(self, path: str) -> str:
        return join_path(self._session_path, path)

    def _check_idle(self):
        if self._editor is not None:
            raise BusyError(f"Connection to {self.url} has an open commit editor")

    def _node(self, path: str, revnum: int) -> Optional[_Node]:
        return self._repository.tree(revnum).get(self._path(path))

    def get_repos_root(self) -> str:
        return self._repository.url

    def reparent(self, url: str) -> None:
        self._check_idle()
        self._session_path = self._repository.relative_path(url)
        self.url = url.rstrip("/")

    def get_latest_revnum(self) -> int:
        return self._repository.youngest

    def check_path(self, path: str, revnum: int = HEAD_REVISION) -> NodeKind:
        self._check_idle()
        self.calls["check_path"] += 1
        node = self._node(path, revnum)
        if node is None:
            return NodeKind.NONE
        return NodeKind.DIR if node.is_dir else NodeKind.FILE

    def list_dir(self, path: str, revnum: int = HEAD_REVISION) -> List[str]:
        self._check_idle()
        self.calls["list_dir"] += 1
        return self._repository.list(self._path(path), revnum)

    def get_file(self, path: str, stream: BinaryIO, revnum: int = HEAD_REVISION) -> None:
        self._check_idle()
        self.calls["get_file"] += 1
        stream.write(self._repository.read_file(self._path(path), revnum))

    def stat(self, path: str, revnum: int = HEAD_REVISION) -> Optional[Dirent]:
        self._check_idle()
        self.calls["stat"] += 1
        node = self._node(path, revnum)
        if node is None:
            return None
        return Dirent(
            kind=NodeKind.DIR if node.is_dir else NodeKind.FILE,
            size=0 if node.is_dir else len(node.data),
            last_modified=self._repository.date(node.revision),
            created_revision=node.revision,
        )

    def get_commit_editor(self, message: str) -> "MemoryCommitEditor":
        self._check_idle()
        self.calls["get_commit_editor"] += 1
        self._editor = MemoryCommitEditor(self, message)
        return self._editor

    def close(self) -> None:
        self.closed = True

    def _release(self, editor: "MemoryCommitEditor") -> None:
        if self._editor is editor:
            self._editor = None


class MemoryCommitEditor:
    """Commit editor working on a private copy of the base revision."""

    def __init__(self, connection: MemoryConnection, message: str):
        self._connection = connection
        self._repository = connection.repository
        self._base = self._repository.youngest
        self._tree = dict(self._repository.tree(self._base))
        self._stack: List[object] = []
        self._root_opened = False
        self._finished = False
        self.record = EditRecord(message=message, base_revision=self._base)
        self._repository.edits.append(self.record)

    @property
    def tree(self) -> Dict[str, _Node]:
        return self._tree

    def full_path(self, path: str) -> str:
        return join_path(self._connection.session_path, path)

    def log(self, operation: str, path: str):
        self.record.operations.append((operation, path))

    def check_open(self):
        if self._finished:
            raise StoreError("Commit editor is already closed or aborted")

    def check_active(self, node) -> None:
        self.check_open()
        if not self._stack or self._stack[-1] is not node:
            raise StoreError(f"'{node.path or '/'}' is not the innermost open node")

    def push(self, node):
        self._stack.append(node)
        return node

    def pop(self, node):
        self.check_active(node)
        self._stack.pop()

    def copy_tree(self, source: str, revision: int, destination: str):
        source_tree = self._repository.tree(revision)
        source_full = self.full_path(source)
        node = source_tree.get(source_full)
        if node is None or not node.is_dir:
            raise PathNotFoundError(f"No folder at '{source_full}'@{revision}")
        for path, node in source_tree.items():
            if path == source_full or path.startswith(source_full + "/"):
                self._tree[destination + path[len(source_full):]] = _Node(node.data, _PENDING)

    def open_root(self, base_revnum: int = HEAD_REVISION) -> "MemoryDirectoryEditor":
        self.check_open()
        if self._root_opened:
            raise StoreError("Root already opened")
        self._root_opened = True
        path = self._connection.session_path
        self.log("open_root", path)
        return self.push(MemoryDirectoryEditor(self, path))

    def close(self) -> int:
        self.check_open()
        if self._stack:
            open_paths = ", ".join(node.path or "/" for node in self._stack)
            raise StoreError(f"Cannot close commit with open nodes: {open_paths}")
        revision = self._repository._commit(self._tree, self.record.message, self._base)
        self._finish("closed")
        self.record.revision = revision
        return revision

    def abort(self) -> None:
        self.check_open()
        self._finish("aborted")

    def _finish(self, outcome: str):
        self._finished = True
        self.record.outcome = outcome
        self._connection._release(self)


class MemoryDirectoryEditor:
    """Open directory inside a MemoryCommitEditor."""

    def __init__(self, editor: MemoryCommitEditor, path: str):
        self._editor = editor
        self.path = path

    def _child(self, path: str) -> str:
        self._editor.check_active(self)
        full = self._editor.full_path(path)
        if not full or _parent(full) != self.path:
            raise StoreError(f"'{full}' is not a child of '{self.path or '/'}'")
        return full

    def _existing(self, full: str) -> _Node:
        node = self._editor.tree.get(full)
        if node is None:
            raise PathNotFoundError(f"Path '{full}' does not exist")
        return node

    def add_directory(
        self,
        path: str,
        copyfrom_path: Optional[str] = None,
        copyfrom_rev: int = HEAD_REVISION,
    ) -> "MemoryDirectoryEditor":
        full = self._child(path)
        if full in self._editor.tree:
            raise PathExistsError(f"Path '{full}' already exists")
        if copyfrom_path is None:
            self._editor.tree[full] = _Node(None, _PENDING)
            self._editor.log("add_directory", full)
        else:
            self._editor.copy_tree(copyfrom_path, copyfrom_rev, full)
            self._editor.log("copy_directory", full)
        return self._editor.push(MemoryDirectoryEditor(self._editor, full))

    def open_directory(self, path: str, base_revnum: int = HEAD_REVISION) -> "MemoryDirectoryEditor":
        full = self._child(path)
        if not self._existing(full).is_dir:
            raise PathNotFoundError(f"Path '{full}' is not a directory")
        self._editor.log("open_directory", full)
        return self._editor.push(MemoryDirectoryEditor(self._editor, full))

    def add_file(self, path: str) -> "MemoryFileEditor":
        full = self._child(path)
        if full in self._editor.tree:
            raise PathExistsError(f"Path '{full}' already exists")
        self._editor.tree[full] = _Node(b"", _PENDING)
        self._editor.log("add_file", full)
        return self._editor.push(MemoryFileEditor(self._editor, full))

    def open_file(self, path: str, base_revnum: int = HEAD_REVISION) -> "MemoryFileEditor":
        full = self._child(path)
        if self._existing(full).is_dir:
            raise PathNotFoundError(f"Path '{full}' is not a file")
        self._editor.log("open_file", full)
        return self._editor.push(MemoryFileEditor(self._editor, full))

    def delete_entry(self, path: str, revnum: int = HEAD_REVISION) -> None:
        full = self._child(path)
        self._existing(full)
        tree = self._editor.tree
        for entry in [p for p in tree if p == full or p.startswith(full + "/")]:
            del tree[entry]
        self._editor.log("delete_entry", full)

    def close(self) -> None:
        self._editor.pop(self)
        self._editor.log("close_directory", self.path)


class MemoryFileEditor:
    """Open file inside a MemoryCommitEditor."""

    def __init__(self, editor: MemoryCommitEditor, path: str):
        self._editor = editor
        self.path = path
        self._data: Optional[bytes] = None

    def apply_text(self, data: bytes) -> str:
        self._editor.check_active(self)
        self._data = bytes(data)
        self._editor.log("apply_text", self.path)
        return content_checksum(self._data)

    def close(self, checksum: Optional[str] = None) -> None:
        self._editor.check_active(self)
        if self._data is not None:
            if checksum is not None and checksum != content_checksum(self._data):
                raise ChecksumMismatchError(f"Checksum mismatch for '{self.path}'")
            self._editor.tree[self.path] = _Node(self._data, _PENDING)
        self._editor.pop(self)
        self._editor.log("close_file", self.path)
