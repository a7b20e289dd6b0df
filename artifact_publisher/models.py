"""
Models for the publish engine.

Small dataclasses and enums shared by the services and the orchestrator.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple
import logging
import tempfile

from .errors import IllegalConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_ALIAS_FOLDER_NAME = "LATEST"
DEFAULT_EPHEMERAL_PREFIXES = ("ivytemp",)
HEAD_REVISION = -1


class NodeKind(Enum):
    """Kind of a remote path."""
    NONE = "none"
    FILE = "file"
    DIR = "dir"
    UNKNOWN = "unknown"


class TransactionState(Enum):
    """Lifecycle of a publish transaction."""
    IDLE = "idle"
    COMMIT_OPEN = "commit_open"
    COMMITTED_EMPTY = "committed_empty"
    COMMITTED_WITH_CHANGES = "committed_with_changes"
    ALIAS_COPY_OPEN = "alias_copy_open"
    ALIAS_COPY_CLOSED = "alias_copy_closed"
    DONE = "done"
    ABORTED = "aborted"


def split_destination(destination: str) -> Tuple[str, str]:
    """
    Split a repository-relative destination into (folder, file name).

    Raises:
        ValueError: If the destination names a folder rather than a file.
    """
    destination = destination.lstrip("/")
    if not destination or destination.endswith("/"):
        raise ValueError(f"Can only publish files (not folders): '{destination}'")
    folder, _, name = destination.rpartition("/")
    return folder.strip("/"), name


def is_ephemeral(path: Path, prefixes: Tuple[str, ...] = DEFAULT_EPHEMERAL_PREFIXES) -> bool:
    """Whether a source file may disappear before the commit runs."""
    path = Path(path)
    if any(path.name.startswith(prefix) for prefix in prefixes):
        return True
    try:
        path.resolve().relative_to(Path(tempfile.gettempdir()).resolve())
    except ValueError:
        return False
    return True


@dataclass(frozen=True)
class PendingUpload:
    """
    One file destined for the store.

    Content is read from ``source`` on first access unless it was loaded
    up front (ephemeral sources, in-memory data). The content cache is the
    only state written after creation.
    """
    destination_folder: str
    file_name: str
    overwrite: bool = False
    source: Optional[Path] = None
    _data: Optional[bytes] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if not self.file_name or "/" in self.file_name:
            raise ValueError(f"Can only publish files (not folders): '{self.file_name}'")
        object.__setattr__(self, "destination_folder", self.destination_folder.strip("/"))
        if self.source is None and self._data is None:
            raise ValueError("PendingUpload needs either a source file or data")

    @classmethod
    def from_bytes(cls, data: bytes, destination: str, overwrite: bool = False) -> "PendingUpload":
        folder, name = split_destination(destination)
        return cls(folder, name, overwrite, _data=bytes(data))

    @classmethod
    def from_file(
        cls,
        path: Path,
        destination: str,
        overwrite: bool = False,
        ephemeral_prefixes: Tuple[str, ...] = DEFAULT_EPHEMERAL_PREFIXES,
    ) -> "PendingUpload":
        """
        Create an upload backed by a local file.

        Args:
            path: Local source file
            destination: Repository-relative destination file path
            overwrite: Replace the remote file if it exists
            ephemeral_prefixes: File name prefixes of sources that are
                deleted by the caller before commit

        Returns:
            PendingUpload, already loaded when the source is ephemeral
        """
        folder, name = split_destination(destination)
        upload = cls(folder, name, overwrite, source=Path(path))
        if is_ephemeral(upload.source, ephemeral_prefixes):
            logger.debug(f"Loading ephemeral source {upload.source} eagerly")
            upload.load()
        return upload

    def load(self) -> bytes:
        if self._data is None:
            object.__setattr__(self, "_data", self.source.read_bytes())
        return self._data

    @property
    def data(self) -> bytes:
        return self.load()

    @property
    def is_loaded(self) -> bool:
        return self._data is not None

    @property
    def file_path(self) -> str:
        if not self.destination_folder:
            return self.file_name
        return f"{self.destination_folder}/{self.file_name}"


@dataclass(frozen=True)
class ModuleRevision:
    """Identifies the module revision being published."""
    organisation: str
    name: str
    revision: str

    @property
    def commit_message(self) -> str:
        return f"Ivy publishing {self.organisation}#{self.name};{self.revision}"

    def __str__(self) -> str:
        return f"{self.organisation}#{self.name};{self.revision}"


@dataclass(frozen=True)
class Dirent:
    """Remote entry metadata."""
    kind: NodeKind
    size: int = 0
    last_modified: Optional[datetime] = None
    created_revision: int = HEAD_REVISION


@dataclass(frozen=True)
class RemoteResource:
    """Resolved remote resource, as reported to callers of the facade."""
    url: str
    exists: bool
    last_modified: Optional[datetime] = None
    content_length: int = 0

    @classmethod
    def missing(cls, url: str) -> "RemoteResource":
        return cls(url=url, exists=False)


@dataclass(frozen=True)
class CommitResult:
    """Immutable outcome of a publish commit."""
    revision: Optional[int] = None
    alias_revision: Optional[int] = None
    written: Tuple[str, ...] = ()
    skipped: Tuple[str, ...] = ()
    deleted: Tuple[str, ...] = ()
    copied: Dict[str, str] = field(default_factory=dict)

    @property
    def committed(self) -> bool:
        return self.revision is not None

    @property
    def empty(self) -> bool:
        return not self.written


@dataclass(frozen=True)
class PublishConfig:
    """Immutable configuration for publishing and retrieval."""
    alias_mode: bool = True
    alias_folder_name: str = DEFAULT_ALIAS_FOLDER_NAME
    cleanup_publish_folder: bool = True
    retrieve_revision: int = HEAD_REVISION
    ephemeral_prefixes: Tuple[str, ...] = DEFAULT_EPHEMERAL_PREFIXES

    def __post_init__(self):
        if self.alias_mode and not self.cleanup_publish_folder:
            raise IllegalConfigurationError(
                "cleanup_publish_folder must be enabled when alias_mode is enabled"
            )
        if not self.alias_folder_name or "/" in self.alias_folder_name:
            raise IllegalConfigurationError(
                f"Invalid alias folder name: '{self.alias_folder_name}'"
            )
        if self.retrieve_revision < HEAD_REVISION:
            raise IllegalConfigurationError(
                f"Invalid retrieve revision: {self.retrieve_revision}"
            )
