"""
Protocols (Interfaces) for the remote store.

The store is reached through a Subversion-style commit editor: a
directory must be opened or added before anything inside it is touched
and closed only after everything inside it is done.
"""
from typing import BinaryIO, Callable, List, Optional, Protocol, runtime_checkable

from .models import Dirent, NodeKind


@runtime_checkable
class IFileEditor(Protocol):
    """Interface for a file opened inside a commit."""

    def apply_text(self, data: bytes) -> str:
        """Replace the file content. Returns the checksum of the new content."""
        ...

    def close(self, checksum: Optional[str] = None) -> None:
        """Finish the file, verifying the checksum when given."""
        ...


@runtime_checkable
class IDirectoryEditor(Protocol):
    """Interface for a directory opened inside a commit."""

    def add_directory(
        self,
        path: str,
        copyfrom_path: Optional[str] = None,
        copyfrom_rev: int = -1,
    ) -> "IDirectoryEditor":
        """Create a child directory, optionally as a copy of another one."""
        ...

    def open_directory(self, path: str, base_revnum: int = -1) -> "IDirectoryEditor":
        """Open an existing child directory."""
        ...

    def add_file(self, path: str) -> IFileEditor:
        """Create a child file."""
        ...

    def open_file(self, path: str, base_revnum: int = -1) -> IFileEditor:
        """Open an existing child file for update."""
        ...

    def delete_entry(self, path: str, revnum: int = -1) -> None:
        """Delete a child file or directory."""
        ...

    def close(self) -> None:
        """Close this directory."""
        ...


@runtime_checkable
class ICommitEditor(Protocol):
    """Interface for one remote commit transaction."""

    def open_root(self, base_revnum: int = -1) -> IDirectoryEditor:
        """Open the directory the session is rooted at."""
        ...

    def close(self) -> int:
        """Commit and return the new revision number."""
        ...

    def abort(self) -> None:
        """Discard every change made through this editor."""
        ...


@runtime_checkable
class IRemoteStore(Protocol):
    """Interface for a connection to a versioned store.

    Paths are relative to the current session URL.
    """

    url: str

    def get_repos_root(self) -> str:
        """URL of the repository root."""
        ...

    def reparent(self, url: str) -> None:
        """Move the session to another URL in the same repository."""
        ...

    def get_latest_revnum(self) -> int:
        ...

    def check_path(self, path: str, revnum: int = -1) -> NodeKind:
        ...

    def list_dir(self, path: str, revnum: int = -1) -> List[str]:
        ...

    def get_file(self, path: str, stream: BinaryIO, revnum: int = -1) -> None:
        ...

    def stat(self, path: str, revnum: int = -1) -> Optional[Dirent]:
        ...

    def get_commit_editor(self, message: str) -> ICommitEditor:
        ...


ConnectionFactory = Callable[[str], IRemoteStore]
