"""
Remote Store Client - reads and commit primitives with a folder existence cache.
"""
from typing import BinaryIO, List, Optional, Set
import logging

from ..errors import NotAFileError
from ..models import Dirent, HEAD_REVISION, NodeKind
from ..protocols import IDirectoryEditor, IRemoteStore

logger = logging.getLogger(__name__)


def join_path(*parts: str) -> str:
    """Join repository path segments, dropping empty ones."""
    return "/".join(part.strip("/") for part in parts if part and part.strip("/"))


class RemoteStoreClient:
    """
    Thin wrapper over a store connection used during a publish.

    Folder paths confirmed to exist at HEAD are remembered for the
    lifetime of the client, so a commit that touches the same folder many
    times checks it remotely once. The cache only grows; a path missing
    from it may still exist remotely.
    """

    def __init__(self, store: IRemoteStore):
        """
        Initialize client.

        Args:
            store: Read connection, rooted at the repository root
        """
        self._store = store
        self._existing_folders: Set[str] = set()

    @property
    def store(self) -> IRemoteStore:
        return self._store

    def is_cached(self, path: str) -> bool:
        return path.strip("/") in self._existing_folders

    # Reads

    def folder_exists(self, path: str, use_cache: bool = True, revision: int = HEAD_REVISION) -> bool:
        """
        Check whether a folder exists.

        Args:
            path: Repository-relative folder path
            use_cache: Answer from the existence cache when possible
            revision: Revision to check, -1 for HEAD

        Returns:
            True if the path is a directory
        """
        path = path.strip("/")
        if use_cache and revision == HEAD_REVISION and self.is_cached(path):
            return True
        kind = self._store.check_path(path, revision)
        if kind is not NodeKind.DIR:
            return False
        if revision == HEAD_REVISION:
            self._existing_folders.add(path)
        return True

    def file_exists(self, path: str, revision: int = HEAD_REVISION) -> bool:
        return self._store.check_path(path.strip("/"), revision) is NodeKind.FILE

    def list_folder(self, path: str, revision: int = HEAD_REVISION) -> Set[str]:
        """Names of the direct children of a folder, empty if it does not exist."""
        if not self.folder_exists(path, use_cache=False, revision=revision):
            return set()
        return set(self._store.list_dir(path.strip("/"), revision))

    def fetch_file(self, path: str, stream: BinaryIO, revision: int = HEAD_REVISION) -> None:
        """
        Stream a remote file into ``stream``.

        Raises:
            NotAFileError: If the path is missing or is not a file
        """
        path = path.strip("/")
        kind = self._store.check_path(path, revision)
        if kind is NodeKind.NONE:
            raise NotAFileError(path, "does not exist")
        if kind is not NodeKind.FILE:
            raise NotAFileError(path, f"is a {kind.value}, expected a file")
        self._store.get_file(path, stream, revision)

    def stat(self, path: str, revision: int = HEAD_REVISION) -> Optional[Dirent]:
        return self._store.stat(path.strip("/"), revision)

    # Commit primitives

    def add_folder(self, directory: IDirectoryEditor, path: str) -> IDirectoryEditor:
        """Create one folder inside the open commit and remember it."""
        path = path.strip("/")
        logger.debug(f"Creating folder {path}")
        child = directory.add_directory(path)
        self._existing_folders.add(path)
        return child

    def create_folders(
        self,
        directory: IDirectoryEditor,
        folder_path: str,
        directory_path: str = "",
    ) -> List[IDirectoryEditor]:
        """
        Open or create every folder between ``directory`` and ``folder_path``.

        Args:
            directory: Open editor for ``directory_path``
            folder_path: Folder that must exist when this returns
            directory_path: Path of ``directory``, "" for the root

        Returns:
            Editors opened beneath ``directory``, outermost first. The
            caller closes them innermost first.
        """
        folder_path = folder_path.strip("/")
        directory_path = directory_path.strip("/")
        if folder_path == directory_path:
            return []
        if directory_path and not folder_path.startswith(directory_path + "/"):
            raise ValueError(f"'{folder_path}' is not below '{directory_path}'")

        segments = folder_path.split("/")
        start = len(directory_path.split("/")) if directory_path else 0

        existing = start
        while existing < len(segments) and self.folder_exists("/".join(segments[: existing + 1])):
            existing += 1

        opened: List[IDirectoryEditor] = []
        current = directory
        for index in range(start, len(segments)):
            path = "/".join(segments[: index + 1])
            if index < existing:
                current = current.open_directory(path)
            else:
                current = self.add_folder(current, path)
            opened.append(current)
        return opened

    def put_file(
        self,
        directory: IDirectoryEditor,
        data: bytes,
        folder: str,
        name: str,
        overwrite: bool,
        directory_path: Optional[str] = None,
    ) -> bool:
        """
        Add or update one file inside the open commit.

        Args:
            directory: Open editor for ``directory_path``
            data: Full new content
            folder: Destination folder
            name: Destination file name
            overwrite: Replace the file if it already exists
            directory_path: Path of ``directory``; defaults to ``folder``

        Returns:
            True if the file was written, False if an existing file was kept
        """
        folder = folder.strip("/")
        file_path = join_path(folder, name)
        if directory_path is None:
            directory_path = folder

        exists = self.file_exists(file_path)
        if exists and not overwrite:
            logger.info(f"Overwrite set to false, ignoring {file_path}")
            return False

        opened = self.create_folders(directory, folder, directory_path)
        target = opened[-1] if opened else directory
        if exists:
            logger.debug(f"Updating file {file_path}")
            file_editor = target.open_file(file_path)
        else:
            logger.debug(f"Adding file {file_path}")
            file_editor = target.add_file(file_path)
        checksum = file_editor.apply_text(data)
        file_editor.close(checksum)

        for opened_directory in reversed(opened):
            opened_directory.close()
        return True

    def delete_entry(self, directory: IDirectoryEditor, path: str) -> None:
        path = path.strip("/")
        logger.debug(f"Deleting {path}")
        directory.delete_entry(path)

    def copy_folder(
        self,
        directory: IDirectoryEditor,
        destination: str,
        source: str,
        revision: int,
    ) -> None:
        """Server-side copy of ``source``@``revision`` to ``destination``."""
        destination = destination.strip("/")
        logger.debug(f"Copying {source}@{revision} to {destination}")
        directory.add_directory(destination, source.strip("/"), revision).close()
        self._existing_folders.add(destination)
