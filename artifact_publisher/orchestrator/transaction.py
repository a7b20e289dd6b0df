"""
Publish transaction - batches uploads into as few commits as possible.

All scheduled uploads go into one commit. In alias mode the uploads land
in the staging folder and a second, copy-only commit recreates each
permanent folder from it; the copy cannot share the first commit because
the commit editor cannot replace a directory with a copy of content added
in the same edit.
"""
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, Union
import logging

from ..errors import IllegalConfigurationError, NotInitializedError, TransactionStateError
from ..models import CommitResult, ModuleRevision, PendingUpload, PublishConfig, TransactionState
from ..protocols import ICommitEditor, IDirectoryEditor, IRemoteStore
from ..services.store_client import RemoteStoreClient, join_path
from ..utils.events import (
    ALIAS_COPIED,
    COMMIT_ABORTED,
    COMMIT_COMPLETED,
    COMMIT_STARTED,
    ENTRY_DELETED,
    EventEmitter,
    FILE_SKIPPED,
    FILE_WRITTEN,
    FOLDER_CREATED,
    UPLOAD_DROPPED,
)
from .alias import AliasPlan, derive_alias_folder, plan_alias_copies
from .models import AliasCopy, ScheduledUpload
from .path_tree import PathNode, PathTree

logger = logging.getLogger(__name__)

Source = Union[bytes, bytearray, str, Path]


class _FolderWalker:
    """Opens or creates each folder on enter and closes it on leave."""

    def __init__(self, client: RemoteStoreClient, root: IDirectoryEditor, events: EventEmitter):
        self._client = client
        self._events = events
        self._stack: List[IDirectoryEditor] = [root]

    @property
    def current(self) -> IDirectoryEditor:
        return self._stack[-1]

    def enter(self, node: PathNode) -> None:
        parent = self._stack[-1]
        if self._client.folder_exists(node.path):
            logger.debug(f"Opening folder {node.path}")
            directory = parent.open_directory(node.path)
        else:
            directory = self._client.add_folder(parent, node.path)
            self._events.emit(FOLDER_CREATED, node.path)
        self._stack.append(directory)

    def visit(self, node: PathNode) -> None:
        pass

    def leave(self, node: PathNode) -> None:
        logger.debug(f"Closing folder {node.path}")
        self._stack.pop().close()


class _CommitWalker(_FolderWalker):
    """Applies uploads, alias deletions and the cleanup pass."""

    def __init__(
        self,
        client: RemoteStoreClient,
        root: IDirectoryEditor,
        events: EventEmitter,
        deletions: Dict[str, List[str]],
        cleanup: bool,
    ):
        super().__init__(client, root, events)
        self._deletions = deletions
        self._cleanup = cleanup
        self.written: List[str] = []
        self.skipped: List[str] = []
        self.deleted: List[str] = []

    def enter(self, node: PathNode) -> None:
        super().enter(node)
        self.delete_children(node.path)

    def delete_children(self, path: str) -> None:
        """Issue the alias deletions whose parent is ``path``."""
        for entry in self._deletions.get(path, ()):
            self._delete(entry)

    def visit(self, node: PathNode) -> None:
        written_here = 0
        for scheduled in node.items:
            if self._client.put_file(
                self.current,
                scheduled.upload.data,
                scheduled.folder,
                scheduled.file_name,
                scheduled.overwrite,
                directory_path=node.path,
            ):
                written_here += 1
                self.written.append(scheduled.file_path)
                self._events.emit(FILE_WRITTEN, scheduled.file_path)
            else:
                self.skipped.append(scheduled.file_path)
                self._events.emit(FILE_SKIPPED, scheduled.file_path)

        if self._cleanup and written_here:
            self._clean(node)

    def _clean(self, node: PathNode) -> None:
        keep = {scheduled.file_name for scheduled in node.items}
        keep.update(node.children)
        keep.update(path.rpartition("/")[2] for path in self._deletions.get(node.path, ()))
        for name in sorted(self._client.list_folder(node.path) - keep):
            self._delete(join_path(node.path, name))

    def _delete(self, path: str) -> None:
        self._client.delete_entry(self.current, path)
        self.deleted.append(path)
        self._events.emit(ENTRY_DELETED, path)


class _CopyWalker(_FolderWalker):
    """Copies staging folders onto their permanent folders."""

    def __init__(
        self,
        client: RemoteStoreClient,
        root: IDirectoryEditor,
        events: EventEmitter,
        revision: int,
    ):
        super().__init__(client, root, events)
        self._revision = revision

    def visit(self, node: PathNode) -> None:
        for copy in node.items:
            self._client.copy_folder(self.current, copy.permanent, copy.staging, self._revision)
            self._events.emit(ALIAS_COPIED, copy.staging, copy.permanent, self._revision)


class PublishTransaction:
    """
    Single-use batch of uploads committed together.

    Usage:
        transaction = PublishTransaction(client, commit_store, module, config)
        transaction.schedule(b"...", "org/mod/1.0/mod.jar")
        result = transaction.commit()

        # or: commit on exit, abort on error
        with PublishTransaction(client, commit_store, module) as transaction:
            transaction.schedule(path, "org/mod/1.0/mod.jar")
    """

    def __init__(
        self,
        client: RemoteStoreClient,
        commit_store: IRemoteStore,
        module: ModuleRevision,
        config: Optional[PublishConfig] = None,
        events: Optional[EventEmitter] = None,
    ):
        """
        Initialize transaction.

        Args:
            client: Client over the read connection, rooted at the repository root
            commit_store: Connection used only for commit editors, same root
            module: Module revision being published
            config: Publish configuration
            events: Event emitter for progress listeners
        """
        self._client = client
        self._commit_store = commit_store
        self._module = module
        self._config = config or PublishConfig()
        self._events = events or EventEmitter()
        if self._config.alias_mode and module.revision == self._config.alias_folder_name:
            raise IllegalConfigurationError(
                f"Revision '{module.revision}' cannot be the alias folder name"
            )

        self._tree = PathTree()
        self._scheduled: List[ScheduledUpload] = []
        self._scheduled_paths: Set[str] = set()
        self._editor: Optional[ICommitEditor] = None
        self._state = TransactionState.IDLE
        self._commit_started = False

    def __enter__(self) -> "PublishTransaction":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            if self._editor is not None:
                logger.warning(f"Aborting publish of {self._module}: {exc}")
                self.abort()
            return False
        try:
            self.commit()
        except Exception:
            if self._editor is not None:
                self.abort()
            raise
        return False

    # State properties

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def module(self) -> ModuleRevision:
        return self._module

    @property
    def config(self) -> PublishConfig:
        return self._config

    @property
    def events(self) -> EventEmitter:
        return self._events

    @property
    def tree(self) -> PathTree:
        return self._tree

    @property
    def scheduled(self) -> Tuple[ScheduledUpload, ...]:
        return tuple(self._scheduled)

    @property
    def is_open(self) -> bool:
        """Whether a commit editor is open and can be aborted."""
        return self._editor is not None

    def has_commit_started(self) -> bool:
        return self._commit_started

    # Operations

    def schedule(self, source: Source, destination_path: str, overwrite: bool = False) -> bool:
        """
        Schedule one file for the commit.

        Args:
            source: File content, or the path of a local file
            destination_path: Repository-relative destination file path
            overwrite: Replace the remote file if it exists

        Returns:
            True if scheduled, False if dropped because its permanent
            folder already exists and overwrite is off (alias mode only)

        Raises:
            ValueError: If the destination is already scheduled in this batch
        """
        if isinstance(source, (bytes, bytearray)):
            upload = PendingUpload.from_bytes(source, destination_path, overwrite)
        else:
            upload = PendingUpload.from_file(
                Path(source),
                destination_path,
                overwrite,
                ephemeral_prefixes=self._config.ephemeral_prefixes,
            )
        return self.schedule_upload(upload)

    def schedule_upload(self, upload: PendingUpload) -> bool:
        if self._state is not TransactionState.IDLE:
            raise TransactionStateError(f"Cannot schedule uploads in state: {self._state}")

        folder = upload.destination_folder
        overwrite = upload.overwrite
        if self._config.alias_mode:
            if not upload.overwrite and self._client.folder_exists(folder):
                logger.info(
                    f"Not publishing {upload.file_path}: {folder} already exists "
                    f"and overwrite is off"
                )
                self._events.emit(UPLOAD_DROPPED, upload.file_path)
                return False
            folder = derive_alias_folder(
                folder, self._module.revision, self._config.alias_folder_name
            )
            overwrite = True

        scheduled = ScheduledUpload(upload, folder, overwrite)
        if scheduled.file_path in self._scheduled_paths:
            raise ValueError(f"'{upload.file_path}' is already scheduled in this transaction")
        self._tree.insert(folder, scheduled)
        self._scheduled.append(scheduled)
        self._scheduled_paths.add(scheduled.file_path)
        logger.debug(f"Scheduled {upload.file_path} into {folder or '/'}")
        return True

    def commit(self) -> CommitResult:
        """
        Commit every scheduled upload.

        Raises:
            TransactionStateError: If the transaction was already committed
            AmbiguousRevisionPathError: If an alias folder cannot be derived

        Errors from the store propagate with the editor still open; call
        abort() to release it.
        """
        if self._state is not TransactionState.IDLE:
            raise TransactionStateError(f"Cannot commit in state: {self._state}")

        plan = AliasPlan()
        if self._config.alias_mode and self._scheduled:
            plan = plan_alias_copies(
                self._scheduled,
                self._module.revision,
                self._config.alias_folder_name,
                self._client,
            )
            for path in plan.deletions:
                self._tree.insert(path.rpartition("/")[0])

        logger.info(
            f"Committing {len(self._scheduled)} upload(s) into {len(self._tree)} folder(s) "
            f"for {self._module}"
        )
        self._commit_started = True
        self._editor = self._commit_store.get_commit_editor(self._module.commit_message)
        self._state = TransactionState.COMMIT_OPEN
        self._events.emit(COMMIT_STARTED, self._module)

        root = self._editor.open_root()
        walker = _CommitWalker(
            self._client,
            root,
            self._events,
            plan.deletions_by_parent(),
            self._config.cleanup_publish_folder,
        )
        walker.delete_children("")
        self._tree.walk(walker)

        if not walker.written:
            logger.info("Nothing to commit, aborting transaction")
            editor, self._editor = self._editor, None
            editor.abort()
            self._state = TransactionState.COMMITTED_EMPTY
            return self._finish(CommitResult(skipped=tuple(walker.skipped)))

        root.close()
        editor, self._editor = self._editor, None
        revision = editor.close()
        self._state = TransactionState.COMMITTED_WITH_CHANGES
        logger.info(f"Committed revision {revision} ({len(walker.written)} file(s))")

        alias_revision = None
        if plan.copies:
            alias_revision = self._copy_aliases(plan.copies, revision)

        return self._finish(CommitResult(
            revision=revision,
            alias_revision=alias_revision,
            written=tuple(walker.written),
            skipped=tuple(walker.skipped),
            deleted=tuple(walker.deleted),
            copied=dict(plan.copies),
        ))

    def abort(self) -> None:
        """
        Abort the open commit editor.

        Raises:
            NotInitializedError: If no commit editor is open
        """
        if self._editor is None:
            raise NotInitializedError()
        logger.info(f"Aborting commit for {self._module}")
        editor, self._editor = self._editor, None
        self._state = TransactionState.ABORTED
        editor.abort()
        self._events.emit(COMMIT_ABORTED, self._module)

    def _copy_aliases(self, copies: Dict[str, str], revision: int) -> int:
        tree = PathTree()
        for permanent, staging in copies.items():
            tree.insert(permanent.rpartition("/")[0], AliasCopy(permanent, staging))

        logger.info(f"Copying {len(copies)} alias folder(s) from revision {revision}")
        self._editor = self._commit_store.get_commit_editor(self._module.commit_message)
        self._state = TransactionState.ALIAS_COPY_OPEN
        try:
            root = self._editor.open_root()
            tree.walk(_CopyWalker(self._client, root, self._events, revision))
            root.close()
            alias_revision = self._editor.close()
        except Exception:
            logger.warning(
                f"Revision {revision} is published but its alias copy failed; "
                f"permanent folders {sorted(copies)} may be missing until republished"
            )
            raise
        self._editor = None
        self._state = TransactionState.ALIAS_COPY_CLOSED
        logger.info(f"Committed alias copy revision {alias_revision}")
        return alias_revision

    def _finish(self, result: CommitResult) -> CommitResult:
        self._state = TransactionState.DONE
        self._events.emit(COMMIT_COMPLETED, result)
        return result
