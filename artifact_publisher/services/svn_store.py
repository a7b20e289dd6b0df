"""
Subversion store backed by subvertpy's RA layer.

Install with ``pip install artifact-publisher[svn]``.
"""
from datetime import datetime, timezone
from io import BytesIO
from typing import BinaryIO, Dict, List, Optional
from urllib.parse import quote
import logging

import subvertpy
from subvertpy import delta, ra

from ..models import Dirent, HEAD_REVISION, NodeKind

logger = logging.getLogger(__name__)

AUTH_PARAM_DEFAULT_USERNAME = "svn:auth:username"
AUTH_PARAM_DEFAULT_PASSWORD = "svn:auth:password"

_NODE_KINDS = {
    subvertpy.NODE_NONE: NodeKind.NONE,
    subvertpy.NODE_FILE: NodeKind.FILE,
    subvertpy.NODE_DIR: NodeKind.DIR,
}


def create_auth(username: Optional[str] = None, password: Optional[str] = None) -> "ra.Auth":
    """Auth baton with the stock providers and optional default credentials."""
    providers = [
        ra.get_simple_provider(),
        ra.get_username_provider(),
        ra.get_ssl_client_cert_file_provider(),
        ra.get_ssl_client_cert_pw_file_provider(),
        ra.get_ssl_server_trust_file_provider(),
    ]
    auth = ra.Auth(providers)
    if username:
        auth.set_parameter(AUTH_PARAM_DEFAULT_USERNAME, username)
    if password:
        auth.set_parameter(AUTH_PARAM_DEFAULT_PASSWORD, password)
    return auth


def _node_kind(kind) -> NodeKind:
    return _NODE_KINDS.get(kind, NodeKind.UNKNOWN)


class SvnFileEditor:
    def __init__(self, baton):
        self._baton = baton

    def apply_text(self, data: bytes) -> str:
        handler = self._baton.apply_textdelta()
        digest = delta.send_stream(BytesIO(data), handler)
        return digest.hex()

    def close(self, checksum: Optional[str] = None) -> None:
        self._baton.close(checksum)


class SvnDirectoryEditor:
    """Directory baton wrapper; copy sources are turned into URLs."""

    def __init__(self, baton, session_url: str):
        self._baton = baton
        self._session_url = session_url

    def _url(self, path: str) -> str:
        return f"{self._session_url}/{quote(path.strip('/'))}"

    def add_directory(self, path, copyfrom_path=None, copyfrom_rev=HEAD_REVISION):
        copyfrom_url = None if copyfrom_path is None else self._url(copyfrom_path)
        baton = self._baton.add_directory(path, copyfrom_url, copyfrom_rev)
        return SvnDirectoryEditor(baton, self._session_url)

    def open_directory(self, path, base_revnum=HEAD_REVISION):
        return SvnDirectoryEditor(self._baton.open_directory(path, base_revnum), self._session_url)

    def add_file(self, path):
        return SvnFileEditor(self._baton.add_file(path))

    def open_file(self, path, base_revnum=HEAD_REVISION):
        return SvnFileEditor(self._baton.open_file(path, base_revnum))

    def delete_entry(self, path, revnum=HEAD_REVISION):
        self._baton.delete_entry(path, revnum)

    def close(self):
        self._baton.close()


class SvnCommitEditor:
    """Commit editor wrapper that reports the new revision on close."""

    def __init__(self, connection: "SvnRemoteStore", message: str):
        self._connection = connection
        self._result: Dict[str, int] = {}
        self._editor = connection.remote_access.get_commit_editor(
            {"svn:log": message}, self._done
        )
        self._session_url = connection.url

    def _done(self, revision, *args):
        self._result["revision"] = revision

    def open_root(self, base_revnum=HEAD_REVISION):
        return SvnDirectoryEditor(self._editor.open_root(base_revnum), self._session_url)

    def close(self) -> int:
        self._editor.close()
        revision = self._result.get("revision")
        if revision is None:
            revision = self._connection.get_latest_revnum()
        return revision

    def abort(self) -> None:
        self._editor.abort()


class SvnRemoteStore:
    """IRemoteStore over a ``subvertpy.ra.RemoteAccess`` session."""

    def __init__(self, url: str, auth=None):
        self.url = url.rstrip("/")
        self._ra = ra.RemoteAccess(self.url, auth=auth)
        logger.debug(f"Opened RA session to {self.url}")

    @property
    def remote_access(self):
        return self._ra

    def get_repos_root(self) -> str:
        return self._ra.get_repos_root()

    def reparent(self, url: str) -> None:
        url = url.rstrip("/")
        self._ra.reparent(url)
        self.url = url

    def get_latest_revnum(self) -> int:
        return self._ra.get_latest_revnum()

    def check_path(self, path: str, revnum: int = HEAD_REVISION) -> NodeKind:
        return _node_kind(self._ra.check_path(path, revnum))

    def list_dir(self, path: str, revnum: int = HEAD_REVISION) -> List[str]:
        dirents = self._ra.get_dir(path, revnum)[0]
        return sorted(dirents)

    def get_file(self, path: str, stream: BinaryIO, revnum: int = HEAD_REVISION) -> None:
        self._ra.get_file(path, stream, revnum)

    def stat(self, path: str, revnum: int = HEAD_REVISION) -> Optional[Dirent]:
        if self._ra.check_path(path, revnum) == subvertpy.NODE_NONE:
            return None
        entry = self._ra.stat(path, revnum)
        if entry is None:
            return None
        microseconds = entry.get("time")
        last_modified = None
        if microseconds:
            last_modified = datetime.fromtimestamp(microseconds / 1e6, tz=timezone.utc)
        return Dirent(
            kind=_node_kind(entry.get("kind")),
            size=entry.get("size") or 0,
            last_modified=last_modified,
            created_revision=entry.get("created_rev", HEAD_REVISION),
        )

    def get_commit_editor(self, message: str) -> SvnCommitEditor:
        return SvnCommitEditor(self, message)
