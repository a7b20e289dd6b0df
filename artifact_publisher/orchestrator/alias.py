"""
Alias folder derivation and planning.

In alias mode every artifact is uploaded to a staging folder (the
permanent folder with its revision replaced by the alias name, e.g.
``org/mod/LATEST``) and then copied server-side onto the permanent,
revision-named folder.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List
import logging

from ..errors import AmbiguousRevisionPathError
from ..services.store_client import RemoteStoreClient
from .models import ScheduledUpload

logger = logging.getLogger(__name__)


def derive_alias_folder(folder: str, revision: str, alias_folder_name: str) -> str:
    """
    Replace the revision in a folder path with the alias folder name.

    The revision is matched literally and must occur exactly once.

    Raises:
        AmbiguousRevisionPathError: If the revision occurs zero or several times
    """
    occurrences = folder.count(revision) if revision else 0
    if occurrences != 1:
        raise AmbiguousRevisionPathError(folder, revision, occurrences)
    return folder.replace(revision, alias_folder_name, 1)


def _is_below(path: str, ancestors: Iterable[str]) -> bool:
    return any(path != other and path.startswith(other + "/") for other in ancestors)


@dataclass
class AliasPlan:
    """Deletions for the primary commit and copies for the second one."""
    copies: Dict[str, str] = field(default_factory=dict)  # permanent -> staging
    deletions: List[str] = field(default_factory=list)

    def deletions_by_parent(self) -> Dict[str, List[str]]:
        grouped: Dict[str, List[str]] = {}
        for path in self.deletions:
            grouped.setdefault(path.rpartition("/")[0], []).append(path)
        return grouped

    def __bool__(self) -> bool:
        return bool(self.copies or self.deletions)


def plan_alias_copies(
    scheduled: Iterable[ScheduledUpload],
    revision: str,
    alias_folder_name: str,
    client: RemoteStoreClient,
) -> AliasPlan:
    """
    Work out which permanent folders get an alias copy.

    Each permanent folder is decided once, by the first upload scheduled
    into it. An existing permanent folder is deleted when that upload asked
    for overwrite and otherwise left alone without a copy. Folders nested in
    another copied folder are covered by the outer copy.
    """
    plan = AliasPlan()
    seen = set()
    for item in scheduled:
        permanent = item.permanent_folder
        if permanent in seen:
            continue
        seen.add(permanent)
        staging = derive_alias_folder(permanent, revision, alias_folder_name)
        plan.copies[permanent] = staging
        if not client.folder_exists(permanent):
            continue
        if item.upload.overwrite:
            logger.debug(f"Permanent folder {permanent} exists, replacing it")
            plan.deletions.append(permanent)
        else:
            logger.info(f"Permanent folder {permanent} exists, skipping alias copy")
            del plan.copies[permanent]

    plan.copies = {
        permanent: staging
        for permanent, staging in plan.copies.items()
        if not _is_below(permanent, plan.copies)
    }
    plan.deletions = [path for path in plan.deletions if not _is_below(path, plan.deletions)]
    return plan
