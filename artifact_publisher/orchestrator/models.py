"""Orchestrator data models."""
from dataclasses import dataclass

from ..models import PendingUpload


@dataclass(frozen=True)
class ScheduledUpload:
    """An upload as it will be applied: effective folder and overwrite flag.

    ``upload`` is the request as the caller made it.
    """
    upload: PendingUpload
    folder: str
    overwrite: bool

    @property
    def file_name(self) -> str:
        return self.upload.file_name

    @property
    def file_path(self) -> str:
        return f"{self.folder}/{self.file_name}" if self.folder else self.file_name

    @property
    def permanent_folder(self) -> str:
        return self.upload.destination_folder


@dataclass(frozen=True)
class AliasCopy:
    """Server-side copy of a staging folder onto a permanent folder."""
    permanent: str
    staging: str
