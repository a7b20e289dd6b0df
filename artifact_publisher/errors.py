"""
Exceptions raised by the publish engine.

Every error derives from PublishError so callers can catch the whole
family at the publish boundary. Errors coming from a third-party store
client (e.g. subvertpy.SubversionException) are not wrapped.
"""


class PublishError(Exception):
    """Base class for publish engine errors."""


class TransactionStateError(PublishError):
    """An operation was issued in the wrong transaction state."""


class NotInitializedError(TransactionStateError):
    """Abort was requested while no commit editor is open."""

    def __init__(self, message: str = "Commit not initialized"):
        super().__init__(message)


class AmbiguousRevisionPathError(PublishError):
    """The alias folder cannot be derived from a destination folder."""

    def __init__(self, folder: str, revision: str, occurrences: int):
        self.folder = folder
        self.revision = revision
        self.occurrences = occurrences
        if occurrences == 0:
            message = f"Destination folder '{folder}' does not contain revision '{revision}'"
        else:
            message = (
                f"Destination folder '{folder}' contains revision '{revision}' "
                f"more than once ({occurrences} times)"
            )
        super().__init__(message)


class NotAFileError(PublishError):
    """The requested remote path is missing or is not a file."""

    def __init__(self, path: str, reason: str = "is not a file"):
        self.path = path
        super().__init__(f"'{path}' {reason}")


class IllegalConfigurationError(PublishError, ValueError):
    """Configuration values that cannot work together."""


class StoreError(PublishError):
    """Failure reported by a bundled store backend."""


class BusyError(StoreError):
    """The connection already has an open commit editor."""


class PathExistsError(StoreError):
    """Tried to add a path that already exists."""


class PathNotFoundError(StoreError):
    """Tried to open or delete a path that does not exist."""


class ChecksumMismatchError(StoreError):
    """File content does not match the checksum given on close."""
