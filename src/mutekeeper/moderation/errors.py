"""Exceptions raised by the sanction store and the directory adapter."""


class SanctionError(Exception):
    """Base class for every error raised by the sanction engine."""

    def __init__(self, operation: str, message: str = "") -> None:
        self.operation = operation
        super().__init__(f"{operation} failed: {message}" if message else f"{operation} failed")


class StoreError(SanctionError):
    """The sanction store was unavailable or a storage operation failed."""


class DuplicateSanctionError(StoreError):
    """An active sanction already exists for the subject."""


class DirectoryError(SanctionError):
    """A role add/remove, ban or unban call against Discord failed."""
