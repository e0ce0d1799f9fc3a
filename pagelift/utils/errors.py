"""Custom exceptions for the transformation engine."""

from __future__ import annotations


class PageliftError(Exception):
    """Base class for engine errors that carry page/step context."""

    def __init__(
        self,
        message: str,
        *,
        page_id: str | None = None,
        step: str | None = None,
    ) -> None:
        super().__init__(message)
        self.page_id = page_id
        self.step = step


class MalformedMappingError(PageliftError):
    """Raised when a mapping document does not match the mapping schema."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message, step="load_mapping")
        self.source = source


class InvalidOptionsError(PageliftError):
    """Raised when transformation options are contradictory or incomplete."""


class UnsupportedSourceShapeError(PageliftError):
    """Raised when a source page cannot be decomposed into content units."""


class SourcePageNotFoundError(PageliftError):
    """Raised when the page to transform does not exist."""


class AlreadyExistsError(PageliftError):
    """Raised when the destination document exists and overwrite is off."""

    def __init__(
        self,
        message: str,
        *,
        address: str,
        page_id: str | None = None,
        step: str | None = None,
    ) -> None:
        super().__init__(message, page_id=page_id, step=step)
        self.address = address


class RemoteOperationFailure(PageliftError):
    """Raised by a repository once its own retry policy is exhausted."""

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        transient: bool = False,
        page_id: str | None = None,
        step: str | None = None,
    ) -> None:
        super().__init__(message, page_id=page_id, step=step)
        self.operation = operation
        self.transient = transient


class MetadataCopyFailure(PageliftError):
    """Raised when metadata could not be copied to the new document."""


class PermissionCopyFailure(PageliftError):
    """Raised when item permissions could not be copied to the new document."""


class TransformFunctionError(ValueError):
    """Raised by a property transform function on input it cannot convert."""


class UnmappableContentWarning(Warning):
    """A content unit that was dropped during mapping.

    Instances are collected in mapping results and logged; they are not raised.
    """

    def __init__(self, message: str, *, identifier: str, source_index: int) -> None:
        super().__init__(message)
        self.message = message
        self.identifier = identifier
        self.source_index = source_index
