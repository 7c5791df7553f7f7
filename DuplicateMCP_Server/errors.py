"""Error types raised by the duplication core."""

from __future__ import annotations


VALIDATION_PREFIX = "duplicate failed: "


class DuplicateError(Exception):
    """Structured error raised by duplication helpers."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class DuplicateValidationError(DuplicateError):
    """Request rejected before any host call was issued."""

    def __init__(self, message: str, code: str = "invalid_request"):
        super().__init__(code, VALIDATION_PREFIX + message)


class DuplicateResolutionError(DuplicateError):
    """Host state was read but the request could not be resolved against it."""

    def __init__(self, message: str, code: str = "resolution_failed"):
        super().__init__(code, VALIDATION_PREFIX + message)


class DuplicateOperationError(DuplicateError):
    """A failure after the host was already mutated (cleanup has run)."""

    def __init__(self, message: str, code: str = "operation_failed"):
        super().__init__(code, message)


class HostCallError(Exception):
    """The Remote Script answered a command with an error status."""
