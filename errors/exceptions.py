"""Domain-specific exceptions for the curio feed service.

These let the gateway, feed and API layers tell failure modes apart and
degrade each one to "this page/item didn't load" instead of crashing.
"""

from __future__ import annotations


class CurioFeedError(Exception):
    """Base class for all curio feed errors."""


class BackendFunctionError(CurioFeedError):
    """A named backend function failed or returned an error object.

    ``message`` is the backend's own ``error`` / ``message`` text when it
    supplied one, so it can be shown to the user as-is.
    """

    def __init__(self, function: str, message: str, status_code: int | None = None) -> None:
        self.function = function
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class UpstreamGenerationError(CurioFeedError):
    """The generation proxy returned an error or an unusable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ContentValidationError(CurioFeedError):
    """A block submitted for saving is missing required properties."""

    def __init__(self, message: str = "Missing required block properties", missing: list[str] | None = None) -> None:
        self.missing = missing or []
        super().__init__(message)
