"""Custom exception hierarchy for the curio feed service."""

from errors.exceptions import (
    BackendFunctionError,
    ContentValidationError,
    CurioFeedError,
    UpstreamGenerationError,
)

__all__ = [
    "BackendFunctionError",
    "ContentValidationError",
    "CurioFeedError",
    "UpstreamGenerationError",
]
