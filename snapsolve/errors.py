"""Exception types raised across the processing pipeline."""

from __future__ import annotations


class SnapsolveError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(SnapsolveError, RuntimeError):
    """A required setting (usually the API credential) is missing."""


class InitializationTimeout(SnapsolveError, TimeoutError):
    """The consumer layer did not report readiness in time."""


class RequestCanceled(SnapsolveError):
    """An in-flight completion request observed its cancellation token."""

    def __init__(self, context: str) -> None:
        super().__init__(f"Request '{context}' was canceled")
        self.context = context


class MissingProblemInfo(SnapsolveError):
    """A stage needed an extracted problem but none is stored in the session."""

    def __init__(self) -> None:
        super().__init__("No problem info available")
