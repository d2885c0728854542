"""Error kinds reported by :func:`crashwrap.wrap`.

These are returned in ``WrapResult.error`` rather than raised. A confirmed
crash capture is not an error.
"""

from __future__ import annotations


class WrapError(Exception):
    """Base class for everything ``wrap`` can report."""


class ConfigError(WrapError):
    """The configuration is unusable (missing handler, empty signature, ...)."""


class SpawnError(WrapError):
    """The monitored child could not be created."""


class StreamError(WrapError):
    """I/O failed on a monitored stream."""

    def __init__(self, stream: str, cause: BaseException) -> None:
        super().__init__(f"{stream}: {cause!r}")
        self.stream = stream
        self.cause = cause


class WaitError(WrapError):
    """The child's final status could not be obtained."""
