"""
Exception types raised by News Clipper.

Fatal-for-tag failures derive from HandlerResolutionError. Recoverable
problems are not raised; they are recorded on the RunContext instead.
"""


class NewsClipperError(Exception):
    """Base class for all News Clipper errors."""


class ConfigError(NewsClipperError):
    """The configuration is missing or invalid."""


class HandlerResolutionError(NewsClipperError):
    """A handler could not be resolved to a usable instance."""

    def __init__(self, handler_name: str, message: str = ""):
        self.handler_name = handler_name
        self.message = message or f"Handler {handler_name} could not be resolved"
        super().__init__(self.message)


class HandlerGateRejectedError(HandlerResolutionError):
    """The gate refused the use of this handler."""


class HandlerIncompatibleError(HandlerResolutionError):
    """The installed handler was written for another protocol version."""

    def __init__(self, handler_name: str, handler_version: str, required_version: str):
        self.handler_version = handler_version
        self.required_version = required_version
        super().__init__(
            handler_name,
            f"Handler {handler_name} is incompatible with this version of News Clipper. "
            f"(The handler uses protocol version {handler_version}, but this version "
            f"of News Clipper uses handlers from version {required_version}.)",
        )


class HandlerLoadError(HandlerResolutionError):
    """The handler was found on disk but failed to load."""

    def __init__(self, handler_name: str, path: str, diagnostic: str):
        self.path = path
        self.diagnostic = diagnostic
        super().__init__(
            handler_name,
            f"Handler {handler_name} was found in {path} but could not be loaded "
            f"because of the following error:\n{diagnostic}",
        )


class HandlerNotFoundError(HandlerResolutionError):
    """The handler is not installed and could not be obtained."""


class RegistryError(NewsClipperError):
    """The handler registry returned something unusable."""


class RegistryUnavailableError(RegistryError):
    """The handler registry could not be reached."""


class CacheCorruptionError(NewsClipperError):
    """The cache registry lists an entry whose data file is missing."""


class DataKindMismatchError(NewsClipperError):
    """Data passed between pipeline stages is of an unexpected kind."""


class ExecutionTimeoutError(NewsClipperError):
    """The total execution deadline expired."""
