"""Exception hierarchy raised by the discovery layer."""

from typing import Optional


class DiscoveryError(Exception):
    """Base class for every discovery failure."""


class InvalidPathError(DiscoveryError):
    """The input path does not exist or cannot be read."""


class NoFilesFoundError(DiscoveryError):
    """A directory holds no file the extractor could read."""


class UnsupportedFormatError(DiscoveryError):
    """The input exists but is not in a format the extractor handles."""


class ParseFailureError(DiscoveryError):
    """
    A unit (file or live scan kind) could not be decoded or listed.

    Args:
        unit: File path or scan kind that failed
        message: What went wrong
        line: Line number inside the file, when the decoder reports one
    """

    def __init__(self, unit: str, message: str, line: Optional[int] = None):
        self.unit = unit
        self.message = message
        self.line = line
        location = f"{unit}:{line}" if line else unit
        super().__init__(f"{location}: {message}")


class NoCredentialsError(DiscoveryError):
    """No credential source could be resolved for the live API."""


class InvalidCredentialsError(DiscoveryError):
    """A credential source resolved but was rejected."""


class DiscoveryCancelledError(DiscoveryError):
    """The caller cancelled the operation or its deadline passed."""


class NoParserFoundError(DiscoveryError):
    """No registered extractor claims the input."""
