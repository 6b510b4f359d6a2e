"""Domain errors raised by the link store and services."""


class LinkTrackError(Exception):
    """Base class for all link tracker errors."""


class ValidationError(LinkTrackError):
    """Bad input, e.g. an empty destination URL or a malformed custom code."""


class CodeConflict(LinkTrackError):
    """Short code already in use, or no free random code after retrying."""


class NotFound(LinkTrackError):
    """Unknown link id or short code."""


class StorageError(LinkTrackError):
    """The underlying persistence layer failed."""
