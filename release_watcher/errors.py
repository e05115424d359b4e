"""
Exception hierarchy for Release Watcher.

Each error type maps to one failure class of a polling cycle and
determines how far the failure is allowed to propagate.
"""


class WatcherError(Exception):
    """Base class for all Release Watcher errors."""

    pass


class ConfigurationError(WatcherError):
    """Raised when the process configuration is missing or invalid."""

    pass


class FetchError(WatcherError):
    """
    Raised when a source could not be retrieved.

    Parameters
    ----------
    url : str
        The URL that failed.
    message : str
        Description of the failure.
    status : int | None
        HTTP status code, if a response was received.
    """

    def __init__(self, url: str, message: str, status: int | None = None):
        super().__init__(f"{url}: {message}")
        self.url = url
        self.status = status


class ParseError(WatcherError):
    """Raised when fetched content does not have the expected structure."""

    pass


class PatternNotFoundError(ParseError):
    """Raised when the version pattern is absent from a scraped page."""

    pass


class PersistError(WatcherError):
    """Raised when the watermark state could not be written."""

    pass


class DeliveryError(WatcherError):
    """
    Raised when a message could not be delivered to the webhook.

    Parameters
    ----------
    message : str
        Description of the failure.
    status : int | None
        HTTP status code returned by the webhook, if any.
    """

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status
