"""
Custom exceptions for webmon.

Only ``ConfigurationError`` is ever raised to the host application; the rest
are used inside the pipeline to classify failures.
"""


class WebmonError(Exception):
    """Base error for webmon."""

    pass


class ConfigurationError(WebmonError, ValueError):
    """Invalid or missing monitor configuration."""

    pass


class StorageUnavailable(WebmonError):
    """Persistent storage is disabled, full or otherwise unusable."""

    pass


class DeliveryError(WebmonError):
    """A batch could not be delivered by a transport strategy."""

    pass


class TransportUnavailable(DeliveryError):
    """The requested delivery primitive does not exist on this host."""

    pass


class DeliveryTimeout(DeliveryError):
    """A network attempt exceeded its time budget and was aborted."""

    pass


class CollectorRejected(DeliveryError):
    """Collector answered with a non-success status."""

    def __init__(self, status_code: int, body: str = ""):
        super().__init__(f"collector returned HTTP {status_code}")
        self.status_code = status_code
        self.body = body
