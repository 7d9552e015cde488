"""Delivery errors."""

from __future__ import annotations


class DeliveryError(Exception):
    """Base exception for telemetry delivery errors."""
    pass


class ConfigurationError(DeliveryError):
    """Destination, token or batch settings are unusable."""
    pass


class SerializationError(DeliveryError):
    """Envelope could not be encoded as JSON."""
    pass


class TransportError(DeliveryError):
    """Request failed without a response (connect error, timeout)."""
    pass


class RequestTimeoutError(TransportError):
    """Request ran past its maximum duration."""

    def __init__(self, message: str, limit: float):
        super().__init__(message)
        self.limit = limit


class RemoteRejectionError(DeliveryError):
    """Collector answered with a non-200 status."""

    def __init__(self, status_code: int, status: str, body: str, detail: str | None = None):
        self.status_code = status_code
        self.status = status
        self.body = body
        self.detail = detail
        message = f"{status}: logging failed - {body}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class LogTransmissionError(DeliveryError):
    """A request in a send sequence failed; later requests were skipped."""

    def __init__(self, message: str, batch_index: int = 0, batch_count: int = 1):
        super().__init__(message)
        self.batch_index = batch_index
        self.batch_count = batch_count
