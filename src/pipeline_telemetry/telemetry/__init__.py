"""Telemetry delivery - step outcome and log shipping to a remote collector."""

from .events import TelemetryData, PipelineTelemetry, LogMessage, ErrorCategory
from .collector import LogCollector
from .delivery import TelemetryDelivery
from .errors import DeliveryError
from .step import step_run

__all__ = [
    "TelemetryData",
    "PipelineTelemetry",
    "LogMessage",
    "ErrorCategory",
    "LogCollector",
    "TelemetryDelivery",
    "DeliveryError",
    "step_run",
]
