"""In-memory log collector for step output."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from ..masking import SecretRegistry, default_registry
from .events import LogMessage


class LogCollector(logging.Handler):
    """
    Logging handler that keeps every record of a step run in memory.

    Records are captured in arrival order as LogMessage values so the full
    log can be shipped with the step telemetry if the step fails. Registered
    secrets are masked in the rendered text (formatted exception included)
    and in string values of the ``data`` extra.

    Usage:
        collector = LogCollector()
        collector.attach()
        ...
        delivery.send(telemetry, collector)
    """

    def __init__(self, registry: SecretRegistry | None = None, level: int = logging.NOTSET):
        super().__init__(level=level)
        self.registry = default_registry if registry is None else registry
        self._messages: list[LogMessage] = []

    def _mask_data(self, data: dict) -> dict:
        return {
            key: self.registry.mask(value) if isinstance(value, str) else value
            for key, value in data.items()
        }

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record) if self.formatter else record.getMessage()
            data = getattr(record, "data", None)
            self._messages.append(LogMessage(
                message=self.registry.mask(message),
                level=record.levelname.lower(),
                time=datetime.fromtimestamp(record.created, tz=timezone.utc),
                data=self._mask_data(data) if isinstance(data, dict) else None,
            ))
        except Exception:
            self.handleError(record)

    def attach(self, logger: logging.Logger | None = None) -> None:
        """Start collecting records of a logger (root by default)."""
        (logger or logging.getLogger()).addHandler(self)

    def detach(self, logger: logging.Logger | None = None) -> None:
        """Stop collecting records of a logger (root by default)."""
        (logger or logging.getLogger()).removeHandler(self)

    def clear(self) -> None:
        self._messages.clear()

    @property
    def messages(self) -> list[LogMessage]:
        """Captured messages in chronological order."""
        return list(self._messages)
