"""Envelopes in the shape expected by the collector."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Sequence

from ..config import DeliveryConfig
from .errors import SerializationError
from .events import LogMessage, MonitoringData, PipelineTelemetry


# Collector parsing configurations
SOURCETYPE_JSON = "_json"
SOURCETYPE_TEXT = "txt"


@dataclass(frozen=True)
class Envelope:
    """
    Outer wrapper of one event sent to the collector.

    Only host is mandatory; source, sourcetype and index are omitted
    when empty (the collector then falls back to the token defaults).
    """
    host: str
    event: dict[str, Any] = field(default_factory=dict)
    source: str = ""
    sourcetype: str = ""
    index: str = ""

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"host": self.host}
        if self.source:
            d["source"] = self.source
        if self.sourcetype:
            d["sourcetype"] = self.sourcetype
        if self.index:
            d["index"] = self.index
        d["event"] = self.event
        return d


def _event(messages: list[Any], telemetry: dict[str, Any]) -> dict[str, Any]:
    event: dict[str, Any] = {}
    if messages:
        event["messages"] = messages
    event["telemetry"] = telemetry
    return event


def build_step_envelope(
    config: DeliveryConfig,
    telemetry: MonitoringData,
    messages: Sequence[LogMessage] = (),
) -> Envelope:
    """Step telemetry plus structured log messages."""
    return Envelope(
        host=config.correlation_id,
        source=config.source,
        sourcetype=SOURCETYPE_JSON,
        index=config.index,
        event=_event([m.to_dict() for m in messages], telemetry.to_dict()),
    )


def build_pipeline_envelope(config: DeliveryConfig, telemetry: PipelineTelemetry) -> Envelope:
    """Pipeline telemetry as the event itself."""
    return Envelope(
        host=config.correlation_id,
        source=config.source,
        sourcetype=SOURCETYPE_JSON,
        index=config.index,
        event=telemetry.to_dict(),
    )


def build_log_file_envelope(
    config: DeliveryConfig,
    telemetry: PipelineTelemetry,
    lines: Sequence[str],
) -> Envelope:
    """Raw pipeline log lines together with the pipeline telemetry."""
    return Envelope(
        host=config.correlation_id,
        source=config.source,
        sourcetype=SOURCETYPE_TEXT,
        index=config.index,
        event=_event(list(lines), telemetry.to_dict()),
    )


def serialize(envelope: Envelope) -> bytes:
    """Encode an envelope as a JSON request body."""
    try:
        return json.dumps(envelope.to_dict()).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(f"error while marshalling message details: {e}") from e
