"""Telemetry event types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


# Error codes reported by a step run
ERROR_CODE_SUCCESS = "0"
ERROR_CODE_FAILURE = "1"

# Substituted for ambient context that could not be read
NOT_AVAILABLE = "N/A"


class ErrorCategory(str, Enum):
    """Category of a step failure."""
    UNDEFINED = "undefined"
    BUILD = "build"
    COMPLIANCE = "compliance"
    CONFIGURATION = "configuration"
    CUSTOM = "custom"
    INFRASTRUCTURE = "infrastructure"
    SERVICE = "service"
    TEST = "test"


def _compact(data: dict[str, Any]) -> dict[str, Any]:
    """Drop empty values so they are not sent over the wire."""
    return {k: v for k, v in data.items() if v not in (None, "", [], {})}


@dataclass(frozen=True, slots=True)
class TelemetryData:
    """
    Telemetry collected for a single step execution.

    Produced once when the step finishes and handed to the delivery,
    which flattens it into MonitoringData.
    """
    step_name: str

    # Pipeline identification (hashed URLs, never the raw URL)
    pipeline_url_hash: str = ""
    build_url_hash: str = ""
    stage_name: str = ""

    # Outcome
    duration: str = ""  # milliseconds
    error_code: str = ERROR_CODE_FAILURE
    error_category: str = ErrorCategory.UNDEFINED.value

    @property
    def succeeded(self) -> bool:
        return self.error_code == ERROR_CODE_SUCCESS


@dataclass(frozen=True, slots=True)
class MonitoringData:
    """Flat telemetry record in the shape the collector indexes."""
    pipeline_url_hash: str = ""
    build_url_hash: str = ""
    stage_name: str = ""
    step_name: str = ""
    exit_code: str = ""
    duration: str = ""
    error_code: str = ""
    error_category: str = ""
    correlation_id: str = ""

    # Git context of the pipeline run
    commit_hash: str = ""
    branch: str = ""
    git_owner: str = ""
    git_repository: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to wire format, omitting empty fields."""
        return _compact({
            "PipelineUrlHash": self.pipeline_url_hash,
            "BuildUrlHash": self.build_url_hash,
            "StageName": self.stage_name,
            "StepName": self.step_name,
            "ExitCode": self.exit_code,
            "Duration": self.duration,
            "ErrorCode": self.error_code,
            "ErrorCategory": self.error_category,
            "CorrelationID": self.correlation_id,
            "CommitHash": self.commit_hash,
            "Branch": self.branch,
            "GitOwner": self.git_owner,
            "GitRepository": self.git_repository,
        })


@dataclass(frozen=True, slots=True)
class PipelineTelemetry:
    """
    Summary of a whole pipeline run (as opposed to a single step).

    Sent as-is as the event body of the pipeline status.
    """
    correlation_id: str = ""
    pipeline_url_hash: str = ""
    build_url_hash: str = ""
    pipeline_start_time: datetime | None = None
    duration: float | None = None  # milliseconds
    result: str = ""
    error_code: str = ""
    error_category: str = ""

    # Additional scalar fields supplied by the orchestrator
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PipelineTelemetry:
        """Create from a dictionary (e.g. a JSON file written by the orchestrator)."""
        known = {
            "CorrelationID": "correlation_id",
            "PipelineUrlHash": "pipeline_url_hash",
            "BuildUrlHash": "build_url_hash",
            "PipelineStartTime": "pipeline_start_time",
            "Duration": "duration",
            "Result": "result",
            "ErrorCode": "error_code",
            "ErrorCategory": "error_category",
        }
        kwargs: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            name = known.get(key)
            if name is None:
                extra[key] = value
            else:
                kwargs[name] = value

        start = kwargs.get("pipeline_start_time")
        if isinstance(start, str) and start:
            kwargs["pipeline_start_time"] = datetime.fromisoformat(start.replace("Z", "+00:00"))
        elif not start:
            kwargs.pop("pipeline_start_time", None)

        if kwargs.get("duration") is not None:
            kwargs["duration"] = float(kwargs["duration"])

        return cls(extra=extra, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Convert to wire format, omitting empty fields."""
        data = _compact({
            "CorrelationID": self.correlation_id,
            "PipelineUrlHash": self.pipeline_url_hash,
            "BuildUrlHash": self.build_url_hash,
            "PipelineStartTime": (
                self.pipeline_start_time.isoformat() if self.pipeline_start_time else None
            ),
            "Duration": self.duration,
            "Result": self.result,
            "ErrorCode": self.error_code,
            "ErrorCategory": self.error_category,
        })
        data.update(self.extra)
        return data


@dataclass(frozen=True, slots=True)
class LogMessage:
    """A single captured log line."""
    message: str
    level: str = "info"
    time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # Structured fields attached to the log call
    data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        d: dict[str, Any] = {
            "time": self.time.isoformat(),
            "level": self.level,
            "message": self.message,
        }
        if self.data:
            d["data"] = self.data
        return d
