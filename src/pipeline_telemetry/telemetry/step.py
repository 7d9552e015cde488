"""Step run wrapper that always flushes telemetry on exit."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Sequence

from .collector import LogCollector
from .delivery import TelemetryDelivery
from .errors import DeliveryError
from .events import (
    ERROR_CODE_FAILURE,
    ERROR_CODE_SUCCESS,
    ErrorCategory,
    LogMessage,
    TelemetryData,
)


logger = logging.getLogger(__name__)


@dataclass
class StepOutcome:
    """Mutable outcome of a running step, frozen into TelemetryData on exit."""
    step_name: str
    stage_name: str = ""
    pipeline_url_hash: str = ""
    build_url_hash: str = ""
    error_code: str = ERROR_CODE_FAILURE
    error_category: str = ErrorCategory.UNDEFINED.value
    duration: str = ""

    def to_telemetry(self) -> TelemetryData:
        return TelemetryData(
            step_name=self.step_name,
            pipeline_url_hash=self.pipeline_url_hash,
            build_url_hash=self.build_url_hash,
            stage_name=self.stage_name,
            duration=self.duration,
            error_code=self.error_code,
            error_category=self.error_category,
        )


def _category_of(exc: BaseException) -> str | None:
    category = getattr(exc, "error_category", None)
    if isinstance(category, ErrorCategory):
        return category.value
    if isinstance(category, str) and category:
        return category
    return None


def finalize(
    delivery: TelemetryDelivery,
    telemetry: TelemetryData,
    collector: LogCollector | Sequence[LogMessage] | None = None,
) -> bool:
    """
    Send the step telemetry, logging instead of raising on failure.

    Returns True if the telemetry was delivered (or delivery is disabled).
    """
    try:
        delivery.send(telemetry, collector)
        return True
    except DeliveryError as e:
        logger.error(f"Failed to deliver telemetry for step {telemetry.step_name}: {e}")
        return False


@contextmanager
def step_run(
    step_name: str,
    delivery: TelemetryDelivery,
    collector: LogCollector | Sequence[LogMessage] | None = None,
    stage_name: str = "",
    pipeline_url_hash: str = "",
    build_url_hash: str = "",
) -> Iterator[StepOutcome]:
    """
    Run a step and deliver its telemetry exactly once, however it ends.

    The step counts as failed unless the block completes (or exits with
    status 0). Exceptions from the block propagate after delivery;
    delivery errors are only logged.

    Usage:
        with step_run("cloudFoundryDeleteSpace", delivery, collector) as outcome:
            delete_space(config)
    """
    outcome = StepOutcome(
        step_name=step_name,
        stage_name=stage_name,
        pipeline_url_hash=pipeline_url_hash,
        build_url_hash=build_url_hash,
    )
    start = time.perf_counter()

    try:
        yield outcome
        outcome.error_code = ERROR_CODE_SUCCESS
    except SystemExit as e:
        if e.code in (0, None):
            outcome.error_code = ERROR_CODE_SUCCESS
        raise
    except Exception as e:
        outcome.error_category = _category_of(e) or outcome.error_category
        raise
    finally:
        outcome.duration = str(int((time.perf_counter() - start) * 1000))
        finalize(delivery, outcome.to_telemetry(), collector)
