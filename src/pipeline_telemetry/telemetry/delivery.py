"""Delivery of step telemetry and logs to the remote collector."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Sequence

import httpx

from ..config import DeliveryConfig
from ..masking import SecretRegistry, default_registry
from .ambient import (
    BRANCH,
    COMMIT_HASH,
    GIT_OWNER,
    GIT_REPOSITORY,
    AmbientContextProvider,
    PipelineEnvironment,
)
from .batcher import batch_count, iter_batches
from .collector import LogCollector
from .errors import (
    ConfigurationError,
    DeliveryError,
    LogTransmissionError,
    RemoteRejectionError,
    TransportError,
)
from .events import (
    ERROR_CODE_SUCCESS,
    NOT_AVAILABLE,
    LogMessage,
    MonitoringData,
    PipelineTelemetry,
    TelemetryData,
)
from .payload import (
    Envelope,
    build_log_file_envelope,
    build_pipeline_envelope,
    build_step_envelope,
    serialize,
)
from .transport import HttpTransport


logger = logging.getLogger(__name__)

TOKEN_SCHEME = "Splunk"

# Bytes of a rejected response body kept for diagnostics
MAX_DIAGNOSTIC_BYTES = 1000


def normalize_token(token: str, scheme: str = TOKEN_SCHEME) -> str:
    """Prefix the token with the auth scheme unless it already has it."""
    prefix = f"{scheme} "
    if token.startswith(prefix):
        return token
    return prefix + token


def _check_destination(destination: str) -> None:
    """Raise ConfigurationError unless destination is an absolute http(s) URL."""
    try:
        url = httpx.URL(destination)
    except httpx.InvalidURL as e:
        raise ConfigurationError(f"invalid telemetry destination {destination!r}: {e}") from e
    if url.scheme not in ("http", "https") or not url.host:
        raise ConfigurationError(f"invalid telemetry destination: {destination!r}")


def _status_line(response: httpx.Response) -> str:
    return f"{response.status_code} {response.reason_phrase}".strip()


@dataclass
class TelemetryDelivery:
    """
    Sends step telemetry, and on failure the step log, to the collector.

    Construct with a DeliveryConfig and call initialize() once before any
    send. With no destination configured the delivery is inert and every
    send is a no-op.

    Usage:
        delivery = TelemetryDelivery(DeliveryConfig(
            destination="https://splunk:8088/services/collector",
            token="abc",
            index="pipeline",
            correlation_id="run-42",
            send_logs=True,
        ))
        delivery.initialize()
        delivery.send(telemetry, collector)
    """
    config: DeliveryConfig

    # Source of commit/branch/owner/repository
    ambient: AmbientContextProvider | None = None

    # Where the token gets registered for masking
    secrets: SecretRegistry = field(default_factory=lambda: default_registry)

    # Optional httpx transport handed to the HttpTransport
    http_transport: httpx.BaseTransport | None = None

    _transport: HttpTransport | None = field(default=None, init=False, repr=False)
    _initialized: bool = field(default=False, init=False)

    @classmethod
    def create(
        cls,
        correlation_id: str,
        destination: str,
        token: str,
        index: str = "",
        send_logs: bool = False,
        **kwargs,
    ) -> TelemetryDelivery:
        """Build and initialize a delivery in one call."""
        delivery = cls(
            config=DeliveryConfig(
                destination=destination,
                token=token,
                index=index,
                correlation_id=correlation_id,
                send_logs=send_logs,
            ),
            **kwargs,
        )
        delivery.initialize()
        return delivery

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """
        Validate the configuration and set up the transport.

        Raises ConfigurationError for an unusable destination, token or
        batch size. Calling it again is a no-op.
        """
        if self._initialized:
            return

        if not self.enabled:
            logger.debug("No telemetry destination configured, delivery disabled")
            self._initialized = True
            return

        logger.debug(f"Initializing telemetry delivery with destination {self.config.destination}")

        _check_destination(self.config.destination)
        if not self.config.token:
            raise ConfigurationError("telemetry token is required when a destination is set")
        if self.config.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be positive, got {self.config.batch_size}")

        token = normalize_token(self.config.token)
        self.secrets.register(self.config.token)
        self.secrets.register(token)
        self.config = replace(self.config, token=token)

        if self.ambient is None:
            self.ambient = PipelineEnvironment(root=self.config.environment_dir)

        self._transport = HttpTransport(
            token=token,
            max_request_duration=self.config.max_request_duration,
            max_retries=self.config.max_retries,
            retry_backoff_seconds=self.config.retry_backoff_seconds,
            skip_tls_verification=self.config.skip_tls_verification,
            transport=self.http_transport,
        )
        self._initialized = True

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()

    def _check_ready(self) -> bool:
        """True if requests should go out, False if delivery is disabled."""
        if not self._initialized:
            raise ConfigurationError("telemetry delivery used before initialize()")
        return self._transport is not None

    # -------------------------------------------------------------------------
    # Telemetry normalization
    # -------------------------------------------------------------------------

    def _ambient_value(self, key: str) -> str:
        if self.ambient is None:
            return NOT_AVAILABLE
        try:
            return self.ambient.get(key)
        except Exception as e:
            logger.warning(f"Could not read ambient context {key}: {e}")
            return NOT_AVAILABLE

    def prepare_telemetry(self, telemetry: TelemetryData) -> MonitoringData:
        """Flatten step telemetry and enrich it with the git context."""
        return MonitoringData(
            pipeline_url_hash=telemetry.pipeline_url_hash,
            build_url_hash=telemetry.build_url_hash,
            stage_name=telemetry.stage_name,
            step_name=telemetry.step_name,
            exit_code=telemetry.error_code,
            duration=telemetry.duration,
            error_code=telemetry.error_code,
            error_category=telemetry.error_category,
            correlation_id=self.config.correlation_id,
            commit_hash=self._ambient_value(COMMIT_HASH),
            branch=self._ambient_value(BRANCH),
            git_owner=self._ambient_value(GIT_OWNER),
            git_repository=self._ambient_value(GIT_REPOSITORY),
        )

    # -------------------------------------------------------------------------
    # Sending
    # -------------------------------------------------------------------------

    def should_send_logs(self, telemetry: TelemetryData) -> bool:
        """Logs go out only for a failed step with send_logs enabled."""
        return telemetry.error_code != ERROR_CODE_SUCCESS and self.config.send_logs

    def send(
        self,
        telemetry: TelemetryData,
        log_collector: LogCollector | Sequence[LogMessage] | None = None,
    ) -> None:
        """
        Send step telemetry and, for a failed step with send_logs, its log.

        Every log batch carries the same telemetry block; an empty log
        still results in one request. Raises LogTransmissionError on the
        first failing request; batches sent before it stay sent.
        """
        if not self._check_ready():
            logger.debug("Telemetry delivery disabled, skipping send")
            return

        prepared = self.prepare_telemetry(telemetry)

        if not self.should_send_logs(telemetry):
            try:
                self._post(build_step_envelope(self.config, prepared))
            except DeliveryError as e:
                raise LogTransmissionError(f"error while sending logs: {e}") from e
            return

        if isinstance(log_collector, LogCollector):
            messages: Sequence[LogMessage] = log_collector.messages
        else:
            messages = list(log_collector or [])

        total = batch_count(len(messages), self.config.batch_size, always_one=True)
        logger.debug(f"Sending {len(messages)} messages in {total} batches")

        for i, batch in enumerate(iter_batches(messages, self.config.batch_size, always_one=True)):
            try:
                self._post(build_step_envelope(self.config, prepared, batch))
            except DeliveryError as e:
                raise LogTransmissionError(
                    f"error while sending logs (batch {i + 1}/{total}): {e}",
                    batch_index=i,
                    batch_count=total,
                ) from e

    def send_pipeline_status(self, telemetry: PipelineTelemetry, log_file: bytes) -> None:
        """
        Send pipeline telemetry and, with send_logs, the raw pipeline log.

        The telemetry event goes out first on its own; the log lines follow
        in batches, each embedding the telemetry again.
        """
        if not self._check_ready():
            logger.debug("Telemetry delivery disabled, skipping pipeline status")
            return

        lines = log_file.decode("utf-8", errors="replace").split("\n")
        if lines and lines[-1] == "":
            lines.pop()

        logger.debug(f"Sending pipeline telemetry ({len(lines)} log lines)")
        try:
            self._post(build_pipeline_envelope(self.config, telemetry))
        except DeliveryError as e:
            raise LogTransmissionError(f"error while sending pipeline telemetry: {e}") from e

        if not self.config.send_logs:
            return

        total = batch_count(len(lines), self.config.batch_size)
        for i, batch in enumerate(iter_batches(lines, self.config.batch_size)):
            try:
                self._post(build_log_file_envelope(self.config, telemetry, batch))
            except DeliveryError as e:
                raise LogTransmissionError(
                    f"error while sending logs (batch {i + 1}/{total}): {e}",
                    batch_index=i,
                    batch_count=total,
                ) from e

    def _post(self, envelope: Envelope) -> None:
        """
        POST one envelope; return on 200, raise otherwise.

        The response is always closed before returning.
        """
        payload = serialize(envelope)
        response = self._transport.post(self.config.destination, payload)
        try:
            if response.status_code == 200:
                return

            status = _status_line(response)
            try:
                body = self._transport.read_prefix(response, MAX_DIAGNOSTIC_BYTES).decode(
                    "utf-8", errors="replace"
                )
            except (httpx.HTTPError, TransportError) as e:
                logger.info(f"{status}: logging failed - response body unreadable: {e}")
                raise RemoteRejectionError(
                    response.status_code,
                    status,
                    "",
                    detail=f"error reading response body: {e}",
                ) from e

            logger.info(f"{status}: logging failed - {body}")
            raise RemoteRejectionError(response.status_code, status, body)
        finally:
            response.close()
