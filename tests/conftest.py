"""Shared test fixtures for telemetry delivery tests.

The collector is faked with httpx.MockTransport: every request is
recorded and answered from a list of prepared responses.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone

import httpx
import pytest

from pipeline_telemetry.config import DeliveryConfig
from pipeline_telemetry.masking import SecretRegistry
from pipeline_telemetry.telemetry.ambient import (
    BRANCH,
    COMMIT_HASH,
    GIT_OWNER,
    GIT_REPOSITORY,
    StaticAmbientContext,
)
from pipeline_telemetry.telemetry.delivery import TelemetryDelivery
from pipeline_telemetry.telemetry.events import LogMessage, TelemetryData


DESTINATION = "https://splunk.example.com:8088/services/collector"


@dataclass
class FakeCollector:
    """Records requests and replies with queued responses (200 when empty)."""
    responses: list = field(default_factory=list)
    requests: list = field(default_factory=list)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.responses:
            response = self.responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response
        return httpx.Response(200, json={"text": "Success", "code": 0})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    @property
    def bodies(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def fake_collector() -> FakeCollector:
    return FakeCollector()


@pytest.fixture
def ambient() -> StaticAmbientContext:
    return StaticAmbientContext({
        COMMIT_HASH: "3f2a9c1",
        BRANCH: "main",
        GIT_OWNER: "pipeline-org",
        GIT_REPOSITORY: "deploy-tools",
    })


@pytest.fixture
def registry() -> SecretRegistry:
    return SecretRegistry()


@pytest.fixture
def make_delivery(fake_collector, ambient, registry):
    """Factory for initialized deliveries talking to the fake collector."""
    def factory(**overrides) -> TelemetryDelivery:
        settings = {
            "destination": DESTINATION,
            "token": "abc-123",
            "index": "pipeline",
            "correlation_id": "run-42",
            "send_logs": True,
            "retry_backoff_seconds": 0.0,
        }
        settings.update(overrides)
        delivery = TelemetryDelivery(
            DeliveryConfig(**settings),
            ambient=ambient,
            secrets=registry,
            http_transport=fake_collector.transport,
        )
        delivery.initialize()
        return delivery

    return factory


@pytest.fixture
def failed_step() -> TelemetryData:
    return TelemetryData(
        step_name="cloudFoundryDeleteSpace",
        pipeline_url_hash="p-hash",
        build_url_hash="b-hash",
        stage_name="Release",
        duration="1234",
        error_code="1",
        error_category="infrastructure",
    )


@pytest.fixture
def successful_step() -> TelemetryData:
    return TelemetryData(
        step_name="gitopsUpdateDeployment",
        duration="98",
        error_code="0",
    )


class TrackingStream(httpx.SyncByteStream):
    """Response body that remembers whether it was closed."""

    def __init__(self, chunks: list[bytes], fail: bool = False):
        self.chunks = chunks
        self.fail = fail
        self.closed = False

    def __iter__(self):
        if self.fail:
            raise httpx.ReadError("connection reset by peer")
        yield from self.chunks

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def make_messages():
    """Factory for chronological log messages numbered from 0."""
    base = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

    def factory(count: int) -> list[LogMessage]:
        return [LogMessage(message=f"line {i}", level="info", time=base) for i in range(count)]

    return factory


@pytest.fixture
def tracking_stream():
    return TrackingStream
