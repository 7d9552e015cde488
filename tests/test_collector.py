"""Tests for the in-memory log collector."""

import logging

import pytest

from pipeline_telemetry.masking import MASK, SecretRegistry
from pipeline_telemetry.telemetry.collector import LogCollector


@pytest.fixture
def logger():
    logger = logging.getLogger("test.collector")
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger


class TestLogCollector:
    def test_captures_in_order(self, logger):
        collector = LogCollector(registry=SecretRegistry())
        collector.attach(logger)
        try:
            logger.info("first")
            logger.warning("second %s", 2)
            logger.error("third")
        finally:
            collector.detach(logger)

        assert [m.message for m in collector.messages] == ["first", "second 2", "third"]
        assert [m.level for m in collector.messages] == ["info", "warning", "error"]
        assert len(collector.messages) == 3

    def test_detach_stops_capture(self, logger):
        collector = LogCollector(registry=SecretRegistry())
        collector.attach(logger)
        logger.info("kept")
        collector.detach(logger)
        logger.info("ignored")
        assert [m.message for m in collector.messages] == ["kept"]

    def test_masks_secrets(self, logger):
        registry = SecretRegistry()
        registry.register("hunter2")
        collector = LogCollector(registry=registry)
        collector.attach(logger)
        try:
            logger.info("password is %s", "hunter2")
        finally:
            collector.detach(logger)

        assert collector.messages[0].message == f"password is {MASK}"

    def test_structured_data(self, logger):
        collector = LogCollector(registry=SecretRegistry())
        collector.attach(logger)
        try:
            logger.info("deployed", extra={"data": {"namespace": "prod"}})
        finally:
            collector.detach(logger)

        assert collector.messages[0].data == {"namespace": "prod"}

    def test_clear(self, logger):
        collector = LogCollector(registry=SecretRegistry())
        collector.attach(logger)
        logger.info("x")
        collector.detach(logger)
        collector.clear()
        assert collector.messages == []

    def test_masks_formatted_exception(self, logger):
        registry = SecretRegistry()
        registry.register("hunter2")
        collector = LogCollector(registry=registry)
        collector.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        collector.attach(logger)
        try:
            try:
                raise RuntimeError("login with hunter2 rejected")
            except RuntimeError:
                logger.exception("login failed")
        finally:
            collector.detach(logger)

        message = collector.messages[0].message
        assert message.startswith("ERROR login failed")
        assert f"login with {MASK} rejected" in message
        assert "hunter2" not in message

    def test_masks_structured_data(self, logger):
        registry = SecretRegistry()
        registry.register("hunter2")
        collector = LogCollector(registry=registry)
        collector.attach(logger)
        try:
            logger.info("connecting", extra={"data": {"password": "hunter2", "retries": 3}})
        finally:
            collector.detach(logger)

        assert collector.messages[0].data == {"password": MASK, "retries": 3}
