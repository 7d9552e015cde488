"""Tests for the command line interface."""

import json

import httpx
import pytest
import respx

from pipeline_telemetry.cli import main
from pipeline_telemetry.masking import default_registry


URL = "https://splunk.example.com:8088/services/collector"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("DESTINATION", "TOKEN", "INDEX", "CORRELATION_ID", "SEND_LOGS", "BATCH_SIZE", "SOURCE"):
        monkeypatch.delenv(f"PIPELINE_TELEMETRY_{name}", raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "telemetry.yaml"
    path.write_text(
        "delivery:\n"
        f"  destination: {URL}\n"
        "  token: cli-token\n"
        "  index: pipeline\n"
        "  correlation_id: run-99\n"
        "  send_logs: true\n"
        f"  environment_dir: {tmp_path}\n"
    )
    return str(path)


@pytest.fixture
def telemetry_file(tmp_path):
    path = tmp_path / "pipeline.json"
    path.write_text(json.dumps({"CorrelationID": "run-99", "Result": "FAILURE", "Duration": 42}))
    return str(path)


@pytest.fixture
def log_file(tmp_path):
    path = tmp_path / "pipeline.log"
    path.write_text("[Pipeline] stage\n[Pipeline] error: deploy failed\n")
    return str(path)


class TestPipelineStatus:
    @respx.mock
    def test_sends_telemetry_and_log(self, config_file, telemetry_file, log_file):
        route = respx.post(URL).mock(return_value=httpx.Response(200))

        code = main([
            "--config", config_file,
            "pipeline-status", "--telemetry", telemetry_file, "--log-file", log_file,
        ])

        assert code == 0
        assert route.call_count == 2
        log_body = json.loads(route.calls[1].request.content)
        assert log_body["sourcetype"] == "txt"
        assert log_body["event"]["messages"] == ["[Pipeline] stage", "[Pipeline] error: deploy failed"]
        assert route.calls[0].request.headers["Authorization"] == "Splunk cli-token"

    @respx.mock
    def test_no_send_logs_override(self, config_file, telemetry_file, log_file):
        route = respx.post(URL).mock(return_value=httpx.Response(200))

        code = main([
            "--config", config_file, "--no-send-logs",
            "pipeline-status", "--telemetry", telemetry_file, "--log-file", log_file,
        ])

        assert code == 0
        assert route.call_count == 1

    @respx.mock
    def test_rejection_exit_code(self, config_file, telemetry_file, capsys):
        respx.post(URL).mock(return_value=httpx.Response(401, text="Invalid authorization"))

        code = main(["--config", config_file, "pipeline-status", "--telemetry", telemetry_file])

        assert code == 1
        assert "401" in capsys.readouterr().err

    def test_without_destination(self, telemetry_file):
        assert main(["pipeline-status", "--telemetry", telemetry_file]) == 0

    def test_missing_telemetry_file(self, config_file, tmp_path):
        code = main(["--config", config_file, "pipeline-status", "--telemetry", str(tmp_path / "nope.json")])
        assert code == 2


class TestConfigCommand:
    def test_token_masked(self, config_file, capsys):
        assert main(["--config", config_file, "config"]) == 0

        data = json.loads(capsys.readouterr().out)
        assert data["delivery"]["token"] == "****"
        assert data["delivery"]["destination"] == URL

    def test_from_env(self, monkeypatch, capsys):
        monkeypatch.setenv("PIPELINE_TELEMETRY_DESTINATION", URL)
        monkeypatch.setenv("PIPELINE_TELEMETRY_INDEX", "env-index")

        assert main(["config"]) == 0
        assert json.loads(capsys.readouterr().out)["delivery"]["index"] == "env-index"

    def test_no_command(self):
        assert main([]) == 1

    def test_registers_token_for_masking(self, config_file):
        assert main(["--config", config_file, "config"]) == 0
        assert "cli-token" in default_registry
