#!/usr/bin/env python3
"""
CLI tool for shipping pipeline telemetry.

Usage:
    python -m pipeline_telemetry.cli pipeline-status --config telemetry.yaml \\
        --telemetry pipeline.json --log-file pipeline.log
    python -m pipeline_telemetry.cli config --config telemetry.yaml
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict, replace

import yaml

from .config import Config, DeliveryConfig
from .masking import MASK, default_registry, install_masking, register_secret
from .telemetry.delivery import TelemetryDelivery
from .telemetry.errors import DeliveryError
from .telemetry.events import PipelineTelemetry


logger = logging.getLogger(__name__)


def load_config(args) -> Config:
    """Config from --config (or the environment), then command line overrides."""
    if args.config:
        config = Config.from_yaml(args.config)
    else:
        config = Config(delivery=DeliveryConfig.from_env())

    overrides = {
        "destination": args.destination,
        "token": args.token,
        "index": args.index,
        "correlation_id": args.correlation_id,
        "send_logs": args.send_logs,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}
    if overrides:
        config.delivery = replace(config.delivery, **overrides)
    return config


def setup_logging(config: Config, verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.logging.level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=config.logging.format)
    install_masking(default_registry)


def cmd_pipeline_status(args, config: Config) -> int:
    """Send the pipeline telemetry and, if enabled, the pipeline log."""
    try:
        with open(args.telemetry, "r") as f:
            telemetry = PipelineTelemetry.from_dict(json.load(f))
        log_file = b""
        if args.log_file:
            with open(args.log_file, "rb") as f:
                log_file = f.read()
    except (OSError, ValueError, AttributeError) as e:
        print(f"Error: could not read input: {e}", file=sys.stderr)
        return 2

    delivery = TelemetryDelivery(config.delivery)
    try:
        delivery.initialize()
        if not delivery.enabled:
            logger.info("No telemetry destination configured, nothing sent")
            return 0
        delivery.send_pipeline_status(telemetry, log_file)
    except DeliveryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        delivery.close()

    logger.info("Pipeline status sent")
    return 0


def cmd_config(args, config: Config) -> int:
    """Print the resolved configuration with the token masked."""
    data = asdict(config)
    if data["delivery"]["token"]:
        data["delivery"]["token"] = MASK
    print(json.dumps(data, indent=2))
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Ship pipeline telemetry and logs to a remote collector",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--destination", help="Collector endpoint URL")
    parser.add_argument("--token", help="Collector token")
    parser.add_argument("--index", help="Target index")
    parser.add_argument("--correlation-id", help="Correlation ID of the pipeline run")
    parser.add_argument(
        "--send-logs",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Ship the full log output",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # pipeline-status command
    status_parser = subparsers.add_parser("pipeline-status", help="Send pipeline telemetry and log")
    status_parser.add_argument("--telemetry", required=True, help="JSON file with pipeline telemetry")
    status_parser.add_argument("--log-file", help="Raw pipeline log")

    # config command
    subparsers.add_parser("config", help="Show the resolved configuration")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = load_config(args)
    except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
        print(f"Error: could not load configuration: {e}", file=sys.stderr)
        return 2

    register_secret(config.delivery.token)
    setup_logging(config, args.verbose)

    if args.command == "pipeline-status":
        return cmd_pipeline_status(args, config)
    elif args.command == "config":
        return cmd_config(args, config)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
