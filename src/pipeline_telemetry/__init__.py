"""
Pipeline Telemetry - step telemetry and log shipping

Delivers the outcome of a pipeline step to a remote collector:
- Flat telemetry record per step (duration, error code, git context)
- Full log output on failure, split into bounded batches
- Whole-pipeline status with the raw pipeline log
"""

__version__ = "0.1.0"
