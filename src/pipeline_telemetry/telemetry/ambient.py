"""Ambient git context used to enrich step telemetry."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from ..config import DEFAULT_ENVIRONMENT_DIR
from .events import NOT_AVAILABLE


logger = logging.getLogger(__name__)

# Well-known keys, relative to the pipeline environment directory
COMMIT_HASH = "git/headCommitId"
BRANCH = "git/branch"
GIT_OWNER = "github/owner"
GIT_REPOSITORY = "github/repository"


class AmbientContextProvider(Protocol):
    """Anything that can look up an ambient context string by key."""

    def get(self, key: str) -> str:
        ...


@dataclass
class PipelineEnvironment:
    """
    Reads ambient context from the common pipeline environment directory.

    The directory is written by an earlier pipeline stage; missing or
    unreadable files are expected and yield "N/A".
    """
    root: str = DEFAULT_ENVIRONMENT_DIR

    def get(self, key: str) -> str:
        path = Path(self.root) / key
        try:
            return path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {key} file. {e}")
            return NOT_AVAILABLE


@dataclass
class StaticAmbientContext:
    """Ambient context served from a fixed mapping."""
    values: dict[str, str] = field(default_factory=dict)

    def get(self, key: str) -> str:
        return self.values.get(key, NOT_AVAILABLE)
