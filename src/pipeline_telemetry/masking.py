"""Secret registration and log masking."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field


MASK = "****"


@dataclass
class SecretRegistry:
    """
    Values that must never show up in plain text output.

    Every log line passing through a SecretMaskingFilter (and every
    message captured by a LogCollector) is rewritten with each registered
    value replaced by the mask.
    """
    mask_text: str = MASK

    _secrets: set[str] = field(default_factory=set, init=False)

    def register(self, value: str | None) -> None:
        """Register a secret. Empty values are ignored."""
        if value:
            self._secrets.add(value)

    def mask(self, text: str) -> str:
        """Replace every registered secret in text."""
        if not self._secrets or not text:
            return text
        # Longest first so a secret containing another is masked whole
        for secret in sorted(self._secrets, key=len, reverse=True):
            text = text.replace(secret, self.mask_text)
        return text

    def __contains__(self, value: str) -> bool:
        return value in self._secrets

    def __len__(self) -> int:
        return len(self._secrets)


class SecretMaskingFilter(logging.Filter):
    """Logging filter that masks registered secrets in the rendered message."""

    def __init__(self, registry: SecretRegistry):
        super().__init__()
        self.registry = registry

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = self.registry.mask(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


# Process-wide registry used by the step runner
default_registry = SecretRegistry()


def register_secret(value: str | None) -> None:
    """Register a secret with the default registry."""
    default_registry.register(value)


def install_masking(
    registry: SecretRegistry | None = None,
    logger: logging.Logger | None = None,
) -> SecretMaskingFilter:
    """
    Attach a masking filter to every handler of a logger (root by default).

    Filters are attached to handlers rather than the logger so records
    propagated from child loggers are masked as well.
    """
    if registry is None:
        registry = default_registry
    logger = logger or logging.getLogger()
    masking_filter = SecretMaskingFilter(registry)
    for handler in logger.handlers:
        if not any(
            isinstance(f, SecretMaskingFilter) and f.registry is registry
            for f in handler.filters
        ):
            handler.addFilter(masking_filter)
    return masking_filter
