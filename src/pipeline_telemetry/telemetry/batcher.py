"""Splitting ordered messages into bounded batches."""

from __future__ import annotations

from typing import Iterator, Sequence, TypeVar


T = TypeVar("T")

DEFAULT_BATCH_SIZE = 20000


def batch_count(total: int, batch_size: int = DEFAULT_BATCH_SIZE, always_one: bool = False) -> int:
    """Number of batches iter_batches yields for a sequence of length total."""
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    count = -(-total // batch_size)
    if count == 0 and always_one:
        return 1
    return count


def iter_batches(
    items: Sequence[T],
    batch_size: int = DEFAULT_BATCH_SIZE,
    always_one: bool = False,
) -> Iterator[Sequence[T]]:
    """
    Yield contiguous, non-overlapping slices of at most batch_size items.

    Concatenating the yielded slices gives back items exactly. Only the
    last slice may be shorter. With always_one, an empty sequence still
    yields one empty slice so a request carrying the telemetry goes out.

    Usage:
        for batch in iter_batches(messages, 20000):
            post(batch)
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    total = len(items)
    if total == 0:
        if always_one:
            yield items[0:0]
        return

    for start in range(0, total, batch_size):
        yield items[start:start + batch_size]
