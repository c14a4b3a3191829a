import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from festmix.crosscutting.metrics import MetricsCollector


logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def _is_sentinel(result) -> bool:
    return result is None or (isinstance(result, list) and not result)


def chunked(items: Sequence[T], size: int) -> List[List[T]]:
    """Split ``items`` into contiguous groups of at most ``size``."""
    if size < 1:
        raise ValueError("batch_size must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


async def run_batched(items: Sequence[T],
                      operation: Callable[[T], Awaitable[R]],
                      batch_size: int,
                      delay_ms: int,
                      *,
                      sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                      metrics: Optional[MetricsCollector] = None,
                      phase: str = "batch") -> List[R]:
    """Apply ``operation`` to every item, ``batch_size`` at a time.

    Items within a group run concurrently; groups run one after another with
    a ``delay_ms`` pause between them (none after the last group). The result
    list has the same length and order as ``items``.

    ``operation`` is expected to turn its own failures into a sentinel value
    (None or an empty list). An exception that still escapes is propagated.

    Args:
        items: Inputs, in order
        operation: Coroutine function applied to each item
        batch_size: Maximum number of concurrent calls
        delay_ms: Pause between groups in milliseconds
        sleep: Coroutine used for the pause
        metrics: Optional collector receiving per-batch metrics
        phase: Phase label used in logs and metrics

    Returns:
        Results aligned with ``items``
    """
    groups = chunked(items, batch_size)
    results: List[R] = []

    for index, group in enumerate(groups):
        logger.info(f"Processing batch {index + 1}/{len(groups)} ({len(group)} items)")

        batch = metrics.start_batch(phase, index, len(group)) if metrics else None
        group_results = await asyncio.gather(*(operation(item) for item in group))
        if metrics:
            metrics.end_batch(batch, sum(1 for r in group_results if _is_sentinel(r)))

        results.extend(group_results)

        if index < len(groups) - 1 and delay_ms > 0:
            if metrics:
                metrics.record_delay(phase, delay_ms)
            await sleep(delay_ms / 1000)

    return results
