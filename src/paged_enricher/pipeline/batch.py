"""Batch accumulation and progress reporting."""

import asyncio
from typing import Callable, List, Optional

from ..logging_config import get_logger
from ..utils.typing import Batch, EnrichedRecord

logger = get_logger(__name__)

FLUSH_COUNT = "count"
FLUSH_TIMEOUT = "timeout"
FLUSH_IDLE = "idle"
FLUSH_DRAIN = "drain"


class BatchBuffer:
    """
    Accumulate enriched records into batches of at most ``max_batch_size``.

    A batch is flushed when it reaches ``max_batch_size`` records or when the
    rolling timer elapses, whichever comes first. The timer is re-armed after
    every flush and every tick; a tick with nothing buffered emits nothing.
    Callers may also flush explicitly (idle and drain flushes).
    """

    def __init__(
        self,
        max_batch_size: int,
        flush_timeout_ms: int,
        on_flush: Callable[[Batch], None],
    ):
        self.max_batch_size = max_batch_size
        self.flush_timeout = flush_timeout_ms / 1000
        self.on_flush = on_flush
        self.batches_flushed = 0
        self._records: List[EnrichedRecord] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._closed = False

    def __len__(self) -> int:
        return len(self._records)

    def start(self) -> None:
        """Arm the rolling timer. Must be called from a running event loop."""
        self._closed = False
        self._arm_timer()

    def add(self, record: EnrichedRecord) -> Optional[Batch]:
        if self._closed:
            raise RuntimeError("Cannot add to a closed buffer")
        self._records.append(record)
        if len(self._records) >= self.max_batch_size:
            return self.flush(FLUSH_COUNT)
        return None

    def flush(self, reason: str) -> Optional[Batch]:
        """Close the open batch and hand it off. Never emits an empty batch."""
        self._arm_timer()
        if not self._records:
            return None
        batch = Batch(
            sequence=self.batches_flushed,
            records=tuple(self._records),
            reason=reason,
        )
        self._records = []
        self.batches_flushed += 1
        logger.debug(f"Flushing batch #{batch.sequence} with {len(batch)} records ({reason})")
        self.on_flush(batch)
        return batch

    def close(self) -> None:
        """Stop the timer. Buffered records are left in place."""
        self._closed = True
        self._cancel_timer()

    def _on_timeout(self) -> None:
        self._timer = None
        if self._closed:
            return
        if self._records:
            self.flush(FLUSH_TIMEOUT)
        else:
            self._arm_timer()

    def _arm_timer(self) -> None:
        self._cancel_timer()
        if self._closed or self.flush_timeout <= 0:
            return
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.flush_timeout, self._on_timeout)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class ProgressTracker:
    """Track and report progress of a pipeline run."""

    def __init__(self, report_every: int = 100):
        self.report_every = report_every
        self.delivered = 0
        self.dropped = 0
        self.batches = 0
        self._next_report = report_every
        self.start_time = asyncio.get_running_loop().time()

    def update(self, delivered: int = 0, dropped: int = 0) -> None:
        """Update progress counters."""
        self.delivered += delivered
        self.dropped += dropped
        if delivered:
            self.batches += 1

        if self.delivered + self.dropped >= self._next_report:
            self._next_report += self.report_every
            self.report()

    def elapsed(self) -> float:
        return asyncio.get_running_loop().time() - self.start_time

    def report(self) -> None:
        """Report current progress."""
        elapsed = self.elapsed()
        rate = self.delivered / elapsed if elapsed > 0 else 0

        logger.info(
            f"Progress: {self.delivered} delivered in {self.batches} batches - "
            f"Dropped: {self.dropped} - "
            f"Rate: {rate:.1f}/s"
        )

    def final_report(self) -> None:
        """Report final statistics."""
        elapsed = self.elapsed()
        avg_rate = self.delivered / elapsed if elapsed > 0 else 0

        logger.info(
            f"Completed: {self.delivered} records in {self.batches} batches "
            f"in {elapsed:.2f}s (avg {avg_rate:.1f}/s) - "
            f"Dropped: {self.dropped}"
        )
