"""Shared pipeline counters and the backpressure accumulator."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Sequence

from ..errors import EnrichmentError
from ..logging_config import get_logger
from ..utils.typing import Batch, Record

if TYPE_CHECKING:
    from .controller import OffsetController

logger = get_logger(__name__)


@dataclass
class PipelineState:
    """
    Counters shared by every stage of a run.

    Only the accumulator and the offset controller write to this object, and
    both are driven from the event loop thread, so each update is atomic with
    respect to the others.
    """
    total_fetched: int = 0
    total_delivered: int = 0
    total_dropped: int = 0
    current_cursor: int = 0
    completed: bool = False
    pages_fetched: int = 0
    batches_delivered: int = 0

    @property
    def queue_depth(self) -> int:
        """Records fetched but not yet delivered or dropped."""
        return self.total_fetched - self.total_delivered - self.total_dropped


class BackpressureAccumulator:
    """Single serialization point for counter updates.

    Every method is synchronous: it never yields to the event loop, so two
    stage completions cannot interleave inside a read-modify-write.
    After each update the controller is asked to re-evaluate the cursor.
    """

    def __init__(self, state: PipelineState, controller: "OffsetController"):
        self.state = state
        self.controller = controller
        self.losses: List[EnrichmentError] = []

    def record_page(self, cursor: int, records: Sequence[Record]) -> None:
        """Account for a page result; an empty page marks the source exhausted."""
        self.controller.on_page(cursor, len(records))
        if records:
            self.state.total_fetched += len(records)
            self.state.pages_fetched += 1
        self._signal()

    def record_delivered(self, batch: Batch) -> None:
        """Account for a batch acknowledged by the sink."""
        self.state.total_delivered += len(batch)
        self.state.batches_delivered += 1
        self._signal()

    def record_dropped(self, error: EnrichmentError) -> None:
        """Account for a record lost to a recoverable enrichment error."""
        self.state.total_dropped += 1
        self.losses.append(error)
        self._signal()

    def _signal(self) -> None:
        depth = self.state.queue_depth
        if depth < 0:
            raise RuntimeError(
                f"Queue depth went negative ({depth}): "
                f"fetched={self.state.total_fetched} delivered={self.state.total_delivered} "
                f"dropped={self.state.total_dropped}"
            )
        self.controller.evaluate(depth)
