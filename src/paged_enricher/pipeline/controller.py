"""Offset controller: owns the pagination cursor and decides when to fetch."""

from enum import Enum
from typing import Callable, Optional, Protocol

from ..config import PipelineConfig, validate_config
from ..errors import PipelineError
from ..logging_config import get_logger
from .state import PipelineState

logger = get_logger(__name__)


class Phase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    COMPLETE = "complete"
    FAILED = "failed"


class AdvancePolicy(Protocol):
    """Predicate deciding whether one more page may be requested."""

    def should_advance(self, in_flight: int, config: PipelineConfig) -> bool:
        ...


class QueueBoundedPolicy:
    """Keep requesting pages while the queue has room for another full page."""

    name = "queue-bounded"

    def should_advance(self, in_flight: int, config: PipelineConfig) -> bool:
        return in_flight + config.batch_size <= config.max_queue_size


class BatchGatedPolicy:
    """Request the next page only once everything before it has settled."""

    name = "batch-gated"

    def should_advance(self, in_flight: int, config: PipelineConfig) -> bool:
        return in_flight == 0


class OffsetController:
    """
    Feedback-driven cursor generator.

    The cursor and the "requested" counter are private to the controller.
    ``requested`` counts records asked for by fetches that have not returned
    yet, so a burst of evaluations does not over-request before the pages land.
    """

    def __init__(
        self,
        config: PipelineConfig,
        state: PipelineState,
        request_fetch: Callable[[int], None],
        policy: Optional[AdvancePolicy] = None,
    ):
        self.config = config
        self.state = state
        self.request_fetch = request_fetch
        self.policy = policy or QueueBoundedPolicy()
        self.phase = Phase.IDLE
        self.requested = 0
        self.error: Optional[PipelineError] = None

    @property
    def exhausted(self) -> bool:
        return self.state.completed

    @property
    def accepting(self) -> bool:
        """True while new fetch requests may still be issued."""
        return self.phase is Phase.RUNNING and not self.state.completed

    @property
    def in_flight(self) -> int:
        return self.state.queue_depth + self.requested

    def start(self) -> None:
        validate_config(self.config)
        if self.phase is not Phase.IDLE:
            raise RuntimeError(f"Controller already started (phase={self.phase.value})")
        self.phase = Phase.RUNNING
        logger.info(f"Pipeline running ({getattr(self.policy, 'name', type(self.policy).__name__)})")
        self._emit(0)

    def on_page(self, cursor: int, size: int) -> None:
        """A fetch at ``cursor`` returned ``size`` records."""
        self.requested -= self.config.batch_size
        if size == 0 and not self.state.completed:
            logger.info(f"Source exhausted at offset {cursor}")
            self.state.completed = True

    def evaluate(self, queue_depth: Optional[int] = None) -> int:
        """
        Advance the cursor as far as the policy allows.

        Runs to a fixed point and returns the number of fetches issued.
        """
        if queue_depth is None:
            queue_depth = self.state.queue_depth
        issued = 0
        while self.accepting and self.policy.should_advance(queue_depth + self.requested, self.config):
            self._emit(self.state.current_cursor + self.config.batch_size)
            issued += 1
        return issued

    def begin_drain(self) -> None:
        if self.phase is Phase.RUNNING:
            logger.info("Upstream finished, draining")
            self.phase = Phase.DRAINING

    def complete(self) -> None:
        if self.phase is not Phase.DRAINING:
            raise RuntimeError(f"Cannot complete from phase {self.phase.value}")
        self.phase = Phase.COMPLETE

    def fail(self, error: PipelineError) -> bool:
        """Record a fatal error. Returns False if the run had already failed."""
        if self.phase is Phase.FAILED:
            logger.debug(f"Ignoring subsequent fatal error: {error}")
            return False
        logger.error(f"Pipeline failed: {error}")
        self.error = error
        self.phase = Phase.FAILED
        return True

    def _emit(self, cursor: int) -> None:
        self.state.current_cursor = cursor
        self.requested += self.config.batch_size
        logger.debug(f"Requesting page at offset {cursor}")
        self.request_fetch(cursor)
