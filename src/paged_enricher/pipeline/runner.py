"""Pipeline coordinator wiring the stages, buffer and feedback loop together."""

import asyncio
from dataclasses import dataclass
from typing import Optional, Set, Tuple

from ..config import PipelineConfig, validate_config
from ..errors import DeliveryError, EnrichmentError, SourceFetchError
from ..logging_config import get_logger
from ..utils.typing import Batch, Enricher, Record, Sink, Source
from .batch import FLUSH_DRAIN, FLUSH_IDLE, BatchBuffer, ProgressTracker
from .controller import AdvancePolicy, OffsetController, Phase
from .stages import DeliveryStage, EnrichmentStage, FetchStage
from .state import BackpressureAccumulator, PipelineState

logger = get_logger(__name__)


@dataclass(frozen=True)
class PipelineResult:
    """Summary of a run that reached Complete."""
    records_fetched: int
    records_delivered: int
    records_dropped: int
    batches_delivered: int
    pages_fetched: int
    last_cursor: int
    elapsed_seconds: float
    losses: Tuple[EnrichmentError, ...] = ()


class Pipeline:
    """
    Streaming fetch -> enrich -> batch -> deliver pipeline with backpressure.

    All state transitions happen in synchronous callbacks on the event loop;
    stages only suspend while awaiting their collaborator. Usage::

        result = await Pipeline(config, source, enricher, sink).start()
    """

    def __init__(
        self,
        config: PipelineConfig,
        source: Source,
        enricher: Enricher,
        sink: Sink,
        policy: Optional[AdvancePolicy] = None,
        progress_every: int = 100,
    ):
        self.config = config
        self.progress_every = progress_every
        self.state = PipelineState()
        self.fetch_stage = FetchStage(source, config.batch_size, config.fetch_concurrency)
        self.enrich_stage = EnrichmentStage(enricher, config.enrich_concurrency)
        self.delivery_stage = DeliveryStage(sink, config.delivery_concurrency)
        self.controller = OffsetController(config, self.state, self._submit_fetch, policy)
        self.accumulator = BackpressureAccumulator(self.state, self.controller)
        self.buffer = BatchBuffer(config.max_batch_size, config.flush_timeout_ms, self._submit_delivery)
        self.progress: Optional[ProgressTracker] = None
        self._tasks: Set[asyncio.Task] = set()
        self._settled: Optional[asyncio.Event] = None
        self._run_task: Optional[asyncio.Task] = None

    @property
    def phase(self) -> Phase:
        return self.controller.phase

    def start(self) -> "asyncio.Task[PipelineResult]":
        """
        Validate the configuration and schedule the run.

        Raises:
            ConfigValidationError: before anything is scheduled.
        """
        validate_config(self.config)
        if self._run_task is not None:
            raise RuntimeError("Pipeline already started")
        self._run_task = asyncio.get_running_loop().create_task(self._run())
        return self._run_task

    async def _run(self) -> PipelineResult:
        self._settled = asyncio.Event()
        self.progress = ProgressTracker(report_every=self.progress_every)
        self.buffer.start()
        self.controller.start()
        try:
            await self._settled.wait()
        except asyncio.CancelledError:
            for task in list(self._tasks):
                task.cancel()
            raise
        finally:
            self.buffer.close()

        if self.controller.phase is Phase.FAILED:
            raise self.controller.error
        self.progress.final_report()
        return PipelineResult(
            records_fetched=self.state.total_fetched,
            records_delivered=self.state.total_delivered,
            records_dropped=self.state.total_dropped,
            batches_delivered=self.state.batches_delivered,
            pages_fetched=self.state.pages_fetched,
            last_cursor=self.state.current_cursor,
            elapsed_seconds=self.progress.elapsed(),
            losses=tuple(self.accumulator.losses),
        )

    # Task plumbing

    def _spawn(self, coro) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._fail(exc)
            self._check_progress()

    def _fail(self, error: BaseException) -> None:
        if self.controller.fail(error):
            self.fetch_stage.halted = True
            self.buffer.close()

    # Stage submission

    def _submit_fetch(self, cursor: int) -> None:
        self.fetch_stage.outstanding += 1
        self._spawn(self._fetch(cursor))

    def _submit_enrich(self, record: Record) -> None:
        self.enrich_stage.outstanding += 1
        self._spawn(self._enrich(record))

    def _submit_delivery(self, batch: Batch) -> None:
        self.delivery_stage.outstanding += 1
        self._spawn(self._deliver(batch))

    # Stage completions

    async def _fetch(self, cursor: int) -> None:
        try:
            records = await self.fetch_stage.fetch_page(cursor)
        except SourceFetchError as e:
            self._fail(e)
        else:
            if self.controller.phase is Phase.FAILED:
                logger.debug(f"Discarding page at offset {cursor} after failure")
            else:
                for record in records:
                    self._submit_enrich(record)
                self.accumulator.record_page(cursor, records)
        finally:
            self.fetch_stage.outstanding -= 1
            self._check_progress()

    async def _enrich(self, record: Record) -> None:
        try:
            enriched = await self.enrich_stage.enrich(record)
        except EnrichmentError as e:
            if self.config.enrichment_errors_fatal:
                self._fail(e)
            else:
                logger.warning(f"Dropping record: {e}")
                self.progress.update(dropped=1)
                self.accumulator.record_dropped(e)
        else:
            if self.controller.phase is not Phase.FAILED:
                self.buffer.add(enriched)
        finally:
            self.enrich_stage.outstanding -= 1
            self._check_progress()

    async def _deliver(self, batch: Batch) -> None:
        try:
            await self.delivery_stage.deliver(batch)
        except DeliveryError as e:
            self._fail(e)
        else:
            self.progress.update(delivered=len(batch))
            self.accumulator.record_delivered(batch)
        finally:
            self.delivery_stage.outstanding -= 1
            self._check_progress()

    def _check_progress(self) -> None:
        """Flush, drain or settle once upstream has nothing outstanding."""
        if self._settled is None or self._settled.is_set():
            return
        upstream_idle = self.fetch_stage.outstanding == 0 and self.enrich_stage.outstanding == 0

        if self.controller.phase is Phase.FAILED:
            if upstream_idle and self.delivery_stage.outstanding == 0:
                self._settled.set()
            return
        if not upstream_idle:
            return

        if self.controller.exhausted:
            self.controller.begin_drain()
            self.buffer.flush(FLUSH_DRAIN)
            if self.delivery_stage.outstanding == 0 and len(self.buffer) == 0:
                self.controller.complete()
                logger.info(
                    f"Pipeline complete: {self.state.total_delivered} delivered, "
                    f"{self.state.total_dropped} dropped"
                )
                self._settled.set()
        elif len(self.buffer):
            self.buffer.flush(FLUSH_IDLE)


async def run_pipeline(
    config: PipelineConfig,
    source: Source,
    enricher: Enricher,
    sink: Sink,
    policy: Optional[AdvancePolicy] = None,
) -> PipelineResult:
    """Run a pipeline to completion and return its summary."""
    return await Pipeline(config, source, enricher, sink, policy).start()
