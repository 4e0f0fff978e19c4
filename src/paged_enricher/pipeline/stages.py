"""Bounded-concurrency wrappers around the source, enricher and sink."""

import asyncio
from typing import List

from ..errors import DeliveryError, EnrichmentError, SourceFetchError
from ..logging_config import get_logger
from ..utils.typing import Batch, EnrichedRecord, Enricher, Record, Sink, Source

logger = get_logger(__name__)


class Stage:
    """Semaphore-bounded stage that also tracks its outstanding calls.

    ``outstanding`` counts calls that were submitted and have not finished,
    including those still waiting for a semaphore slot. A halted stage lets
    running calls finish but does not start queued ones.
    """

    def __init__(self, concurrency: int):
        self.concurrency = concurrency
        self.semaphore = asyncio.Semaphore(concurrency)
        self.outstanding = 0
        self.halted = False
        self.active = 0
        self.peak_active = 0

    def _enter(self) -> None:
        self.active += 1
        self.peak_active = max(self.peak_active, self.active)

    def _exit(self) -> None:
        self.active -= 1


class FetchStage(Stage):
    """Retrieve pages of primary records at controller-issued offsets."""

    def __init__(self, source: Source, batch_size: int, concurrency: int):
        super().__init__(concurrency)
        self.source = source
        self.batch_size = batch_size

    async def fetch_page(self, cursor: int) -> List[Record]:
        async with self.semaphore:
            if self.halted:
                logger.debug(f"Skipping fetch at offset {cursor}, stage halted")
                return []
            self._enter()
            try:
                records = await self.source.fetch(self.batch_size, cursor)
            except Exception as e:
                raise SourceFetchError(cursor, e) from e
            finally:
                self._exit()
        logger.debug(f"Fetched {len(records)} records at offset {cursor}")
        return list(records)


class EnrichmentStage(Stage):
    """Per-record lookup, one independent call per record."""

    def __init__(self, enricher: Enricher, concurrency: int):
        super().__init__(concurrency)
        self.enricher = enricher

    async def enrich(self, record: Record) -> EnrichedRecord:
        async with self.semaphore:
            self._enter()
            try:
                result = await self.enricher.enrich(record)
            except Exception as e:
                raise EnrichmentError(record, e) from e
            finally:
                self._exit()
        return EnrichedRecord(record=record, enrichment=result)


class DeliveryStage(Stage):
    """Dispatch flushed batches to the sink."""

    def __init__(self, sink: Sink, concurrency: int):
        super().__init__(concurrency)
        self.sink = sink

    async def deliver(self, batch: Batch):
        async with self.semaphore:
            self._enter()
            try:
                ack = await self.sink.deliver(batch)
            except Exception as e:
                raise DeliveryError(batch, e) from e
            finally:
                self._exit()
        logger.debug(f"Delivered batch #{batch.sequence} ({len(batch)} records, {batch.reason})")
        return ack
