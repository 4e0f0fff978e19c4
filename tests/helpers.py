"""In-memory collaborators shared by the pipeline tests."""

import asyncio
from typing import Callable, Dict, Iterable, List, Optional

from paged_enricher.utils.typing import Batch, Record


class ListSource:
    """Serves records 0..total-1; optionally fails at one offset.

    ``offset_delays`` overrides ``delay`` per offset so pages can land out of order.
    """

    def __init__(self, total: int, delay: float = 0.0, fail_at: Optional[int] = None,
                 on_fetch: Optional[Callable[[int], None]] = None,
                 offset_delays: Optional[Dict[int, float]] = None):
        self.total = total
        self.delay = delay
        self.offset_delays = offset_delays or {}
        self.fail_at = fail_at
        self.on_fetch = on_fetch
        self.offsets: List[int] = []
        self.returned: List[int] = []

    async def fetch(self, limit: int, offset: int) -> List[Record]:
        self.offsets.append(offset)
        if self.on_fetch:
            self.on_fetch(offset)
        await asyncio.sleep(self.offset_delays.get(offset, self.delay))
        self.returned.append(offset)
        if offset == self.fail_at:
            raise ConnectionError(f"source unavailable at {offset}")
        return [Record(id=i, data={"n": i}) for i in range(offset, min(offset + limit, self.total))]


class FakeEnricher:
    """Doubles the record id after an optional per-record delay."""

    def __init__(self, delays: Optional[Dict[int, float]] = None, default_delay: float = 0.0,
                 fail_ids: Iterable[int] = ()):
        self.delays = delays or {}
        self.default_delay = default_delay
        self.fail_ids = set(fail_ids)
        self.calls: List[int] = []

    async def enrich(self, record: Record) -> Dict[str, int]:
        self.calls.append(record.id)
        await asyncio.sleep(self.delays.get(record.id, self.default_delay))
        if record.id in self.fail_ids:
            raise LookupError(f"no data for {record.id}")
        return {"double": record.id * 2}


class RecordingSink:
    """Records every delivered batch; optionally fails on the nth call.

    ``call_delays`` overrides ``delay`` for a given call number (1-based).
    """

    def __init__(self, delay: float = 0.0, fail_on_call: Optional[int] = None,
                 on_deliver: Optional[Callable[[Batch], None]] = None,
                 call_delays: Optional[Dict[int, float]] = None):
        self.delay = delay
        self.call_delays = call_delays or {}
        self.fail_on_call = fail_on_call
        self.on_deliver = on_deliver
        self.batches: List[Batch] = []
        self.calls = 0
        self.finished: List[int] = []

    async def deliver(self, batch: Batch) -> bool:
        self.calls += 1
        call = self.calls
        if self.on_deliver:
            self.on_deliver(batch)
        await asyncio.sleep(self.call_delays.get(call, self.delay))
        if self.fail_on_call is not None and call == self.fail_on_call:
            raise IOError("sink rejected batch")
        self.batches.append(batch)
        self.finished.append(call)
        return True

    @property
    def sizes(self) -> List[int]:
        return [len(b) for b in self.batches]

    @property
    def delivered_ids(self) -> List[int]:
        return [record_id for b in self.batches for record_id in b.ids]
