"""Type definitions for the application."""

from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Mapping, Protocol, Sequence, Tuple


@dataclass(frozen=True)
class Record:
    """Primary entity returned by a source page."""
    id: Hashable
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EnrichedRecord:
    """A record plus the result of its enrichment lookup."""
    record: Record
    enrichment: Any

    @property
    def id(self) -> Hashable:
        return self.record.id

    def to_dict(self) -> Dict[str, Any]:
        """Flatten into a single row for tabular sinks."""
        row: Dict[str, Any] = {"id": self.id, **self.record.data}
        if isinstance(self.enrichment, Mapping):
            row.update(self.enrichment)
        else:
            row["enrichment"] = self.enrichment
        return row


@dataclass(frozen=True)
class Batch:
    """Ordered group of enriched records handed to the sink in one call."""
    sequence: int
    records: Tuple[EnrichedRecord, ...]
    reason: str

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def __getitem__(self, index):
        return self.records[index]

    @property
    def ids(self) -> List[Hashable]:
        return [r.id for r in self.records]


class Source(Protocol):
    """Paginated record source."""

    async def fetch(self, limit: int, offset: int) -> Sequence[Record]:
        ...


class Enricher(Protocol):
    """Per-record secondary lookup."""

    async def enrich(self, record: Record) -> Any:
        ...


class Sink(Protocol):
    """Downstream consumer of delivered batches."""

    async def deliver(self, batch: Batch) -> Any:
        ...
