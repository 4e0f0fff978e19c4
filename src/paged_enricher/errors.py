"""Exception types raised by the pipeline."""

from typing import Any, Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class ConfigValidationError(PipelineError):
    """Raised before start when the configuration is inconsistent."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Invalid option {field}: {message}")


class StageError(PipelineError):
    """A collaborator call failed inside one of the pipeline stages."""

    kind = "stage"

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        if cause is not None:
            message = f"{message}: {cause!r}"
        super().__init__(message)


class SourceFetchError(StageError):
    """Fetching a page from the source failed."""

    kind = "fetch"

    def __init__(self, offset: int, cause: Optional[BaseException] = None):
        self.offset = offset
        super().__init__(f"Fetch failed at offset {offset}", cause)


class EnrichmentError(StageError):
    """Enrichment lookup for a single record failed."""

    kind = "enrich"

    def __init__(self, record: Any, cause: Optional[BaseException] = None):
        self.record = record
        super().__init__(f"Enrichment failed for record {record.id!r}", cause)


class DeliveryError(StageError):
    """Delivering a flushed batch to the sink failed."""

    kind = "deliver"

    def __init__(self, batch: Any, cause: Optional[BaseException] = None):
        self.batch = batch
        super().__init__(
            f"Delivery failed for batch #{batch.sequence} ({len(batch)} records)", cause
        )
