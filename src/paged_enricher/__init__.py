"""Paged Enricher - bounded-concurrency streaming enrichment with backpressure."""

__version__ = "0.1.0"

from .config import PipelineConfig, Settings, validate_config
from .errors import (
    ConfigValidationError,
    DeliveryError,
    EnrichmentError,
    PipelineError,
    SourceFetchError,
)
from .pipeline import BatchGatedPolicy, Pipeline, PipelineResult, QueueBoundedPolicy, run_pipeline
from .utils.typing import Batch, EnrichedRecord, Record

__all__ = [
    "Batch",
    "BatchGatedPolicy",
    "ConfigValidationError",
    "DeliveryError",
    "EnrichedRecord",
    "EnrichmentError",
    "Pipeline",
    "PipelineConfig",
    "PipelineError",
    "PipelineResult",
    "QueueBoundedPolicy",
    "Record",
    "Settings",
    "SourceFetchError",
    "run_pipeline",
    "validate_config",
]
