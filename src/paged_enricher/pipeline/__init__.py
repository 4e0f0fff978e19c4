"""Pipeline modules for the paged fetch -> enrich -> deliver run."""

from . import batch, controller, runner, stages, state
from .controller import BatchGatedPolicy, OffsetController, Phase, QueueBoundedPolicy
from .runner import Pipeline, PipelineResult, run_pipeline

__all__ = [
    "batch",
    "controller",
    "runner",
    "stages",
    "state",
    "BatchGatedPolicy",
    "OffsetController",
    "Phase",
    "Pipeline",
    "PipelineResult",
    "QueueBoundedPolicy",
    "run_pipeline",
]
