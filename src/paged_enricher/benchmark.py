"""Timed repeated runs of the demo pipeline."""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .config import PipelineConfig
from .connectors.demo import DemoCompanySource, DemoEmailSink, DemoOrderEnricher
from .logging_config import get_logger
from .pipeline.controller import AdvancePolicy, BatchGatedPolicy, QueueBoundedPolicy
from .pipeline.runner import run_pipeline

logger = get_logger(__name__)

POLICIES: Dict[str, type] = {
    QueueBoundedPolicy.name: QueueBoundedPolicy,
    BatchGatedPolicy.name: BatchGatedPolicy,
}


@dataclass
class BenchmarkResult:
    name: str
    run_times: List[float] = field(default_factory=list)

    @property
    def average(self) -> float:
        return sum(self.run_times) / len(self.run_times) if self.run_times else 0.0


async def benchmark(
    name: str,
    config: PipelineConfig,
    policy: AdvancePolicy,
    repetitions: int = 3,
    total: int = 100,
    time_scale: float = 1.0,
    seed: Optional[int] = None,
) -> BenchmarkResult:
    """Run the demo pipeline ``repetitions`` times and time each run."""
    result = BenchmarkResult(name=name)
    for i in range(repetitions):
        source = DemoCompanySource(total=total, time_scale=time_scale, seed=seed)
        enricher = DemoOrderEnricher(time_scale=time_scale, seed=seed)
        sink = DemoEmailSink(time_scale=time_scale, seed=seed)

        start = time.perf_counter()
        summary = await run_pipeline(config, source, enricher, sink, policy=policy)
        elapsed = time.perf_counter() - start

        result.run_times.append(elapsed)
        logger.info(
            f"Run {i + 1}/{repetitions} {name} took {elapsed * 1000:.0f}ms "
            f"({summary.records_delivered} delivered in {summary.batches_delivered} batches)"
        )
    logger.info(f"Avg {name}: {result.average * 1000:.0f}ms")
    return result


async def compare_policies(
    config: PipelineConfig,
    repetitions: int = 3,
    total: int = 100,
    time_scale: float = 1.0,
    seed: Optional[int] = None,
) -> Dict[str, BenchmarkResult]:
    """Benchmark every advance policy against the same configuration."""
    results = {}
    for name, policy_cls in POLICIES.items():
        results[name] = await benchmark(
            name, config, policy_cls(), repetitions=repetitions,
            total=total, time_scale=time_scale, seed=seed,
        )
    return results


def speedup(baseline: BenchmarkResult, candidate: BenchmarkResult) -> float:
    """How many times faster ``candidate`` ran than ``baseline`` on average."""
    if candidate.average == 0:
        return 0.0
    return baseline.average / candidate.average
