"""Command-line interface for the paged enricher."""

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .benchmark import POLICIES, compare_policies, speedup
from .cache import CachedEnricher, cache_stats, clear_cache
from .config import PipelineConfig, settings
from .connectors.demo import DemoCompanySource, DemoEmailSink, DemoOrderEnricher
from .connectors.files import FileSink, TableSource
from .connectors.http import HttpEnricher, HttpSink, HttpSource, make_client
from .errors import ConfigValidationError, PipelineError
from .logging_config import setup_logging, get_logger
from .pipeline.runner import PipelineResult, run_pipeline

# Initialize CLI app
app = typer.Typer(
    name="paged-enricher",
    help="Stream pages of records through enrichment into batched deliveries with backpressure",
    add_completion=False,
)
console = Console()
logger = get_logger(__name__)


def _build_config(**overrides) -> PipelineConfig:
    try:
        return settings.pipeline_config(**overrides)
    except ValueError as e:
        console.print(f"[red]Error: invalid pipeline options: {escape(str(e))}")
        raise typer.Exit(1)


def _policy(name: str):
    if name not in POLICIES:
        console.print(f"[red]Error: Unknown policy '{name}'")
        console.print(f"Available policies: {', '.join(POLICIES)}")
        raise typer.Exit(1)
    return POLICIES[name]()


def _print_summary(result: PipelineResult) -> None:
    table = Table(title="Pipeline Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Pages fetched", str(result.pages_fetched))
    table.add_row("Records fetched", str(result.records_fetched))
    table.add_row("Records delivered", str(result.records_delivered))
    table.add_row("Records dropped", str(result.records_dropped))
    table.add_row("Batches delivered", str(result.batches_delivered))
    table.add_row("Last cursor", str(result.last_cursor))
    table.add_row("Elapsed", f"{result.elapsed_seconds:.2f}s")

    console.print(table)

    for loss in result.losses:
        console.print(f"[yellow]Lost: {escape(str(loss))}")


@app.callback()
def main(
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        help="Set logging level",
        case_sensitive=False,
    ),
    cache_dir: str = typer.Option(
        settings.cache_dir,
        "--cache-dir",
        help="Directory for disk cache",
    ),
) -> None:
    """Paged Enricher CLI - bounded-memory fetch, enrich and deliver."""
    settings.log_level = log_level.upper()
    settings.cache_dir = cache_dir
    setup_logging()


@app.command()
def demo(
    total: int = typer.Option(100, "--total", help="Number of records the demo source holds", min=0),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Records per page fetch"),
    max_queue_size: Optional[int] = typer.Option(None, "--max-queue-size", "-q", help="Records allowed in flight"),
    max_batch_size: Optional[int] = typer.Option(None, "--max-batch-size", help="Records per delivered batch"),
    flush_timeout_ms: Optional[int] = typer.Option(None, "--flush-timeout-ms", help="Rolling flush timeout"),
    policy: str = typer.Option("queue-bounded", "--policy", "-p", help="Cursor advance policy"),
    time_scale: float = typer.Option(1.0, "--time-scale", help="Multiplier applied to simulated latencies", min=0),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for reproducible runs"),
) -> None:
    """Run the pipeline against simulated companies, orders and bulk emails."""
    config = _build_config(
        batch_size=batch_size,
        max_queue_size=max_queue_size,
        max_batch_size=max_batch_size,
        flush_timeout_ms=flush_timeout_ms,
    )
    source = DemoCompanySource(total=total, time_scale=time_scale, seed=seed)
    enricher = DemoOrderEnricher(time_scale=time_scale, seed=seed)
    sink = DemoEmailSink(time_scale=time_scale, seed=seed)

    try:
        result = asyncio.run(run_pipeline(config, source, enricher, sink, policy=_policy(policy)))
    except ConfigValidationError as e:
        console.print(f"[red]Error: {escape(str(e))}")
        raise typer.Exit(1)
    except PipelineError as e:
        console.print(f"\n[red]❌ Pipeline failed: {escape(str(e))}")
        raise typer.Exit(1)

    _print_summary(result)


@app.command()
def benchmark(
    repetitions: int = typer.Option(3, "--repetitions", "-n", help="Runs per policy", min=1),
    total: int = typer.Option(100, "--total", help="Number of records the demo source holds", min=0),
    time_scale: float = typer.Option(1.0, "--time-scale", help="Multiplier applied to simulated latencies", min=0),
    seed: Optional[int] = typer.Option(None, "--seed", help="Random seed for reproducible runs"),
) -> None:
    """Compare the queue-bounded and batch-gated policies on the demo workload."""
    config = _build_config()
    try:
        results = asyncio.run(
            compare_policies(config, repetitions=repetitions, total=total, time_scale=time_scale, seed=seed)
        )
    except PipelineError as e:
        console.print(f"[red]Error: {escape(str(e))}")
        raise typer.Exit(1)

    table = Table(title="Benchmark")
    table.add_column("Policy", style="cyan")
    table.add_column("Avg (ms)", style="green")
    table.add_column("Runs (ms)", style="yellow")
    for name, result in results.items():
        runs = ", ".join(f"{t * 1000:.0f}" for t in result.run_times)
        table.add_row(name, f"{result.average * 1000:.0f}", runs)
    console.print(table)

    gated = results["batch-gated"]
    bounded = results["queue-bounded"]
    console.print(f"[green]queue-bounded vs batch-gated speed-up: {speedup(gated, bounded):.2f}x")


@app.command()
def enrich(
    input_file: Optional[str] = typer.Argument(None, help="Input CSV, parquet or xlsx file"),
    lookup_url: str = typer.Option(
        ...,
        "--lookup-url",
        help="Per-record lookup URL template, e.g. https://api.example.com/companies/{id}",
    ),
    output: str = typer.Option(
        "enriched.csv",
        "--out", "-o",
        help="Output file path (.csv or .parquet)",
    ),
    source_url: Optional[str] = typer.Option(
        None,
        "--source-url",
        help="Page records from this endpoint (limit/offset params) instead of a file",
    ),
    items_key: Optional[str] = typer.Option(None, "--items-key", help="Key holding the list in source responses"),
    sink_url: Optional[str] = typer.Option(
        None,
        "--sink-url",
        help="POST each batch to this endpoint instead of writing --out",
    ),
    id_column: Optional[str] = typer.Option(None, "--id-column", help="Column holding the record id"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", "-b", help="Records per page"),
    max_batch_size: Optional[int] = typer.Option(
        None,
        "--max-batch-size",
        help="Records per delivered batch (defaults to at most --batch-size)",
    ),
    concurrency: Optional[int] = typer.Option(
        None,
        "--concurrency", "-c",
        help="Concurrent lookups",
        min=1,
        max=50,
    ),
    use_cache: bool = typer.Option(True, "--cache/--no-cache", help="Cache lookups on disk"),
) -> None:
    """
    Enrich records with a per-record HTTP lookup.

    Records come from INPUT or from --source-url; batches go to --out or to
    --sink-url. Records whose lookup fails are reported and left out.
    """
    if (input_file is None) == (source_url is None):
        console.print("[red]Error: give either an input file or --source-url")
        raise typer.Exit(1)

    table_source = None
    if input_file is not None:
        input_path = Path(input_file)
        if not input_path.exists():
            console.print(f"[red]Error: Input file '{input_file}' not found")
            raise typer.Exit(1)
        try:
            table_source = TableSource.from_path(str(input_path), id_column=id_column)
        except ValueError as e:
            console.print(f"[red]Error: {escape(str(e))}")
            raise typer.Exit(1)

    file_sink = None
    if sink_url is None:
        try:
            file_sink = FileSink(output)
        except ValueError as e:
            console.print(f"[red]Error: {escape(str(e))}")
            raise typer.Exit(1)

    if max_batch_size is None and batch_size is not None:
        max_batch_size = min(settings.max_batch_size, batch_size)
    config = _build_config(
        batch_size=batch_size,
        max_batch_size=max_batch_size,
        enrich_concurrency=concurrency,
    )

    async def _run() -> PipelineResult:
        async with make_client() as client:
            lookup = HttpEnricher(lookup_url, client=client)
            enricher = CachedEnricher(lookup) if use_cache else lookup
            if table_source is not None:
                source = table_source
            else:
                source = HttpSource(source_url, client=client, items_key=items_key)
            sink = file_sink if file_sink is not None else HttpSink(sink_url, client=client)
            try:
                return await run_pipeline(config, source, enricher, sink)
            finally:
                if file_sink is not None:
                    file_sink.close()

    if table_source is not None:
        console.print(f"[blue]Enriching {len(table_source.df)} rows from {input_file}...")
    else:
        console.print(f"[blue]Enriching records from {source_url}...")
    destination = sink_url or output
    try:
        result = asyncio.run(_run())
    except KeyboardInterrupt:
        console.print("\n[yellow]⚠️  Enrichment interrupted by user")
        if file_sink is not None:
            console.print(f"[yellow]📄 Partial results may be saved in: {output}")
        raise typer.Exit(1)
    except ConfigValidationError as e:
        console.print(f"[red]Error: {escape(str(e))}")
        raise typer.Exit(1)
    except PipelineError as e:
        console.print(f"\n[red]❌ Enrichment failed: {escape(str(e))}")
        logger.exception("Enrichment failed")
        raise typer.Exit(1)

    _print_summary(result)
    console.print(f"[green]📄 Results sent to: {destination}")


@app.command()
def cache(
    action: str = typer.Argument(..., help="Cache action: 'stats', 'clear'"),
) -> None:
    """Manage the lookup cache."""
    if action == "stats":
        stats = cache_stats()

        table = Table(title="Cache Statistics")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="green")

        table.add_row("Cache entries", str(stats["size"]))
        table.add_row("Cache volume", f"{stats['volume'] / 1024 / 1024:.1f} MB")
        table.add_row("Cache directory", settings.cache_dir)

        console.print(table)

    elif action == "clear":
        if typer.confirm("Are you sure you want to clear the cache?"):
            clear_cache()
            console.print("[green]✅ Cache cleared successfully")
        else:
            console.print("Cancelled.")
    else:
        console.print(f"[red]Error: Unknown cache action '{action}'")
        console.print("Available actions: stats, clear")
        raise typer.Exit(1)


@app.command()
def config() -> None:
    """Display current configuration."""
    table = Table(title="Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    pipeline_config = settings.pipeline_config()
    for name, value in pipeline_config.model_dump().items():
        table.add_row(name, str(value))

    table.add_row("cache_dir", settings.cache_dir)
    table.add_row("cache_ttl_days", str(settings.cache_ttl_days))
    table.add_row("http_timeout", f"{settings.http_timeout}s")
    table.add_row("log_level", settings.log_level)

    console.print(table)


if __name__ == "__main__":
    app()
