"""Typer CLI for reading and managing Kinesis streams."""

from __future__ import annotations

import json
import logging
import sys
import time
from datetime import UTC
from typing import Any

import structlog
import typer
from rich.console import Console
from rich.table import Table

from kinesis_reader.admin import ACTIVE, StreamAdmin
from kinesis_reader.config.loader import load_reader_config
from kinesis_reader.config.models import ReaderConfig
from kinesis_reader.reader import KinesisReader
from kinesis_reader.shards.facade import RetryingKinesis
from kinesis_reader.shards.models import Record, StartPosition
from kinesis_reader.shards.topology import ShardTopology

logger = structlog.get_logger()
console = Console()
err_console = Console(stderr=True)
app = typer.Typer(name="kinesis-reader", help="Kinesis stream reader CLI")


@app.callback()
def main(
    log_level: str = typer.Option("warning", "--log-level", help="Minimum log level"),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit logs as JSON"),
) -> None:
    """Configure structlog; logs go to stderr so stdout stays machine-readable."""
    processors: list[Any] = [
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    if json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        err_console.print(f"[red]Unknown log level:[/red] {log_level}")
        raise typer.Exit(1)
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )


def _load(config_path: str | None, **overrides: Any) -> ReaderConfig:
    try:
        return load_reader_config(config_path, **overrides)
    except (FileNotFoundError, TypeError, ValueError) as exc:
        err_console.print(f"[red]Config error:[/red] {exc}")
        raise typer.Exit(1) from exc


def _make_client(config: ReaderConfig) -> Any:
    import boto3

    return boto3.client(
        "kinesis", region_name=config.region, endpoint_url=config.endpoint_url
    )


def _record_json(record: Record) -> dict[str, Any]:
    arrival = record.approximate_arrival
    return {
        "ShardId": record.shard_id,
        "SequenceNumber": record.sequence_number,
        "PartitionKey": record.partition_key,
        "ApproximateArrivalTimestamp": (
            arrival.astimezone(UTC).isoformat() if arrival is not None else None
        ),
        "Data": record.data.decode("utf-8", errors="replace"),
    }


@app.command()
def validate(
    config_path: str = typer.Argument(..., help="Path to reader YAML"),
) -> None:
    """Validate a reader configuration file."""
    config = _load(config_path)
    console.print("[green]Valid[/green]")
    console.print(f"  stream:         {config.stream_name or '(given on command line)'}")
    console.print(f"  region:         {config.region}")
    console.print(f"  start position: {config.start_position}")
    console.print(f"  timeout:        {config.timeout_seconds}s")


@app.command()
def tail(
    stream_name: str = typer.Argument(..., help="Stream to read"),
    config_path: str | None = typer.Option(None, "--config", help="Reader YAML"),
    from_start: bool = typer.Option(
        False, "--from-start", help="Start at the trim horizon instead of the tip"
    ),
    passes: int | None = typer.Option(
        None, "--passes", min=1, help="Stop after this many passes"
    ),
    interval: float | None = typer.Option(
        None, "--interval", help="Seconds to sleep between passes"
    ),
    sequence_numbers: str | None = typer.Option(
        None,
        "--sequence-numbers",
        help='JSON object of saved positions, e.g. {"shardId-000000000000": "4955..."}',
    ),
) -> None:
    """Print every record as a JSON line; final positions go to stderr."""
    config = _load(
        config_path,
        start_position=StartPosition.TRIM_HORIZON if from_start else None,
        poll_interval_seconds=interval,
    )
    seeds: dict[str, str] | None = None
    if sequence_numbers:
        try:
            seeds = json.loads(sequence_numbers)
        except json.JSONDecodeError as exc:
            err_console.print(f"[red]Invalid --sequence-numbers:[/red] {exc}")
            raise typer.Exit(1) from exc

    reader = KinesisReader.from_config(
        _make_client(config), config, stream_name=stream_name, sequence_numbers=seeds
    )
    completed = 0
    try:
        while passes is None or completed < passes:
            for record in reader:
                typer.echo(json.dumps(_record_json(record)))
            completed += 1
            if passes is None or completed < passes:
                time.sleep(config.poll_interval_seconds)
    except KeyboardInterrupt:
        pass
    finally:
        logger.info("cli.tail_finished", stream=stream_name, passes=completed)
        err_console.print_json(data=reader.current_sequence_numbers())


@app.command()
def shards(
    stream_name: str = typer.Argument(..., help="Stream to describe"),
    config_path: str | None = typer.Option(None, "--config", help="Reader YAML"),
) -> None:
    """Show the stream's shards and their parent/child relationships."""
    config = _load(config_path)
    kinesis = RetryingKinesis(_make_client(config), config.retry)
    topology = ShardTopology(kinesis, stream_name)
    graph = topology.refresh(kinesis.deadline(config.timeout_seconds))
    if graph is None:
        err_console.print("[red]Timed out describing stream[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Shards: {stream_name}")
    table.add_column("Shard ID", style="cyan")
    table.add_column("Parent")
    table.add_column("Adjacent parent")
    table.add_column("Children")
    table.add_column("State")
    for shard in sorted(graph, key=lambda s: s.shard_id):
        children = ", ".join(c.shard_id for c in graph.children_of(shard.shard_id))
        state = "[dim]closed[/dim]" if shard.is_closed else "[green]open[/green]"
        table.add_row(
            shard.shard_id,
            shard.parent_shard_id or "",
            shard.adjacent_parent_shard_id or "",
            children,
            state,
        )
    console.print(table)


@app.command()
def create(
    stream_name: str = typer.Argument(..., help="Stream to create"),
    shard_count: int = typer.Option(1, "--shards", min=1, help="Number of shards"),
    retention_hours: int | None = typer.Option(
        None, "--retention-hours", min=24, help="Retention period"
    ),
    timeout: float = typer.Option(120.0, "--timeout", help="Seconds to wait"),
    config_path: str | None = typer.Option(None, "--config", help="Reader YAML"),
) -> None:
    """Create a stream and wait for it to become active."""
    config = _load(config_path)
    admin = StreamAdmin(_make_client(config), config.retry)
    status = admin.create_stream(
        stream_name, shard_count, retention_hours=retention_hours, timeout=timeout
    )
    if status != ACTIVE:
        err_console.print(f"[red]Stream not active:[/red] {status}")
        raise typer.Exit(1)
    console.print(f"[green]Stream active:[/green] {stream_name}")


@app.command()
def delete(
    stream_name: str = typer.Argument(..., help="Stream to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    config_path: str | None = typer.Option(None, "--config", help="Reader YAML"),
) -> None:
    """Delete a stream."""
    if not yes and not typer.confirm(f"Delete stream '{stream_name}'?"):
        console.print("[yellow]Cancelled[/yellow]")
        raise typer.Exit(0)
    config = _load(config_path)
    admin = StreamAdmin(_make_client(config), config.retry)
    if not admin.delete_stream(stream_name):
        err_console.print(f"[red]Could not delete stream:[/red] {stream_name}")
        raise typer.Exit(1)
    console.print(f"[green]Deleted:[/green] {stream_name}")


@app.command()
def reshard(
    stream_name: str = typer.Argument(..., help="Stream to rescale"),
    shard_count: int = typer.Option(..., "--shards", min=1, help="Target shard count"),
    timeout: float = typer.Option(300.0, "--timeout", help="Seconds to wait"),
    config_path: str | None = typer.Option(None, "--config", help="Reader YAML"),
) -> None:
    """Uniformly rescale a stream to a new shard count."""
    config = _load(config_path)
    admin = StreamAdmin(_make_client(config), config.retry)
    status = admin.reshard(stream_name, shard_count, timeout=timeout)
    if status != ACTIVE:
        err_console.print(f"[red]Reshard did not complete:[/red] {status}")
        raise typer.Exit(1)
    console.print(f"[green]Resharded {stream_name} to {shard_count} shards[/green]")
