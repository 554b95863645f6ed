#!/usr/bin/env python3
"""Runnable demo: poll a stream and save positions after every pass.

Prerequisites:
    a stream named in examples/reader-config.yaml, or LocalStack with
    KINESIS_ENDPOINT=http://localhost:4566
    uv run python examples/poll_stream_demo.py
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path

import boto3
from rich.console import Console

from kinesis_reader.config.loader import load_reader_config
from kinesis_reader.poller import StreamPoller
from kinesis_reader.reader import KinesisReader
from kinesis_reader.shards.models import Record

console = Console()
CONFIG = Path(__file__).parent / "reader-config.yaml"
POSITIONS = Path(".kinesis-positions.json")


def main() -> None:
    # 1. Load config and any positions saved by a previous run
    config = load_reader_config(
        CONFIG, endpoint_url=os.environ.get("KINESIS_ENDPOINT")
    )
    saved = json.loads(POSITIONS.read_text()) if POSITIONS.exists() else {}
    console.print(
        f"[bold]Reading[/bold] {config.stream_name}, resuming {len(saved)} shards"
    )

    # 2. Build the reader
    client = boto3.client(
        "kinesis", region_name=config.region, endpoint_url=config.endpoint_url
    )
    reader = KinesisReader.from_config(client, config, sequence_numbers=saved)

    # 3. Poll until Ctrl+C
    async def handler(record: Record) -> None:
        console.print(
            f"[cyan]{record.shard_id}[/cyan] {record.sequence_number}  "
            f"key={record.partition_key}  {record.data[:80]!r}"
        )

    def on_pass(positions: dict[str, str], lag: int) -> None:
        POSITIONS.write_text(json.dumps(positions, indent=2))
        console.print(f"[dim]pass done, {lag} ms behind latest[/dim]")

    poller = StreamPoller(reader, config.poll_interval_seconds)
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")
    try:
        asyncio.run(poller.start(handler, on_pass))
    except KeyboardInterrupt:
        poller.stop()


if __name__ == "__main__":
    main()
