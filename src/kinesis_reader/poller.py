"""StreamPoller: drives a KinesisReader from an asyncio application."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from kinesis_reader.reader import KinesisReader
from kinesis_reader.shards.models import Record

logger = structlog.get_logger()

RecordHandler = Callable[[Record], Awaitable[None]]
PassCallback = Callable[[dict[str, str], int], Awaitable[None] | None]


class StreamPoller:
    """Runs reader passes in the default executor and hands records to a handler.

    Passes never overlap, so the reader is only ever touched by one thread at
    a time. After every pass *on_pass* receives the reader's sequence numbers
    and lag, which is the point to persist them. An exception from the
    handler stops the poller without reporting that pass's positions; the
    record it failed on is the first one the reader returns next time.
    """

    def __init__(self, reader: KinesisReader, poll_interval: float = 1.0) -> None:
        self._reader = reader
        self._poll_interval = poll_interval
        self._running = False
        self._passes = 0
        self._records = 0
        self._millis_behind_latest = 0

    async def start(
        self,
        handler: RecordHandler,
        on_pass: PassCallback | None = None,
    ) -> None:
        """Poll until :meth:`stop` is called."""
        self._running = True
        loop = asyncio.get_running_loop()
        logger.info("stream_poller.started", stream=self._reader.stream_name)

        try:
            while self._running:
                self._records += await self._handle_pass(loop, handler)
                self._passes += 1
                self._millis_behind_latest = self._reader.millis_behind_latest

                if on_pass is not None:
                    result = on_pass(
                        self._reader.current_sequence_numbers(),
                        self._millis_behind_latest,
                    )
                    if inspect.isawaitable(result):
                        await result

                if self._running:
                    await asyncio.sleep(self._poll_interval)
        finally:
            self._running = False
            logger.info(
                "stream_poller.stopped",
                stream=self._reader.stream_name,
                passes=self._passes,
                records=self._records,
            )

    async def _handle_pass(
        self, loop: asyncio.AbstractEventLoop, handler: RecordHandler
    ) -> int:
        # a record is only handed out once the handler has accepted it
        records = self._reader.iterator()
        handled = 0
        while True:
            record = await loop.run_in_executor(None, records.peek)
            if record is None:
                return handled
            try:
                await handler(record)
            except BaseException:
                records.close()
                logger.warning(
                    "stream_poller.handler_failed",
                    stream=self._reader.stream_name,
                    shard=record.shard_id,
                    sequence_number=record.sequence_number,
                )
                raise
            next(records)
            handled += 1

    def stop(self) -> None:
        """Signal the poller to stop after the current pass."""
        self._running = False

    async def health(self) -> dict[str, Any]:
        return {
            "status": "running" if self._running else "stopped",
            "stream": self._reader.stream_name,
            "passes": self._passes,
            "records": self._records,
            "millis_behind_latest": self._millis_behind_latest,
            "shards": self._reader.frontier,
        }
