"""Throttling-aware wrapper around the three Kinesis calls the reader needs."""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from functools import partial
from typing import Any, TypeVar

import structlog
from botocore.exceptions import ClientError
from tenacity import RetryCallState, Retrying, retry_if_exception

from kinesis_reader.config.models import RetryConfig
from kinesis_reader.errors import is_throttling
from kinesis_reader.shards.models import (
    AcquisitionMode,
    IteratorToken,
    RecordBatch,
    Shard,
)

logger = structlog.get_logger()

T = TypeVar("T")

Clock = Callable[[], float]
Sleep = Callable[[float], None]


class RetryingKinesis:
    """Calls Kinesis, retrying throttled requests until a deadline.

    Deadlines are absolute values of ``clock`` (``time.monotonic`` unless
    injected). A call that is still throttled when its deadline passes returns
    ``None`` instead of raising; every other client error propagates.
    ``GetRecords`` is never retried: the caller reads again on its next pass.
    """

    def __init__(
        self,
        client: Any,
        retry: RetryConfig | None = None,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleep = time.sleep,
    ) -> None:
        self._client = client
        self._retry = retry or RetryConfig()
        self._clock = clock
        self._sleep = sleep

    def deadline(self, timeout: float) -> float:
        """Absolute deadline *timeout* seconds from now."""
        return self._clock() + timeout

    def call_with_retry(
        self, operation: str, fn: Callable[[], T], deadline: float
    ) -> T | None:
        """Invoke *fn*, retrying on throttling; ``None`` if the deadline passes."""

        def _wait(retry_state: RetryCallState) -> float:
            delay = self._retry.delay(retry_state.attempt_number)
            if self._retry.jitter_seconds:
                delay += random.uniform(0, self._retry.jitter_seconds)
            return max(0.0, min(delay, deadline - self._clock()))

        def _stop(retry_state: RetryCallState) -> bool:
            return self._clock() >= deadline

        def _before_sleep(retry_state: RetryCallState) -> None:
            logger.debug(
                "kinesis.throttled",
                operation=operation,
                attempt=retry_state.attempt_number,
                sleep=retry_state.next_action.sleep if retry_state.next_action else 0,
            )

        retrying = Retrying(
            retry=retry_if_exception(is_throttling),
            wait=_wait,
            stop=_stop,
            sleep=self._sleep,
            before_sleep=_before_sleep,
            reraise=True,
        )
        try:
            return retrying(fn)
        except ClientError as exc:
            if not is_throttling(exc):
                raise
            logger.debug(
                "kinesis.retry_deadline_exceeded",
                operation=operation,
                attempts=retrying.statistics.get("attempt_number"),
            )
            return None

    def describe_shards(self, stream_name: str, deadline: float) -> list[Shard] | None:
        """Return every shard in the stream, or ``None`` if discovery timed out.

        Pages are fetched with ``ExclusiveStartShardId``; a timeout on any page
        discards the pages already collected.
        """
        shards: list[Shard] = []
        start_shard_id: str | None = None
        while True:
            request: dict[str, Any] = {"StreamName": stream_name}
            if start_shard_id is not None:
                request["ExclusiveStartShardId"] = start_shard_id
            response = self.call_with_retry(
                "describe_stream",
                partial(self._client.describe_stream, **request),
                deadline,
            )
            if response is None:
                return None

            description = response["StreamDescription"]
            page = [Shard.from_response(s) for s in description.get("Shards", [])]
            shards.extend(page)
            if not description.get("HasMoreShards") or not page:
                return shards
            start_shard_id = page[-1].shard_id

    def get_shard_iterator(
        self,
        stream_name: str,
        shard_id: str,
        mode: AcquisitionMode,
        deadline: float,
    ) -> IteratorToken | None:
        response = self.call_with_retry(
            "get_shard_iterator",
            partial(
                self._client.get_shard_iterator,
                StreamName=stream_name,
                ShardId=shard_id,
                **mode.request_params(),
            ),
            deadline,
        )
        if response is None or not response.get("ShardIterator"):
            return None
        return IteratorToken(response["ShardIterator"])

    def get_records(
        self, token: IteratorToken, limit: int | None = None
    ) -> RecordBatch | None:
        """One ``GetRecords`` call; ``None`` when throttled."""
        request: dict[str, Any] = {"ShardIterator": token.value}
        if limit is not None:
            request["Limit"] = limit
        try:
            response = self._client.get_records(**request)
        except ClientError as exc:
            if not is_throttling(exc):
                raise
            logger.warning("kinesis.get_records_throttled", error=str(exc))
            return None

        next_iterator = response.get("NextShardIterator")
        return RecordBatch(
            records=response.get("Records", []),
            next_token=IteratorToken(next_iterator) if next_iterator else None,
            millis_behind_latest=response.get("MillisBehindLatest") or 0,
        )
