"""StreamAdmin: create, delete, reshard and wait on Kinesis streams.

Every call retries throttling through the same backoff the reader uses and is
bounded by a timeout; running out of time is reported through the return
value, not an exception.
"""

from __future__ import annotations

import time
from functools import partial
from typing import Any

import structlog
from botocore.exceptions import ClientError

from kinesis_reader.config.models import RetryConfig
from kinesis_reader.errors import is_in_use, is_not_found
from kinesis_reader.shards.facade import Clock, RetryingKinesis, Sleep

logger = structlog.get_logger()

ACTIVE = "ACTIVE"


class StreamAdmin:
    """Administrative helpers around a boto3 Kinesis client."""

    def __init__(
        self,
        client: Any,
        retry: RetryConfig | None = None,
        *,
        poll_interval: float = 0.1,
        clock: Clock = time.monotonic,
        sleep: Sleep = time.sleep,
    ) -> None:
        self._client = client
        self._kinesis = RetryingKinesis(client, retry, clock=clock, sleep=sleep)
        self._poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    def describe_summary(self, stream_name: str, deadline: float) -> dict[str, Any] | None:
        """``StreamDescriptionSummary`` or ``None`` if throttled past *deadline*."""
        response = self._kinesis.call_with_retry(
            "describe_stream_summary",
            partial(self._client.describe_stream_summary, StreamName=stream_name),
            deadline,
        )
        if response is None:
            return None
        return response["StreamDescriptionSummary"]

    def wait_for_status(
        self, stream_name: str, status: str = ACTIVE, timeout: float = 60.0
    ) -> str | None:
        """Poll until the stream reaches *status* or *timeout* expires.

        Returns the last status seen, or ``None`` if the stream does not exist
        (or could never be described).
        """
        deadline = self._kinesis.deadline(timeout)
        last_status: str | None = None
        while True:
            try:
                summary = self.describe_summary(stream_name, deadline)
            except ClientError as exc:
                if is_not_found(exc):
                    return None
                raise
            if summary is not None:
                last_status = summary["StreamStatus"]
                if last_status == status:
                    return last_status

            remaining = deadline - self._clock()
            if remaining <= 0:
                logger.warning(
                    "stream_admin.wait_timeout",
                    stream=stream_name,
                    wanted=status,
                    last_status=last_status,
                )
                return last_status
            self._sleep(min(self._poll_interval, remaining))

    def create_stream(
        self,
        stream_name: str,
        shard_count: int,
        *,
        retention_hours: int | None = None,
        timeout: float = 60.0,
    ) -> str | None:
        """Create a stream (no-op if it exists) and wait for it to become active."""
        deadline = self._kinesis.deadline(timeout)
        try:
            response = self._kinesis.call_with_retry(
                "create_stream",
                partial(
                    self._client.create_stream,
                    StreamName=stream_name,
                    ShardCount=shard_count,
                ),
                deadline,
            )
        except ClientError as exc:
            if not is_in_use(exc):
                raise
            logger.info("stream_admin.stream_exists", stream=stream_name)
        else:
            if response is None:
                logger.warning("stream_admin.create_timeout", stream=stream_name)
                return None
            logger.info(
                "stream_admin.stream_created", stream=stream_name, shards=shard_count
            )

        status = self.wait_for_status(
            stream_name, ACTIVE, max(0.0, deadline - self._clock())
        )
        if status == ACTIVE and retention_hours is not None:
            status = self.update_retention_period(
                stream_name, retention_hours, max(0.0, deadline - self._clock())
            )
        return status

    def delete_stream(self, stream_name: str, timeout: float = 60.0) -> bool:
        """Request deletion; ``False`` if the stream is missing or throttled out."""
        deadline = self._kinesis.deadline(timeout)
        try:
            response = self._kinesis.call_with_retry(
                "delete_stream",
                partial(
                    self._client.delete_stream,
                    StreamName=stream_name,
                    EnforceConsumerDeletion=True,
                ),
                deadline,
            )
        except ClientError as exc:
            if not is_not_found(exc):
                raise
            logger.warning("stream_admin.delete_missing_stream", stream=stream_name)
            return False
        if response is None:
            logger.warning("stream_admin.delete_timeout", stream=stream_name)
            return False
        logger.info("stream_admin.stream_deleted", stream=stream_name)
        return True

    def update_retention_period(
        self, stream_name: str, hours: int, timeout: float = 60.0
    ) -> str | None:
        """Raise or lower the retention period, then wait for the stream to settle."""
        deadline = self._kinesis.deadline(timeout)
        summary = self.describe_summary(stream_name, deadline)
        if summary is None:
            return None
        current = summary.get("RetentionPeriodHours")
        if current == hours:
            return summary["StreamStatus"]

        if current is None or hours > current:
            operation = "increase_stream_retention_period"
        else:
            operation = "decrease_stream_retention_period"
        response = self._kinesis.call_with_retry(
            operation,
            partial(
                getattr(self._client, operation),
                StreamName=stream_name,
                RetentionPeriodHours=hours,
            ),
            deadline,
        )
        if response is None:
            logger.warning("stream_admin.retention_timeout", stream=stream_name)
            return None
        logger.info(
            "stream_admin.retention_updated",
            stream=stream_name,
            previous=current,
            hours=hours,
        )
        return self.wait_for_status(
            stream_name, ACTIVE, max(0.0, deadline - self._clock())
        )

    def reshard(
        self, stream_name: str, target_shard_count: int, timeout: float = 300.0
    ) -> str | None:
        """Uniformly rescale the stream and wait until it is active again.

        Returns ``ACTIVE`` on success, the last seen status if the reshard did
        not finish in time, or ``None`` if the request itself was throttled out.
        """
        deadline = self._kinesis.deadline(timeout)
        response = self._kinesis.call_with_retry(
            "update_shard_count",
            partial(
                self._client.update_shard_count,
                StreamName=stream_name,
                TargetShardCount=target_shard_count,
                ScalingType="UNIFORM_SCALING",
            ),
            deadline,
        )
        if response is None:
            logger.warning("stream_admin.reshard_timeout", stream=stream_name)
            return None
        logger.info(
            "stream_admin.reshard_started",
            stream=stream_name,
            target_shards=target_shard_count,
        )
        status = self.wait_for_status(
            stream_name, ACTIVE, max(0.0, deadline - self._clock())
        )
        if status != ACTIVE:
            logger.warning(
                "stream_admin.reshard_timeout", stream=stream_name, status=status
            )
        return status
