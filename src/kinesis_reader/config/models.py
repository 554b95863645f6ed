"""Pydantic configuration models for the stream reader."""

from __future__ import annotations

from typing import Annotated, Self

from pydantic import BaseModel, Field, model_validator

from kinesis_reader.shards.models import StartPosition

StreamName = Annotated[str, Field(pattern=r"^[a-zA-Z0-9_.-]{1,128}$")]


class RetryConfig(BaseModel):
    """Backoff applied to throttled ``DescribeStream``/``GetShardIterator`` calls.

    The n-th retry sleeps ``initial_wait_seconds * multiplier ** (n - 1)``
    (capped at ``max_wait_seconds``) plus up to ``jitter_seconds`` of random
    delay, never past the caller's deadline.
    """

    initial_wait_seconds: float = Field(default=0.1, gt=0)
    multiplier: float = Field(default=2.0, ge=1.0)
    max_wait_seconds: float = Field(default=1.0, gt=0)
    jitter_seconds: float = Field(default=0.0, ge=0.0)

    @model_validator(mode="after")
    def check_wait_bounds(self) -> Self:
        if self.max_wait_seconds < self.initial_wait_seconds:
            msg = "max_wait_seconds must not be smaller than initial_wait_seconds"
            raise ValueError(msg)
        return self

    def delay(self, attempt: int) -> float:
        """Backoff before retry number *attempt* (1-based), without jitter."""
        wait = self.initial_wait_seconds * self.multiplier ** (attempt - 1)
        return min(wait, self.max_wait_seconds)


class ReaderConfig(BaseModel, extra="forbid"):
    """Settings for one reader, typically loaded from YAML."""

    stream_name: StreamName | None = None
    region: str = "us-east-1"
    endpoint_url: str | None = None
    start_position: StartPosition = StartPosition.LATEST
    # Budget for each round of shard discovery + iterator acquisition.
    timeout_seconds: float = Field(default=2.5, gt=0)
    records_limit: int | None = Field(default=None, ge=1, le=10000)
    poll_interval_seconds: float = Field(default=1.0, gt=0)
    retry: RetryConfig = RetryConfig()
