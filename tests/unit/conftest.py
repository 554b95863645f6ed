"""Shared fixtures: an in-memory Kinesis client and a controllable clock."""

from __future__ import annotations

import pytest
import structlog
from fakes import FakeClock, FakeKinesis


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_kinesis() -> FakeKinesis:
    return FakeKinesis()


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()
