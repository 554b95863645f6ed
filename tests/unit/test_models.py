"""Unit tests for shard value types and error classification."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from fakes import client_error

from kinesis_reader.errors import (
    error_code,
    is_expired_iterator,
    is_in_use,
    is_not_found,
    is_throttling,
)
from kinesis_reader.shards.models import (
    AcquisitionMode,
    IteratorToken,
    IteratorType,
    Record,
    Shard,
)


class TestAcquisitionMode:
    def test_from_start(self):
        mode = AcquisitionMode.from_start()

        assert mode.iterator_type == IteratorType.TRIM_HORIZON
        assert mode.request_params() == {"ShardIteratorType": "TRIM_HORIZON"}
        assert str(mode) == "TRIM_HORIZON"

    def test_after_carries_sequence_number(self):
        mode = AcquisitionMode.after("123")

        assert mode.request_params() == {
            "ShardIteratorType": "AFTER_SEQUENCE_NUMBER",
            "StartingSequenceNumber": "123",
        }
        assert str(mode) == "AFTER_SEQUENCE_NUMBER(123)"

    def test_at_includes_the_given_record(self):
        mode = AcquisitionMode.at("123")

        assert mode.request_params() == {
            "ShardIteratorType": "AT_SEQUENCE_NUMBER",
            "StartingSequenceNumber": "123",
        }
        assert mode != AcquisitionMode.after("123")

    @pytest.mark.parametrize(
        "iterator_type",
        [IteratorType.AT_SEQUENCE_NUMBER, IteratorType.AFTER_SEQUENCE_NUMBER],
    )
    def test_positional_modes_require_sequence_number(self, iterator_type):
        with pytest.raises(ValueError, match="sequence_number"):
            AcquisitionMode(iterator_type)

    def test_latest_rejects_sequence_number(self):
        with pytest.raises(ValueError, match="sequence_number"):
            AcquisitionMode(IteratorType.LATEST, "123")  # type: ignore[arg-type]

    def test_modes_compare_by_value(self):
        assert AcquisitionMode.after("1") == AcquisitionMode.after("1")
        assert AcquisitionMode.from_tail() != AcquisitionMode.from_start()


class TestIteratorToken:
    def test_value_hidden_from_repr(self):
        assert "secret" not in repr(IteratorToken("secret"))


class TestShard:
    def test_from_response(self):
        shard = Shard.from_response(
            {
                "ShardId": "shard-2",
                "ParentShardId": "shard-0",
                "AdjacentParentShardId": "shard-1",
                "SequenceNumberRange": {
                    "StartingSequenceNumber": "100",
                    "EndingSequenceNumber": "200",
                },
            }
        )

        assert shard.parent_shard_id == "shard-0"
        assert shard.adjacent_parent_shard_id == "shard-1"
        assert shard.is_closed

    def test_open_shard(self):
        shard = Shard.from_response(
            {"ShardId": "shard-0", "SequenceNumberRange": {"StartingSequenceNumber": "1"}}
        )

        assert shard.parent_shard_id is None
        assert not shard.is_closed


class TestRecord:
    def test_from_response(self):
        arrival = datetime(2024, 1, 1, tzinfo=UTC)
        raw = {
            "SequenceNumber": "5",
            "PartitionKey": "pk",
            "Data": b"payload",
            "ApproximateArrivalTimestamp": arrival,
        }

        record = Record.from_response("shard-0", raw)

        assert record.shard_id == "shard-0"
        assert record.sequence_number == "5"
        assert record.data == b"payload"
        assert record.approximate_arrival == arrival
        assert record.raw is raw


class TestErrorClassification:
    @pytest.mark.parametrize(
        "code",
        [
            "ProvisionedThroughputExceededException",
            "LimitExceededException",
            "ThrottlingException",
        ],
    )
    def test_throttling_codes(self, code):
        assert is_throttling(client_error(code))

    def test_other_codes(self):
        exc = client_error("ExpiredIteratorException")

        assert error_code(exc) == "ExpiredIteratorException"
        assert is_expired_iterator(exc)
        assert not is_throttling(exc)

    def test_not_found_and_in_use(self):
        assert is_not_found(client_error("ResourceNotFoundException"))
        assert is_in_use(client_error("ResourceInUseException"))

    def test_non_client_error(self):
        assert error_code(ValueError("boom")) is None
        assert not is_throttling(ValueError("boom"))
