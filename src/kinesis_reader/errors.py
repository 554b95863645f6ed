"""Exception types and botocore error classification."""

from __future__ import annotations

from botocore.exceptions import ClientError

THROTTLING_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "LimitExceededException",
        "ThrottlingException",
    }
)


class KinesisReaderError(Exception):
    """Base class for errors raised by the reader itself."""


class PassExhaustedError(KinesisReaderError, RuntimeError):
    """Raised when a finished single-use pass is iterated again."""


def error_code(exc: BaseException) -> str | None:
    """Return the AWS error code carried by a botocore ``ClientError``."""
    if not isinstance(exc, ClientError):
        return None
    return exc.response.get("Error", {}).get("Code")


def is_throttling(exc: BaseException) -> bool:
    return error_code(exc) in THROTTLING_CODES


def is_expired_iterator(exc: BaseException) -> bool:
    return error_code(exc) == "ExpiredIteratorException"


def is_not_found(exc: BaseException) -> bool:
    return error_code(exc) == "ResourceNotFoundException"


def is_in_use(exc: BaseException) -> bool:
    return error_code(exc) == "ResourceInUseException"
