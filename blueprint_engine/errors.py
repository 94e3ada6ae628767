"""
Blueprint Engine Result and Error Types
Tagged results for caller-facing failures, exceptions for pipeline bugs.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Caller-facing failure categories."""
    INVALID_INPUT = "invalid_input"
    DECODE_FAILURE = "decode_failure"
    NOT_FOUND = "not_found"
    DATASET_UNAVAILABLE = "dataset_unavailable"


# HTTP status used by the API layer for each kind
HTTP_STATUS = {
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.DECODE_FAILURE: 422,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DATASET_UNAVAILABLE: 503,
}


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result wrapping a value."""
    value: T


@dataclass(frozen=True)
class Err:
    """Failed result with a kind and a human-readable message."""
    kind: ErrorKind
    message: str


Result = Union[Ok[T], Err]


def invalid_input(message: str) -> Err:
    return Err(ErrorKind.INVALID_INPUT, message)


def not_found(message: str) -> Err:
    return Err(ErrorKind.NOT_FOUND, message)


class InternalInvariantError(RuntimeError):
    """Raised when the pipeline breaks one of its own invariants (a bug, not a caller mistake)."""
    pass


class DecodeError(ValueError):
    """Raised by the raster codec for unreadable or corrupt image payloads."""
    pass


class DatasetUnavailableError(RuntimeError):
    """Raised when the thread dataset is missing or cannot be parsed."""
    pass
