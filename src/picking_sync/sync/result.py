"""Result values for read and write paths.

A ``Result`` keeps "empty because nothing matched" apart from "empty
because the call failed": a failed result carries an ``ErrorKind`` and, for
reads, the cached fallback in ``value``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    CONNECTIVITY = "connectivity"
    REMOTE = "remote"
    STORAGE = "storage"
    DATA_SHAPE = "data_shape"


@dataclass
class Result(Generic[T]):
    value: Any = None
    error: Optional[ErrorKind] = None
    message: str = ""
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value, from_cache: bool = False) -> "Result":
        return cls(value=value, from_cache=from_cache)

    @classmethod
    def failure(cls, error: ErrorKind, message: str = "", fallback=None,
                from_cache: bool = False) -> "Result":
        return cls(value=fallback, error=ErrorKind(error), message=message,
                   from_cache=from_cache)


class WriteOutcome(str, Enum):
    APPLIED = "applied"
    QUEUED = "queued"


@dataclass
class WriteResult:
    """What happened to a gated write."""

    outcome: WriteOutcome
    subject_id: Optional[int] = None
    remote_result: Any = None

    @property
    def queued(self) -> bool:
        return self.outcome == WriteOutcome.QUEUED
