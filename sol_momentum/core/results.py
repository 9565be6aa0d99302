"""
Typed outcome of a collaborator call.

Data and execution wrappers never raise transient failures past the cycle
boundary; they return a FetchResult whose status tells the caller whether it
got data, got nothing, or hit an error.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class FetchStatus(Enum):
    OK = "ok"
    EMPTY = "empty"  # Call succeeded, nothing found
    FAILED = "failed"  # Network/timeout/HTTP/parse error


@dataclass
class FetchResult(Generic[T]):
    status: FetchStatus
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, value: Any) -> "FetchResult":
        return cls(FetchStatus.OK, value=value)

    @classmethod
    def empty(cls) -> "FetchResult":
        return cls(FetchStatus.EMPTY)

    @classmethod
    def failed(cls, error: str) -> "FetchResult":
        return cls(FetchStatus.FAILED, error=error)

    @property
    def is_ok(self) -> bool:
        return self.status is FetchStatus.OK

    def value_or(self, default: Any) -> Any:
        return self.value if self.is_ok else default
