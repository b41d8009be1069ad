from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from fastapi import HTTPException, status

T = TypeVar("T")


class StorageUnavailable(Exception):
    """Raised by a thread store when its medium is unreachable or times out."""


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    STORAGE_UNAVAILABLE = "storage_unavailable"


@dataclass(slots=True)
class Failure:
    kind: ErrorKind
    message: str
    details: Optional[Any] = None


@dataclass(slots=True)
class Result(Generic[T]):
    """Outcome of a service operation: either a value or a Failure, never both."""
    value: Optional[T] = None
    error: Optional[Failure] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, details: Any = None) -> "Result[T]":
        return cls(error=Failure(kind, message, details))


class Exceptions:
    NOT_FOUND = HTTPException(status.HTTP_404_NOT_FOUND, "Resource not found")
    STORAGE_UNAVAILABLE = HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "Storage unavailable")
