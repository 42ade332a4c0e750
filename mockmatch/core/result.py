"""
Result type returned by the repositories.

Expected data-access failures (missing rows, driver errors) come back as
``Failure`` instead of being raised. Callers pick the policy:

* ``.unwrap()`` when a failure is a bug or should surface as a 500,
* ``.unwrap_or(None)`` when a missing row means "not found",
* ``isinstance(result, Failure)`` when a failure should be logged and
  degraded to an empty answer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    value: T

    def is_success(self) -> bool:
        return True

    def is_failure(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, _default: T) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Failure(Generic[E]):
    error: E

    def is_success(self) -> bool:
        return False

    def is_failure(self) -> bool:
        return True

    def unwrap(self):
        """Raise the carried error, wrapping plain error records in RuntimeError."""
        if isinstance(self.error, Exception):
            raise self.error
        raise RuntimeError(str(self.error))

    def unwrap_or(self, default: T) -> T:
        return default


Result = Union[Success[T], Failure[E]]


@dataclass(frozen=True, slots=True)
class NotFoundError:
    """No row with that key (or no row in the requested state)."""

    entity_type: str
    entity_id: str | int
    message: str | None = None

    def __str__(self) -> str:
        return self.message or f"{self.entity_type} {self.entity_id} not found"


@dataclass(frozen=True, slots=True)
class DatabaseError:
    operation: str
    message: str
    original_exception: Exception | None = None

    def __str__(self) -> str:
        return f"{self.operation} failed: {self.message}"


__all__ = ["Success", "Failure", "Result", "NotFoundError", "DatabaseError"]
