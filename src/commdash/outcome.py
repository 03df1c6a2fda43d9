"""Tagged result variant: ``Outcome = Success(value) | Failure(error)``.

Used wherever a single slot must hold either a value or an error, never
both and never neither: mock transport registrations and per-source
refresh results.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")
E = TypeVar("E", bound=BaseException)


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Failure(Generic[E]):
    error: E

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        """Re-raise the captured error."""
        raise self.error


Outcome = Union[Success[T], Failure[E]]
