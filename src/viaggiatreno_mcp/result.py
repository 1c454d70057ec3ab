"""Two-variant result type for operations that report their failures."""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

T = TypeVar("T")


class FailureKind(str, Enum):
    """Why an upstream call did not produce a value."""

    TRANSPORT = "transport"
    STATUS = "status"
    PARSE = "parse"


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T


@dataclass(frozen=True)
class Failure:
    kind: FailureKind
    error: Exception

    def __str__(self) -> str:
        return f"{self.kind.value} failure: {self.error}"


Result = Union[Ok[T], Failure]
