"""Success/failure container returned by rendering and execution."""

from dataclasses import dataclass
from typing import Generic, TypeVar

from cardflow.errors import CardflowError

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or an error, never both."""

    value: T | None = None
    error: BaseException | str | None = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: BaseException | str) -> "Result[T]":
        return cls(error=error)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    def unwrap(self) -> T:
        """Return the value or raise the stored error."""
        if self.error is None:
            return self.value  # type: ignore[return-value]
        if isinstance(self.error, BaseException):
            raise self.error
        raise CardflowError(self.error)
