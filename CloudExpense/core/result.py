"""Outcome of an operation that can fail, for callers that branch instead of catching."""
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

from ..status.status import BaseStatusException

T = TypeVar('T')


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or the exception that prevented it.

    Attributes:
        value: The operation's value on success.
        error: The failure, None on success.
    """
    value: Optional[T] = None
    error: Optional[BaseStatusException] = None

    @classmethod
    def success(cls, value: Optional[T] = None) -> 'Result[T]':
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseStatusException) -> 'Result[T]':
        return cls(error=error)

    @property
    def is_success(self) -> bool:
        return self.error is None

    @property
    def is_failure(self) -> bool:
        return self.error is not None

    def error_message(self, default: str = '') -> str:
        """The failure's user-facing message, or ``default`` when there is none."""
        if self.error is None:
            return default
        return self.error.message or default

    def get_or_raise(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value
