"""
Result envelope for collaborator calls and stage actions.

Collaborators that can fail in an expected way (build, push, apply) return
``Ok(value)`` or ``Err(error)`` instead of raising, and every stage action
returns ``Result[str]``. The stage executor inspects the envelope to decide
Success or Failure; an ``Err`` never needs a ``try``/``except`` at the call
site.

Examples:
    >>> from shipwright.core.result import Ok, Err
    >>> Ok(10).map(lambda x: x * 2).unwrap()
    20
    >>> Err(ValueError("oops")).map(lambda x: x * 2).unwrap_or(0)
    0

    >>> match Ok("pushed"):
    ...     case Ok(value):
    ...         print(value)
    ...     case Err(error):
    ...         print(error)
    pushed

Tags:
    result-pattern, error-handling, shipwright
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from shipwright.core.errors import ShipwrightError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Get the value. Safe for Ok."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Get value or default (always returns value for Ok)."""
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """Transform the value if Ok."""
        return Ok(f(self.value))

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:
        """Chain to another Result-returning function."""
        return f(self.value)

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:
        """Transform error if Err (no-op for Ok)."""
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"ok": True, "value": self.value}

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """
    Failed result containing an error.

    Prefer a ``ShipwrightError`` subclass so the failure kind and category
    survive into the run record.
    """

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the error. Use only when you're sure it's Ok."""
        raise self.error

    def unwrap_or(self, default: T) -> T:
        """Get default since this is Err."""
        return default

    def map(self, f: Callable[[T], U]) -> Result[U]:
        """No-op for Err."""
        return Err(self.error)

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:
        """No-op for Err."""
        return Err(self.error)

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:
        """Transform the error."""
        return Err(f(self.error))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        if isinstance(self.error, ShipwrightError):
            return {"ok": False, "error": self.error.to_dict()}
        return {
            "ok": False,
            "error": {
                "error_type": type(self.error).__name__,
                "message": str(self.error),
            },
        }

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[T]


def try_result(f: Callable[[], T]) -> Result[T]:
    """Execute a zero-argument callable and wrap the outcome.

    >>> try_result(lambda: int("42")).unwrap()
    42
    >>> try_result(lambda: int("x")).is_err()
    True
    """
    try:
        return Ok(f())
    except Exception as e:
        return Err(e)


__all__ = ["Ok", "Err", "Result", "try_result"]
