"""Ok/Err result values.

Every deployment step that can fail returns a ``Result`` instead of raising.
Callers branch on the variant, usually with ``match``:

    match builder.build(revision):
        case Ok(release):
            ...
        case Err(error):
            console.error(error.message)

Exceptions stay at the OS boundary (subprocess, filesystem, network) where
they are converted into error dataclasses.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeGuard, TypeVar

__all__ = ["Ok", "Err", "Result", "is_ok", "is_err"]

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Successful outcome.

    Attributes:
        value: What the step produced.
    """

    value: T

    def is_ok(self) -> bool:
        """Always True for Ok."""
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Return the carried value."""
        return self.value

    def unwrap_or(self, default: T) -> T:
        """Return the carried value.

        Args:
            default: Not used; an Ok always has a value.
        """
        return self.value

    def map(self, f: Callable[[T], U]) -> Ok[U]:
        """Transform the carried value.

        Args:
            f: Applied to ``value``.

        Returns:
            A new Ok holding ``f(value)``.
        """
        return Ok(f(self.value))

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Failed outcome.

    Attributes:
        error: Error dataclass describing what went wrong.
    """

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        """Always True for Err."""
        return True

    def unwrap(self) -> None:
        """Raise, since there is no value.

        Raises:
            ValueError: always.
        """
        raise ValueError(f"called unwrap on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Fall back to ``default``.

        Args:
            default: Value returned in place of the missing one.

        Returns:
            ``default``.
        """
        return default

    def map(self, f: Callable[[T], U]) -> Err[E]:
        """Return self; there is no value to transform."""
        return self

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


Result = Ok[T] | Err[E]


def is_ok(result: Result[T, E]) -> TypeGuard[Ok[T]]:
    """Narrow ``result`` to ``Ok``."""
    return isinstance(result, Ok)


def is_err(result: Result[T, E]) -> TypeGuard[Err[E]]:
    """Narrow ``result`` to ``Err``."""
    return isinstance(result, Err)
