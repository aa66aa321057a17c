"""An optional value that is either present (some) or absent (none)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Option(Generic[T]):
    """A value that may or may not be set."""

    is_some: bool = False
    value: T | None = None

    def or_value(self, v: T) -> Option[T]:
        """Return self when set, otherwise an option holding ``v``."""
        return self if self.is_some else some(v)

    def or_else(self, f: Callable[[], T]) -> Option[T]:
        """Return self when set, otherwise an option holding ``f()``."""
        return self if self.is_some else some(f())

    def or_maybe(self, f: Callable[[], Option[T]]) -> Option[T]:
        """Return self when set, otherwise the option returned by ``f()``."""
        return self if self.is_some else f()

    def do(self, f: Callable[[T], object]) -> None:
        """Call ``f`` with the value, if there is one."""
        if self.is_some:
            f(self.value)  # type: ignore[arg-type]

    def __str__(self) -> str:
        return str(self.value) if self.is_some else ""


def some(v: T) -> Option[T]:
    """An option holding ``v``."""
    return Option(True, v)


def none() -> Option:
    """An empty option."""
    return Option()