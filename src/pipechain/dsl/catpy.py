"""
catpy.py - Category-theory-inspired foundations for chain evaluation.

This module provides the small set of typeclasses and types the evaluator is
built on:
- Core typeclasses: Functor, Monad
- Concrete instance: Result (Ok/Err), used by every step to report success
  or failure without raising

Steps never raise: they return ``Err(ChainError)``, and the raising API turns
the first error into an ``EvaluationError`` at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Generic,
    Optional,
    TypeVar,
)
from abc import ABC, abstractmethod

T = TypeVar("T")
U = TypeVar("U")
E = TypeVar("E")

# ---------------------------------------------------------------------------
# Core typeclasses
# ---------------------------------------------------------------------------

class Functor(ABC, Generic[T]):
    """
    A structure that supports mapping a function over the values it contains.

    Laws (for all f: a->b, g: b->c):
      1) Identity:     fmap(id)      == id
      2) Composition:  fmap(g)∘fmap(f) == fmap(g∘f)

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a type-class.
    ::: This is stateless.
    """

    @abstractmethod
    def fmap(self, f: Callable[[T], U]) -> "Functor[U]":
        """Map a pure function over the structure."""
        raise NotImplementedError


class Monad(Functor[T], ABC):
    """
    A Functor that can lift plain values and sequence wrapped computations.

    Laws (for all x and functions f: a -> m b, g: b -> m c):
      1) Left identity:  pure(x).bind(f) == f(x)
      2) Right identity: m.bind(pure)    == m
      3) Associativity:  m.bind(f).bind(g) == m.bind(lambda x: f(x).bind(g))

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a type-class.
    ::: This is stateless.
    """

    @classmethod
    @abstractmethod
    def pure(cls, x: U) -> "Monad[U]":
        """Lift a value into the monadic context."""
        raise NotImplementedError

    @abstractmethod
    def bind(self, f: Callable[[T], "Monad[U]"]) -> "Monad[U]":
        """Chain a function that returns a wrapped value (aka flatMap)."""
        raise NotImplementedError


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

class Result(Monad[T], ABC, Generic[T, E]):
    """
    Tagged union for success or failure with an error value.
    - Ok(value)
    - Err(error)

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a monad.
    ::: This is stateless.
    """

    @classmethod
    def pure(cls, x: U) -> "Result[U, E]":  # type: ignore[override]
        return Ok(x)

    def is_ok(self) -> bool:
        return isinstance(self, Ok)

    def is_err(self) -> bool:
        return isinstance(self, Err)

    def unwrap(self) -> T:
        """Get the value or raise if Err."""
        if isinstance(self, Ok):
            return self.value
        raise ValueError(f"Cannot unwrap Err: {self}")

    def unwrap_or(self, default: T) -> T:
        """Get the value or return default if Err."""
        if isinstance(self, Ok):
            return self.value
        return default

    def map_err(self, f: Callable[[E], E]) -> "Result[T, E]":
        """Map a function over the error value."""
        if isinstance(self, Err):
            return Err(f(self.error))
        return self


@dataclass(frozen=True)
class Ok(Result[T, E]):
    """Represents a successful result.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a monad.
    ::: This is stateless.
    """
    value: T

    def bind(self, f: Callable[[T], Result[U, E]]) -> Result[U, E]:
        return f(self.value)

    def fmap(self, f: Callable[[T], U]) -> Result[U, E]:  # type: ignore[override]
        return Ok(f(self.value))

    def __repr__(self) -> str:
        return f"Ok({self.value!r})"


@dataclass(frozen=True)
class Err(Result[Any, E]):
    """Represents a failed result with error information.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a monad.
    ::: This is stateless.
    """
    error: E

    def bind(self, f: Callable[[Any], Result[U, E]]) -> Result[U, E]:
        return self  # type: ignore[return-value]

    def fmap(self, f: Callable[[Any], U]) -> Result[U, E]:  # type: ignore[override]
        return self  # type: ignore[return-value]

    def __repr__(self) -> str:
        return f"Err({self.error!r})"


# ---------------------------------------------------------------------------
# Chain Error Type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChainError:
    """Error that occurred while evaluating one step of a chain.

    ``step_index`` is the zero-based position of the failing step within the
    outermost chain being run; it is filled in by the chain, not by the step.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a value-object.
    """
    step: str
    message: str
    cause: Optional[BaseException] = None
    step_index: Optional[int] = None
    input_value: Any = None

    def at(self, index: int) -> "ChainError":
        """Return a copy positioned at ``index`` in the chain being run."""
        return ChainError(self.step, self.message, self.cause, index, self.input_value)

    def __str__(self) -> str:
        where = self.step if self.step_index is None else f"{self.step_index}:{self.step}"
        if self.cause is not None:
            return f"[{where}] {self.message}: {self.cause}"
        return f"[{where}] {self.message}"


# Type alias for chain results
ChainResult = Result[T, ChainError]


def chain_ok(value: T) -> ChainResult[T]:
    """Create a successful chain result."""
    return Ok(value)


def chain_err(step: str, message: str, cause: Optional[BaseException] = None,
              input_value: Any = None) -> ChainResult[Any]:
    """Create a failed chain result."""
    return Err(ChainError(step, message, cause, input_value=input_value))
