"""
Pipechain Operators - Step Builders and Flow Control

This module provides small builders for writing chains with Python's ``|``
operator, plus operators for controlling which steps run:
- then / tee / expose: forward, tee and exposition steps
- when / unless: execute a step only when a condition holds (or not)
- branch: choose between two steps
- identity: pass-through step
- pipeline: compose several steps into one
"""

from typing import Callable, Any, Optional, TypeVar
from dataclasses import dataclass

from .core import (
    Step, CallStep, TapStep, ExposeStep, ComposedStep,
    as_step, execute_step, step_name,
)
from .catpy import ChainResult, chain_ok, chain_err

T = TypeVar("T")
U = TypeVar("U")


# =============================================================================
# Step Builders
# =============================================================================

def then(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> CallStep:
    """
    Create a forward step: the threaded value becomes the first argument.

    Example:
        >>> 4 | then(operator.add, 1) | then(operator.mul, 2)
        10
        >>> "." | then(str.join, P, ["a", "b"])
        'a.b'
    """
    return CallStep(fn, args, kwargs)


def tee(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> TapStep:
    """
    Create a tee step for side effects.

    The function is called with the data but the data passes through unchanged.

    Example:
        >>> [3, 1, 2] | tee(print) | then(sorted)
        [3, 1, 2]
        [1, 2, 3]
    """
    return TapStep(fn, args, kwargs)


def expose(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> ExposeStep:
    """
    Create an exposition step: the value's names become keyword arguments.

    Example:
        >>> {"x": 2, "y": 3} | expose(lambda x, y: x ** y)
        8
    """
    return ExposeStep(fn, args, kwargs)


# =============================================================================
# Conditional Operators
# =============================================================================

@dataclass
class ConditionalStep(Step[T, T]):
    """
    A step that executes conditionally based on a predicate of the data.

    If the condition is not met, the step is skipped and data passes through
    unchanged.
    """
    inner_step: Step[T, T]
    condition: Callable[[T], bool]
    negate: bool = False  # True for 'unless' behavior

    @property
    def name(self) -> str:
        keyword = "unless" if self.negate else "when"
        return f"{keyword}({self.inner_step.name})"

    def execute(self, data: T) -> ChainResult[T]:
        """Execute inner step if condition is met."""
        try:
            should_execute = bool(self.condition(data))
        except Exception as e:
            return chain_err(self.name, f"Condition {step_name(self.condition)} failed", e, input_value=data)
        if self.negate:
            should_execute = not should_execute

        if should_execute:
            return execute_step(self.inner_step, data)
        return chain_ok(data)


def when(condition: Callable[[T], bool]) -> Callable[[Any], ConditionalStep[T]]:
    """
    Decorator to make a step conditional.

    The step will only execute when the condition returns True for the
    threaded value.

    Example:
        chain = (
            Chain.from_value(scores)
            >> when(lambda s: len(s) > 100)(then(sorted))
        )

    Args:
        condition: Callable taking the threaded value

    Returns:
        Step wrapper that conditionalizes the inner step
    """
    def decorator(step: Any) -> ConditionalStep[T]:
        return ConditionalStep(
            inner_step=as_step(step),
            condition=condition,
            negate=False
        )
    return decorator


def unless(condition: Callable[[T], bool]) -> Callable[[Any], ConditionalStep[T]]:
    """
    Decorator to make a step conditional (inverted).

    The step will only execute when the condition returns False.

    Args:
        condition: Callable that returns True when step should be SKIPPED

    Returns:
        Step wrapper that conditionalizes the inner step
    """
    def decorator(step: Any) -> ConditionalStep[T]:
        return ConditionalStep(
            inner_step=as_step(step),
            condition=condition,
            negate=True
        )
    return decorator


# =============================================================================
# Branching Operators
# =============================================================================

@dataclass
class BranchStep(Step[T, U]):
    """
    A step that branches execution based on a condition.

    If condition is true, executes then_step, otherwise executes else_step.
    """
    condition: Callable[[T], bool]
    then_step: Step[T, U]
    else_step: Optional[Step[T, U]] = None

    @property
    def name(self) -> str:
        return f"branch({step_name(self.condition)})"

    def execute(self, data: T) -> ChainResult[U]:
        """Execute appropriate branch based on condition."""
        try:
            chosen = self.condition(data)
        except Exception as e:
            return chain_err(self.name, "Branch condition failed", e, input_value=data)
        if chosen:
            return execute_step(self.then_step, data)
        if self.else_step is not None:
            return execute_step(self.else_step, data)
        # No else branch, pass through unchanged
        return chain_ok(data)  # type: ignore


def branch(
    condition: Callable[[T], bool],
    then_step: Any,
    else_step: Optional[Any] = None
) -> BranchStep[T, U]:
    """
    Create a branching step.

    Example:
        chain = (
            Chain.from_value(words)
            >> branch(
                condition=lambda w: len(w) > 3,
                then_step=then(sorted),
                else_step=identity()
            )
        )

    Args:
        condition: Function to evaluate on input data
        then_step: Step to execute if condition is True
        else_step: Step to execute if condition is False (optional)

    Returns:
        BranchStep that selects between branches
    """
    return BranchStep(
        condition=condition,
        then_step=as_step(then_step),
        else_step=as_step(else_step) if else_step is not None else None
    )


# =============================================================================
# Identity and Composition
# =============================================================================

@dataclass
class IdentityStep(Step[T, T]):
    """Pass-through step that returns input unchanged."""

    @property
    def name(self) -> str:
        return "identity"

    def execute(self, data: T) -> ChainResult[T]:
        return chain_ok(data)


def identity() -> IdentityStep:
    """
    Create an identity step (pass-through).

    Useful as a no-op in conditional branches.
    """
    return IdentityStep()


def pipeline(*steps: Any) -> Step:
    """
    Compose multiple steps into a single step.

    Steps are executed in sequence, each receiving the output of the previous.
    With no steps the result is the identity step.

    Example:
        clean = pipeline(then(str.strip), then(str.lower))
        "  Foo Foo " | clean   # 'foo foo'
    """
    if not steps:
        return identity()
    composed = as_step(steps[0])
    for step in steps[1:]:
        composed = ComposedStep(composed, as_step(step))
    return composed
