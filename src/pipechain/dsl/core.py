"""
Pipechain Core - Steps, Chains and the Chain Evaluator

This module provides the core abstractions of the pipe operator, built on
the Result monad from catpy:

- Step: a Kleisli arrow ``T -> Result[U, ChainError]``
- CallStep: call ``f(value, *args, **kwargs)``, or substitute the threaded
  value at a placeholder marker instead of prepending it
- TapStep: call ``f`` for its effect and re-emit its input (tee)
- ExposeStep: call ``f`` with the value's fields exposed as keyword arguments
- Chain: a lazy, immutable, fluent pipeline over an initial value
- evaluate(initial_value, steps): thread a value through ordered steps

Evaluation is eager, left-to-right and fail-fast: the first step that raises
aborts the chain and ``evaluate`` raises ``EvaluationError``.

Known divergence from manual nesting:
    The evaluator is the immediate caller of every step. An operation that
    captures its caller's scope (inspecting or writing the caller's frame)
    sees the evaluator's frame instead of the frame that wrote the chain, and
    an argument that manual nesting would leave unevaluated until the callee
    asks for it is already a plain value when the step runs. Such operations
    behave differently in a chain than in ``f(g(x))``. This is inherent to an
    eager evaluator over explicit steps and is not special-cased.
"""

from __future__ import annotations

import functools
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import (
    Any, Callable, Dict, Generic, List, Optional, Sequence, Tuple, TypeVar,
)

from .catpy import (
    Monad,
    Err,
    ChainError, ChainResult,
    chain_ok, chain_err,
)
from .trace import ChainTrace, StepRecord
from ..config import EvaluatorConfig, PLACEHOLDER_POLICIES, DEFAULT_PLACEHOLDER_POLICY
from ..pipechain_exceptions import ChainDefinitionError, EvaluationError

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")
V = TypeVar("V")


__all__ = [
    "Placeholder", "PLACEHOLDER", "P",
    "Step", "CallStep", "TapStep", "ExposeStep", "ComposedStep", "BindStep",
    "Chain",
    "as_step", "build_steps", "run_steps", "evaluate", "sequence",
    "step_name", "exposed_names", "execute_step",
]


# =============================================================================
# Placeholder Marker
# =============================================================================

class Placeholder:
    """
    Marks where the threaded value goes in a step's argument list.

    There is exactly one instance, ``PLACEHOLDER`` (alias ``P``).

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a value-object.
    ::: This is stateless.
    """

    _instance: Optional["Placeholder"] = None

    def __new__(cls) -> "Placeholder":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "."

    def __reduce__(self):
        return (Placeholder, ())


PLACEHOLDER = Placeholder()
P = PLACEHOLDER


def _is_placeholder(value: Any) -> bool:
    return value is PLACEHOLDER


def step_name(fn: Any) -> str:
    """Human-readable name of a step function."""
    if isinstance(fn, functools.partial):
        return f"partial({step_name(fn.func)})"
    name = getattr(fn, "__qualname__", None) or getattr(fn, "__name__", None)
    if name:
        return name
    return type(fn).__name__


def execute_step(step: "Step", data: Any) -> ChainResult[Any]:
    """Run ``step.execute`` and report an exception it raises as ``Err``."""
    try:
        return step.execute(data)
    except Exception as e:
        return chain_err(step.name, f"{type(e).__name__} raised", e, input_value=data)


# =============================================================================
# Step - Kleisli Arrow for Chain
# =============================================================================

class Step(ABC, Generic[T, U]):
    """
    A step in a chain - a Kleisli arrow: T -> Result[U, ChainError]

    Steps never raise for failures of the function they wrap; they return
    ``Err``. Composition: ``step1 >> step2`` (or ``step1 | step2``).
    Application: ``value | step`` runs the step immediately and raises
    ``EvaluationError`` on failure.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is stateless.
    """

    tee: bool = False

    @abstractmethod
    def execute(self, data: T) -> ChainResult[U]:
        """Transform input data and return result."""
        pass

    @property
    def name(self) -> str:
        return type(self).__name__

    def __rshift__(self, other: "Step[U, V]") -> "ComposedStep[T, U, V]":
        """Compose steps: step1 >> step2"""
        return ComposedStep(self, as_step(other))

    def __or__(self, other: "Step[U, V]") -> "ComposedStep[T, U, V]":
        """Compose steps: step1 | step2"""
        return self >> other

    def __ror__(self, data: T) -> U:
        """Apply eagerly: value | step"""
        return self(data)

    def and_then(self, other: "Step[U, V]") -> "ComposedStep[T, U, V]":
        """Compose steps: step1.and_then(step2)"""
        return self >> other

    def __call__(self, data: T) -> U:
        """Run the step on its own, raising on failure."""
        result = execute_step(self, data)
        if result.is_err():
            _raise_evaluation_error(result.error.at(0))
        return result.unwrap()


@dataclass
class ComposedStep(Step[T, V], Generic[T, U, V]):
    """Composition of two steps (Kleisli composition).

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is stateless.
    """
    first: Step[T, U]
    second: Step[U, V]

    @property
    def name(self) -> str:
        return f"{self.first.name} >> {self.second.name}"

    def execute(self, data: T) -> ChainResult[V]:
        result = execute_step(self.first, data)
        if result.is_err():
            return result  # type: ignore
        return execute_step(self.second, result.unwrap())


@dataclass
class CallStep(Step[Any, Any]):
    """Call ``fn`` with the threaded value inserted into its arguments.

    The value is prepended as the first positional argument unless a
    placeholder appears among the top-level positional arguments or keyword
    argument values; then it is substituted there instead. ``policy`` decides
    what happens when several placeholders appear:

    - ``all``: every placeholder is replaced
    - ``first``: only the first placeholder (positional before keyword) is
      replaced; the rest are passed through as-is
    - ``error``: more than one placeholder is rejected when the step is built

    With ``tee=True`` the return value is discarded and the input re-emitted.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is stateless.
    """
    fn: Callable[..., Any]
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    tee: bool = False
    policy: str = DEFAULT_PLACEHOLDER_POLICY

    def __post_init__(self):
        if not callable(self.fn):
            raise ChainDefinitionError(f"Step function is not callable: {self.fn!r}")
        if isinstance(self.args, (str, bytes)) or not isinstance(self.args, Iterable):
            raise ChainDefinitionError(
                f"Step arguments for {step_name(self.fn)} must be a list or tuple, got {type(self.args).__name__}"
            )
        self.args = tuple(self.args)
        if not isinstance(self.kwargs, Mapping):
            raise ChainDefinitionError(
                f"Step keyword arguments for {step_name(self.fn)} must be a mapping, got {type(self.kwargs).__name__}"
            )
        self.kwargs = dict(self.kwargs)
        if self.policy not in PLACEHOLDER_POLICIES:
            raise ChainDefinitionError(f"Unknown placeholder policy: {self.policy!r}")
        if self.policy == "error" and self.placeholder_count > 1:
            raise ChainDefinitionError(
                f"Step {step_name(self.fn)} has {self.placeholder_count} placeholders; "
                "only one is allowed under the 'error' policy"
            )

    @property
    def name(self) -> str:
        return step_name(self.fn)

    @property
    def placeholder_count(self) -> int:
        positional = sum(1 for a in self.args if _is_placeholder(a))
        keyword = sum(1 for v in self.kwargs.values() if _is_placeholder(v))
        return positional + keyword

    def bind_arguments(self, data: Any) -> Tuple[Tuple[Any, ...], Dict[str, Any]]:
        """Build the actual call arguments for ``data``."""
        if self.placeholder_count == 0:
            return (data,) + self.args, dict(self.kwargs)

        remaining = 1 if self.policy == "first" else None

        def substitute(value: Any) -> Any:
            nonlocal remaining
            if not _is_placeholder(value):
                return value
            if remaining is None:
                return data
            if remaining > 0:
                remaining -= 1
                return data
            return value

        args = tuple(substitute(a) for a in self.args)
        kwargs = {k: substitute(v) for k, v in self.kwargs.items()}
        return args, kwargs

    def execute(self, data: Any) -> ChainResult[Any]:
        args, kwargs = self.bind_arguments(data)
        try:
            result = self.fn(*args, **kwargs)
        except Exception as e:
            return chain_err(self.name, f"{type(e).__name__} raised", e, input_value=data)
        if self.tee:
            return chain_ok(data)
        return chain_ok(result)


@dataclass
class TapStep(CallStep):
    """Execute a side effect function and pass through data unchanged.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is stateless.
    """
    tee: bool = True


def exposed_names(data: Any) -> Dict[str, Any]:
    """Names a value exposes to an exposition step."""
    if isinstance(data, Mapping):
        return {k: v for k, v in data.items() if isinstance(k, str)}
    if hasattr(data, "_asdict"):
        return dict(data._asdict())
    if hasattr(data, "__dict__"):
        return {k: v for k, v in vars(data).items() if not k.startswith("_")}
    raise TypeError(f"{type(data).__name__} exposes no names")


@dataclass
class ExposeStep(CallStep):
    """Call ``fn`` with the threaded value's names as keyword arguments.

    Mapping keys, namedtuple fields or public attributes of the value become
    keyword arguments; explicit ``kwargs`` override them. The value itself is
    not prepended, but placeholders are still substituted.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is stateless.
    """

    def bind_arguments(self, data: Any) -> Tuple[Tuple[Any, ...], Dict[str, Any]]:
        args, kwargs = super().bind_arguments(data)
        if self.placeholder_count == 0:
            args = args[1:]
        return args, {**exposed_names(data), **kwargs}

    def execute(self, data: Any) -> ChainResult[Any]:
        try:
            exposed_names(data)
        except TypeError as e:
            return chain_err(self.name, "cannot expose value", e, input_value=data)
        return super().execute(data)


@dataclass
class BindStep(Step[Any, Any]):
    """Run the chain produced by a continuation (monadic bind).

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is stateless.
    """
    continuation: Callable[[Any], "Chain"]

    @property
    def name(self) -> str:
        return f"bind({step_name(self.continuation)})"

    def execute(self, data: Any) -> ChainResult[Any]:
        try:
            next_chain = self.continuation(data)
        except Exception as e:
            return chain_err(self.name, f"{type(e).__name__} raised", e, input_value=data)
        if not isinstance(next_chain, Chain):
            return chain_err(
                self.name,
                f"continuation must return a Chain, got {type(next_chain).__name__}",
                input_value=data,
            )
        return next_chain.run()


# =============================================================================
# Step normalization
# =============================================================================

def as_step(entry: Any, policy: str = DEFAULT_PLACEHOLDER_POLICY) -> Step:
    """
    Normalize a step entry.

    Accepts a Step, a bare callable, or a tuple ``(f, args)`` /
    ``(f, args, kwargs)``.

    Raises:
        ChainDefinitionError: if the entry has none of these shapes
    """
    if isinstance(entry, Step):
        return entry
    if isinstance(entry, tuple):
        if len(entry) == 2:
            fn, args = entry
            return CallStep(fn, args, policy=policy)
        if len(entry) == 3:
            fn, args, kwargs = entry
            return CallStep(fn, args, kwargs, policy=policy)
        raise ChainDefinitionError(
            f"Step tuple must be (f, args) or (f, args, kwargs), got {len(entry)} items"
        )
    if callable(entry):
        return CallStep(entry, policy=policy)
    raise ChainDefinitionError(f"Not a step: {entry!r}")


def build_steps(steps: Iterable[Any], config: Optional[EvaluatorConfig] = None) -> List[Step]:
    """Normalize every entry of ``steps`` before anything runs."""
    config = config or EvaluatorConfig.from_env()
    for warning in config.validate():
        logger.warning(warning)
    return [as_step(entry, config.effective_policy) for entry in steps]


# =============================================================================
# Evaluation
# =============================================================================

def run_steps(initial: Any, steps: Sequence[Step], trace: Optional[ChainTrace] = None,
              log_steps: bool = False) -> ChainResult[Any]:
    """
    Thread ``initial`` through ``steps`` left-to-right.

    Errors short-circuit using Result monad semantics: the first ``Err`` is
    returned, positioned at the failing step's index, and no later step runs.
    """
    if trace is not None:
        trace.start(initial)

    current = initial
    for index, step in enumerate(steps):
        if log_steps:
            logger.debug("step %d %s <- %r", index, step.name, current)
        started = time.perf_counter()
        result = execute_step(step, current)
        elapsed_ms = (time.perf_counter() - started) * 1000.0

        if result.is_err():
            error = result.error.at(index)
            logger.debug("step %d %s failed: %s", index, step.name, error)
            if trace is not None:
                trace.record(StepRecord(
                    index=index, step=step.name, input=current,
                    tee=step.tee, duration_ms=elapsed_ms, error=str(error),
                ))
            return Err(error)

        output = result.unwrap()
        if trace is not None:
            trace.record(StepRecord(
                index=index, step=step.name, input=current, output=output,
                tee=step.tee, duration_ms=elapsed_ms,
            ))
        current = output

    return chain_ok(current)


def _raise_evaluation_error(error: ChainError) -> None:
    raise EvaluationError(
        error.message,
        step_index=error.step_index,
        step_name=error.step,
        cause=error.cause,
        input_value=error.input_value,
    ) from error.cause


def evaluate(initial_value: Any, steps: Iterable[Any], *,
             config: Optional[EvaluatorConfig] = None,
             trace: Optional[ChainTrace] = None) -> Any:
    """
    Evaluate a chain: ``f_n(...f_1(initial_value, *args_1)..., *args_n)``.

    Example:
        >>> evaluate(4, [(operator.add, [1]), (operator.mul, [2])])
        10

    Args:
        initial_value: Value fed to the first step
        steps: Step entries (see ``as_step``)
        config: Evaluator configuration; read from the environment if omitted
        trace: Optional trace collecting every step's input and output

    Returns:
        The value produced by the last step, or ``initial_value`` if there
        are no steps

    Raises:
        ChainDefinitionError: if a step entry is malformed (nothing runs)
        EvaluationError: if a step raises; later steps do not run
    """
    config = config or EvaluatorConfig.from_env()
    built = build_steps(steps, config)
    result = run_steps(initial_value, built, trace=trace, log_steps=config.log_steps)
    if result.is_err():
        _raise_evaluation_error(result.error)
    return result.unwrap()


def sequence(steps: Iterable[Any], config: Optional[EvaluatorConfig] = None) -> Callable[[Any], Any]:
    """
    Build a reusable unary function from steps (a functional sequence).

    ``sequence(steps)(v) == evaluate(v, steps)``; steps are validated once,
    when the function is built.
    """
    config = config or EvaluatorConfig.from_env()
    built = build_steps(steps, config)

    def run(value: Any) -> Any:
        result = run_steps(value, built, log_steps=config.log_steps)
        if result.is_err():
            _raise_evaluation_error(result.error)
        return result.unwrap()

    run.steps = built  # type: ignore[attr-defined]
    return run


# =============================================================================
# Chain
# =============================================================================

@dataclass
class Chain(Monad[T], Generic[T]):
    """
    A monadic, composable, lazy pipeline over an initial value.

    Chain is a Monad where:
    - pure(x) creates a chain that yields x
    - bind(f) continues with the chain returned by f
    - fmap(f) appends a call step

    Building never runs anything; ``run()`` returns a Result and
    ``evaluate()`` raises ``EvaluationError``.

    Example:
        foo_foo = (
            Chain.from_value(little_bunny())
            .then(hop, through="forest")
            .then(scoop, up="field_mice")
            .tee(print)
            .then(bop, on="head")
        )
        result = foo_foo.evaluate()

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a monad.
    ::: This is stateless.
    """
    _source: Any = None
    _steps: List[Step] = field(default_factory=list)
    _config: EvaluatorConfig = field(default_factory=EvaluatorConfig.from_env)

    # -------------------------------------------------------------------------
    # Monad Implementation
    # -------------------------------------------------------------------------

    @classmethod
    def pure(cls, value: U) -> "Chain[U]":
        """Lift a value into a chain."""
        return cls(_source=value)

    def bind(self, f: Callable[[T], "Chain[U]"]) -> "Chain[U]":
        """Continue with the chain ``f`` builds from this chain's result."""
        return self._add_step(BindStep(f))

    def fmap(self, f: Callable[[T], U]) -> "Chain[U]":
        """Map a function over the chain output."""
        return self.then(f)

    def _add_step(self, step: Step) -> "Chain":
        """Add a step to the chain and return a new chain."""
        return Chain(
            _source=self._source,
            _steps=self._steps + [step],
            _config=self._config,
        )

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def from_value(cls, value: T, config: Optional[EvaluatorConfig] = None) -> "Chain[T]":
        """Create a chain from an initial value."""
        if config is None:
            return cls(_source=value)
        return cls(_source=value, _config=config)

    @classmethod
    def from_steps(cls, value: T, steps: Iterable[Any],
                   config: Optional[EvaluatorConfig] = None) -> "Chain[Any]":
        """Create a chain from an initial value and step entries."""
        config = config or EvaluatorConfig.from_env()
        return cls(_source=value, _steps=build_steps(steps, config), _config=config)

    # -------------------------------------------------------------------------
    # Fluent API
    # -------------------------------------------------------------------------

    @property
    def steps(self) -> List[Step]:
        return list(self._steps)

    @property
    def policy(self) -> str:
        return self._config.effective_policy

    def then(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> "Chain":
        """Forward pipe: append ``fn(value, *args, **kwargs)``."""
        return self._add_step(CallStep(fn, args, kwargs, policy=self.policy))

    def tee(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> "Chain":
        """Tee pipe: call ``fn`` for its effect, keep the value."""
        return self._add_step(TapStep(fn, args, kwargs, policy=self.policy))

    def expose(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> "Chain":
        """Exposition pipe: call ``fn`` with the value's names as keywords."""
        return self._add_step(ExposeStep(fn, args, kwargs, policy=self.policy))

    def pipe(self, entry: Any) -> "Chain":
        """Append any step entry accepted by ``as_step``."""
        return self._add_step(as_step(entry, self.policy))

    def __rshift__(self, entry: Any) -> "Chain":
        """Syntactic sugar: chain >> step"""
        return self.pipe(entry)

    def __or__(self, entry: Any) -> "Chain":
        """Alternative syntax: chain | step"""
        return self.pipe(entry)

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def run(self, trace: Optional[ChainTrace] = None) -> ChainResult[T]:
        """Execute the chain and return a Result; step failures never raise."""
        return run_steps(self._source, self._steps, trace=trace, log_steps=self._config.log_steps)

    def evaluate(self, trace: Optional[ChainTrace] = None) -> T:
        """Execute the chain and return its value, raising ``EvaluationError``."""
        result = self.run(trace)
        if result.is_err():
            _raise_evaluation_error(result.error)
        return result.unwrap()

    def as_function(self) -> Callable[[Any], Any]:
        """This chain's steps as a unary function of a new initial value."""
        return sequence(self._steps, self._config)

    def __repr__(self) -> str:
        names = " | ".join(step.name for step in self._steps)
        if not names:
            return f"Chain({self._source!r})"
        return f"Chain({self._source!r} | {names})"
