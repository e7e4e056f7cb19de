"""
Pipechain Exception Hierarchy

Contains all exception classes raised by the chain evaluator and the
textual pipe parser.
"""

from typing import Any, Optional


class PipechainError(Exception):
    """
    Base exception for all pipechain operations.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


class EvaluationError(PipechainError):
    """
    Raised when a step of a chain fails during evaluation.

    The chain aborts at the first failing step; no later step runs and no
    partial result is returned. The original exception is available both as
    ``cause`` and as ``__cause__``.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """

    def __init__(
        self,
        message: str,
        step_index: Optional[int] = None,
        step_name: Optional[str] = None,
        cause: Optional[BaseException] = None,
        input_value: Any = None,
    ):
        super().__init__(message)
        self.message = message
        self.step_index = step_index
        self.step_name = step_name
        self.cause = cause
        self.input_value = input_value

    def __str__(self) -> str:
        if self.step_index is None:
            return self.message
        return f"step {self.step_index} ({self.step_name}): {self.message}"


class ChainDefinitionError(PipechainError):
    """
    Raised when a chain is built from malformed steps.

    Detected before any step runs: non-callable functions, step tuples of
    the wrong shape, or placeholder usage rejected by the active policy.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """
    pass


class ChainSyntaxError(PipechainError):
    """
    Raised when a textual chain cannot be parsed.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """

    def __init__(self, message: str, errors: Optional[list] = None):
        super().__init__(message)
        self.errors = errors or []


class UnknownNameError(PipechainError):
    """
    Raised when a textual chain refers to a name missing from its namespace.

    ::: This is-in-layer Utility-Layer.
    ::: This is a exception.
    ::: This is stateless.
    """

    def __init__(self, name: str):
        super().__init__(f"Name not found in namespace: {name}")
        self.name = name


__all__ = [
    "PipechainError",
    "EvaluationError",
    "ChainDefinitionError",
    "ChainSyntaxError",
    "UnknownNameError",
]
