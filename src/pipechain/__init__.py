"""
Pipechain - the pipe operator for Python

Threads a value through an ordered list of function calls, left to right:
``x %>% f(y)`` is ``f(x, y)``. Chains can be written as Chain objects, as
step lists, with the ``|`` operator, or as text.
"""

__version__ = "0.1.0"
__author__ = "Pipechain"

from .pipechain_exceptions import (
    PipechainError,
    EvaluationError,
    ChainDefinitionError,
    ChainSyntaxError,
    UnknownNameError,
)
from .config import EvaluatorConfig
from .logging_config import get_chain_logger
from .dsl import (
    PLACEHOLDER, P,
    Chain, Step, CallStep, TapStep, ExposeStep,
    ChainTrace, render_trace,
    evaluate, sequence,
    then, tee, expose,
    parse_chain, run_chain,
)

__all__ = [
    "PipechainError",
    "EvaluationError",
    "ChainDefinitionError",
    "ChainSyntaxError",
    "UnknownNameError",
    "EvaluatorConfig",
    "get_chain_logger",
    "PLACEHOLDER",
    "P",
    "Chain",
    "Step",
    "CallStep",
    "TapStep",
    "ExposeStep",
    "ChainTrace",
    "render_trace",
    "evaluate",
    "sequence",
    "then",
    "tee",
    "expose",
    "parse_chain",
    "run_chain",
]
