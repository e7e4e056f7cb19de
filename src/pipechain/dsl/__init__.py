"""
Pipechain DSL - pipe-operator chains for Python.

Build a chain fluently, as a list of steps, with the ``|`` operator, or from
text written with ``%>%``:

    Chain.from_value(4).then(add, 1).then(mul, 2).evaluate()   # 10
    evaluate(4, [(add, [1]), (mul, [2])])                      # 10
    4 | then(add, 1) | then(mul, 2)                            # 10
    run_chain("4 %>% add(1) %>% mul(2)", namespace)            # 10
"""

from .catpy import (
    Functor, Monad,
    Result, Ok, Err,
    ChainError, ChainResult,
    chain_ok, chain_err,
)
from .core import (
    Placeholder, PLACEHOLDER, P,
    Step, CallStep, TapStep, ExposeStep, ComposedStep, BindStep,
    Chain,
    as_step, build_steps, run_steps, evaluate, sequence,
    step_name, exposed_names,
)
from .operators import (
    then, tee, expose,
    when, unless, branch, identity, pipeline,
    ConditionalStep, BranchStep, IdentityStep,
)
from .trace import StepRecord, ChainTrace, build_trace_table, render_trace
from .parser import (
    ChainParser, ParsedChain, ParseResult, ParseError, Namespace,
    parse_chain, run_chain,
)

__all__ = [
    # Result monad
    "Functor", "Monad",
    "Result", "Ok", "Err",
    "ChainError", "ChainResult",
    "chain_ok", "chain_err",
    # Core
    "Placeholder", "PLACEHOLDER", "P",
    "Step", "CallStep", "TapStep", "ExposeStep", "ComposedStep", "BindStep",
    "Chain",
    "as_step", "build_steps", "run_steps", "evaluate", "sequence",
    "step_name", "exposed_names",
    # Operators
    "then", "tee", "expose",
    "when", "unless", "branch", "identity", "pipeline",
    "ConditionalStep", "BranchStep", "IdentityStep",
    # Trace
    "StepRecord", "ChainTrace", "build_trace_table", "render_trace",
    # Text
    "ChainParser", "ParsedChain", "ParseResult", "ParseError", "Namespace",
    "parse_chain", "run_chain",
]
