"""
Pipe Parser - Lark-based parser for textual pipe chains.

This module parses chains written with the pipe operators

    %>%    forward     x %>% f(y)        ->  f(x, y)
    %T>%   tee         x %T>% print      ->  print(x); x
    %$%    exposition  d %$% f(a)        ->  f(d["a"])
    %<>%   assignment  x %<>% f          ->  x = f(x)

and turns them into Chain objects evaluated against a namespace.

Placeholder rules: a ``.`` given directly as an argument (positional or
keyword) receives the threaded value and suppresses the first-argument
insertion; a ``.`` nested inside another call's arguments is substituted but
does not suppress the insertion. A chain whose left-hand side is ``.`` is a
functional sequence: it evaluates to a unary function.
"""

from __future__ import annotations

import ast
import logging
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from lark import Lark, Transformer, Token
from lark.exceptions import (
    UnexpectedInput,
    UnexpectedToken,
    UnexpectedCharacters,
    UnexpectedEOF,
)

from .catpy import ChainResult, chain_ok, chain_err
from .core import (
    PLACEHOLDER, Chain, Step, CallStep, TapStep, sequence, exposed_names,
)
from .trace import ChainTrace
from ..config import EvaluatorConfig
from ..pipechain_exceptions import (
    ChainDefinitionError, ChainSyntaxError, UnknownNameError,
)

logger = logging.getLogger(__name__)

FORWARD = "%>%"
TEE = "%T>%"
EXPOSE = "%$%"
ASSIGN = "%<>%"

# Literal names, both the R spellings and the Python ones
CONSTANTS: Dict[str, Any] = {
    "TRUE": True, "FALSE": False, "NULL": None,
    "True": True, "False": False, "None": None,
}

# Builtins visible to textual chains. Code execution, imports, file access
# and reflection (eval, exec, compile, __import__, open, getattr, vars, ...)
# are not listed; pass them in the namespace explicitly to use them.
SAFE_BUILTINS: Dict[str, Any] = {
    # Types
    "bool": bool,
    "int": int,
    "float": float,
    "complex": complex,
    "str": str,
    "list": list,
    "dict": dict,
    "set": set,
    "frozenset": frozenset,
    "tuple": tuple,
    "bytes": bytes,

    # Functions
    "len": len,
    "range": range,
    "enumerate": enumerate,
    "zip": zip,
    "map": map,
    "filter": filter,
    "sorted": sorted,
    "reversed": reversed,
    "sum": sum,
    "min": min,
    "max": max,
    "abs": abs,
    "round": round,
    "pow": pow,
    "divmod": divmod,
    "hash": hash,

    # String operations
    "chr": chr,
    "ord": ord,
    "repr": repr,
    "ascii": ascii,
    "format": format,

    # Predicates
    "all": all,
    "any": any,
    "isinstance": isinstance,
    "callable": callable,

    # Iterators
    "iter": iter,
    "next": next,

    # Output
    "print": print,
}


# ============================================================
# AST NODES
# ============================================================

@dataclass(frozen=True)
class Literal:
    value: Any

    def render(self, dot: str = ".") -> str:
        return repr(self.value)


@dataclass(frozen=True)
class NameRef:
    parts: Tuple[str, ...]

    @property
    def dotted(self) -> str:
        return ".".join(self.parts)

    def render(self, dot: str = ".") -> str:
        return self.dotted


@dataclass(frozen=True)
class PlaceholderRef:
    def render(self, dot: str = ".") -> str:
        return dot


@dataclass(frozen=True)
class ListNode:
    items: Tuple[Any, ...]

    def render(self, dot: str = ".") -> str:
        return "[" + ", ".join(item.render(dot) for item in self.items) + "]"


@dataclass(frozen=True)
class KeywordArg:
    name: str
    value: Any


@dataclass(frozen=True)
class CallNode:
    func: NameRef
    args: Tuple[Any, ...] = ()
    kwargs: Tuple[KeywordArg, ...] = ()

    @property
    def top_level_placeholders(self) -> int:
        positional = sum(1 for a in self.args if isinstance(a, PlaceholderRef))
        keyword = sum(1 for k in self.kwargs if isinstance(k.value, PlaceholderRef))
        return positional + keyword

    def render(self, dot: str = ".") -> str:
        parts = [a.render(dot) for a in self.args]
        parts += [f"{k.name}={k.value.render(dot)}" for k in self.kwargs]
        return f"{self.func.dotted}({', '.join(parts)})"

    def render_with(self, inner: str) -> str:
        """Render this call as a stage receiving ``inner``."""
        if self.top_level_placeholders:
            return self.render(inner)
        parts = [inner] + [a.render(inner) for a in self.args]
        parts += [f"{k.name}={k.value.render(inner)}" for k in self.kwargs]
        return f"{self.func.dotted}({', '.join(parts)})"


@dataclass(frozen=True)
class Stage:
    op: str
    target: CallNode


Node = Union[Literal, NameRef, PlaceholderRef, ListNode, CallNode]


# ============================================================
# TRANSFORMER
# ============================================================

class ChainTransformer(Transformer):
    """Turns the Lark parse tree into AST nodes."""

    def start(self, children):
        return children[0]

    def chain(self, children):
        source, *stages = children
        return ParsedChain(source=source, stages=list(stages))

    def stage(self, children):
        op, target = children
        return Stage(op=str(op), target=target)

    def bare_target(self, children):
        return CallNode(func=children[0])

    def call_target(self, children):
        return self.call(children)

    def call(self, children):
        func = children[0]
        arguments = children[1] if len(children) > 1 else []
        args = tuple(a for a in arguments if not isinstance(a, KeywordArg))
        kwargs = tuple(a for a in arguments if isinstance(a, KeywordArg))
        return CallNode(func=func, args=args, kwargs=kwargs)

    def arguments(self, children):
        seen_keyword = False
        for argument in children:
            if isinstance(argument, KeywordArg):
                seen_keyword = True
            elif seen_keyword:
                raise ChainSyntaxError("Positional argument follows keyword argument")
        return list(children)

    def keyword_argument(self, children):
        name, value = children
        return KeywordArg(name=str(name), value=value)

    def positional_argument(self, children):
        return children[0]

    def name_ref(self, children):
        return children[0]

    def dotted_name(self, children):
        return NameRef(parts=tuple(str(t) for t in children if t.type == "NAME"))

    def placeholder(self, children):
        return PlaceholderRef()

    def number(self, children):
        return Literal(_number(children[0]))

    def negative_number(self, children):
        return Literal(-_number(children[0]))

    def string(self, children):
        return Literal(ast.literal_eval(str(children[0])))

    def list_literal(self, children):
        return ListNode(items=tuple(children))


def _number(token: Token) -> Union[int, float]:
    text = str(token)
    try:
        return int(text)
    except ValueError:
        return float(text)


# ============================================================
# NAME RESOLUTION
# ============================================================

_NO_VALUE = object()


@dataclass
class Namespace:
    """Name lookup for textual chains: mapping, then parent, then safe builtins.

    Dotted names follow public attributes only; ``_``-prefixed attributes
    are refused.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a context.
    """
    names: Mapping[str, Any] = field(default_factory=dict)
    parent: Optional["Namespace"] = None

    def child(self, names: Mapping[str, Any]) -> "Namespace":
        return Namespace(names=names, parent=self)

    def lookup(self, name: str) -> Any:
        if name in self.names:
            return self.names[name]
        if self.parent is not None:
            return self.parent.lookup(name)
        if name in SAFE_BUILTINS:
            return SAFE_BUILTINS[name]
        raise UnknownNameError(name)

    def resolve(self, ref: NameRef) -> Any:
        head, *rest = ref.parts
        if not rest and head in CONSTANTS:
            return CONSTANTS[head]
        value = self.lookup(head)
        for attr in rest:
            if attr.startswith("_"):
                raise UnknownNameError(ref.dotted)
            try:
                value = getattr(value, attr)
            except AttributeError:
                raise UnknownNameError(ref.dotted) from None
        return value

    def evaluate(self, node: Node, dot: Any = _NO_VALUE) -> Any:
        """Evaluate an argument expression; ``dot`` is the threaded value."""
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, NameRef):
            return self.resolve(node)
        if isinstance(node, PlaceholderRef):
            if dot is _NO_VALUE:
                raise ChainDefinitionError("Placeholder '.' used outside of a stage")
            return dot
        if isinstance(node, ListNode):
            return [self.evaluate(item, dot) for item in node.items]
        if isinstance(node, CallNode):
            fn = self.resolve(node.func)
            args = [self.evaluate(a, dot) for a in node.args]
            kwargs = {k.name: self.evaluate(k.value, dot) for k in node.kwargs}
            return fn(*args, **kwargs)
        raise ChainDefinitionError(f"Cannot evaluate node: {node!r}")


# ============================================================
# STAGE STEP
# ============================================================

@dataclass
class ExpressionStep(Step[Any, Any]):
    """A parsed stage: arguments are evaluated when the step runs.

    Top-level placeholders are handed to CallStep so the configured policy
    applies; nested placeholders are substituted during argument evaluation.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a step.
    ::: This is stateless.
    """
    stage: Stage
    namespace: Namespace
    policy: str = "all"

    @property
    def name(self) -> str:
        return self.stage.target.func.dotted

    @property
    def tee(self) -> bool:
        return self.stage.op == TEE

    def _arguments(self, scope: Namespace, data: Any) -> Tuple[List[Any], Dict[str, Any]]:
        target = self.stage.target
        args = [
            PLACEHOLDER if isinstance(a, PlaceholderRef) else scope.evaluate(a, data)
            for a in target.args
        ]
        kwargs = {
            k.name: PLACEHOLDER if isinstance(k.value, PlaceholderRef) else scope.evaluate(k.value, data)
            for k in target.kwargs
        }
        return args, kwargs

    def execute(self, data: Any) -> ChainResult[Any]:
        scope = self.namespace
        try:
            if self.stage.op == EXPOSE:
                scope = scope.child(exposed_names(data))
            fn = scope.resolve(self.stage.target.func)
            args, kwargs = self._arguments(scope, data)
        except Exception as e:
            return chain_err(self.name, f"cannot evaluate arguments: {type(e).__name__}", e, input_value=data)

        if self.stage.op == EXPOSE and not self.stage.target.top_level_placeholders:
            try:
                return chain_ok(fn(*args, **kwargs))
            except Exception as e:
                return chain_err(self.name, f"{type(e).__name__} raised", e, input_value=data)

        step_class = TapStep if self.stage.op == TEE else CallStep
        try:
            step = step_class(fn, args, kwargs, policy=self.policy)
        except ChainDefinitionError as e:
            return chain_err(self.name, "resolved to an unusable step", e, input_value=data)
        return step.execute(data)


# ============================================================
# PARSED CHAIN
# ============================================================

@dataclass
class ParsedChain:
    """A chain parsed from text: a source expression and its stages.

    ::: This is-in-layer Domain-Specific-Language-Layer.
    ::: This is a value-object.
    """
    source: Node
    stages: List[Stage] = field(default_factory=list)

    @property
    def is_function(self) -> bool:
        """True for functional sequences (``. %>% f``)."""
        return isinstance(self.source, PlaceholderRef)

    @property
    def assigns_to(self) -> Optional[str]:
        if self.stages and self.stages[0].op == ASSIGN:
            return self.source.dotted  # type: ignore[union-attr]
        return None

    def validate(self, config: Optional[EvaluatorConfig] = None) -> None:
        """Check constraints the grammar cannot express."""
        policy = (config or EvaluatorConfig.from_env()).effective_policy
        for index, stage in enumerate(self.stages):
            if stage.op == ASSIGN:
                if index != 0:
                    raise ChainSyntaxError("%<>% is only allowed as the first pipe")
                if not isinstance(self.source, NameRef) or len(self.source.parts) != 1:
                    raise ChainSyntaxError("%<>% needs a plain name on its left-hand side")
            if policy == "error" and stage.target.top_level_placeholders > 1:
                raise ChainDefinitionError(
                    f"Step {stage.target.func.dotted} has {stage.target.top_level_placeholders} "
                    "placeholders; only one is allowed under the 'error' policy"
                )

    def steps(self, namespace: Namespace, config: Optional[EvaluatorConfig] = None) -> List[Step]:
        config = config or EvaluatorConfig.from_env()
        self.validate(config)
        return [ExpressionStep(stage, namespace, config.effective_policy) for stage in self.stages]

    def compile(self, namespace: Optional[Mapping[str, Any]] = None,
                config: Optional[EvaluatorConfig] = None) -> Chain:
        """Build a Chain; the source expression is evaluated now."""
        if self.is_function:
            raise ChainDefinitionError("A chain starting with '.' is a function; use compile_function()")
        config = config or EvaluatorConfig.from_env()
        scope = _as_namespace(namespace)
        initial = scope.evaluate(self.source)
        return Chain(_source=initial, _steps=self.steps(scope, config), _config=config)

    def compile_function(self, namespace: Optional[Mapping[str, Any]] = None,
                         config: Optional[EvaluatorConfig] = None) -> Callable[[Any], Any]:
        """Build the unary function of a functional sequence."""
        if not self.is_function:
            raise ChainDefinitionError("Only a chain starting with '.' is a function")
        config = config or EvaluatorConfig.from_env()
        return sequence(self.steps(_as_namespace(namespace), config), config)

    def to_nested(self) -> str:
        """Render the equivalent nested call, e.g. ``g(f(x, 1), 2)``."""
        text = self.source.render()
        for stage in self.stages:
            if stage.op != FORWARD:
                raise ChainDefinitionError(f"{stage.op} stages have no nested form")
            text = stage.target.render_with(text)
        return text


def _as_namespace(namespace: Optional[Mapping[str, Any]]) -> Namespace:
    if isinstance(namespace, Namespace):
        return namespace
    return Namespace(names=namespace if namespace is not None else {})


# ============================================================
# ERROR TYPES
# ============================================================

@dataclass
class ParseError:
    """Represents a parsing error with location information."""
    message: str
    line: int
    column: int
    context: Optional[str] = None
    suggestion: Optional[str] = None

    def __str__(self) -> str:
        loc = f"line {self.line}, column {self.column}"
        msg = f"Parse error at {loc}: {self.message}"
        if self.context:
            msg += f"\n  Context: {self.context}"
        if self.suggestion:
            msg += f"\n  Suggestion: {self.suggestion}"
        return msg


@dataclass
class ParseResult:
    """Result of parsing a textual chain."""
    success: bool
    chain: Optional[ParsedChain] = None
    errors: List[ParseError] = field(default_factory=list)
    source: Optional[str] = None

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def __bool__(self) -> bool:
        return self.success


# ============================================================
# PARSER
# ============================================================

class ChainParser:
    """
    Parser for textual pipe chains.

    Usage:
        parser = ChainParser()
        result = parser.parse("x %>% f(1) %>% g")
        if result.success:
            chain = result.chain.compile({"x": 4, "f": f, "g": g})
        else:
            for error in result.errors:
                print(error)
    """

    _instance: Optional["ChainParser"] = None
    _parser: Optional[Lark] = None

    def __new__(cls) -> "ChainParser":
        """Singleton pattern for parser reuse."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        """Initialize the parser with the grammar file."""
        if ChainParser._parser is not None:
            return

        grammar_path = Path(__file__).parent / "grammar.lark"

        if not grammar_path.exists():
            raise FileNotFoundError(
                f"Grammar file not found: {grammar_path}\n"
                "Ensure grammar.lark is in the same directory as parser.py"
            )

        ChainParser._parser = Lark(
            grammar_path.read_text(encoding="utf-8"),
            start="start",
            parser="lalr",
            propagate_positions=True,
            maybe_placeholders=False,
        )

    @property
    def parser(self) -> Lark:
        """Get the Lark parser instance."""
        if ChainParser._parser is None:
            raise RuntimeError("Parser not initialized")
        return ChainParser._parser

    @classmethod
    def reset(cls) -> None:
        """Reset the parser cache to force grammar reload on next use."""
        cls._parser = None
        cls._instance = None

    def parse(self, source: str) -> ParseResult:
        """
        Parse a textual chain.

        Args:
            source: Chain text, e.g. ``"x %>% f(1)"``

        Returns:
            ParseResult containing the parsed chain or errors
        """
        if not source or not source.strip():
            return ParseResult(
                success=False,
                errors=[ParseError(
                    message="Empty source",
                    line=1,
                    column=1,
                    suggestion="Write at least one pipe, e.g. x %>% f"
                )],
                source=source
            )

        try:
            tree = self.parser.parse(source)
        except UnexpectedToken as e:
            return self._failure(self._handle_unexpected_token(e, source), source)
        except UnexpectedCharacters as e:
            return self._failure(self._handle_unexpected_characters(e, source), source)
        except UnexpectedEOF as e:
            return self._failure(self._handle_unexpected_eof(e, source), source)
        except UnexpectedInput as e:
            return self._failure(ParseError(
                message=str(e),
                line=getattr(e, "line", 1) or 1,
                column=getattr(e, "column", 1) or 1,
                context=self._get_context_line(source, getattr(e, "line", 1) or 1),
            ), source)

        try:
            chain = ChainTransformer().transform(tree)
        except Exception as e:
            # Transformer callbacks are wrapped in lark's VisitError
            cause = getattr(e, "orig_exc", e)
            return self._failure(ParseError(message=str(cause), line=1, column=1), source)

        logger.debug("parsed chain with %d stages: %s", len(chain.stages), source.strip())
        return ParseResult(success=True, chain=chain, source=source)

    # ============================================================
    # ERROR HANDLERS
    # ============================================================

    @staticmethod
    def _failure(error: ParseError, source: str) -> ParseResult:
        return ParseResult(success=False, errors=[error], source=source)

    def _handle_unexpected_token(self, e: UnexpectedToken, source: str) -> ParseError:
        """Handle unexpected token errors with helpful messages."""
        token = e.token
        if token is not None and token.type == "$END":
            return self._handle_unexpected_eof(e, source)

        line = e.line or 1
        column = e.column or 1
        expected = sorted(e.expected) if e.expected else []
        expected_str = ", ".join(expected[:5])
        if len(expected) > 5:
            expected_str += f" (and {len(expected) - 5} more)"

        return ParseError(
            message=f"Unexpected token '{token}'",
            line=line,
            column=column,
            context=self._get_context_line(source, line),
            suggestion=f"Expected one of: {expected_str}" if expected else None
        )

    def _handle_unexpected_characters(self, e: UnexpectedCharacters, source: str) -> ParseError:
        """Handle unexpected character errors."""
        line = e.line or 1
        char = getattr(e, "char", "unknown")
        suggestion = None
        if char == "%":
            suggestion = "Pipe operators are %>%, %T>%, %$% and %<>%"
        elif char == "|":
            suggestion = "Use %>% in text; | works only in Python code"
        return ParseError(
            message=f"Unexpected character '{char}'",
            line=line,
            column=e.column or 1,
            context=self._get_context_line(source, line),
            suggestion=suggestion
        )

    def _handle_unexpected_eof(self, e: UnexpectedInput, source: str) -> ParseError:
        """Handle unexpected end-of-input errors."""
        lines = source.split('\n')
        expected = sorted(getattr(e, "expected", None) or [])
        suggestion = None
        if "PIPE_OP" in expected:
            suggestion = "A chain needs at least one pipe, e.g. x %>% f"
        elif "RPAR" in expected:
            suggestion = "Missing closing parenthesis ')'"
        elif expected:
            suggestion = f"Expected: {', '.join(expected[:5])}"
        return ParseError(
            message="Unexpected end of input",
            line=len(lines),
            column=len(lines[-1]) + 1,
            suggestion=suggestion
        )

    def _get_context_line(self, source: str, line: int) -> Optional[str]:
        """Get the source line for context."""
        lines = source.split('\n')
        if 1 <= line <= len(lines):
            return lines[line - 1].rstrip()
        return None


# ============================================================
# CONVENIENCE
# ============================================================

def parse_chain(source: str) -> ParsedChain:
    """Parse a textual chain, raising ChainSyntaxError on failure."""
    result = ChainParser().parse(source)
    if not result.success:
        raise ChainSyntaxError(str(result.errors[0]), result.errors)
    return result.chain


def run_chain(source: str, namespace: Optional[MutableMapping[str, Any]] = None, *,
              config: Optional[EvaluatorConfig] = None,
              trace: Optional[ChainTrace] = None) -> Any:
    """
    Parse and evaluate a textual chain.

    Example:
        >>> run_chain("4 %>% add(1) %>% mul(2)", {"add": operator.add, "mul": operator.mul})
        10

    Returns:
        The chain's value, or a unary function for ``. %>% ...`` chains.
        For ``x %<>% ...`` the value is also stored back under ``x``.

    Raises:
        ChainSyntaxError: if the text does not parse
        UnknownNameError: if the source expression names something unknown
        EvaluationError: if a stage fails
    """
    parsed = parse_chain(source)
    namespace = namespace if namespace is not None else {}
    if parsed.is_function:
        return parsed.compile_function(namespace, config)

    value = parsed.compile(namespace, config).evaluate(trace)
    target = parsed.assigns_to
    if target is not None:
        namespace[target] = value
    return value
