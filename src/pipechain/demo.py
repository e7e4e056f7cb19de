"""
Little bunny Foo Foo, written four ways.

    Little bunny Foo Foo
    Went hopping through the forest
    Scooping up the field mice
    And bopping them on the head

The same computation as intermediate names, overwriting one name, nested
calls and a pipe. All four produce the same bunny.

Run with: python -m pipechain.demo
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple

from rich.console import Console
from rich.table import Table

from .dsl import Chain, ChainTrace, P, evaluate, render_trace, run_chain, tee, then
from .logging_config import get_chain_logger, set_stderr_level


@dataclass(frozen=True)
class Bunny:
    name: str
    actions: Tuple[str, ...] = ()
    carrying: Tuple[str, ...] = ()

    def did(self, action: str) -> "Bunny":
        return replace(self, actions=self.actions + (action,))


def little_bunny(name: str = "Foo Foo") -> Bunny:
    return Bunny(name=name)


def hop(bunny: Bunny, through: str) -> Bunny:
    return bunny.did(f"hop through {through}")


def scoop(bunny: Bunny, up: str) -> Bunny:
    return replace(bunny.did(f"scoop up {up}"), carrying=bunny.carrying + (up,))


def bop(bunny: Bunny, on: str) -> Bunny:
    return bunny.did(f"bop {', '.join(bunny.carrying) or 'nothing'} on the {on}")


def intermediate_steps() -> Bunny:
    foo_foo = little_bunny()
    foo_foo_1 = hop(foo_foo, through="forest")
    foo_foo_2 = scoop(foo_foo_1, up="field_mice")
    foo_foo_3 = bop(foo_foo_2, on="head")
    return foo_foo_3


def overwrite_original() -> Bunny:
    foo_foo = little_bunny()
    foo_foo = hop(foo_foo, through="forest")
    foo_foo = scoop(foo_foo, up="field_mice")
    foo_foo = bop(foo_foo, on="head")
    return foo_foo


def function_composition() -> Bunny:
    return bop(
        scoop(
            hop(little_bunny(), through="forest"),
            up="field_mice"
        ),
        on="head"
    )


def pipe(trace: Optional[ChainTrace] = None) -> Bunny:
    return (
        Chain.from_value(little_bunny())
        .then(hop, through="forest")
        .then(scoop, up="field_mice")
        .then(bop, on="head")
        .evaluate(trace)
    )


def pipe_operator() -> Bunny:
    return little_bunny() | then(hop, through="forest") | then(scoop, up="field_mice") | then(bop, on="head")


def pipe_steps() -> Bunny:
    return evaluate(little_bunny(), [
        (hop, [], {"through": "forest"}),
        (scoop, [], {"up": "field_mice"}),
        (bop, [P], {"on": "head"}),
    ])


def pipe_text() -> Bunny:
    namespace = {"foo_foo": little_bunny(), "hop": hop, "scoop": scoop, "bop": bop}
    return run_chain(
        "foo_foo %>% hop(through = 'forest') %>% scoop(up = 'field_mice') %>% bop(on = 'head')",
        namespace,
    )


STYLES = {
    "intermediate steps": intermediate_steps,
    "overwrite the original": overwrite_original,
    "function composition": function_composition,
    "pipe (Chain)": pipe,
    "pipe (| operator)": pipe_operator,
    "pipe (step list)": pipe_steps,
    "pipe (text)": pipe_text,
}


def run_all() -> Dict[str, Bunny]:
    return {label: style() for label, style in STYLES.items()}


def main(console: Optional[Console] = None) -> int:
    console = console or Console()
    get_chain_logger()
    set_stderr_level(logging.INFO)

    results = run_all()
    table = Table(title="Little bunny Foo Foo")
    table.add_column("Style", style="cyan")
    table.add_column("Actions")
    for label, bunny in results.items():
        table.add_row(label, "; ".join(bunny.actions))
    console.print(table)

    trace = ChainTrace()
    pipe(trace)
    render_trace(trace, console, title="Pipe trace")

    # Tee keeps the bunny flowing while printing along the way
    little_bunny() | tee(console.print) | then(hop, through="forest") | tee(console.print)

    agree = len(set(results.values())) == 1
    logging.getLogger(__name__).info("all styles agree: %s", agree)
    return 0 if agree else 1


if __name__ == "__main__":
    raise SystemExit(main())
