"""
Chain Trace - step-by-step record of a chain evaluation.

Pydantic models for the values threaded through a chain, plus a rich
renderer that shows them as a table.

::: This is-in-layer Domain-Specific-Language-Layer.
::: This depends-on rich.
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from rich.console import Console
from rich.table import Table
from rich.text import Text


# ============================================================================
# Trace Models
# ============================================================================

class StepRecord(BaseModel):
    """One evaluated step: what went in, what came out"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    index: int = Field(..., ge=0)
    step: str
    input: Any = None
    output: Any = None
    tee: bool = False
    duration_ms: float = Field(0.0, ge=0.0)
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class ChainTrace(BaseModel):
    """Ordered records of a single chain evaluation"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    initial: Any = None
    records: List[StepRecord] = Field(default_factory=list)

    def start(self, initial: Any) -> None:
        """Begin a new evaluation, dropping records of any earlier one."""
        self.initial = initial
        self.records = []

    def record(self, record: StepRecord) -> None:
        self.records.append(record)

    @property
    def succeeded(self) -> bool:
        return all(not r.failed for r in self.records)

    @property
    def final(self) -> Any:
        """Value emitted by the last step, or the initial value for an empty chain."""
        if not self.records:
            return self.initial
        return self.records[-1].output

    def __len__(self) -> int:
        return len(self.records)


# ============================================================================
# Rendering
# ============================================================================

def _short(value: Any, width: int = 40) -> str:
    text = repr(value)
    if len(text) > width:
        return text[: width - 3] + "..."
    return text


def build_trace_table(trace: ChainTrace, title: str = "Chain trace") -> Table:
    """Build a rich table with one row per evaluated step."""
    table = Table(title=title, show_lines=False)
    table.add_column("#", justify="right", style="dim")
    table.add_column("Step", style="cyan")
    table.add_column("Input")
    table.add_column("Output")
    table.add_column("ms", justify="right", style="dim")

    table.add_row("", Text("initial", style="bold"), "", _short(trace.initial), "")
    for record in trace.records:
        step_label = f"{record.step} (tee)" if record.tee else record.step
        if record.failed:
            output = Text(record.error, style="bold red")
        else:
            output = Text(_short(record.output))
        table.add_row(
            str(record.index),
            step_label,
            _short(record.input),
            output,
            f"{record.duration_ms:.2f}",
        )
    return table


def render_trace(trace: ChainTrace, console: Optional[Console] = None,
                 title: str = "Chain trace") -> None:
    """Print a trace to the given console (stdout by default)."""
    console = console or Console()
    console.print(build_trace_table(trace, title=title))
