"""
Unit tests for chain traces and their rich rendering.
"""

import io
import operator

import pytest
from pydantic import ValidationError
from rich.console import Console

from pipechain import EvaluationError
from pipechain.dsl import (
    Chain, ChainTrace, StepRecord, TapStep,
    build_trace_table, evaluate, render_trace,
)


def explode(value):
    raise ValueError("boom")


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=120, color_system=None)


class TestTraceRecording:

    def test_records_every_step(self, test_config):
        trace = ChainTrace()
        evaluate(4, [(operator.add, [1]), TapStep(str), (operator.mul, [2])],
                 config=test_config, trace=trace)
        assert len(trace) == 3
        assert trace.initial == 4
        assert [r.index for r in trace.records] == [0, 1, 2]
        assert [r.input for r in trace.records] == [4, 5, 5]
        assert [r.output for r in trace.records] == [5, 5, 10]
        assert [r.tee for r in trace.records] == [False, True, False]
        assert trace.succeeded
        assert trace.final == 10

    def test_records_failure(self, test_config):
        trace = ChainTrace()
        with pytest.raises(EvaluationError):
            evaluate(1, [(operator.add, [1]), explode, str], config=test_config, trace=trace)
        assert len(trace) == 2
        failed = trace.records[-1]
        assert failed.failed
        assert failed.step == "explode"
        assert failed.input == 2
        assert "boom" in failed.error
        assert not trace.succeeded

    def test_empty_chain(self, test_config):
        trace = ChainTrace()
        assert Chain.from_value(7, test_config).run(trace).unwrap() == 7
        assert len(trace) == 0
        assert trace.final == 7

    def test_reused_trace_starts_over(self, test_config):
        trace = ChainTrace()
        evaluate(1, [(operator.add, [1])], config=test_config, trace=trace)
        evaluate(4, [(operator.add, [1]), (operator.mul, [2])], config=test_config, trace=trace)
        assert trace.initial == 4
        assert len(trace) == 2
        assert trace.final == 10

    def test_reused_trace_on_empty_chain(self, test_config):
        trace = ChainTrace()
        evaluate(1, [(operator.add, [1])], config=test_config, trace=trace)
        evaluate(7, [], config=test_config, trace=trace)
        assert len(trace) == 0
        assert trace.final == 7

    def test_durations_are_non_negative(self, test_config):
        trace = ChainTrace()
        evaluate("a", [str.upper], config=test_config, trace=trace)
        assert trace.records[0].duration_ms >= 0.0

    def test_negative_index_rejected(self):
        with pytest.raises(ValidationError):
            StepRecord(index=-1, step="f")

    def test_arbitrary_values(self):
        marker = object()
        record = StepRecord(index=0, step="f", input=marker, output=marker)
        assert record.input is marker


class TestTraceRendering:

    def test_table_rows(self, test_config):
        trace = ChainTrace()
        evaluate(4, [(operator.add, [1])], config=test_config, trace=trace)
        table = build_trace_table(trace)
        assert table.row_count == 2
        assert [c.header for c in table.columns] == ["#", "Step", "Input", "Output", "ms"]

    def test_render(self, console, test_config):
        trace = ChainTrace()
        evaluate(4, [(operator.add, [1]), TapStep(str)], config=test_config, trace=trace)
        render_trace(trace, console, title="Bunny trace")
        output = console.file.getvalue()
        assert "Bunny trace" in output
        assert "initial" in output
        assert "add" in output
        assert "str (tee)" in output

    def test_render_failure(self, console, test_config):
        trace = ChainTrace()
        with pytest.raises(EvaluationError):
            evaluate(1, [explode], config=test_config, trace=trace)
        render_trace(trace, console)
        assert "ValueError raised" in console.file.getvalue()

    def test_long_values_are_shortened(self, console, test_config):
        trace = ChainTrace()
        evaluate("x" * 200, [len], config=test_config, trace=trace)
        render_trace(trace, console)
        assert "x" * 100 not in console.file.getvalue()
