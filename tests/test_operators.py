"""
Unit tests for step builders and flow-control operators.
"""

import operator

import pytest

from pipechain import EvaluationError
from pipechain.dsl import (
    P, Chain, CallStep, TapStep, ComposedStep,
    then, tee, when, unless, branch, identity, pipeline,
)


def explode(value):
    raise ValueError("boom")


class TestStepBuilders:

    def test_then(self):
        step = then(operator.add, 1)
        assert isinstance(step, CallStep)
        assert 4 | step == 5

    def test_pipe_application(self):
        assert 4 | then(operator.add, 1) | then(operator.mul, 2) == 10

    def test_placeholder_application(self):
        assert "." | then(str.join, P, ["a", "b"]) == "a.b"

    def test_tee(self, recorder):
        step = tee(recorder)
        assert isinstance(step, TapStep)
        assert [3, 1, 2] | step | then(sorted) == [1, 2, 3]
        assert recorder.calls == [([3, 1, 2], (), {})]

    def test_step_is_callable(self):
        assert then(operator.add, 1)(4) == 5

    def test_calling_with_a_step_runs_it(self):
        describe = then(lambda step: step.name)
        assert describe(identity()) == "identity"

    def test_calling_raises(self):
        with pytest.raises(EvaluationError) as exc_info:
            then(explode)(1)
        assert exc_info.value.step_index == 0

    def test_application_raises(self):
        with pytest.raises(EvaluationError) as exc_info:
            1 | then(explode)
        assert exc_info.value.step_index == 0
        assert exc_info.value.step_name == "explode"

    def test_composition(self):
        composed = then(operator.add, 1) >> then(operator.mul, 2)
        assert isinstance(composed, ComposedStep)
        assert composed.name == "add >> mul"
        assert 4 | composed == 10

    def test_composition_with_callable(self):
        composed = then(str.strip) | str.upper
        assert " a " | composed == "A"

    def test_and_then(self):
        assert 4 | then(operator.add, 1).and_then(then(operator.neg)) == -5


class TestConditionalOperators:

    def test_when_true(self):
        double_large = when(lambda v: v > 3)(then(operator.mul, 2))
        assert 5 | double_large == 10

    def test_when_false(self):
        double_large = when(lambda v: v > 3)(then(operator.mul, 2))
        assert 2 | double_large == 2

    def test_unless(self):
        negate_small = unless(lambda v: v > 3)(operator.neg)
        assert 2 | negate_small == -2
        assert 5 | negate_small == 5

    def test_condition_failure(self):
        step = when(lambda v: v > 3)(then(operator.mul, 2))
        with pytest.raises(EvaluationError) as exc_info:
            "text" | step
        assert exc_info.value.step_name == "when(mul)"
        assert isinstance(exc_info.value.cause, TypeError)


class TestBranchOperator:

    def test_then_branch(self):
        step = branch(lambda w: len(w) > 3, then(str.upper), then(str.lower))
        assert "long" | step == "LONG"

    def test_else_branch(self):
        step = branch(lambda w: len(w) > 3, then(str.upper), then(str.lower))
        assert "ABC" | step == "abc"

    def test_no_else_passes_through(self):
        step = branch(lambda w: len(w) > 3, str.upper)
        assert "abc" | step == "abc"

    def test_branch_in_chain(self, test_config):
        chain = Chain.from_value(-3, test_config) >> branch(lambda v: v < 0, operator.neg)
        assert chain.evaluate() == 3


class TestIdentityAndPipeline:

    def test_identity(self):
        step = identity()
        assert step.name == "identity"
        assert 7 | step == 7

    def test_empty_pipeline(self):
        assert 3 | pipeline() == 3

    def test_pipeline(self):
        clean = pipeline(then(str.strip), then(str.lower))
        assert "  Foo Foo " | clean == "foo foo"

    def test_pipeline_of_entries(self):
        assert 4 | pipeline((operator.add, [1]), operator.neg) == -5

    def test_pipeline_failure_in_chain(self, test_config, recorder):
        chain = (
            Chain.from_value(1, test_config)
            .pipe(pipeline(then(operator.add, 1), then(explode)))
            .then(recorder)
        )
        result = chain.run()
        assert result.error.step_index == 0
        assert result.error.step == "explode"
        assert result.error.input_value == 2
        assert recorder.calls == []
