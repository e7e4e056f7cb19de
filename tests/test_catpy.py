"""
Unit tests for the Result monad and chain error values.
"""

import pytest

from pipechain.dsl import (
    Result, Ok, Err,
    ChainError, chain_ok, chain_err,
)


class TestResultTypes:
    """Tests for Ok/Err result types."""

    def test_ok_is_ok(self):
        result = Ok(42)
        assert result.is_ok()
        assert not result.is_err()

    def test_err_is_err(self):
        result = Err("failed")
        assert result.is_err()
        assert not result.is_ok()

    def test_ok_unwrap(self):
        assert Ok("value").unwrap() == "value"

    def test_err_unwrap_raises(self):
        with pytest.raises(ValueError):
            Err("error").unwrap()

    def test_unwrap_or(self):
        assert Ok(1).unwrap_or(0) == 1
        assert Err("error").unwrap_or(0) == 0

    def test_bind_short_circuits_on_err(self):
        calls = []
        result = Err("stop").bind(lambda x: calls.append(x) or Ok(x))
        assert result == Err("stop")
        assert calls == []

    def test_map_err(self):
        assert Err(1).map_err(lambda e: e + 1) == Err(2)
        assert Ok(1).map_err(lambda e: e + 1) == Ok(1)

    def test_pure_is_ok(self):
        assert Result.pure(3) == Ok(3)

    # -------------------------------------------------------------------------
    # Laws
    # -------------------------------------------------------------------------

    def test_functor_identity_law(self):
        """fmap(id) == id"""
        assert Ok(10).fmap(lambda x: x) == Ok(10)

    def test_functor_composition_law(self):
        """fmap(f).fmap(g) == fmap(g . f)"""
        f = lambda x: x + 1
        g = lambda x: x * 2
        assert Ok(5).fmap(f).fmap(g) == Ok(5).fmap(lambda x: g(f(x)))

    def test_monad_left_identity(self):
        """pure(x).bind(f) == f(x)"""
        f = lambda x: Ok(x * 2)
        assert Result.pure(5).bind(f) == f(5)

    def test_monad_right_identity(self):
        """m.bind(pure) == m"""
        assert Ok(5).bind(Result.pure) == Ok(5)

    def test_monad_associativity(self):
        f = lambda x: Ok(x + 1)
        g = lambda x: Ok(x * 2)
        m = Ok(5)
        assert m.bind(f).bind(g) == m.bind(lambda x: f(x).bind(g))


class TestChainError:
    """Tests for ChainError and its helpers."""

    def test_chain_ok(self):
        assert chain_ok(3) == Ok(3)

    def test_chain_err_carries_details(self):
        cause = ZeroDivisionError("division by zero")
        result = chain_err("divide", "ZeroDivisionError raised", cause, input_value=0)
        assert result.is_err()
        assert result.error.step == "divide"
        assert result.error.cause is cause
        assert result.error.input_value == 0
        assert result.error.step_index is None

    def test_at_sets_index_without_mutating(self):
        error = ChainError("f", "failed")
        positioned = error.at(2)
        assert positioned.step_index == 2
        assert error.step_index is None

    def test_at_overwrites_index(self):
        assert ChainError("f", "failed").at(0).at(3).step_index == 3

    def test_str_includes_index_and_cause(self):
        error = ChainError("f", "ValueError raised", ValueError("bad"), step_index=1)
        assert str(error) == "[1:f] ValueError raised: bad"

    def test_str_without_cause(self):
        assert str(ChainError("f", "failed")) == "[f] failed"
