"""
Tests for evaluator configuration and logging setup.
"""

import logging
import operator

import pytest

from pipechain.config import EvaluatorConfig, PLACEHOLDER_POLICIES
from pipechain.dsl import P, Chain, evaluate
from pipechain import logging_config


class TestEvaluatorConfig:

    def test_defaults(self):
        config = EvaluatorConfig()
        assert config.placeholder_policy == "all"
        assert config.log_steps is False
        assert config.validate() == []

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PIPECHAIN_PLACEHOLDER_POLICY", "FIRST")
        monkeypatch.setenv("PIPECHAIN_LOG_STEPS", "true")
        config = EvaluatorConfig.from_env()
        assert config.placeholder_policy == "first"
        assert config.log_steps is True

    def test_for_testing_ignores_env(self, monkeypatch):
        monkeypatch.setenv("PIPECHAIN_PLACEHOLDER_POLICY", "error")
        monkeypatch.setenv("PIPECHAIN_LOG_STEPS", "1")
        config = EvaluatorConfig.for_testing()
        assert config.placeholder_policy == "all"
        assert config.log_steps is False

    @pytest.mark.parametrize("policy", PLACEHOLDER_POLICIES)
    def test_known_policies(self, policy):
        config = EvaluatorConfig.for_testing(policy)
        assert config.validate() == []
        assert config.effective_policy == policy

    def test_unknown_policy_falls_back(self):
        config = EvaluatorConfig.for_testing("sideways")
        warnings = config.validate()
        assert len(warnings) == 1
        assert "sideways" in warnings[0]
        assert config.effective_policy == "all"

    def test_env_policy_reaches_evaluation(self, monkeypatch):
        monkeypatch.setenv("PIPECHAIN_PLACEHOLDER_POLICY", "first")
        pair = lambda a, b: (a, b)
        assert evaluate(1, [(pair, [P, P])]) == (1, P)
        assert Chain.from_value(1).then(pair, P, P).evaluate() == (1, P)


class TestStepLogging:

    def test_unknown_policy_warning(self, chain_log):
        evaluate(1, [(operator.add, [1])], config=EvaluatorConfig.for_testing("sideways"))
        warnings = [r for r in chain_log.records if r.levelno == logging.WARNING]
        assert any("sideways" in r.getMessage() for r in warnings)

    def test_log_steps(self, chain_log):
        config = EvaluatorConfig(placeholder_policy="all", log_steps=True)
        evaluate(4, [(operator.add, [1])], config=config)
        messages = [r.getMessage() for r in chain_log.records]
        assert "step 0 add <- 4" in messages

    def test_steps_not_logged_by_default(self, chain_log, test_config):
        evaluate(4, [(operator.add, [1])], config=test_config)
        assert not any(r.getMessage().startswith("step 0 add <-") for r in chain_log.records)

    def test_failure_logged(self, chain_log, test_config):
        Chain.from_value(0, test_config).then(operator.truediv, 0).run()
        assert any("failed" in r.getMessage() for r in chain_log.records)


class TestLoggingConfig:

    @pytest.fixture
    def fresh_logger(self, monkeypatch):
        logging_config.reset_chain_logger()
        yield
        logging_config.reset_chain_logger()
        monkeypatch.delenv("PIPECHAIN_DEBUG_LOG", raising=False)
        logging_config.get_chain_logger()

    def test_file_logging_disabled_by_default(self):
        assert not logging_config.is_file_logging_enabled()
        assert logging_config._create_file_handler("chain_trace.log") is None

    def test_log_directory_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PIPECHAIN_LOG_DIR", str(tmp_path / "logs"))
        assert logging_config._get_log_directory() == tmp_path / "logs"

    def test_logger_configured_once(self):
        logger = logging_config.get_chain_logger()
        handlers = list(logger.handlers)
        assert logging_config.get_chain_logger() is logger
        assert logger.handlers == handlers
        assert logger.propagate is False

    def test_file_logging(self, monkeypatch, tmp_path, fresh_logger):
        monkeypatch.setenv("PIPECHAIN_DEBUG_LOG", "1")
        monkeypatch.setenv("PIPECHAIN_LOG_DIR", str(tmp_path))
        logger = logging_config.get_chain_logger()
        assert any(isinstance(h, logging.FileHandler) for h in logger.handlers)

        logging.getLogger("pipechain.dsl.core").debug("hello from a step")
        for handler in logger.handlers:
            handler.flush()
        assert "hello from a step" in (tmp_path / "chain_trace.log").read_text(encoding="utf-8")

    def test_foreign_handlers_do_not_block_setup(self, fresh_logger):
        logger = logging.getLogger(logging_config.LOGGER_NAME)
        foreign = logging.NullHandler()
        logger.addHandler(foreign)
        try:
            logging_config.reset_chain_logger()
            assert foreign in logger.handlers

            logging_config.get_chain_logger()
            assert any(isinstance(h, logging_config.FlushingStreamHandler) for h in logger.handlers)
            assert foreign in logger.handlers
        finally:
            logger.removeHandler(foreign)

    def test_set_stderr_level_leaves_foreign_handlers(self, fresh_logger):
        logger = logging.getLogger(logging_config.LOGGER_NAME)
        foreign = logging.StreamHandler()
        foreign.setLevel(logging.ERROR)
        logger.addHandler(foreign)
        try:
            logging_config.set_stderr_level(logging.DEBUG)
            assert foreign.level == logging.ERROR
        finally:
            logger.removeHandler(foreign)

    def test_set_stderr_level(self, fresh_logger):
        logger = logging_config.get_chain_logger()
        logging_config.set_stderr_level(logging.DEBUG)
        stream_handlers = [
            h for h in logger.handlers
            if isinstance(h, logging_config.FlushingStreamHandler)
        ]
        assert stream_handlers
        assert all(h.level == logging.DEBUG for h in stream_handlers)
