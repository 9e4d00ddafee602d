"""
Unit tests for error normalization and retry backoff.
"""

import pytest

from agent_foundry.models.core import AgentTask, TaskResult
from agent_foundry.models.errors import (
    AggregationError, ErrorCategory, ExecutionError, RoutingError
)
from agent_foundry.utils.error_handler import ErrorHandler, RetryConfig


class TestRetryConfig:

    def test_exponential_backoff_without_jitter(self):
        config = RetryConfig(base_delay=0.5, max_delay=3.0, backoff_factor=2.0, jitter=False)

        assert [config.compute_delay(i) for i in range(4)] == [0.5, 1.0, 2.0, 3.0]

    def test_jitter_stays_within_bounds(self):
        config = RetryConfig(base_delay=1.0, max_delay=10.0)

        for _ in range(50):
            assert 0.5 <= config.compute_delay(0) <= 1.0


class TestErrorHandler:
    """Test cases for ErrorHandler."""

    def setup_method(self):
        self.handler = ErrorHandler()

    def test_framework_error_keeps_category(self):
        task = AgentTask(type="planning")

        result = self.handler.to_result(RoutingError("nobody home"), task=task, agent_name="a")

        assert result.success is False
        assert result.error == "nobody home"
        assert result.error_category == ErrorCategory.ROUTING
        assert result.next_steps == self.handler.get_recovery_strategies(ErrorCategory.ROUTING)
        assert self.handler.get_error_stats() == {"a": {"routing": 1}}

    @pytest.mark.parametrize("error, category", [
        (ValueError("bad"), ErrorCategory.EXECUTION),
        (KeyError("missing"), ErrorCategory.EXECUTION),
        (RuntimeError("boom"), ErrorCategory.EXECUTION),
        (ExecutionError("slow"), ErrorCategory.EXECUTION),
        (AggregationError("blocked"), ErrorCategory.AGGREGATION),
    ])
    def test_classification(self, error, category):
        assert self.handler.to_result(error).error_category == category

    def test_empty_message_falls_back_to_type_name(self):
        assert self.handler.to_result(RuntimeError()).error == "RuntimeError"

    def test_metadata_passed_through(self):
        result = self.handler.to_result(ExecutionError("x"), waited_seconds=1.5)

        assert result.metadata["waited_seconds"] == 1.5
        assert result.to_envelope()["metadata"]["errorCategory"] == "execution"

    def test_retryable(self):
        assert self.handler.is_retryable(TaskResult.failure("x", ErrorCategory.EXECUTION))
        assert self.handler.is_retryable(TaskResult.failure("x", ErrorCategory.AVAILABILITY))
        assert not self.handler.is_retryable(TaskResult.failure("x", ErrorCategory.ROUTING))
        assert not self.handler.is_retryable(TaskResult.failure("x", ErrorCategory.VALIDATION))
        assert not self.handler.is_retryable(TaskResult(success=True))

    def test_stats_reset(self):
        self.handler.to_result(RuntimeError("a"))
        self.handler.to_result(RuntimeError("b"))

        assert self.handler.get_error_stats() == {"orchestrator": {"execution": 2}}
        self.handler.reset_error_stats()
        assert self.handler.get_error_stats() == {}
