"""
Unit tests for base agent functionality.
"""

import asyncio

import pytest

from agent_foundry.agents import ProjectPlanningAgent
from agent_foundry.models.core import AgentHealth, AgentTask
from agent_foundry.models.errors import ErrorCategory


class TestBaseAgentExecute:
    """Test cases for BaseAgent.execute."""

    @pytest.mark.asyncio
    async def test_execute_success(self, make_agent):
        agent = make_agent("planner")
        task = AgentTask(type="planning", payload={"x": 1})

        result = await agent.execute(task)

        assert result.success is True
        assert result.data["task_id"] == task.id
        assert result.metadata["agent"] == "planner"
        assert result.metadata["duration_ms"] >= 0

        status = agent.status()
        assert status.completed_tasks == 1
        assert status.failed_tasks == 0
        assert status.active_tasks == 0
        assert status.last_activity is not None

    @pytest.mark.asyncio
    async def test_foreign_kind_does_not_touch_counters(self, make_agent):
        agent = make_agent("planner")

        result = await agent.execute(AgentTask(type="testing"))

        assert result.success is False
        assert result.error_category == ErrorCategory.ROUTING
        assert agent.execution_count == 0
        status = agent.status()
        assert (status.active_tasks, status.completed_tasks, status.failed_tasks) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_exception_is_normalized(self, make_agent):
        agent = make_agent("broken", raise_error=True)

        result = await agent.execute(AgentTask(type="planning"))

        assert result.success is False
        assert result.error == "Mock failure in broken"
        assert result.error_category == ErrorCategory.EXECUTION
        assert result.next_steps
        assert agent.status().failed_tasks == 1
        assert agent.active_tasks == 0

    @pytest.mark.parametrize("error_type", [KeyError, ValueError, TypeError])
    @pytest.mark.asyncio
    async def test_internal_errors_are_execution_failures(self, make_agent, error_type):
        agent = make_agent("buggy", raise_error=True, error_type=error_type)

        result = await agent.execute(AgentTask(type="planning"))

        assert result.success is False
        assert result.error_category == ErrorCategory.EXECUTION
        assert "Mock failure in buggy" in result.error
        assert "Check required fields" not in result.next_steps

    @pytest.mark.asyncio
    async def test_failed_result_gets_execution_category(self, make_agent):
        agent = make_agent("flaky", should_fail=True)

        result = await agent.execute(AgentTask(type="planning"))

        assert result.success is False
        assert result.error_category == ErrorCategory.EXECUTION
        assert agent.status().failed_tasks == 1

    @pytest.mark.asyncio
    async def test_invalid_payload_is_validation_failure(self):
        agent = ProjectPlanningAgent()

        result = await agent.execute(AgentTask(type="planning", payload={}))

        assert result.success is False
        assert result.error_category == ErrorCategory.VALIDATION
        assert "Invalid payload" in result.error

    @pytest.mark.asyncio
    async def test_timeout(self, make_agent):
        agent = make_agent("slow", delay=1.0, task_timeout_seconds=0.05)

        result = await agent.execute(AgentTask(type="planning"))

        assert result.success is False
        assert result.error_category == ErrorCategory.EXECUTION
        assert "timed out" in result.error
        assert agent.active_tasks == 0

    @pytest.mark.asyncio
    async def test_capacity_is_enforced(self, make_agent, wait_until):
        gate = asyncio.Event()
        agent = make_agent("single", gate=gate, max_concurrent_tasks=1)

        first = asyncio.create_task(agent.execute(AgentTask(type="planning")))
        await wait_until(lambda: agent.active_tasks == 1)

        second = await agent.execute(AgentTask(type="planning"))
        assert second.success is False
        assert second.error_category == ErrorCategory.AVAILABILITY

        gate.set()
        assert (await first).success is True
        assert agent.max_active_seen == 1
        assert agent.active_tasks == 0

    @pytest.mark.asyncio
    async def test_cancellation_restores_counters(self, make_agent, wait_until):
        agent = make_agent("gated", gate=asyncio.Event())

        running = asyncio.create_task(agent.execute(AgentTask(type="planning")))
        await wait_until(lambda: agent.active_tasks == 1)
        running.cancel()

        with pytest.raises(asyncio.CancelledError):
            await running

        assert agent.active_tasks == 0
        assert agent.status().failed_tasks == 1


class TestBaseAgentHealth:
    """Test cases for health derivation."""

    def test_new_agent_is_healthy(self, make_agent):
        assert make_agent("a").health() == AgentHealth.HEALTHY

    def test_disabled_agent_is_unhealthy(self, make_agent):
        agent = make_agent("a")
        agent.disable()
        assert agent.health() == AgentHealth.UNHEALTHY
        assert agent.status().enabled is False

        agent.enable()
        assert agent.health() == AgentHealth.HEALTHY

    @pytest.mark.asyncio
    async def test_failure_streak(self, make_agent):
        agent = make_agent("a", should_fail=True, unhealthy_after_failures=3)
        task = AgentTask(type="planning")

        await agent.execute(task)
        assert agent.health() == AgentHealth.DEGRADED

        await agent.execute(task)
        await agent.execute(task)
        assert agent.health() == AgentHealth.UNHEALTHY

        agent.reset_failures()
        assert agent.health() == AgentHealth.HEALTHY

    @pytest.mark.asyncio
    async def test_success_clears_degraded(self, make_agent):
        agent = make_agent("a", fail_times=1)
        task = AgentTask(type="planning")

        await agent.execute(task)
        assert agent.health() == AgentHealth.DEGRADED

        await agent.execute(task)
        assert agent.health() == AgentHealth.HEALTHY

    @pytest.mark.asyncio
    async def test_busy_agent_is_degraded(self, make_agent, wait_until):
        gate = asyncio.Event()
        agent = make_agent("a", gate=gate)

        running = asyncio.create_task(agent.execute(AgentTask(type="planning")))
        await wait_until(lambda: agent.active_tasks == 1)
        assert agent.health() == AgentHealth.DEGRADED

        gate.set()
        await running
        assert agent.health() == AgentHealth.HEALTHY

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, make_agent):
        agent = make_agent("a")

        await agent.initialize()
        await agent.initialize()

        assert agent.initialize_calls == 1
        assert await agent.health_check() is True

    def test_average_response_time(self, make_agent):
        agent = make_agent("a")
        agent._finish(True, 10.0)
        agent._finish(False, 30.0)

        status = agent.status()
        assert status.average_response_time_ms == pytest.approx(20.0)
        assert status.completed_tasks == 1
        assert status.failed_tasks == 1
