"""
Unit tests for the agent registry, load balancer and health checker.
"""

import asyncio

import pytest

from agent_foundry.models.core import AgentHealth, AgentTask
from agent_foundry.models.errors import RegistrationError
from agent_foundry.orchestration.registry import AgentRegistry, HealthChecker, LoadBalancer


class TestAgentRegistry:
    """Test cases for AgentRegistry."""

    @pytest.mark.asyncio
    async def test_register_and_lookup(self, registry, make_agent):
        planner = make_agent("planner", kinds=["planning"])
        builder = make_agent("builder", kinds=["frontend", "backend"])

        await registry.register(planner)
        await registry.register(builder)

        assert len(registry) == 2
        assert "builder" in registry
        assert registry.get("planner") is planner
        assert registry.list_agents() == ["planner", "builder"]
        assert registry.kinds() == ["backend", "frontend", "planning"]
        assert registry.find_capable("backend") == [builder]
        assert planner.initialize_calls == 1

    @pytest.mark.asyncio
    async def test_unknown_kind_has_no_candidates(self, registry, make_agent):
        await registry.register(make_agent("planner"))

        assert registry.find_capable("code-review") == []
        assert registry.select("code-review") is None

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, registry, make_agent):
        await registry.register(make_agent("planner"))

        with pytest.raises(RegistrationError):
            await registry.register(make_agent("planner", kinds=["testing"]))

        assert registry.kinds() == ["planning"]

    @pytest.mark.asyncio
    async def test_agent_without_kinds_rejected(self, registry, make_agent):
        with pytest.raises(RegistrationError):
            await registry.register(make_agent("idle", kinds=[]))

        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_initialize_failure_wrapped(self, registry, make_agent):
        agent = make_agent("broken")

        async def fail():
            raise RuntimeError("boom")

        agent.on_initialize = fail

        with pytest.raises(RegistrationError, match="boom"):
            await registry.register(agent)
        assert "broken" not in registry

    @pytest.mark.asyncio
    async def test_candidates_ordered_by_load_then_registration(self, registry, make_agent, wait_until):
        gate = asyncio.Event()
        first = make_agent("first", gate=gate, max_concurrent_tasks=2)
        second = make_agent("second", max_concurrent_tasks=2)
        await registry.register(first)
        await registry.register(second)

        assert registry.find_capable("planning") == [first, second]

        running = asyncio.create_task(first.execute(AgentTask(type="planning")))
        await wait_until(lambda: first.active_tasks == 1)

        assert registry.find_capable("planning") == [second, first]
        assert registry.select("planning") is second

        gate.set()
        await running

    @pytest.mark.asyncio
    async def test_unregister_calls_shutdown(self, registry, make_agent):
        agent = make_agent("planner")
        await registry.register(agent)

        assert await registry.unregister("planner") is True
        assert await registry.unregister("planner") is False
        assert agent.shutdown_calls == 1
        assert registry.find_capable("planning") == []

    @pytest.mark.asyncio
    async def test_stop_shuts_down_agents(self, make_agent):
        registry = AgentRegistry(health_check_interval_seconds=60)
        agent = make_agent("planner")
        await registry.register(agent)
        await registry.start()

        assert registry.get_registry_status()["started"] is True

        await registry.stop()

        assert agent.shutdown_calls == 1
        assert len(registry) == 0

    @pytest.mark.asyncio
    async def test_status_snapshot(self, registry, make_agent):
        healthy = make_agent("healthy")
        disabled = make_agent("disabled")
        disabled.disable()
        await registry.register(healthy)
        await registry.register(disabled)

        snapshot = registry.status_snapshot()
        status = registry.get_registry_status()

        assert snapshot["healthy"].health == AgentHealth.HEALTHY
        assert snapshot["disabled"].health == AgentHealth.UNHEALTHY
        assert status["total_agents"] == 2
        assert status["healthy_agents"] == 1
        assert status["unhealthy_agents"] == 1


class TestLoadBalancer:
    """Test cases for LoadBalancer."""

    def test_reserved_slots_count_as_load(self, make_agent):
        balancer = LoadBalancer()
        a = make_agent("a", max_concurrent_tasks=1)
        b = make_agent("b", max_concurrent_tasks=1)

        assert balancer.select_agent([a, b]) is a
        assert balancer.select_agent([a, b], reserved={"a": 1}) is b
        assert balancer.select_agent([a, b], reserved={"a": 1, "b": 1}) is None

    def test_unhealthy_agents_skipped(self, make_agent):
        balancer = LoadBalancer()
        a = make_agent("a")
        b = make_agent("b")
        a.disable()

        assert balancer.select_agent([a, b]) is b
        b.disable()
        assert balancer.select_agent([a, b]) is None


class TestHealthChecker:
    """Test cases for HealthChecker."""

    @pytest.mark.asyncio
    async def test_recovered_agent_is_reset(self, registry, make_agent):
        agent = make_agent("flaky", should_fail=True, unhealthy_after_failures=2)
        await registry.register(agent)
        for _ in range(2):
            await agent.execute(AgentTask(type="planning"))
        assert agent.health() == AgentHealth.UNHEALTHY

        await HealthChecker().check_all(registry)

        assert agent.health() == AgentHealth.HEALTHY

    @pytest.mark.asyncio
    async def test_disabled_agent_stays_unhealthy(self, registry, make_agent):
        agent = make_agent("off")
        agent.disable()
        await registry.register(agent)

        await HealthChecker().check_all(registry)

        assert agent.health() == AgentHealth.UNHEALTHY

    @pytest.mark.asyncio
    async def test_failing_health_check_is_logged_not_raised(self, registry, make_agent):
        agent = make_agent("checked")

        async def broken_health_check():
            raise RuntimeError("health check failed")

        agent.health_check = broken_health_check
        await registry.register(agent)

        await HealthChecker().check_all(registry)

        assert agent.health() == AgentHealth.HEALTHY

    @pytest.mark.asyncio
    async def test_start_stop(self, registry):
        checker = HealthChecker(check_interval_seconds=0.01)

        await checker.start(registry)
        await asyncio.sleep(0.03)
        await checker.stop()

        assert checker._health_check_task is None
