"""
Pytest configuration and fixtures for Agent Foundry tests.
"""

import asyncio
from typing import Callable, Iterable, List, Optional

import pytest

from agent_foundry.agents.base import BaseAgent
from agent_foundry.models.core import (
    AgentTask, ProjectRequirements, TargetPlatform, TaskResult
)
from agent_foundry.orchestration.dispatcher import TaskDispatcher
from agent_foundry.orchestration.registry import AgentRegistry
from agent_foundry.utils.config import (
    AgentConfig, DispatcherConfig, HistoryConfig, OrchestrationConfig, SystemConfig,
    set_config
)
from agent_foundry.utils.error_handler import error_handler


def make_test_config(**orchestration) -> SystemConfig:
    """Configuration with short timeouts so failure paths finish quickly."""
    return SystemConfig(
        agents=AgentConfig(task_timeout_seconds=5.0),
        dispatcher=DispatcherConfig(availability_timeout_seconds=0.3, poll_interval_seconds=0.01),
        orchestration=OrchestrationConfig(**{
            "max_retry_attempts": 2,
            "retry_base_delay_seconds": 0.01,
            "retry_max_delay_seconds": 0.05,
            "run_timeout_seconds": 10.0,
            **orchestration,
        }),
        history=HistoryConfig(max_records=100),
    )


@pytest.fixture(autouse=True)
def test_config():
    """Install the fast test configuration and clear global error stats."""
    config = make_test_config()
    set_config(config)
    error_handler.reset_error_stats()
    yield config
    set_config(None)


class MockAgent(BaseAgent):
    """Mock agent implementation for testing."""

    def __init__(
        self,
        name: str,
        kinds: Iterable[str] = ("planning",),
        delay: float = 0.0,
        should_fail: bool = False,
        fail_times: int = 0,
        raise_error: bool = False,
        raise_times: int = 0,
        error_type: type = RuntimeError,
        gate: Optional[asyncio.Event] = None,
        **kwargs
    ):
        super().__init__(name, kinds, **kwargs)
        self.delay = delay
        self.should_fail = should_fail
        self.fail_times = fail_times
        self.raise_error = raise_error
        self.raise_times = raise_times
        self.error_type = error_type
        self.gate = gate
        self.execution_count = 0
        self.executed: List[str] = []
        self.max_active_seen = 0
        self.initialize_calls = 0
        self.shutdown_calls = 0

    async def on_initialize(self):
        self.initialize_calls += 1

    async def shutdown(self):
        self.shutdown_calls += 1

    async def process(self, task: AgentTask):
        """Mock process method."""
        self.execution_count += 1
        self.executed.append(task.id)
        self.max_active_seen = max(self.max_active_seen, self.active_tasks)

        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)

        if self.raise_error or self.execution_count <= self.raise_times:
            raise self.error_type(f"Mock failure in {self.name}")
        if self.should_fail or self.execution_count <= self.fail_times:
            return TaskResult(success=False, error=f"Mock failure in {self.name}")

        return {"agent": self.name, "task_id": task.id, "payload_keys": sorted(task.payload)}


@pytest.fixture
def make_agent() -> Callable[..., MockAgent]:
    """Factory for mock agents."""
    return MockAgent


@pytest.fixture
def make_config() -> Callable[..., SystemConfig]:
    """Factory for test configurations with orchestration overrides."""
    return make_test_config


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds or the timeout expires."""

    async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met in time")
            await asyncio.sleep(0.005)

    return _wait_until


@pytest.fixture
async def registry():
    """Empty registry; stopped after the test."""
    registry = AgentRegistry(health_check_interval_seconds=60)
    yield registry
    await registry.stop()


@pytest.fixture
async def dispatcher(registry):
    """Dispatcher over the test registry; not started."""
    dispatcher = TaskDispatcher(registry)
    yield dispatcher
    await dispatcher.stop()


@pytest.fixture
def sample_requirements() -> ProjectRequirements:
    """React web app with a storage feature."""
    return ProjectRequirements(
        name="Todo App",
        description="A simple todo application",
        framework="react",
        features=["task list", "user data storage"],
        target_platform=TargetPlatform.WEB,
    )


@pytest.fixture
def minimal_requirements() -> ProjectRequirements:
    """Only the required fields."""
    return ProjectRequirements(name="Landing Page", description="Static marketing page")
