"""
Base agent interface and common utilities for Agent Foundry.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Type, Union

from pydantic import ValidationError as PydanticValidationError

from ..models.core import (
    AgentHealth, AgentStatus, AgentTask, TaskKind, TaskPayload, TaskResult,
    parse_payload
)
from ..models.errors import AgentFoundryError, ErrorCategory, ExecutionError, ValidationError
from ..utils.config import get_config
from ..utils.error_handler import error_handler
from ..utils.logging import bind_task, get_logger


class BaseAgent(ABC):
    """
    Abstract base class for all Agent Foundry agents.

    An agent executes tasks of the kinds it declares and owns its health and
    throughput counters. `execute` never raises for task failures: timeouts,
    internal errors and invalid payloads all come back as a failed
    TaskResult. Only cancellation of the running coroutine propagates, after
    the counters have been restored.
    """

    def __init__(
        self,
        name: str,
        kinds: Iterable[Union[str, TaskKind]],
        max_concurrent_tasks: Optional[int] = None,
        task_timeout_seconds: Optional[float] = None,
        unhealthy_after_failures: Optional[int] = None
    ):
        defaults = get_config().agents
        self.name = name
        self.kinds = frozenset(k.value if isinstance(k, TaskKind) else k for k in kinds)
        self.max_concurrent_tasks = max(1, max_concurrent_tasks or defaults.max_concurrent_tasks)
        self.task_timeout_seconds = task_timeout_seconds or defaults.task_timeout_seconds
        self.logger = get_logger(f"agent_foundry.agents.{name}")

        self._enabled = True
        self._initialized = False
        self._active_tasks = 0
        self._completed_tasks = 0
        self._failed_tasks = 0
        self._total_response_ms = 0.0
        self._last_activity: Optional[datetime] = None
        # True/False per recent attempt, newest last
        self._recent_outcomes: deque = deque(
            maxlen=unhealthy_after_failures or defaults.unhealthy_after_failures
        )

    async def initialize(self) -> None:
        """Run one-time setup. Safe to call more than once."""
        if self._initialized:
            return
        await self.on_initialize()
        self._initialized = True

    async def on_initialize(self) -> None:
        """Hook for subclasses needing custom setup."""

    async def shutdown(self) -> None:
        """Hook for subclasses releasing resources."""

    async def health_check(self) -> bool:
        """Liveness probe used by the registry's health checker."""
        return self._enabled

    @abstractmethod
    async def process(self, task: AgentTask) -> Union[TaskResult, Dict[str, Any]]:
        """
        Do the agent-specific work for a task.

        Args:
            task: Task whose kind this agent declared

        Returns:
            A TaskResult, or plain data to be wrapped in a successful one
        """

    def can_handle(self, kind: str) -> bool:
        return kind in self.kinds

    def has_capacity(self) -> bool:
        return self._active_tasks < self.max_concurrent_tasks

    @property
    def active_tasks(self) -> int:
        return self._active_tasks

    @property
    def enabled(self) -> bool:
        return self._enabled

    def enable(self) -> None:
        self._enabled = True

    def disable(self) -> None:
        self._enabled = False

    def reset_failures(self) -> None:
        """Forget the recent failure streak."""
        self._recent_outcomes.clear()

    def health(self) -> AgentHealth:
        """Current health derived from enablement, failure streak and load."""
        if not self._enabled:
            return AgentHealth.UNHEALTHY
        outcomes = self._recent_outcomes
        if len(outcomes) == outcomes.maxlen and not any(outcomes):
            return AgentHealth.UNHEALTHY
        if not self.has_capacity() or (outcomes and not outcomes[-1]):
            return AgentHealth.DEGRADED
        return AgentHealth.HEALTHY

    def status(self) -> AgentStatus:
        """Point-in-time snapshot of this agent's counters."""
        finished = self._completed_tasks + self._failed_tasks
        return AgentStatus(
            agent=self.name,
            kinds=sorted(self.kinds),
            health=self.health(),
            enabled=self._enabled,
            active_tasks=self._active_tasks,
            completed_tasks=self._completed_tasks,
            failed_tasks=self._failed_tasks,
            average_response_time_ms=self._total_response_ms / finished if finished else 0.0,
            max_concurrent_tasks=self.max_concurrent_tasks,
            last_activity=self._last_activity
        )

    async def execute(self, task: AgentTask) -> TaskResult:
        """
        Execute a task and update this agent's counters around the call.

        Args:
            task: Task to execute; its kind must be one this agent declared

        Returns:
            TaskResult: Success or normalized failure
        """
        log = bind_task(self.logger, task)

        if not self.can_handle(task.type):
            return TaskResult.failure(
                f"Agent {self.name} cannot handle task of type {task.type}",
                ErrorCategory.ROUTING,
                agent=self.name
            )

        # Counter updates never await, so the event loop serializes them.
        if not self.has_capacity():
            return TaskResult.failure(
                f"Agent {self.name} is at maximum capacity",
                ErrorCategory.AVAILABILITY,
                agent=self.name
            )
        self._active_tasks += 1
        self._last_activity = datetime.now()

        start = time.perf_counter()
        log.info("Task started", agent=self.name)
        try:
            result = await asyncio.wait_for(self._run(task), timeout=self.task_timeout_seconds)
        except asyncio.TimeoutError:
            result = error_handler.to_result(
                ExecutionError(f"Task timed out after {self.task_timeout_seconds} seconds"),
                task=task,
                agent_name=self.name
            )
        except asyncio.CancelledError:
            self._finish(False, (time.perf_counter() - start) * 1000)
            log.info("Task cancelled", agent=self.name)
            raise
        except AgentFoundryError as e:
            result = error_handler.to_result(e, task=task, agent_name=self.name)
        except Exception as e:
            # Anything else raised from process() is the agent's own failure
            result = error_handler.to_result(
                ExecutionError(str(e) or type(e).__name__, exception_type=type(e).__name__),
                task=task,
                agent_name=self.name
            )

        duration_ms = (time.perf_counter() - start) * 1000
        self._finish(result.success, duration_ms)

        if result.success:
            log.info("Task completed", agent=self.name, duration_ms=round(duration_ms, 2))
        else:
            log.warning("Task failed", agent=self.name, error=result.error)

        return result.with_metadata(agent=self.name, duration_ms=round(duration_ms, 2))

    async def _run(self, task: AgentTask) -> TaskResult:
        outcome = await self.process(task)
        if isinstance(outcome, TaskResult):
            if not outcome.success and outcome.error_category is None:
                return outcome.model_copy(update={"error_category": ErrorCategory.EXECUTION})
            return outcome
        return TaskResult(success=True, data=outcome)

    def _finish(self, success: bool, duration_ms: float) -> None:
        self._active_tasks = max(0, self._active_tasks - 1)
        if success:
            self._completed_tasks += 1
        else:
            self._failed_tasks += 1
        self._total_response_ms += duration_ms
        self._recent_outcomes.append(success)
        self._last_activity = datetime.now()

    def parse_payload(self, task: AgentTask, model: Optional[Type[TaskPayload]] = None) -> TaskPayload:
        """
        Validate the task payload for its kind.

        Raises:
            ValidationError: If the payload does not match the kind's model
        """
        try:
            if model is not None:
                return model.model_validate(task.payload)
            return parse_payload(task.type, task.payload)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Invalid payload for {task.type} task: {e.error_count()} error(s)",
                errors=e.errors(include_url=False)
            ) from e
