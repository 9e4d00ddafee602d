"""
Priority task dispatcher for Agent Foundry.

Tasks are queued by descending priority, then creation time, then submission
order, and each is handed to a capable agent chosen by the registry. Tasks of
a kind with no capable agent fail at once with a routing error. Tasks whose
agents are all unhealthy wait up to the availability timeout. Tasks whose
agents are healthy but busy wait for capacity.
"""

import asyncio
import heapq
import itertools
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..agents.base import BaseAgent
from ..models.core import AgentHealth, AgentTask, TaskResult
from ..models.errors import AvailabilityError, ErrorCategory, RoutingError, ValidationError
from ..utils.config import DispatcherConfig, get_config
from ..utils.error_handler import error_handler
from ..utils.logging import bind_task, get_logger
from .registry import AgentRegistry

CANCELLED = "cancelled"


def cancelled_result(**metadata) -> TaskResult:
    return TaskResult.failure(
        CANCELLED,
        ErrorCategory.CANCELLED,
        next_steps=error_handler.get_recovery_strategies(ErrorCategory.CANCELLED),
        **metadata
    )


@dataclass
class QueueEntry:
    """A submitted task waiting for, or running on, an agent."""
    task: AgentTask
    future: asyncio.Future
    seq: int
    submitted_at: datetime = field(default_factory=datetime.now)
    # Loop time at which every capable agent was first seen unhealthy
    held_since: Optional[float] = None
    agent: Optional[BaseAgent] = None
    runner: Optional[asyncio.Task] = None
    started: bool = False

    @property
    def sort_key(self) -> Tuple[int, datetime, int]:
        return (-self.task.priority, self.task.created_at, self.seq)


class TaskHandle:
    """
    Caller's view of a submitted task.

    Awaiting the handle (or `result()`) yields the final TaskResult. Cancelling
    the awaiting coroutine does not cancel the task; use `cancel()` for that.
    """

    def __init__(self, task: AgentTask, future: asyncio.Future, dispatcher: 'TaskDispatcher'):
        self.task = task
        self._future = future
        self._dispatcher = dispatcher

    @property
    def task_id(self) -> str:
        return self.task.id

    def done(self) -> bool:
        return self._future.done()

    def cancel(self) -> bool:
        """Request cancellation; see TaskDispatcher.cancel."""
        return self._dispatcher.cancel(self.task.id)

    async def result(self) -> TaskResult:
        return await asyncio.shield(self._future)

    def __await__(self):
        return self.result().__await__()


class TaskDispatcher:
    """Handles task queueing, agent assignment and execution management."""

    def __init__(self, registry: AgentRegistry, config: Optional[DispatcherConfig] = None):
        self.registry = registry
        self.config = config or get_config().dispatcher
        self.logger = get_logger(f"{__name__}.TaskDispatcher")

        self._heap: List[Tuple[int, datetime, int, QueueEntry]] = []
        self._queued: Dict[str, QueueEntry] = {}
        self._running: Dict[str, QueueEntry] = {}
        self._reserved: Dict[str, int] = {}
        self._seq = itertools.count()
        self._condition = asyncio.Condition()

        self._loop_task: Optional[asyncio.Task] = None
        self._started = False
        self._stopped = False

    async def start(self):
        """Start the dispatch loop."""
        if self._started:
            return

        self._started = True
        self._stopped = False
        self._loop_task = asyncio.create_task(self._dispatch_loop())
        self.logger.info("Task dispatcher started")

    async def stop(self):
        """
        Stop dispatching.

        Queued tasks resolve with an availability failure and running tasks
        are cancelled, so no handle is left pending.
        """
        if not self._started:
            return

        self._started = False
        self._stopped = True
        if self._loop_task:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        for entry in list(self._queued.values()):
            self._resolve(entry, error_handler.to_result(
                AvailabilityError("Dispatcher stopped"), task=entry.task
            ))
        self._queued.clear()
        self._heap.clear()

        runners = [entry.runner for entry in self._running.values() if entry.runner]
        for runner in runners:
            runner.cancel()
        if runners:
            await asyncio.gather(*runners, return_exceptions=True)

        self.logger.info("Task dispatcher stopped")

    async def submit(self, task: AgentTask) -> TaskHandle:
        """
        Queue a task for assignment.

        Args:
            task: Task to run

        Returns:
            TaskHandle: Resolves to the task's final TaskResult
        """
        future = asyncio.get_running_loop().create_future()
        entry = QueueEntry(task=task, future=future, seq=next(self._seq))
        handle = TaskHandle(task, future, self)
        log = bind_task(self.logger, task)

        if self._stopped:
            self._resolve(entry, error_handler.to_result(
                AvailabilityError("Dispatcher stopped"), task=task
            ))
            return handle

        if task.id in self._queued or task.id in self._running:
            self._resolve(entry, error_handler.to_result(
                ValidationError(f"Task {task.id} is already queued or running"), task=task
            ))
            return handle

        async with self._condition:
            self._queued[task.id] = entry
            heapq.heappush(self._heap, (*entry.sort_key, entry))
            self._condition.notify_all()

        log.debug("Task queued", queue_size=len(self._queued))
        return handle

    def cancel(self, task_id: str) -> bool:
        """
        Cancel a queued or running task.

        A queued task is skipped; a running one has its agent coroutine
        cancelled. Either way the handle resolves to a `cancelled` failure.

        Returns:
            True if the task was found and not already finished
        """
        entry = self._queued.pop(task_id, None)
        if entry is not None:
            self._resolve(entry, cancelled_result())
            self.logger.info("Queued task cancelled", task_id=task_id)
            return True

        entry = self._running.get(task_id)
        if entry is not None and entry.runner is not None and not entry.runner.done():
            entry.runner.cancel()
            self.logger.info("Running task cancelled", task_id=task_id, agent=entry.agent.name)
            return True

        return False

    def queue_size(self) -> int:
        return len(self._queued)

    def in_flight(self) -> int:
        return len(self._running)

    def get_status(self) -> Dict[str, Any]:
        return {
            "started": self._started,
            "queue_size": self.queue_size(),
            "in_flight": self.in_flight(),
            "running": {task_id: entry.agent.name for task_id, entry in self._running.items()},
        }

    async def _dispatch_loop(self):
        while True:
            async with self._condition:
                self._assign_ready()
                timeout = self.config.poll_interval_seconds if self._queued else None
                try:
                    await asyncio.wait_for(self._condition.wait(), timeout)
                except asyncio.TimeoutError:
                    pass

    def _assign_ready(self):
        """One pass over the queue in priority order."""
        now = asyncio.get_running_loop().time()
        blocked: Dict[str, AgentHealth] = {}

        for *_, entry in sorted(self._heap):
            task = entry.task
            if self._queued.get(task.id) is not entry:
                continue

            kind = task.type
            if kind in blocked:
                # Same-kind tasks never overtake the held head
                self._track_hold(entry, blocked[kind], now)
                continue

            candidates = self.registry.find_capable(kind)
            if not candidates:
                self._fail_routing(entry)
                continue

            agent = self.registry.load_balancer.select_agent(candidates, self._reserved)
            if agent is not None:
                self._start(entry, agent)
                continue

            all_unhealthy = all(c.health() == AgentHealth.UNHEALTHY for c in candidates)
            blocked[kind] = AgentHealth.UNHEALTHY if all_unhealthy else AgentHealth.DEGRADED
            self._track_hold(entry, blocked[kind], now)

        if len(self._heap) != len(self._queued):
            self._heap = [item for item in self._heap if self._queued.get(item[-1].task.id) is item[-1]]
            heapq.heapify(self._heap)

    def _track_hold(self, entry: QueueEntry, reason: AgentHealth, now: float):
        if reason != AgentHealth.UNHEALTHY:
            # Healthy but busy agents: wait for capacity, not bound by the timeout
            entry.held_since = None
            return

        if entry.held_since is None:
            entry.held_since = now
            bind_task(self.logger, entry.task).info("Task held; no healthy agent")
            return

        waited = now - entry.held_since
        if waited >= self.config.availability_timeout_seconds:
            self._queued.pop(entry.task.id, None)
            self._resolve(entry, error_handler.to_result(
                AvailabilityError(
                    f"No healthy agent for task type {entry.task.type} "
                    f"after {self.config.availability_timeout_seconds} seconds"
                ),
                task=entry.task,
                waited_seconds=round(waited, 3)
            ))

    def _fail_routing(self, entry: QueueEntry):
        self._queued.pop(entry.task.id, None)
        self._resolve(entry, error_handler.to_result(
            RoutingError(f"No agent registered for task type '{entry.task.type}'"),
            task=entry.task
        ))

    def _start(self, entry: QueueEntry, agent: BaseAgent):
        self._queued.pop(entry.task.id, None)
        self._reserved[agent.name] = self._reserved.get(agent.name, 0) + 1
        entry.agent = agent
        self._running[entry.task.id] = entry
        entry.runner = asyncio.create_task(self._run(entry, agent))
        entry.runner.add_done_callback(lambda _: self._on_runner_done(entry, agent))
        bind_task(self.logger, entry.task).info("Task dispatched", agent=agent.name)

    async def _run(self, entry: QueueEntry, agent: BaseAgent):
        # Hand the reserved slot over to the agent's own counter; no await in between
        entry.started = True
        self._reserved[agent.name] -= 1
        try:
            result = await agent.execute(entry.task)
        except asyncio.CancelledError:
            result = cancelled_result(agent=agent.name)
        except Exception as e:
            result = error_handler.to_result(e, task=entry.task, agent_name=agent.name)
        finally:
            self._running.pop(entry.task.id, None)

        self._resolve(entry, result)
        async with self._condition:
            self._condition.notify_all()

    def _on_runner_done(self, entry: QueueEntry, agent: BaseAgent):
        if not entry.started:
            # Cancelled before the runner got its first step
            self._reserved[agent.name] -= 1
            self._running.pop(entry.task.id, None)
        self._resolve(entry, cancelled_result(agent=agent.name))

    @staticmethod
    def _resolve(entry: QueueEntry, result: TaskResult):
        if not entry.future.done():
            entry.future.set_result(result.with_metadata(task_id=entry.task.id))
