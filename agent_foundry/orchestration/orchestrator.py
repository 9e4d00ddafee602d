"""
Agent Orchestration System for Agent Foundry.

This module provides the project-level API: planning a build, driving the
plan through the dispatcher with dependency ordering and bounded retries,
aggregating per-task results and recording every run in the history log.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from ..agents import default_agents
from ..agents.base import BaseAgent
from ..models.core import (
    AgentStatus, AgentTask, OrchestrationRecord, PLAN_PRIORITY, ProjectRequirements,
    ProjectResult, RunState, TaskContext, TaskKind, TaskRecord, TaskResult, new_task_id
)
from ..models.errors import (
    AggregationError, ErrorCategory, NotInitializedError, PlanningError, ValidationError
)
from ..utils.config import AggregationPolicy, SystemConfig, get_config
from ..utils.error_handler import RetryConfig, error_handler
from ..utils.logging import bind_task, bound_run, get_logger
from .dispatcher import TaskDispatcher, TaskHandle, cancelled_result
from .history import HistoryLog
from .plan import ExecutionPlan, PlannedTask, build_project_plan
from .registry import AgentRegistry

SUCCESS_NEXT_STEPS = ["Review artifacts", "Deploy application", "Monitor performance"]
SLOW_RUN_SECONDS = 300
LOW_CONFIDENCE = 0.8


@dataclass
class ProjectRun:
    """Mutable state of one project run while it is in flight."""
    run_id: str
    requirements: ProjectRequirements
    plan: Optional[ExecutionPlan] = None
    state: RunState = RunState.RECEIVED
    started_at: datetime = field(default_factory=datetime.now)
    cancelled: bool = False
    timed_out: bool = False
    recorded: bool = False
    outcomes: Dict[str, asyncio.Future] = field(default_factory=dict)
    handles: Dict[str, TaskHandle] = field(default_factory=dict)
    workers: Dict[str, asyncio.Task] = field(default_factory=dict)

    def records(self) -> List[TaskRecord]:
        """Finished task records in plan order."""
        if self.plan is None:
            return []
        return [
            self.outcomes[planned.id].result()
            for planned in self.plan
            if planned.id in self.outcomes and self.outcomes[planned.id].done()
        ]


class ResultAggregator:
    """Folds per-task records into one project result."""

    def __init__(self, policy: AggregationPolicy = AggregationPolicy.CRITICAL_ONLY):
        self.policy = AggregationPolicy(policy)

    def blocking_failures(self, records: Sequence[TaskRecord]) -> List[TaskRecord]:
        """Failed records that decide the overall outcome under the policy."""
        return [
            record for record in records
            if not record.result.success
            and (self.policy == AggregationPolicy.STRICT or record.critical)
        ]

    @staticmethod
    def overall_confidence(records: Sequence[TaskRecord]) -> float:
        """Mean confidence reported by successful tasks; 0.0 when none reported one."""
        scores = [
            record.result.metadata["confidence"]
            for record in records
            if record.result.success and record.result.metadata.get("confidence")
        ]
        return round(sum(scores) / len(scores), 3) if scores else 0.0

    @staticmethod
    def suggestions(failed_count: int, duration_seconds: float, confidence: float) -> List[str]:
        suggestions = []
        if failed_count:
            suggestions.append(f"Review and fix {failed_count} failed tasks")
        if duration_seconds > SLOW_RUN_SECONDS:
            suggestions.append("Consider optimizing agent execution for better performance")
        if confidence < LOW_CONFIDENCE:
            suggestions.append("Overall confidence is below 80%, consider manual review")
        return suggestions

    @staticmethod
    def summary(records: Sequence[TaskRecord], total: int) -> str:
        """Human-readable outcome line, followed by one line per failed task."""
        failed = [record for record in records if not record.result.success]
        lines = [f"Orchestration completed: {len(records) - len(failed)}/{total} tasks successful"]
        if failed:
            lines.append(f"{len(failed)} tasks failed:")
            lines.extend(f"  - {record.task_id}: {record.result.error}" for record in failed)
        return "\n".join(lines)

    def aggregate(self, run: ProjectRun, run_timeout_seconds: float) -> ProjectResult:
        records = run.records()
        failed = [record for record in records if not record.result.success]
        blocking = self.blocking_failures(records)
        tolerated = [record for record in failed if record not in blocking]
        confidence = self.overall_confidence(records)
        elapsed = (datetime.now() - run.started_at).total_seconds()

        data = {
            "project": run.requirements.name,
            "summary": self.summary(records, len(run.plan) if run.plan is not None else len(records)),
            "tasks": [
                {
                    "task_id": record.task_id,
                    "type": record.type,
                    "success": record.result.success,
                    "critical": record.critical,
                    "attempts": record.attempts,
                    "error": record.result.error,
                }
                for record in records
            ],
            "outputs": {
                record.type: record.result.data
                for record in records
                if record.result.success and record.result.data is not None
            },
        }
        metadata: Dict[str, Any] = {
            "run_id": run.run_id,
            "aggregation_policy": self.policy.value,
            "total_tasks": len(records),
            "succeeded_tasks": len(records) - len(failed),
            "failed_tasks": len(failed),
            "timestamp": datetime.now().isoformat(),
            "confidence": confidence,
            "suggestions": self.suggestions(len(failed), elapsed, confidence),
        }
        if tolerated:
            metadata["non_critical_failures"] = [
                {"task_id": record.task_id, "type": record.type, "error": record.result.error}
                for record in tolerated
            ]

        if run.cancelled:
            return ProjectResult(
                success=False,
                data=data,
                error="cancelled",
                error_category=ErrorCategory.CANCELLED,
                metadata=metadata,
                next_steps=error_handler.get_recovery_strategies(ErrorCategory.CANCELLED),
                run_id=run.run_id
            )

        if run.timed_out:
            return ProjectResult(
                success=False,
                data=data,
                error=f"Run timed out after {run_timeout_seconds} seconds",
                error_category=ErrorCategory.EXECUTION,
                metadata=metadata,
                next_steps=["Check agent health", "Increase the run timeout", "Rerun the build"],
                run_id=run.run_id
            )

        if blocking:
            # Tasks blocked by a failed dependency are symptoms; report the causes first
            causes = [r for r in blocking if r.result.error_category != ErrorCategory.AGGREGATION]
            primary = (causes or blocking)[0]
            next_steps = [f"Fix {r.type} task: {r.result.error}" for r in causes or blocking]
            next_steps.extend(f"Retry {r.type} task: {r.result.error}" for r in tolerated)
            next_steps.append("Rerun the build")
            return ProjectResult(
                success=False,
                data=data,
                error="Failed tasks: " + ", ".join(r.type for r in blocking),
                error_category=primary.result.error_category or ErrorCategory.EXECUTION,
                metadata=metadata,
                next_steps=next_steps,
                run_id=run.run_id
            )

        next_steps = [f"Retry {r.type} task: {r.result.error}" for r in tolerated]
        next_steps.extend(SUCCESS_NEXT_STEPS)
        return ProjectResult(
            success=True,
            data=data,
            metadata=metadata,
            next_steps=next_steps,
            run_id=run.run_id
        )


def _as_project_result(result: TaskResult, run_id: Optional[str] = None) -> ProjectResult:
    return ProjectResult(**result.model_dump(), run_id=run_id)


class Orchestrator:
    """
    Main orchestrator for multi-agent project builds.

    Owns the agent registry, the dispatcher and the history log. One instance
    is meant to live for the whole process; `initialize()` must be awaited
    before any execute call.
    """

    def __init__(
        self,
        config: Optional[SystemConfig] = None,
        agents: Optional[List[BaseAgent]] = None
    ):
        self.config = config or get_config()
        self.logger = get_logger(__name__)

        # Core components
        self.registry = AgentRegistry()
        self.dispatcher = TaskDispatcher(self.registry, self.config.dispatcher)
        self.history = HistoryLog(self.config.history)
        self.aggregator = ResultAggregator(self.config.orchestration.aggregation_policy)

        orchestration = self.config.orchestration
        self.retry_config = RetryConfig(
            max_retries=orchestration.max_retry_attempts,
            base_delay=orchestration.retry_base_delay_seconds,
            max_delay=orchestration.retry_max_delay_seconds,
            backoff_factor=orchestration.retry_backoff_factor
        )

        self._agents = agents
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._active_runs: Dict[str, ProjectRun] = {}
        self._started_at = time.monotonic()

    @property
    def initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> None:
        """Register agents and start background services. Idempotent."""
        async with self._init_lock:
            if self._initialized:
                return

            agents = self._agents if self._agents is not None else default_agents()
            for agent in agents:
                await self.registry.register(agent)

            await self.registry.start()
            await self.dispatcher.start()
            self._started_at = time.monotonic()
            self._initialized = True

        self.logger.info("Orchestrator initialized", agents=self.registry.list_agents())

    def _ensure_initialized(self):
        if not self._initialized:
            raise NotInitializedError()

    def plan(
        self,
        requirements: ProjectRequirements,
        run_id: Optional[str] = None,
        context: Optional[TaskContext] = None
    ) -> ExecutionPlan:
        """Decompose requirements into an execution plan without running it."""
        return build_project_plan(requirements, run_id=run_id, context=context)

    def _validate_requirements(
        self,
        requirements: Union[ProjectRequirements, Dict[str, Any], None]
    ) -> Union[ProjectRequirements, TaskResult]:
        """Parse and check requirements; a TaskResult means they were rejected."""
        if requirements is None:
            return error_handler.to_result(ValidationError("Project requirements are required"))
        if not isinstance(requirements, ProjectRequirements):
            try:
                requirements = ProjectRequirements.model_validate(requirements)
            except PydanticValidationError as e:
                return error_handler.to_result(ValidationError(
                    f"Invalid project requirements: {e.error_count()} error(s)"
                ))

        missing = requirements.missing_fields()
        if missing:
            return error_handler.to_result(ValidationError(
                "Project name and description are required",
                missing_fields=missing
            ))
        return requirements

    async def execute_project(
        self,
        requirements: Union[ProjectRequirements, Dict[str, Any]],
        context: Optional[TaskContext] = None
    ) -> ProjectResult:
        """
        Run a full project build.

        Invalid requirements fail immediately: nothing is dispatched and no
        history record is written. Every other outcome, including
        cancellation and timeout, is appended to the history before this
        method returns.

        Args:
            requirements: Project requirements, as a model or a plain dict
            context: Optional caller context copied onto every task

        Returns:
            ProjectResult: Aggregated outcome of the run

        Raises:
            NotInitializedError: If initialize() has not been awaited
        """
        self._ensure_initialized()

        checked = self._validate_requirements(requirements)
        if isinstance(checked, TaskResult):
            return _as_project_result(checked)
        requirements = checked

        run = ProjectRun(run_id=new_task_id("run"), requirements=requirements)
        self._active_runs[run.run_id] = run
        with bound_run(run.run_id, project=requirements.name):
            self.logger.info("Project run received")

            try:
                try:
                    run.plan = self.plan(requirements, run_id=run.run_id, context=context)
                except PlanningError as e:
                    result = _as_project_result(error_handler.to_result(e), run_id=run.run_id)
                    await self._record(run, result)
                    return result

                self._transition(run, RunState.PLANNED)
                self._transition(run, RunState.DISPATCHING)

                for planned in run.plan:
                    run.outcomes[planned.id] = asyncio.get_running_loop().create_future()
                for planned in run.plan:
                    worker = asyncio.create_task(self._run_planned_task(run, planned))
                    worker.add_done_callback(lambda _, planned=planned: self._ensure_outcome(run, planned))
                    run.workers[planned.id] = worker

                timeout = self.config.orchestration.run_timeout_seconds
                _, pending = await asyncio.wait(run.workers.values(), timeout=timeout)
                if pending:
                    run.timed_out = True
                    self.logger.warning(
                        "Project run timed out", timeout_seconds=timeout, outstanding=len(pending)
                    )
                    self._cancel_workers(run)
                    await asyncio.gather(*pending, return_exceptions=True)

                self._transition(run, RunState.AGGREGATED)
                result = self.aggregator.aggregate(run, timeout)
                await self._record(run, result)
                return result

            except asyncio.CancelledError:
                # The caller gave up; the run is still recorded as cancelled
                if not run.recorded:
                    run.cancelled = True
                    self.logger.info("Project run cancelled by caller")
                    self._cancel_workers(run)
                    await asyncio.shield(self._record_cancelled(run))
                raise
            finally:
                self._active_runs.pop(run.run_id, None)

    async def _run_planned_task(self, run: ProjectRun, planned: PlannedTask) -> None:
        attempts = 0
        try:
            dependencies = [
                await asyncio.shield(run.outcomes[dep_id]) for dep_id in planned.task.dependencies
            ]
            failed = [record for record in dependencies if not record.result.success]

            if run.cancelled:
                result = cancelled_result()
            elif failed:
                result = error_handler.to_result(
                    AggregationError(
                        "Blocked by failed dependency: " + ", ".join(r.type for r in failed),
                        dependencies=[r.task_id for r in failed]
                    ),
                    task=planned.task
                )
            else:
                task = self._with_dependency_outputs(run, planned)
                result, attempts = await self._execute_with_retry(run, task)

        except asyncio.CancelledError:
            handle = run.handles.get(planned.id)
            if handle is not None:
                handle.cancel()
            result = cancelled_result()

        run.outcomes[planned.id].set_result(TaskRecord(
            task_id=planned.id,
            type=planned.kind,
            critical=planned.critical,
            attempts=attempts,
            result=result.with_metadata(attempts=attempts)
        ))

    def _ensure_outcome(self, run: ProjectRun, planned: PlannedTask):
        # A worker cancelled before its first step never records anything itself
        outcome = run.outcomes[planned.id]
        if not outcome.done():
            outcome.set_result(TaskRecord(
                task_id=planned.id,
                type=planned.kind,
                critical=planned.critical,
                attempts=0,
                result=cancelled_result(attempts=0)
            ))

    def _with_dependency_outputs(self, run: ProjectRun, planned: PlannedTask) -> AgentTask:
        """Copy of the task whose payload carries the data of every ancestor, keyed by kind."""
        payload = dict(planned.task.payload)
        for ancestor in run.plan.ancestors(planned.id):
            record = run.outcomes[ancestor.id].result()
            if record.result.success and record.result.data is not None:
                payload.setdefault(ancestor.kind, record.result.data)
        return planned.task.model_copy(update={"payload": payload})

    async def _execute_with_retry(self, run: ProjectRun, task: AgentTask):
        log = bind_task(self.logger, task)
        attempt = 0
        while True:
            attempt += 1
            handle = await self.dispatcher.submit(task)
            run.handles[task.id] = handle
            result = await handle

            if not error_handler.is_retryable(result) or attempt > self.retry_config.max_retries:
                return result, attempt

            delay = self.retry_config.compute_delay(attempt - 1)
            log.info(
                "Retrying task",
                attempt=attempt,
                delay_seconds=round(delay, 3),
                error=result.error,
                category=result.error_category.value
            )
            await asyncio.sleep(delay)
            if run.cancelled:
                return cancelled_result(), attempt

    def _cancel_workers(self, run: ProjectRun):
        for handle in run.handles.values():
            handle.cancel()
        for worker in run.workers.values():
            if not worker.done():
                worker.cancel()

    async def _record_cancelled(self, run: ProjectRun):
        await asyncio.gather(*run.workers.values(), return_exceptions=True)
        self._transition(run, RunState.AGGREGATED)
        result = self.aggregator.aggregate(run, self.config.orchestration.run_timeout_seconds)
        await self._record(run, result)

    def _transition(self, run: ProjectRun, state: RunState):
        self.logger.debug("Run state change", run_id=run.run_id, old=run.state.value, new=state.value)
        run.state = state

    async def _record(self, run: ProjectRun, result: ProjectResult):
        if run.cancelled:
            final_state = RunState.CANCELLED
        elif result.success:
            final_state = RunState.RECORDED_SUCCESS
        else:
            final_state = RunState.RECORDED_FAILURE

        record = OrchestrationRecord(
            run_id=run.run_id,
            request_summary=run.requirements.summary(),
            task_results=run.records(),
            overall_success=result.success,
            state=final_state,
            error=result.error,
            started_at=run.started_at,
            finished_at=datetime.now()
        )
        await self.history.append(record)
        run.recorded = True
        self._transition(run, final_state)
        result.metadata.update({"state": final_state.value, "duration_ms": record.duration_ms})

    async def execute_task(self, task: AgentTask) -> TaskResult:
        """
        Run a single ad-hoc task, bypassing planning and history.

        Raises:
            NotInitializedError: If initialize() has not been awaited
        """
        self._ensure_initialized()
        handle = await self.dispatcher.submit(task)
        return await handle

    async def plan_only(
        self,
        requirements: Union[ProjectRequirements, Dict[str, Any]],
        context: Optional[TaskContext] = None
    ) -> TaskResult:
        """Run only the planning step, ahead of queued build traffic."""
        self._ensure_initialized()

        checked = self._validate_requirements(requirements)
        if isinstance(checked, TaskResult):
            return checked

        task = AgentTask(
            type=TaskKind.PLANNING,
            payload={"requirements": checked.model_dump(mode="json", exclude_none=True)},
            priority=PLAN_PRIORITY,
            context=context or TaskContext()
        )
        return await self.execute_task(task)

    async def cancel_run(self, run_id: str) -> bool:
        """
        Cooperatively cancel a run that is dispatching.

        Queued tasks are skipped, running tasks are cancelled and tasks not
        yet submitted are never submitted. The run is still recorded.

        Returns:
            True if the run was found in the dispatching state
        """
        run = self._active_runs.get(run_id)
        if run is None or run.state != RunState.DISPATCHING or run.cancelled:
            return False

        run.cancelled = True
        self._cancel_workers(run)
        self.logger.info("Cancelled project run", run_id=run_id)
        return True

    def get_agent_statuses(self) -> Dict[str, AgentStatus]:
        """Status of every registered agent, keyed by agent name."""
        return self.registry.status_snapshot()

    def get_history(self, limit: Optional[int] = None, order: Optional[str] = None) -> List[OrchestrationRecord]:
        return self.history.records(order=order, limit=limit)

    def list_active_runs(self) -> List[str]:
        return list(self._active_runs.keys())

    def get_system_status(self) -> Dict[str, Any]:
        """Get overall orchestrator status and metrics."""
        statuses = list(self.get_agent_statuses().values())
        return {
            "initialized": self._initialized,
            "uptime_seconds": round(time.monotonic() - self._started_at, 3),
            "total_agents": len(statuses),
            "kinds": self.registry.kinds(),
            "agents": [status.to_health_entry() for status in statuses],
            "queue_size": self.dispatcher.queue_size(),
            "in_flight": self.dispatcher.in_flight(),
            "active_runs": {
                run_id: run.state.value for run_id, run in self._active_runs.items()
            },
            "history_size": len(self.history),
            "aggregation_policy": self.aggregator.policy.value,
            "error_stats": error_handler.get_error_stats(),
        }

    async def shutdown(self):
        """Shutdown the orchestrator and clean up resources."""
        if not self._initialized:
            return

        self.logger.info("Shutting down orchestrator")

        for run in list(self._active_runs.values()):
            run.cancelled = True
            self._cancel_workers(run)

        await self.dispatcher.stop()
        await self.registry.stop()
        self._initialized = False

        self.logger.info("Orchestrator shutdown complete")


async def create_orchestrator(
    config: Optional[SystemConfig] = None,
    agents: Optional[List[BaseAgent]] = None
) -> Orchestrator:
    """
    Build and initialize an orchestrator.

    Args:
        config: System configuration; the global configuration when omitted
        agents: Agents to register; the built-in set when omitted

    Returns:
        Orchestrator: Ready to accept work
    """
    orchestrator = Orchestrator(config=config, agents=agents)
    await orchestrator.initialize()
    return orchestrator
