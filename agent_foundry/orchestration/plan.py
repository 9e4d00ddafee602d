"""
Project decomposition for Agent Foundry.

Turns ProjectRequirements into an ExecutionPlan: a DAG of typed AgentTasks
with dependency edges and a criticality flag per task.
"""

from typing import Any, Dict, Iterator, List, Optional, Set

from pydantic import BaseModel, ConfigDict

from ..agents.planner_agent import requires_backend, requires_database
from ..models.core import (
    AgentTask, PLAN_PRIORITY, ProjectRequirements, TargetPlatform, TaskContext,
    TaskKind, new_task_id
)
from ..models.errors import PlanningError
from ..utils.logging import get_logger

logger = get_logger(__name__)


class PlannedTask(BaseModel):
    """A task within a plan plus whether the run's outcome hinges on it."""
    task: AgentTask
    critical: bool = True

    model_config = ConfigDict(frozen=True)

    @property
    def id(self) -> str:
        return self.task.id

    @property
    def kind(self) -> str:
        return self.task.type


class TaskGraph:
    """
    Represents a directed acyclic graph of planned tasks.
    """

    def __init__(self):
        self.nodes: Dict[str, PlannedTask] = {}
        self.edges: Dict[str, Set[str]] = {}  # task_id -> set of dependent task_ids

    def add_task(self, planned: PlannedTask) -> None:
        """Add a task and the edges from the dependencies it names."""
        self.nodes[planned.id] = planned
        self.edges.setdefault(planned.id, set())
        for depends_on in planned.task.dependencies:
            self.add_dependency(planned.id, depends_on)

    def add_dependency(self, task_id: str, depends_on: str) -> None:
        """Add a dependency relationship between tasks."""
        if depends_on not in self.nodes:
            raise PlanningError(f"Dependency task {depends_on} not found in graph")
        if task_id not in self.nodes:
            raise PlanningError(f"Task {task_id} not found in graph")

        self.edges[depends_on].add(task_id)

    def dependents(self, task_id: str) -> Set[str]:
        return set(self.edges.get(task_id, set()))

    def ancestors(self, task_id: str) -> List[str]:
        """All transitive dependencies of a task, nearest first."""
        seen: List[str] = []
        frontier = list(self.nodes[task_id].task.dependencies)
        while frontier:
            current = frontier.pop(0)
            if current in seen:
                continue
            seen.append(current)
            frontier.extend(self.nodes[current].task.dependencies)
        return seen

    def validate_dag(self) -> bool:
        """Validate that the graph is a valid DAG (no cycles)."""
        visited = set()
        rec_stack = set()

        def has_cycle(node_id: str) -> bool:
            visited.add(node_id)
            rec_stack.add(node_id)

            for neighbor in self.edges.get(node_id, set()):
                if neighbor not in visited:
                    if has_cycle(neighbor):
                        return True
                elif neighbor in rec_stack:
                    return True

            rec_stack.remove(node_id)
            return False

        for node_id in self.nodes:
            if node_id not in visited:
                if has_cycle(node_id):
                    return False

        return True

    def get_execution_order(self) -> List[List[str]]:
        """Get tasks in topological order, grouped by execution level."""
        in_degree = {task_id: len(node.task.dependencies) for task_id, node in self.nodes.items()}

        levels = []
        current = [task_id for task_id, degree in in_degree.items() if degree == 0]
        while current:
            levels.append(current)
            following = []
            for task_id in current:
                for dependent in self.edges.get(task_id, set()):
                    in_degree[dependent] -= 1
                    if in_degree[dependent] == 0:
                        following.append(dependent)
            # Keep insertion order within a level so plans are deterministic
            current = [task_id for task_id in self.nodes if task_id in following]

        return levels


class ExecutionPlan:
    """Ordered, validated set of planned tasks for one orchestration run."""

    def __init__(self, run_id: str, graph: TaskGraph):
        if not graph.validate_dag():
            raise PlanningError("Plan contains a dependency cycle", run_id=run_id)
        self.run_id = run_id
        self.graph = graph

    @property
    def tasks(self) -> List[PlannedTask]:
        return list(self.graph.nodes.values())

    def get(self, task_id: str) -> PlannedTask:
        return self.graph.nodes[task_id]

    def by_kind(self, kind: str) -> Optional[PlannedTask]:
        """First planned task of a kind, if the plan has one."""
        for planned in self.graph.nodes.values():
            if planned.kind == kind:
                return planned
        return None

    def kinds(self) -> List[str]:
        return [planned.kind for planned in self.graph.nodes.values()]

    def ancestors(self, task_id: str) -> List[PlannedTask]:
        return [self.graph.nodes[a] for a in self.graph.ancestors(task_id)]

    def levels(self) -> List[List[str]]:
        return self.graph.get_execution_order()

    def describe(self) -> List[Dict[str, Any]]:
        """Plain summary of the plan, in plan order."""
        return [
            {
                "task_id": planned.id,
                "type": planned.kind,
                "priority": planned.task.priority,
                "critical": planned.critical,
                "dependencies": list(planned.task.dependencies),
            }
            for planned in self.graph.nodes.values()
        ]

    def __len__(self) -> int:
        return len(self.graph.nodes)

    def __iter__(self) -> Iterator[PlannedTask]:
        return iter(self.tasks)


class _Step:
    """Mutable draft of a task while the plan is being laid out."""

    def __init__(self, kind: TaskKind, priority: int, critical: bool, depends_on: List['_Step'],
                 extra: Optional[Dict[str, Any]] = None):
        self.kind = kind
        self.priority = priority
        self.critical = critical
        self.depends_on = depends_on
        self.extra = extra or {}
        self.id = new_task_id(kind.value)


def build_project_plan(
    requirements: ProjectRequirements,
    run_id: Optional[str] = None,
    context: Optional[TaskContext] = None
) -> ExecutionPlan:
    """
    Decompose a project request into an execution plan.

    The decomposition is deterministic: the same requirements always produce
    the same kinds, priorities, edges and criticality.

    Args:
        requirements: Validated project requirements
        run_id: Identifier of the run the plan belongs to
        context: Context copied onto every task; run_id is filled in

    Returns:
        ExecutionPlan: Validated plan in dispatch order
    """
    run_id = run_id or new_task_id("run")
    base_context = (context or TaskContext()).model_copy(update={"run_id": run_id})

    framework = requirements.framework
    target = requirements.target_platform

    steps: List[_Step] = []

    def step(kind: TaskKind, priority: int, critical: bool, depends_on: List[_Step],
             extra: Optional[Dict[str, Any]] = None) -> _Step:
        new = _Step(kind, priority, critical, [d for d in depends_on if d is not None], extra)
        steps.append(new)
        return new

    planning = step(TaskKind.PLANNING, PLAN_PRIORITY, True, [])

    design = None
    if framework or target == TargetPlatform.WEB:
        design = step(TaskKind.UI_DESIGN, 9, False, [planning])

    database = None
    if requires_database(requirements):
        extra = {}
        if requirements.tech_stack.database:
            extra["databaseType"] = requirements.tech_stack.database[0]
        database = step(TaskKind.DATABASE, 8, True, [planning], extra)

    backend = None
    if requires_backend(requirements):
        backend = step(TaskKind.BACKEND, 8, True, [planning, database])

    scaffolding = None
    frontend = None
    if framework:
        scaffolding = step(TaskKind.SCAFFOLDING, 8, True, [planning], {"framework": framework})
        frontend = step(TaskKind.FRONTEND, 8, True, [scaffolding, design], {"framework": framework})

    development = [s for s in (frontend, backend, database) if s is not None]
    testing = None
    if development:
        testing = step(TaskKind.TESTING, 7, False, development)

    if testing is not None:
        devops_deps = [testing]
    else:
        devops_deps = development or [planning]
    step(TaskKind.DEVOPS, 6, False, devops_deps)

    depended_on = {dep.id for s in steps for dep in s.depends_on}
    requirements_payload = requirements.model_dump(mode="json", exclude_none=True)

    graph = TaskGraph()
    for s in steps:
        task = AgentTask(
            id=s.id,
            type=s.kind,
            payload={"requirements": requirements_payload, **s.extra},
            priority=s.priority,
            dependencies=[dep.id for dep in s.depends_on],
            context=base_context
        )
        graph.add_task(PlannedTask(task=task, critical=s.critical or s.id in depended_on))

    plan = ExecutionPlan(run_id, graph)
    logger.info("Created execution plan", run_id=run_id, tasks=plan.kinds())
    return plan
