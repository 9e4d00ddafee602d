"""
Core Pydantic data models for Agent Foundry.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .errors import ErrorCategory


DEFAULT_PRIORITY = 5
PLAN_PRIORITY = 10


class TaskKind(str, Enum):
    """Kinds of work the built-in agents understand."""
    PLANNING = "planning"
    UI_DESIGN = "ui-design"
    SCAFFOLDING = "scaffolding"
    FRONTEND = "frontend"
    BACKEND = "backend"
    DATABASE = "database"
    TESTING = "testing"
    DEVOPS = "devops"


def new_task_id(prefix: str = "task") -> str:
    """Generate a process-unique task identifier."""
    return f"{prefix}-{uuid.uuid4().hex}"


class TargetPlatform(str, Enum):
    """Platform a project is built for."""
    WEB = "web"
    MOBILE = "mobile"
    DESKTOP = "desktop"
    FULLSTACK = "fullstack"


class TechStack(BaseModel):
    """Preferred technologies per layer."""
    frontend: List[str] = Field(default_factory=list)
    backend: List[str] = Field(default_factory=list)
    database: List[str] = Field(default_factory=list)
    devops: List[str] = Field(default_factory=list)


class ProjectRequirements(BaseModel):
    """
    Project-level request consumed by the orchestrator's planning step.

    Name and description are checked by the orchestrator rather than here so
    that an empty value produces a structured failure instead of a parse error.
    """
    name: str = ""
    description: str = ""
    framework: Optional[str] = None
    features: List[str] = Field(default_factory=list)
    constraints: List[str] = Field(default_factory=list)
    target_platform: Optional[TargetPlatform] = None
    tech_stack: TechStack = Field(default_factory=TechStack)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def mentions(self, *keywords: str) -> bool:
        """Check whether any feature mentions one of the keywords."""
        lowered = [feature.lower() for feature in self.features]
        return any(keyword in feature for feature in lowered for keyword in keywords)

    def missing_fields(self) -> List[str]:
        """Required fields that are empty or blank."""
        return [
            field for field in ("name", "description")
            if not getattr(self, field).strip()
        ]

    def summary(self) -> Dict[str, Any]:
        """Short description of the request for history records."""
        return {
            "name": self.name,
            "description": self.description[:200],
            "framework": self.framework,
            "target_platform": self.target_platform.value if self.target_platform else None,
            "features": list(self.features),
        }


class TaskContext(BaseModel):
    """Execution context carried along with a task."""
    project_id: Optional[str] = None
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    run_id: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class AgentTask(BaseModel):
    """A unit of work routed to an agent. Immutable once built."""
    id: str = Field(default_factory=new_task_id, min_length=1)
    type: str = Field(..., min_length=1)
    payload: Dict[str, Any] = Field(default_factory=dict)
    priority: int = DEFAULT_PRIORITY
    created_at: datetime = Field(default_factory=datetime.now)
    dependencies: List[str] = Field(default_factory=list)
    context: TaskContext = Field(default_factory=TaskContext)

    model_config = ConfigDict(frozen=True)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_kind(cls, v):
        if isinstance(v, TaskKind):
            return v.value
        return v


class TaskResult(BaseModel):
    """Outcome of one task attempt, or of a whole project run."""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_category: Optional[ErrorCategory] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    next_steps: List[str] = Field(default_factory=list)

    @classmethod
    def failure(
        cls,
        error: str,
        category: ErrorCategory,
        next_steps: Optional[List[str]] = None,
        **metadata: Any
    ) -> "TaskResult":
        """Build a failed result."""
        return cls(
            success=False,
            error=error,
            error_category=category,
            metadata=metadata,
            next_steps=next_steps or [],
        )

    def with_metadata(self, **metadata: Any) -> "TaskResult":
        """Copy of this result with extra metadata merged in."""
        return self.model_copy(update={"metadata": {**self.metadata, **metadata}})

    def to_envelope(self) -> Dict[str, Any]:
        """Wire representation: {success, data?, error?, metadata?, nextSteps?}."""
        envelope: Dict[str, Any] = {"success": self.success}
        if self.data is not None:
            envelope["data"] = self.data
        if self.error is not None:
            envelope["error"] = self.error
        metadata = dict(self.metadata)
        if self.error_category is not None:
            metadata["errorCategory"] = self.error_category.value
        if metadata:
            envelope["metadata"] = metadata
        if self.next_steps:
            envelope["nextSteps"] = list(self.next_steps)
        return envelope


class ProjectResult(TaskResult):
    """Aggregated result of a project orchestration run."""
    run_id: Optional[str] = None


# Typed payloads per task kind. Extra keys carry dependency outputs that the
# orchestrator merges in, keyed by the dependency's task kind.

class TaskPayload(BaseModel):
    """Payload of a task kind without a dedicated model."""
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    def dependency_output(self, kind: Union[str, TaskKind]) -> Optional[Any]:
        key = kind.value if isinstance(kind, TaskKind) else kind
        return (self.model_extra or {}).get(key)


class PlanningPayload(TaskPayload):
    requirements: ProjectRequirements


class DesignPayload(TaskPayload):
    requirements: ProjectRequirements
    theme: str = "light"


class BuildPayload(TaskPayload):
    requirements: ProjectRequirements
    framework: Optional[str] = None
    database_type: str = Field(default="postgresql", alias="databaseType")


class TestingPayload(TaskPayload):
    requirements: ProjectRequirements
    coverage_target: float = Field(default=0.8, ge=0.0, le=1.0, alias="coverageTarget")


class DevOpsPayload(TaskPayload):
    requirements: ProjectRequirements
    environment: str = "development"


PAYLOAD_MODELS: Dict[str, Type[TaskPayload]] = {
    TaskKind.PLANNING.value: PlanningPayload,
    TaskKind.UI_DESIGN.value: DesignPayload,
    TaskKind.SCAFFOLDING.value: BuildPayload,
    TaskKind.FRONTEND.value: BuildPayload,
    TaskKind.BACKEND.value: BuildPayload,
    TaskKind.DATABASE.value: BuildPayload,
    TaskKind.TESTING.value: TestingPayload,
    TaskKind.DEVOPS.value: DevOpsPayload,
}


def parse_payload(kind: str, payload: Dict[str, Any]) -> TaskPayload:
    """Validate a raw payload against the model registered for its kind."""
    model = PAYLOAD_MODELS.get(kind, TaskPayload)
    return model.model_validate(payload)


class AgentHealth(str, Enum):
    """Self-reported operational state of an agent."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class AgentStatus(BaseModel):
    """Point-in-time snapshot of an agent's counters."""
    agent: str
    kinds: List[str] = Field(default_factory=list)
    health: AgentHealth
    enabled: bool = True
    active_tasks: int = Field(default=0, ge=0)
    completed_tasks: int = Field(default=0, ge=0)
    failed_tasks: int = Field(default=0, ge=0)
    average_response_time_ms: float = Field(default=0.0, ge=0.0)
    max_concurrent_tasks: int = Field(default=1, ge=1)
    last_activity: Optional[datetime] = None

    def to_health_entry(self) -> Dict[str, Any]:
        """Per-agent entry of the health listing."""
        return {
            "agent": self.agent,
            "health": self.health.value,
            "activeTasks": self.active_tasks,
            "completedTasks": self.completed_tasks,
            "failedTasks": self.failed_tasks,
            "averageResponseTime": self.average_response_time_ms,
        }


class RunState(str, Enum):
    """Lifecycle of a project orchestration run."""
    RECEIVED = "received"
    PLANNED = "planned"
    DISPATCHING = "dispatching"
    AGGREGATED = "aggregated"
    RECORDED_SUCCESS = "recorded_success"
    RECORDED_FAILURE = "recorded_failure"
    CANCELLED = "cancelled"


class TaskRecord(BaseModel):
    """Final result of one planned task within a run."""
    task_id: str
    type: str
    critical: bool = True
    attempts: int = Field(default=1, ge=0)
    result: TaskResult

    model_config = ConfigDict(frozen=True)


class OrchestrationRecord(BaseModel):
    """History entry for one orchestration run. Never mutated after append."""
    run_id: str
    request_summary: Dict[str, Any] = Field(default_factory=dict)
    task_results: List[TaskRecord] = Field(default_factory=list)
    overall_success: bool
    state: RunState
    error: Optional[str] = None
    started_at: datetime
    finished_at: datetime

    model_config = ConfigDict(frozen=True)

    @property
    def duration_ms(self) -> int:
        return int((self.finished_at - self.started_at).total_seconds() * 1000)
