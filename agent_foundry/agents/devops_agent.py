"""
DevOps Agent for Agent Foundry.
"""

from ..models.core import AgentTask, DevOpsPayload, TaskKind, TaskResult
from ..models.errors import ErrorCategory
from .base import BaseAgent
from .planner_agent import planning_output


ENVIRONMENTS = ("development", "staging", "production")


class DevOpsAgent(BaseAgent):
    """Prepares a CI/CD pipeline and deployment checklist."""

    def __init__(self, name: str = "DevOpsAgent", **kwargs):
        super().__init__(name, [TaskKind.DEVOPS], **kwargs)

    async def process(self, task: AgentTask) -> TaskResult:
        payload = self.parse_payload(task, DevOpsPayload)
        if payload.environment not in ENVIRONMENTS:
            return TaskResult.failure(
                f"Unknown environment '{payload.environment}'",
                ErrorCategory.VALIDATION,
                next_steps=[f"Use one of: {', '.join(ENVIRONMENTS)}"]
            )

        stages = ["install", "lint", "build"]
        if payload.dependency_output(TaskKind.TESTING):
            stages.append("test")
        stages.append("deploy")

        architecture = planning_output(payload.dependency_output(TaskKind.PLANNING))
        services = architecture.get("infrastructure", {}).get("services", ["hosting"])

        checklist = ["Configure environment variables", "Set up health checks"]
        if payload.environment == "production":
            checklist.extend(["Enable monitoring and alerting", "Configure autoscaling"])

        return TaskResult(
            success=True,
            data={
                "environment": payload.environment,
                "pipeline": stages,
                "services": services,
                "checklist": checklist,
            },
            metadata={"confidence": 0.85},
            next_steps=["Review artifacts", "Deploy application", "Monitor performance"]
        )
