"""
Development agents: scaffolding, frontend, backend and database.

These agents describe what a build step produces (file manifests, endpoints,
schemas). They do not generate application source code.
"""

from typing import Any, Dict, List

from ..models.core import AgentTask, BuildPayload, TaskKind, TaskResult
from ..models.errors import ErrorCategory
from .base import BaseAgent
from .design_agent import slugify
from .planner_agent import planning_output


class ScaffoldingAgent(BaseAgent):
    """Lays out the project skeleton for the chosen framework."""

    def __init__(self, name: str = "ScaffoldingAgent", **kwargs):
        super().__init__(name, [TaskKind.SCAFFOLDING], **kwargs)

    async def process(self, task: AgentTask) -> TaskResult:
        payload = self.parse_payload(task, BuildPayload)
        requirements = payload.requirements
        framework = (payload.framework or requirements.framework or "vanilla").lower()
        project = slugify(requirements.name)

        files = [
            f"{project}/README.md",
            f"{project}/.gitignore",
            f"{project}/package.json",
            f"{project}/src/index.{'tsx' if framework == 'react' else 'ts'}",
        ]
        if "backend" in planning_output(payload.dependency_output(TaskKind.PLANNING)):
            files.append(f"{project}/server/index.ts")

        return TaskResult(
            success=True,
            data={"root": project, "framework": framework, "files": files},
            metadata={"confidence": 0.9},
            next_steps=["Install dependencies"]
        )


class FrontendDevAgent(BaseAgent):
    """Maps pages and features onto frontend modules."""

    def __init__(self, name: str = "FrontendDevAgent", **kwargs):
        super().__init__(name, [TaskKind.FRONTEND], **kwargs)

    async def process(self, task: AgentTask) -> TaskResult:
        payload = self.parse_payload(task, BuildPayload)
        framework = payload.framework or payload.requirements.framework
        if not framework:
            return TaskResult.failure(
                "Frontend task requires a framework",
                ErrorCategory.VALIDATION,
                next_steps=["Set requirements.framework"]
            )

        design = payload.dependency_output(TaskKind.UI_DESIGN) or {}
        pages = design.get("pages") or [{"name": "Home", "route": "/"}]
        modules = [
            {
                "name": page["name"].replace(" ", ""),
                "route": page["route"],
                "path": f"src/pages/{slugify(page['name'])}",
            }
            for page in pages
        ]
        return TaskResult(
            success=True,
            data={
                "framework": framework,
                "modules": modules,
                "shared_components": design.get("components", []),
            },
            metadata={"confidence": 0.8},
            next_steps=["Wire modules to the router"]
        )


class BackendDevAgent(BaseAgent):
    """Derives REST endpoints from the feature list."""

    def __init__(self, name: str = "BackendDevAgent", **kwargs):
        super().__init__(name, [TaskKind.BACKEND], **kwargs)

    async def process(self, task: AgentTask) -> TaskResult:
        payload = self.parse_payload(task, BuildPayload)
        schema = payload.dependency_output(TaskKind.DATABASE) or {}
        resources = [table["name"] for table in schema.get("tables", [])]
        if not resources:
            resources = [slugify(f) for f in payload.requirements.features] or ["items"]

        endpoints: List[Dict[str, Any]] = [{"method": "GET", "path": "/health"}]
        for resource in resources:
            endpoints.extend([
                {"method": "GET", "path": f"/api/{resource}"},
                {"method": "POST", "path": f"/api/{resource}"},
                {"method": "GET", "path": f"/api/{resource}/{{id}}"},
                {"method": "PUT", "path": f"/api/{resource}/{{id}}"},
                {"method": "DELETE", "path": f"/api/{resource}/{{id}}"},
            ])

        return TaskResult(
            success=True,
            data={
                "style": "REST",
                "endpoints": endpoints,
                "middleware": ["cors", "request-logging", "error-handler"],
            },
            metadata={"confidence": 0.8},
            next_steps=["Document the API", "Add authentication where required"]
        )


class DatabaseAgent(BaseAgent):
    """Proposes a relational schema for data-bearing features."""

    def __init__(self, name: str = "DatabaseAgent", **kwargs):
        super().__init__(name, [TaskKind.DATABASE], **kwargs)

    async def process(self, task: AgentTask) -> TaskResult:
        payload = self.parse_payload(task, BuildPayload)
        tables = [{
            "name": "users",
            "columns": [
                {"name": "id", "type": "uuid", "primary_key": True},
                {"name": "email", "type": "text", "nullable": False},
                {"name": "created_at", "type": "timestamp", "nullable": False},
            ],
        }]
        for feature in payload.requirements.features:
            name = slugify(feature).replace("-", "_")
            if name == "users":
                continue
            tables.append({
                "name": name,
                "columns": [
                    {"name": "id", "type": "uuid", "primary_key": True},
                    {"name": "user_id", "type": "uuid", "foreign_key": "users.id"},
                    {"name": "created_at", "type": "timestamp", "nullable": False},
                ],
            })

        return TaskResult(
            success=True,
            data={
                "engine": payload.database_type,
                "tables": tables,
                "migrations": [f"001_create_{table['name']}" for table in tables],
            },
            metadata={"confidence": 0.75},
            next_steps=["Review indexes for query patterns"]
        )
