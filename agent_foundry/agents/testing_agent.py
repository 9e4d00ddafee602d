"""
Testing Agent for Agent Foundry.
"""

from typing import Any, Dict, List

from ..models.core import AgentTask, TaskKind, TaskResult
from .base import BaseAgent


class TestingAgent(BaseAgent):
    """Builds a test matrix from whatever development outputs it receives."""

    __test__ = False

    def __init__(self, name: str = "TestingAgent", **kwargs):
        super().__init__(name, [TaskKind.TESTING], **kwargs)

    async def process(self, task: AgentTask) -> TaskResult:
        payload = self.parse_payload(task)
        suites: List[Dict[str, Any]] = []

        frontend = payload.dependency_output(TaskKind.FRONTEND)
        if frontend:
            suites.append({
                "name": "frontend",
                "type": "component",
                "cases": [f"renders {module['name']}" for module in frontend.get("modules", [])],
            })

        backend = payload.dependency_output(TaskKind.BACKEND)
        if backend:
            suites.append({
                "name": "api",
                "type": "integration",
                "cases": [f"{e['method']} {e['path']}" for e in backend.get("endpoints", [])],
            })

        database = payload.dependency_output(TaskKind.DATABASE)
        if database:
            suites.append({
                "name": "migrations",
                "type": "integration",
                "cases": list(database.get("migrations", [])),
            })

        if not suites:
            suites.append({"name": "smoke", "type": "e2e", "cases": ["application starts"]})

        total = sum(len(suite["cases"]) for suite in suites)
        return TaskResult(
            success=True,
            data={
                "suites": suites,
                "total_cases": total,
                "coverage_target": payload.coverage_target,
            },
            metadata={"confidence": 0.8},
            next_steps=["Run the suites in CI"]
        )
