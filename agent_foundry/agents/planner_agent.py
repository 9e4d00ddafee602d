"""
Project Planning Agent for Agent Foundry.

The Planning Agent is responsible for:
- Analyzing project requirements
- Proposing an architecture per layer (frontend, backend, database, infra)
- Laying out phases, milestones and an effort estimate
- Flagging delivery risks
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from ..models.core import (
    AgentTask, PlanningPayload, ProjectRequirements, TargetPlatform,
    TaskKind, TaskResult
)
from .base import BaseAgent


DEFAULT_FRONTEND_DEPS = {
    "react": ["react", "react-dom", "react-router"],
    "vue": ["vue", "vue-router", "pinia"],
    "svelte": ["svelte", "svelte-kit"],
    "angular": ["@angular/core", "@angular/router", "rxjs"],
}

# (phase name, description, duration in days)
PHASES = [
    ("Planning & Design", "Requirements analysis and architecture design", 5),
    ("Development", "Implementation of features", 20),
    ("Testing & QA", "Quality assurance and testing", 10),
    ("Deployment", "Production deployment and monitoring", 5),
]

# Effort in hours per work item
EFFORT_HOURS = {
    "requirements": 2,
    "ui-design": 8,
    "frontend": 20,
    "backend": 16,
    "database": 8,
    "testing": 12,
    "devops": 6,
}


def requires_backend(requirements: ProjectRequirements) -> bool:
    return (
        requirements.target_platform == TargetPlatform.FULLSTACK
        or requirements.mentions("api", "backend")
    )


def requires_database(requirements: ProjectRequirements) -> bool:
    return requirements.mentions("database", "data", "storage")


class ProjectPlanningAgent(BaseAgent):
    """Turns project requirements into an architecture and delivery plan."""

    def __init__(self, name: str = "ProjectPlanningAgent", **kwargs):
        super().__init__(name, [TaskKind.PLANNING], **kwargs)

    async def process(self, task: AgentTask) -> TaskResult:
        payload = self.parse_payload(task, PlanningPayload)
        plan = self.create_project_plan(payload.requirements)

        return TaskResult(
            success=True,
            data=plan,
            metadata={
                "confidence": self.assess_confidence(plan),
                "suggestions": self.generate_suggestions(plan),
            },
            next_steps=[
                "Review architecture components",
                "Validate timeline estimates",
                "Assign tasks to specialized agents",
            ]
        )

    def create_project_plan(self, requirements: ProjectRequirements) -> Dict[str, Any]:
        """Build the plan document for a set of requirements."""
        work_items = self._work_items(requirements)
        phases = self._phases(datetime.now())

        return {
            "project": requirements.name,
            "architecture": self.design_architecture(requirements),
            "work_items": work_items,
            "phases": phases,
            "milestones": [
                {
                    "name": f"{phase['name']} Complete",
                    "deadline": phase["end"],
                    "depends_on": phases[i - 1]["name"] if i > 0 else None,
                }
                for i, phase in enumerate(phases)
            ],
            "estimated_effort_hours": sum(item["effort_hours"] for item in work_items),
            "risks": self.assess_risks(requirements, work_items),
        }

    def design_architecture(self, requirements: ProjectRequirements) -> Dict[str, Any]:
        stack = requirements.tech_stack
        architecture: Dict[str, Any] = {}

        if requirements.framework:
            framework = requirements.framework
            architecture["frontend"] = {
                "type": framework,
                "dependencies": stack.frontend or DEFAULT_FRONTEND_DEPS.get(framework.lower(), [framework.lower()]),
                "patterns": ["component-based", "state-management", "routing"],
            }

        if requires_backend(requirements):
            architecture["backend"] = {
                "type": "REST API",
                "components": ["api-routes", "middleware", "controllers", "services"],
                "dependencies": stack.backend or ["express", "cors", "helmet"],
                "patterns": ["MVC", "service-layer", "repository"],
            }

        if requires_database(requirements):
            architecture["database"] = {
                "type": stack.database[0] if stack.database else "postgresql",
            }

        architecture["infrastructure"] = {
            "platform": "cloud",
            "services": self._infrastructure_services(requirements),
            "deployment": "container",
        }
        return architecture

    def assess_risks(self, requirements: ProjectRequirements, work_items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        risks = []

        if len(requirements.features) > 10:
            risks.append({
                "id": "risk-complexity",
                "description": "High feature complexity may lead to extended timeline",
                "severity": "medium",
                "probability": 0.6,
                "mitigation": "Break down into smaller iterations, prioritize core features",
            })

        experimental = [
            tech for tech in requirements.tech_stack.backend + requirements.tech_stack.frontend
            if "new" in tech.lower() or "experimental" in tech.lower()
        ]
        if experimental:
            risks.append({
                "id": "risk-technology",
                "description": f"Experimental technology ({', '.join(experimental)}) may have limited documentation",
                "severity": "high",
                "probability": 0.7,
                "mitigation": "Allocate time for research, consider proven alternatives",
            })

        if not requirements.framework and requirements.target_platform in (None, TargetPlatform.WEB):
            risks.append({
                "id": "risk-frontend-unspecified",
                "description": "No frontend framework specified",
                "severity": "low",
                "probability": 0.4,
                "mitigation": "Confirm the UI technology before development starts",
            })

        return risks

    def assess_confidence(self, plan: Dict[str, Any]) -> float:
        confidence = 0.9
        for risk in plan["risks"]:
            confidence -= 0.15 if risk["severity"] == "high" else 0.05
        return round(max(0.3, confidence), 2)

    def generate_suggestions(self, plan: Dict[str, Any]) -> List[str]:
        suggestions = []
        if plan["estimated_effort_hours"] > 60:
            suggestions.append("Consider delivering in multiple iterations")
        if "database" in plan["architecture"] and "backend" not in plan["architecture"]:
            suggestions.append("A database without a backend usually needs an API layer")
        return suggestions

    def _work_items(self, requirements: ProjectRequirements) -> List[Dict[str, Any]]:
        items = [self._item("Requirements Analysis", "requirements", TaskKind.PLANNING)]

        if requirements.framework or requirements.target_platform == TargetPlatform.WEB:
            items.append(self._item("UI/UX Design", "ui-design", TaskKind.UI_DESIGN))
        if requirements.framework:
            items.append(self._item(f"{requirements.framework} Frontend", "frontend", TaskKind.FRONTEND))
        if requires_backend(requirements):
            items.append(self._item("Backend API Development", "backend", TaskKind.BACKEND))
        if requires_database(requirements):
            items.append(self._item("Database Design & Implementation", "database", TaskKind.DATABASE))

        items.append(self._item("Testing & Quality Assurance", "testing", TaskKind.TESTING))
        items.append(self._item("Deployment & Infrastructure", "devops", TaskKind.DEVOPS))
        return items

    @staticmethod
    def _item(title: str, effort_key: str, kind: TaskKind) -> Dict[str, Any]:
        return {"title": title, "agent_kind": kind.value, "effort_hours": EFFORT_HOURS[effort_key]}

    @staticmethod
    def _phases(start: datetime) -> List[Dict[str, Any]]:
        phases = []
        cursor = start
        for name, description, days in PHASES:
            end = cursor + timedelta(days=days)
            phases.append({
                "name": name,
                "description": description,
                "start": cursor.isoformat(),
                "end": end.isoformat(),
            })
            cursor = end
        return phases

    @staticmethod
    def _infrastructure_services(requirements: ProjectRequirements) -> List[str]:
        services = ["hosting", "cdn"]
        if requires_backend(requirements):
            services.append("api-gateway")
        if requires_database(requirements):
            services.append("managed-database")
        if requirements.mentions("auth", "login"):
            services.append("identity")
        return services


def planning_output(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Architecture section of a plan produced by ProjectPlanningAgent."""
    if not isinstance(data, dict):
        return {}
    return data.get("architecture", {})
