"""
Unit tests for project decomposition and the task graph.
"""

import pytest

from agent_foundry.models.core import (
    AgentTask, ProjectRequirements, TargetPlatform, TaskContext
)
from agent_foundry.models.errors import PlanningError
from agent_foundry.orchestration.plan import (
    ExecutionPlan, PlannedTask, TaskGraph, build_project_plan
)


def planned(task_id, *dependencies, critical=True):
    return PlannedTask(
        task=AgentTask(id=task_id, type="planning", dependencies=list(dependencies)),
        critical=critical
    )


class TestBuildProjectPlan:
    """Test cases for build_project_plan."""

    def test_minimal_requirements(self, minimal_requirements):
        plan = build_project_plan(minimal_requirements)

        assert plan.kinds() == ["planning", "devops"]
        devops = plan.by_kind("devops")
        assert devops.task.dependencies == [plan.by_kind("planning").id]
        assert plan.by_kind("planning").critical is True
        assert devops.critical is False

    def test_web_app_with_storage(self, sample_requirements):
        plan = build_project_plan(sample_requirements)

        assert plan.kinds() == [
            "planning", "ui-design", "database", "scaffolding", "frontend", "testing", "devops",
        ]
        assert [p.task.priority for p in plan] == [10, 9, 8, 8, 8, 7, 6]

        frontend = plan.by_kind("frontend")
        assert frontend.task.dependencies == [
            plan.by_kind("scaffolding").id, plan.by_kind("ui-design").id,
        ]
        assert frontend.task.payload["framework"] == "react"
        assert plan.by_kind("testing").task.dependencies == [
            frontend.id, plan.by_kind("database").id,
        ]

    def test_criticality(self, sample_requirements):
        plan = build_project_plan(sample_requirements)
        critical = {p.kind: p.critical for p in plan}

        # Anything another task depends on is critical
        assert critical == {
            "planning": True,
            "ui-design": True,
            "database": True,
            "scaffolding": True,
            "frontend": True,
            "testing": True,
            "devops": False,
        }

    def test_fullstack_plan_has_backend(self):
        requirements = ProjectRequirements.model_validate({
            "name": "Shop",
            "description": "Store",
            "targetPlatform": "fullstack",
            "features": ["order storage"],
            "techStack": {"database": ["mysql"]},
        })

        plan = build_project_plan(requirements)

        assert plan.kinds() == ["planning", "database", "backend", "testing", "devops"]
        backend = plan.by_kind("backend")
        database = plan.by_kind("database")
        assert backend.task.dependencies == [plan.by_kind("planning").id, database.id]
        assert database.task.payload["databaseType"] == "mysql"

    def test_web_without_framework(self):
        requirements = ProjectRequirements(
            name="Site", description="d", target_platform=TargetPlatform.WEB
        )

        plan = build_project_plan(requirements)

        assert plan.kinds() == ["planning", "ui-design", "devops"]
        assert plan.by_kind("ui-design").critical is False

    def test_payload_and_context(self, sample_requirements):
        context = TaskContext(user_id="user-1")

        plan = build_project_plan(sample_requirements, run_id="run-42", context=context)

        assert plan.run_id == "run-42"
        for p in plan:
            assert p.task.context.run_id == "run-42"
            assert p.task.context.user_id == "user-1"
            assert p.task.payload["requirements"]["name"] == "Todo App"

    def test_deterministic(self, sample_requirements):
        first = build_project_plan(sample_requirements)
        second = build_project_plan(sample_requirements)

        def shape(plan):
            kinds = {p.id: p.kind for p in plan}
            return [
                (p.kind, p.task.priority, p.critical, [kinds[d] for d in p.task.dependencies])
                for p in plan
            ]

        assert shape(first) == shape(second)
        assert first.by_kind("planning").id != second.by_kind("planning").id

    def test_levels_and_ancestors(self, sample_requirements):
        plan = build_project_plan(sample_requirements)
        kind_of = {p.id: p.kind for p in plan}

        levels = [[kind_of[task_id] for task_id in level] for level in plan.levels()]
        assert levels == [
            ["planning"],
            ["ui-design", "database", "scaffolding"],
            ["frontend"],
            ["testing"],
            ["devops"],
        ]

        ancestors = [p.kind for p in plan.ancestors(plan.by_kind("devops").id)]
        assert ancestors[0] == "testing"
        assert set(ancestors) == {"testing", "frontend", "database", "scaffolding", "ui-design", "planning"}

    def test_describe(self, minimal_requirements):
        plan = build_project_plan(minimal_requirements)
        described = plan.describe()

        assert [d["type"] for d in described] == ["planning", "devops"]
        assert described[1]["dependencies"] == [described[0]["task_id"]]


class TestTaskGraph:
    """Test cases for TaskGraph validation."""

    def test_unknown_dependency_rejected(self):
        graph = TaskGraph()

        with pytest.raises(PlanningError):
            graph.add_task(planned("b", "a"))

    def test_cycle_rejected(self):
        graph = TaskGraph()
        graph.add_task(planned("a"))
        graph.add_task(planned("b", "a"))
        graph.add_dependency("a", "b")

        assert graph.validate_dag() is False
        with pytest.raises(PlanningError):
            ExecutionPlan("run-1", graph)

    def test_dependents(self):
        graph = TaskGraph()
        graph.add_task(planned("a"))
        graph.add_task(planned("b", "a"))
        graph.add_task(planned("c", "a"))

        assert graph.dependents("a") == {"b", "c"}
        assert graph.get_execution_order() == [["a"], ["b", "c"]]
