"""
Agent Orchestration System for Agent Foundry.

This package provides:
- Capability-indexed agent registry with health checking
- Priority task dispatching with health-based admission
- Project planning, result aggregation and run history
"""

from .dispatcher import (
    TaskDispatcher,
    TaskHandle,
    QueueEntry
)

from .history import HistoryLog

from .orchestrator import (
    Orchestrator,
    ProjectRun,
    ResultAggregator,
    create_orchestrator
)

from .plan import (
    ExecutionPlan,
    PlannedTask,
    TaskGraph,
    build_project_plan
)

from .registry import (
    AgentRegistry,
    HealthChecker,
    LoadBalancer
)

__all__ = [
    # Orchestrator components
    'Orchestrator',
    'ProjectRun',
    'ResultAggregator',
    'create_orchestrator',

    # Dispatching
    'TaskDispatcher',
    'TaskHandle',
    'QueueEntry',

    # Planning
    'ExecutionPlan',
    'PlannedTask',
    'TaskGraph',
    'build_project_plan',

    # Registry components
    'AgentRegistry',
    'HealthChecker',
    'LoadBalancer',

    'HistoryLog'
]
