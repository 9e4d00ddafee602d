"""
Agents for Agent Foundry: the base class and the built-in specialists.
"""

from typing import List

from .base import BaseAgent
from .design_agent import UIDesignAgent
from .development_agents import (
    BackendDevAgent, DatabaseAgent, FrontendDevAgent, ScaffoldingAgent
)
from .devops_agent import DevOpsAgent
from .planner_agent import ProjectPlanningAgent
from .testing_agent import TestingAgent


def default_agents() -> List[BaseAgent]:
    """One instance of every built-in agent, in registration order."""
    return [
        ProjectPlanningAgent(),
        UIDesignAgent(),
        ScaffoldingAgent(),
        FrontendDevAgent(),
        BackendDevAgent(),
        DatabaseAgent(),
        TestingAgent(),
        DevOpsAgent(),
    ]


__all__ = [
    'BaseAgent',
    'ProjectPlanningAgent',
    'UIDesignAgent',
    'ScaffoldingAgent',
    'FrontendDevAgent',
    'BackendDevAgent',
    'DatabaseAgent',
    'TestingAgent',
    'DevOpsAgent',
    'default_agents'
]
