"""
API request and response models for Agent Foundry.

Request fields are optional at the schema level so that a missing field is
answered with the 400 envelope instead of FastAPI's 422 validation body.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BuildRequest(BaseModel):
    """Request model for a full project build."""
    requirements: Optional[Dict[str, Any]] = Field(None, description="Project requirements")


class PlanRequest(BaseModel):
    """Request model for a planning-only run."""
    requirements: Optional[Dict[str, Any]] = Field(None, description="Project requirements")


class ExecuteRequest(BaseModel):
    """Request model for a single ad-hoc agent task."""
    agent_type: Optional[str] = Field(None, alias="agentType", description="Task kind to route")
    payload: Optional[Dict[str, Any]] = Field(None, description="Task payload")
    priority: Optional[int] = Field(None, description="Task priority, 5 when omitted")

    model_config = ConfigDict(populate_by_name=True)


class HealthEntry(BaseModel):
    """Per-agent entry of the health listing."""
    agent: str
    health: str
    active_tasks: int
    completed_tasks: int
    failed_tasks: int
    average_response_time: float

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class HealthResponse(BaseModel):
    """Response model for the agent health listing."""
    success: bool = True
    data: List[HealthEntry] = Field(default_factory=list)
    timestamp: int = Field(default_factory=lambda: int(datetime.now().timestamp() * 1000),
                           description="Milliseconds since the epoch")


class HistoryResponse(BaseModel):
    """Response model for the orchestration history."""
    success: bool = True
    data: List[Dict[str, Any]] = Field(default_factory=list)
    count: int = 0
