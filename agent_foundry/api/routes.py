"""
API routes for the Agent Foundry orchestrator.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from .models import BuildRequest, ExecuteRequest, HealthResponse, HistoryResponse, PlanRequest
from ..models.core import AgentTask, DEFAULT_PRIORITY, TaskResult
from ..models.errors import ErrorCategory, NotInitializedError
from ..orchestration.orchestrator import Orchestrator
from ..utils.logging import get_logger

logger = get_logger(__name__)

# Create router
router = APIRouter()


def get_orchestrator(request: Request) -> Orchestrator:
    """The process-wide orchestrator created by the application lifespan."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise NotInitializedError()
    return orchestrator


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def envelope_response(result: TaskResult, include_next_steps: bool = True) -> JSONResponse:
    """Envelope for an orchestrator result; validation failures map to 400."""
    body = result.to_envelope()
    if not include_next_steps:
        body.pop("nextSteps", None)
    status_code = 400 if result.error_category == ErrorCategory.VALIDATION else 200
    return JSONResponse(status_code=status_code, content=jsonable_encoder(body))


@router.get("/status", tags=["Agents"])
async def get_status(orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Status of the multi-agent system."""
    try:
        return {"success": True, "data": orchestrator.get_system_status()}
    except Exception as e:
        logger.error(f"Failed to get agent status: {str(e)}")
        return error_response(500, str(e) or "Failed to get agent status")


@router.post("/build", tags=["Agents"])
async def build_project(request: BuildRequest, orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Run a full project build through the agents."""
    requirements = request.requirements
    if not requirements or not requirements.get("name") or not requirements.get("description"):
        return error_response(400, "Invalid requirements. Must include name and description.")

    try:
        result = await orchestrator.execute_project(requirements)
        return envelope_response(result)
    except Exception as e:
        logger.error(f"Failed to build project: {str(e)}")
        return error_response(500, str(e) or "Failed to build project")


@router.post("/execute", tags=["Agents"])
async def execute_task(request: ExecuteRequest, orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Run one task of the given kind."""
    if not request.agent_type or request.payload is None:
        return error_response(400, "Invalid request. Must include agentType and payload.")

    try:
        task = AgentTask(
            type=request.agent_type,
            payload=request.payload,
            priority=request.priority if request.priority is not None else DEFAULT_PRIORITY
        )
    except PydanticValidationError as e:
        return error_response(400, f"Invalid task: {e.error_count()} error(s)")

    try:
        result = await orchestrator.execute_task(task)
        return envelope_response(result)
    except Exception as e:
        logger.error(f"Failed to execute task: {str(e)}")
        return error_response(500, str(e) or "Failed to execute task")


@router.get("/health", response_model=HealthResponse, response_model_by_alias=True, tags=["Agents"])
async def get_health(orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Health and throughput counters of every agent."""
    try:
        entries = [status.to_health_entry() for status in orchestrator.get_agent_statuses().values()]
        return HealthResponse(data=entries)
    except Exception as e:
        logger.error(f"Failed to get health status: {str(e)}")
        return error_response(500, str(e) or "Failed to get health status")


@router.post("/plan", tags=["Agents"])
async def create_plan(request: PlanRequest, orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Run only the planning step, ahead of queued build work."""
    if not request.requirements:
        return error_response(400, "Missing requirements")

    try:
        result = await orchestrator.plan_only(request.requirements)
        return envelope_response(result, include_next_steps=False)
    except Exception as e:
        logger.error(f"Failed to create plan: {str(e)}")
        return error_response(500, str(e) or "Failed to create plan")


@router.get("/history", response_model=HistoryResponse, tags=["Agents"])
async def get_history(
    limit: Optional[int] = Query(None, ge=1, le=1000, description="Maximum number of runs"),
    orchestrator: Orchestrator = Depends(get_orchestrator)
):
    """Recorded orchestration runs, newest first by default."""
    try:
        history = orchestrator.get_history(limit=limit)
        data = [record.model_dump(mode="json") for record in history]
        return HistoryResponse(data=data, count=len(data))
    except Exception as e:
        logger.error(f"Failed to get history: {str(e)}")
        return error_response(500, str(e) or "Failed to get history")


@router.post("/runs/{run_id}/cancel", tags=["Agents"])
async def cancel_run(run_id: str, orchestrator: Orchestrator = Depends(get_orchestrator)):
    """Cancel a project run that is still dispatching."""
    cancelled = await orchestrator.cancel_run(run_id)
    if not cancelled:
        return error_response(404, f"Run {run_id} not found or not dispatching")

    logger.info("Run cancelled via API", run_id=run_id)
    return {"success": True, "data": {"runId": run_id, "cancelled": True}}
