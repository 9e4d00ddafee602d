"""
Error handling models and exceptions for Agent Foundry.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorSeverity(str, Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Categories of errors surfaced in task and project results."""
    VALIDATION = "validation"
    ROUTING = "routing"
    AVAILABILITY = "availability"
    EXECUTION = "execution"
    AGGREGATION = "aggregation"
    CANCELLED = "cancelled"
    SYSTEM = "system"


# Categories worth another attempt; the rest fail the same way every time.
RETRYABLE_CATEGORIES = frozenset({ErrorCategory.EXECUTION, ErrorCategory.AVAILABILITY})


class ErrorDetails(BaseModel):
    """Detailed error information."""
    error_id: str = Field(..., min_length=1)
    category: ErrorCategory
    severity: ErrorSeverity
    message: str = Field(..., min_length=1)
    details: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)
    agent_name: Optional[str] = None
    task_id: Optional[str] = None
    recoverable: bool = True


# Custom exceptions
class AgentFoundryError(Exception):
    """Base exception for Agent Foundry."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.SYSTEM,
                 severity: ErrorSeverity = ErrorSeverity.MEDIUM, **kwargs):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = kwargs


class ValidationError(AgentFoundryError):
    """Malformed request or task payload."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.VALIDATION, ErrorSeverity.HIGH, **kwargs)


class RoutingError(AgentFoundryError):
    """No agent can handle the requested task kind."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.ROUTING, ErrorSeverity.HIGH, **kwargs)


class AvailabilityError(AgentFoundryError):
    """Capable agents exist but none became usable in time."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.AVAILABILITY, ErrorSeverity.MEDIUM, **kwargs)


class ExecutionError(AgentFoundryError):
    """An agent failed while working on a task."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.EXECUTION, ErrorSeverity.MEDIUM, **kwargs)


class AggregationError(AgentFoundryError):
    """A task was blocked because one of its dependencies failed."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.AGGREGATION, ErrorSeverity.MEDIUM, **kwargs)


class PlanningError(AgentFoundryError):
    """The project plan could not be built (e.g. a dependency cycle)."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.VALIDATION, ErrorSeverity.HIGH, **kwargs)


class RegistrationError(AgentFoundryError):
    """Invalid agent registration."""

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.SYSTEM, ErrorSeverity.HIGH, **kwargs)


class NotInitializedError(AgentFoundryError):
    """The orchestrator was used before initialize() was awaited."""

    def __init__(self, message: str = "Orchestrator is not initialized; await initialize() first", **kwargs):
        super().__init__(message, ErrorCategory.SYSTEM, ErrorSeverity.CRITICAL, **kwargs)
