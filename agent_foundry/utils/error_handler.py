"""
Centralized error handling: normalizes exceptions into TaskResults and
computes retry backoff.
"""

import asyncio
import random
import uuid
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError

from ..models.core import AgentTask, TaskResult
from ..models.errors import (
    AgentFoundryError, ErrorCategory, ErrorDetails, ErrorSeverity,
    RETRYABLE_CATEGORIES
)
from .logging import get_logger


class RetryConfig:
    """Configuration for retry logic."""

    def __init__(
        self,
        max_retries: int = 2,
        base_delay: float = 0.5,
        max_delay: float = 10.0,
        backoff_factor: float = 2.0,
        jitter: bool = True
    ):
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter

    def compute_delay(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (0-based)."""
        delay = min(self.base_delay * (self.backoff_factor ** attempt), self.max_delay)
        if self.jitter:
            delay *= (0.5 + random.random() * 0.5)
        return delay


class ErrorHandler:
    """Centralized error handling system."""

    def __init__(self):
        self.logger = get_logger(__name__)
        self.error_stats: Dict[str, Dict[str, int]] = {}

    def to_result(
        self,
        error: BaseException,
        task: Optional[AgentTask] = None,
        agent_name: Optional[str] = None,
        **metadata: Any
    ) -> TaskResult:
        """Convert an exception into a failed TaskResult with recovery guidance."""
        details = self._create_error_details(error, task=task, agent_name=agent_name)
        self._log_error(details)
        self.record(details.category, agent_name or "orchestrator")

        return TaskResult.failure(
            details.message,
            details.category,
            next_steps=self.get_recovery_strategies(details.category),
            **metadata
        )

    def is_retryable(self, result: TaskResult) -> bool:
        """Whether another attempt could produce a different outcome."""
        return not result.success and result.error_category in RETRYABLE_CATEGORIES

    def _create_error_details(
        self,
        error: BaseException,
        task: Optional[AgentTask] = None,
        agent_name: Optional[str] = None
    ) -> ErrorDetails:
        """Create standardized error details."""
        if isinstance(error, AgentFoundryError):
            category = error.category
            severity = error.severity
            message = error.message
            context = dict(error.context)
        else:
            category = self._classify_error(error)
            severity = self._determine_severity(category)
            message = str(error) or type(error).__name__
            context = {}

        if task is not None:
            context.update({"task_type": task.type, "run_id": task.context.run_id})

        return ErrorDetails(
            error_id=str(uuid.uuid4()),
            category=category,
            severity=severity,
            message=message,
            details=f"{type(error).__name__}: {error}",
            context=context,
            agent_name=agent_name,
            task_id=task.id if task is not None else None,
            recoverable=category in RETRYABLE_CATEGORIES
        )

    def _classify_error(self, error: BaseException) -> ErrorCategory:
        """Classify a foreign exception into a category."""
        if isinstance(error, asyncio.CancelledError):
            return ErrorCategory.CANCELLED
        if isinstance(error, PydanticValidationError):
            return ErrorCategory.VALIDATION
        return ErrorCategory.EXECUTION

    def _determine_severity(self, category: ErrorCategory) -> ErrorSeverity:
        if category in (ErrorCategory.VALIDATION, ErrorCategory.ROUTING):
            return ErrorSeverity.HIGH
        if category in (ErrorCategory.EXECUTION, ErrorCategory.AVAILABILITY):
            return ErrorSeverity.MEDIUM
        return ErrorSeverity.LOW

    def get_recovery_strategies(self, category: ErrorCategory) -> List[str]:
        """Suggested next steps for a failure category."""
        if category == ErrorCategory.VALIDATION:
            return [
                "Check required fields",
                "Validate the payload against the task kind",
            ]
        if category == ErrorCategory.ROUTING:
            return [
                "Register an agent for this task kind",
                "Check the task type spelling",
            ]
        if category == ErrorCategory.AVAILABILITY:
            return [
                "Check agent health via the health endpoint",
                "Retry once a capable agent is healthy",
            ]
        if category == ErrorCategory.EXECUTION:
            return [
                "Inspect the agent error message",
                "Retry the task",
            ]
        if category == ErrorCategory.AGGREGATION:
            return ["Fix the failed dependency and rerun the build"]
        if category == ErrorCategory.CANCELLED:
            return ["Resubmit the task if the work is still needed"]
        return []

    def _log_error(self, details: ErrorDetails):
        """Log error with appropriate level."""
        log = self.logger.bind(
            error_id=details.error_id,
            category=details.category.value,
            agent=details.agent_name,
            task_id=details.task_id,
        )

        if details.severity == ErrorSeverity.CRITICAL:
            log.critical("Task error", message=details.message)
        elif details.severity == ErrorSeverity.HIGH:
            log.error("Task error", message=details.message)
        elif details.severity == ErrorSeverity.MEDIUM:
            log.warning("Task error", message=details.message)
        else:
            log.info("Task error", message=details.message)

    def record(self, category: ErrorCategory, source: str):
        """Update error statistics."""
        per_source = self.error_stats.setdefault(source, {})
        per_source[category.value] = per_source.get(category.value, 0) + 1

    def get_error_stats(self) -> Dict[str, Dict[str, int]]:
        """Get current error statistics."""
        return {source: dict(stats) for source, stats in self.error_stats.items()}

    def reset_error_stats(self):
        """Reset error statistics."""
        self.error_stats.clear()


# Global error handler instance
error_handler = ErrorHandler()
