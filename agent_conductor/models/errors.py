"""
Error handling models and exceptions for Agent Conductor.
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
from datetime import datetime
from enum import Enum


class ErrorSeverity(str, Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """Categories of errors."""
    VALIDATION = "validation"
    ROUTING = "routing"
    DISPATCH = "dispatch"
    TIMEOUT = "timeout"
    COORDINATION = "coordination"
    EXTERNAL_API = "external_api"
    SYSTEM = "system"


class ErrorDetails(BaseModel):
    """Detailed error information."""
    error_id: str = Field(..., min_length=1)
    code: str = Field(default="INTERNAL_ERROR")
    category: ErrorCategory
    severity: ErrorSeverity
    message: str = Field(..., min_length=1)
    details: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=datetime.now)
    agent_name: Optional[str] = None
    task_id: Optional[str] = None
    recoverable: bool = True


class ErrorResponse(BaseModel):
    """Standardized error response."""
    success: bool = False
    error: ErrorDetails
    suggested_actions: List[str] = Field(default_factory=list)


# Custom exceptions
class AgentConductorError(Exception):
    """Base exception for Agent Conductor."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.SYSTEM,
                 severity: ErrorSeverity = ErrorSeverity.MEDIUM, **kwargs):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = kwargs


class InvalidWorker(AgentConductorError):
    """A registration was attempted with something that cannot execute tasks."""

    code = "INVALID_WORKER"

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.VALIDATION, ErrorSeverity.HIGH, **kwargs)


class WorkerUnavailable(AgentConductorError):
    """The dispatch target is missing."""

    code = "WORKER_UNAVAILABLE"

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.DISPATCH, ErrorSeverity.MEDIUM, **kwargs)


class TaskTimeout(AgentConductorError):
    """A task handler did not finish before its deadline."""

    code = "TASK_TIMEOUT"

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.TIMEOUT, ErrorSeverity.MEDIUM, **kwargs)


class TargetNotFound(AgentConductorError):
    """An explicit target override named a worker that is not active."""

    code = "TARGET_NOT_FOUND"

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.ROUTING, ErrorSeverity.MEDIUM, **kwargs)


class NoRouteFound(AgentConductorError):
    """No routing rule matched and no worker is active to take the command."""

    code = "NO_ROUTE_FOUND"

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.ROUTING, ErrorSeverity.LOW, **kwargs)


class PipelineStepFailed(AgentConductorError):
    """A templated coordination pipeline aborted on a failed step."""

    code = "PIPELINE_STEP_FAILED"

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.COORDINATION, ErrorSeverity.MEDIUM, **kwargs)


class ExternalServiceError(AgentConductorError):
    """The text-completion backend failed."""

    code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, message: str, **kwargs):
        super().__init__(message, ErrorCategory.EXTERNAL_API, ErrorSeverity.MEDIUM, **kwargs)
