"""
API request and response models for Agent Conductor.
"""

from pydantic import BaseModel, Field, model_validator
from typing import Any, Dict, List, Optional
from datetime import datetime

# Actions that carry no command text
COMMANDLESS_ACTIONS = ("status", "session_info", "update_context")


class CommandRequest(BaseModel):
    """Request model for submitting a command."""
    command: str = Field(default="", max_length=5000, description="Free-text command")
    session_id: Optional[str] = Field(None, description="Existing session to continue")
    user_id: Optional[str] = Field(None, description="Caller identifier")
    user_role: Optional[str] = Field(None, description="Caller role")
    target_agent: Optional[str] = Field(None, description="Explicit worker id, name, type or category")
    action: Optional[str] = Field(None, description="route, coordinate, status, session_info or update_context")
    updates: Optional[Dict[str, Any]] = Field(None, description="Payload for update_context")
    params: Dict[str, Any] = Field(default_factory=dict, description="Extra context passed to the worker")

    @model_validator(mode="after")
    def require_command(self) -> "CommandRequest":
        if not self.command.strip() and self.action not in COMMANDLESS_ACTIONS:
            raise ValueError("command is required")
        return self

    def caller_context(self) -> Dict[str, Any]:
        return self.model_dump(exclude={"command"}, exclude_none=True)


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Error timestamp")


class HealthCheck(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Health check timestamp")
    version: str = Field(..., description="API version")
    uptime_seconds: float = Field(..., description="Service uptime in seconds")
    total_workers: int = Field(..., description="Registered workers")
    active_workers: int = Field(..., description="Workers currently active")
    in_flight_count: int = Field(..., description="Tasks currently executing")


class RegistrySnapshot(BaseModel):
    """Registry contents and dispatch state."""
    workers: List[Dict[str, Any]] = Field(..., description="Registered workers")
    metrics: Dict[str, Any] = Field(..., description="Registry counters")
    total_workers: int
    active_workers: int
    in_flight_count: int
    dispatch_metrics: Dict[str, Any]
