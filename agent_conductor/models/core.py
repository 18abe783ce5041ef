"""
Core Pydantic data models for Agent Conductor.
"""

import uuid
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum


# Routing target that hands a command to the coordination pipeline
MULTI_AGENT = "MULTI_AGENT"

DEFAULT_TASK_TYPE = "natural_language_command"


def generate_task_id() -> str:
    return f"task_{uuid.uuid4().hex[:12]}"


class AgentStatus(str, Enum):
    """Worker lifecycle status."""
    INITIALIZED = "initialized"
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class AgentResult(BaseModel):
    """Standard result format for all agents."""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)
    agent_name: str
    execution_time_ms: Optional[int] = None


class Task(BaseModel):
    """One unit of requested work. Immutable once created."""
    task_id: str = Field(default_factory=generate_task_id, min_length=1)
    task_type: str = Field(default=DEFAULT_TASK_TYPE)
    command: str = Field(default="")
    target_agent: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(default=0)
    created_at: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(frozen=True)


class RoutingRule(BaseModel):
    """Keyword-to-worker-type mapping used for intent classification."""
    category: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    keywords: List[str] = Field(default_factory=list)
    capabilities: List[str] = Field(default_factory=list)
    description: str = ""
    priority: int = Field(default=100, ge=0)

    model_config = ConfigDict(frozen=True)

    @field_validator('keywords')
    @classmethod
    def normalize_keywords(cls, v: List[str]) -> List[str]:
        return [keyword.lower() for keyword in v if keyword and keyword.strip()]

    @property
    def is_coordination(self) -> bool:
        return self.target == MULTI_AGENT

    def matched_keywords(self, text: str) -> List[str]:
        """Return the keywords occurring in ``text`` (case-insensitive substring match)."""
        content = (text or "").lower()
        return [keyword for keyword in self.keywords if keyword in content]


class InFlightRecord(BaseModel):
    """Bookkeeping for a task between dispatch and its terminal outcome."""
    task_id: str
    agent_id: str
    agent_name: str
    started_at: datetime = Field(default_factory=datetime.now)
    task: Task


class CoordinationStep(BaseModel):
    """One delegation inside a coordination pipeline run."""
    agent: str
    step: int = Field(..., ge=1)
    name: Optional[str] = None
    result: AgentResult

    @property
    def success(self) -> bool:
        return self.result.success


class EmbeddedPayload(BaseModel):
    """Tagged structured payload a worker can hand up to the caller."""
    type: str = Field(..., min_length=1)
    mode: str = "preview"
    data: Any = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CoordinationResult(BaseModel):
    """Ordered delegation steps plus the aggregated output."""
    success: bool
    coordination_type: str
    steps: List[CoordinationStep] = Field(default_factory=list)
    final_output: Optional[Any] = None
    embedded_payload: Optional[EmbeddedPayload] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    summary: Optional[str] = None
    suggestion: Optional[str] = None

    @property
    def agents(self) -> List[str]:
        return [step.agent for step in self.steps]


class StructuredResult(BaseModel):
    """Caller-facing outcome of every orchestrator operation."""
    success: bool
    message: Optional[str] = None
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    embedded_payload: Optional[Dict[str, Any]] = None
    agent: Optional[str] = None
    session_id: Optional[str] = None
    routing: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(
        json_encoders={
            datetime: lambda v: v.isoformat()
        }
    )
