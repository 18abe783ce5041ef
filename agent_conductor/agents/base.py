"""
Base agent interface and common utilities for Agent Conductor.

Every worker managed by the registry derives from :class:`BaseAgent`. The
base class owns lifecycle status, running metrics and a small synchronous
signal mechanism the registry subscribes to for global metrics.
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Callable, Deque, Dict, List, Optional
from pydantic import BaseModel, Field
import time
import uuid
from datetime import datetime

from ..models.core import AgentResult, AgentStatus, Task
from ..utils.logging import get_logger

logger = get_logger(__name__)

# Signal names emitted by agents
AGENT_ACTIVATED = "agent_activated"
AGENT_DEACTIVATED = "agent_deactivated"
TASK_COMPLETED = "task_completed"
TASK_FAILED = "task_failed"


class HealthReport(BaseModel):
    """Result of an agent health check."""
    healthy: bool
    status: AgentStatus
    last_activity: datetime
    uptime_seconds: float = 0.0
    metrics: Dict[str, Any] = Field(default_factory=dict)


class AgentMetrics:
    """Running task metrics with a capped latency window."""

    def __init__(self, window_size: int = 100):
        self.total_tasks = 0
        self.successful_tasks = 0
        self.failed_tasks = 0
        self.response_times: Deque[float] = deque(maxlen=window_size)

    @property
    def average_response_time_ms(self) -> float:
        if not self.response_times:
            return 0.0
        return sum(self.response_times) / len(self.response_times)

    def record(self, success: bool, response_time_ms: float):
        """Update metrics after a task."""
        self.total_tasks += 1
        if success:
            self.successful_tasks += 1
        else:
            self.failed_tasks += 1
        self.response_times.append(response_time_ms)

    def success_rate(self) -> float:
        """Success rate as a percentage."""
        if self.total_tasks == 0:
            return 0.0
        return (self.successful_tasks / self.total_tasks) * 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_tasks": self.total_tasks,
            "successful_tasks": self.successful_tasks,
            "failed_tasks": self.failed_tasks,
            "average_response_time_ms": round(self.average_response_time_ms, 2),
            "success_rate": round(self.success_rate(), 2),
        }


class BaseAgent(ABC):
    """
    Abstract base class for all Agent Conductor workers.

    Subclasses implement :meth:`execute_task`; :meth:`execute` wraps it with
    capability checks, metrics, signals and standardized result formatting.
    Lifecycle hooks :meth:`on_activate` / :meth:`on_deactivate` may be
    overridden to acquire or release resources.
    """

    def __init__(self, name: str, description: str = "", capabilities: Optional[List[str]] = None):
        self.id = f"agent_{name.lower()}_{uuid.uuid4().hex[:8]}"
        self.name = name
        self.description = description
        self.capabilities = list(capabilities or [])
        self.status = AgentStatus.INITIALIZED
        self.created_at = datetime.now()
        self.last_activity = datetime.now()
        self.metrics = AgentMetrics()
        self.logger = get_logger(f"agent_conductor.agents.{name}")
        self._listeners: Dict[str, List[Callable[[Dict[str, Any]], None]]] = {}

    @property
    def agent_type(self) -> str:
        """Concrete kind used for routing (the class name by default)."""
        return type(self).__name__

    @property
    def is_active(self) -> bool:
        return self.status == AgentStatus.ACTIVE

    # -- signals -----------------------------------------------------------

    def add_listener(self, event: str, callback: Callable[[Dict[str, Any]], None]) -> None:
        """Subscribe a synchronous callback to an agent signal."""
        self._listeners.setdefault(event, []).append(callback)

    def remove_listeners(self) -> None:
        self._listeners.clear()

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(payload)
            except Exception as e:
                self.logger.error(f"Listener for {event} failed on {self.name}: {e}")

    # -- lifecycle ---------------------------------------------------------

    async def on_activate(self) -> None:
        """Hook run during activation. Raise to signal failure."""

    async def on_deactivate(self) -> None:
        """Hook run during deactivation."""

    async def activate(self) -> AgentResult:
        """Move the agent to ``active``; a raising hook leaves it in ``error``."""
        try:
            await self.on_activate()
        except Exception as e:
            self.status = AgentStatus.ERROR
            self.logger.error(f"Error activating agent {self.name}: {e}")
            return AgentResult(success=False, error=str(e), agent_name=self.name)

        self.status = AgentStatus.ACTIVE
        self.last_activity = datetime.now()
        self.logger.info(f"Agent {self.name} activated")
        self.emit(AGENT_ACTIVATED, {"agent_id": self.id, "name": self.name})
        return AgentResult(success=True, message=f"Agent {self.name} is now active", agent_name=self.name)

    async def deactivate(self) -> AgentResult:
        """Move the agent to ``inactive``."""
        try:
            await self.on_deactivate()
        except Exception as e:
            self.logger.error(f"Error deactivating agent {self.name}: {e}")
            return AgentResult(success=False, error=str(e), agent_name=self.name)

        self.status = AgentStatus.INACTIVE
        self.last_activity = datetime.now()
        self.logger.info(f"Agent {self.name} deactivated")
        self.emit(AGENT_DEACTIVATED, {"agent_id": self.id, "name": self.name})
        return AgentResult(success=True, message=f"Agent {self.name} is now inactive", agent_name=self.name)

    async def health_check(self) -> HealthReport:
        """Report health; an agent is healthy while it is active."""
        return HealthReport(
            healthy=self.is_active,
            status=self.status,
            last_activity=self.last_activity,
            uptime_seconds=(datetime.now() - self.created_at).total_seconds(),
            metrics=self.metrics.to_dict()
        )

    # -- execution ---------------------------------------------------------

    def can_handle(self, task: Task) -> bool:
        """Check whether the agent's capabilities cover the task type."""
        if task is None:
            return False

        if not task.task_type:
            return True

        task_type = task.task_type.lower()

        # Free-text commands can be processed by every agent
        if "natural_language" in task_type or "command" in task_type:
            return True

        return any(
            capability.lower() in task_type or task_type in capability.lower()
            for capability in self.capabilities
        )

    @abstractmethod
    async def execute_task(self, task: Task, context: Dict[str, Any]) -> Any:
        """
        Run the agent's primary function.

        Args:
            task: Task to execute
            context: Caller-supplied context plus coordination state

        Returns:
            Any: Result data; an :class:`AgentResult` is passed through as-is
        """

    async def execute(self, task: Task, context: Optional[Dict[str, Any]] = None) -> AgentResult:
        """
        Execute a task with timing, metrics and error handling.

        Args:
            task: Task to execute
            context: Optional execution context

        Returns:
            AgentResult: Standardized result object
        """
        context = context if context is not None else dict(task.context)
        start_time = time.monotonic()
        self.last_activity = datetime.now()

        try:
            if not self.can_handle(task):
                raise ValueError(f"Agent {self.name} cannot handle task type: {task.task_type}")

            self.logger.info(f"Agent {self.name} processing task {task.task_id}")
            output = await self.execute_task(task, context)

            if isinstance(output, AgentResult):
                result = output
            else:
                result = AgentResult(success=True, data=output, agent_name=self.name)

        except Exception as e:
            result = AgentResult(success=False, error=str(e), agent_name=self.name)

        execution_time = int((time.monotonic() - start_time) * 1000)
        result.execution_time_ms = execution_time
        self.metrics.record(result.success, execution_time)

        if result.success:
            self.logger.info(f"{self.name} completed task {task.task_id} in {execution_time}ms")
            self.emit(TASK_COMPLETED, {
                "agent_id": self.id,
                "task_id": task.task_id,
                "response_time_ms": execution_time
            })
        else:
            self.logger.error(f"{self.name} failed task {task.task_id} after {execution_time}ms: {result.error}")
            self.emit(TASK_FAILED, {
                "agent_id": self.id,
                "task_id": task.task_id,
                "error": result.error,
                "response_time_ms": execution_time
            })

        return result

    def validate_input(self, data: Dict[str, Any], required_fields: List[str]) -> bool:
        """
        Validate that required fields are present in input data.

        Raises:
            ValueError: If required fields are missing
        """
        missing_fields = [field for field in required_fields if data.get(field) is None]

        if missing_fields:
            raise ValueError(f"Missing required fields: {', '.join(missing_fields)}")

        return True

    def describe(self) -> Dict[str, Any]:
        """Get agent information."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.agent_type,
            "description": self.description,
            "capabilities": list(self.capabilities),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "metrics": self.metrics.to_dict()
        }
