"""
Agent Registry with lifecycle management for Agent Conductor.

This module provides worker registration, lookup by identity or type,
periodic health sweeps and best-effort shutdown.
"""

import asyncio
from typing import Dict, List, Optional, Any
from datetime import datetime
from dataclasses import dataclass

from ..agents.base import BaseAgent, AGENT_ACTIVATED, AGENT_DEACTIVATED
from ..models.core import AgentResult, AgentStatus
from ..models.errors import InvalidWorker
from ..utils.logging import get_logger
from .dispatcher import TASK_FAILED, TASK_SUCCEEDED, TASK_TIMED_OUT, TaskDispatcher

logger = get_logger(__name__)


@dataclass
class AgentRecord:
    """The single owned entry for a registered worker."""
    agent: BaseAgent
    registered_at: datetime
    activated_at: Optional[datetime] = None
    last_health_check: Optional[datetime] = None
    last_health_error: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.agent.status == AgentStatus.ACTIVE


class RegistryMetrics:
    """
    Global counters.

    Task outcomes come from dispatcher signals, so a handler that finishes
    after its deadline is only ever counted once, as a timeout.
    """

    def __init__(self):
        self.completed_tasks = 0
        self.failed_tasks = 0
        self.activations = 0
        self.deactivations = 0
        self.demotions = 0
        self.timeouts = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "completed_tasks": self.completed_tasks,
            "failed_tasks": self.failed_tasks,
            "activations": self.activations,
            "deactivations": self.deactivations,
            "demotions": self.demotions,
            "timeouts": self.timeouts,
        }

    def record_dispatch(self, event: str) -> None:
        if event == TASK_SUCCEEDED:
            self.completed_tasks += 1
        elif event == TASK_FAILED:
            self.failed_tasks += 1
        elif event == TASK_TIMED_OUT:
            self.failed_tasks += 1
            self.timeouts += 1


class HealthMonitor:
    """Runs the registry health sweep on a fixed interval."""

    def __init__(self, check_interval_seconds: float = 60.0):
        self.check_interval_seconds = check_interval_seconds
        self.logger = get_logger(f"{__name__}.HealthMonitor")
        self._running = False
        self._health_check_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self, registry: 'AgentRegistry'):
        """Start the health checking background task."""
        if self._running:
            return

        self._running = True
        self._health_check_task = asyncio.create_task(self._health_check_loop(registry))
        self.logger.info("Health monitor started")

    async def stop(self):
        """Stop the health checking background task."""
        self._running = False
        if self._health_check_task:
            self._health_check_task.cancel()
            try:
                await self._health_check_task
            except asyncio.CancelledError:
                pass
            self._health_check_task = None
        self.logger.info("Health monitor stopped")

    async def _health_check_loop(self, registry: 'AgentRegistry'):
        while self._running:
            try:
                await asyncio.sleep(self.check_interval_seconds)
                await registry.health_sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Health sweep error: {e}")


class AgentRegistry:
    """
    Registry of workers indexed by id and by name.

    Both indexes point at the same :class:`AgentRecord`; the active flag is
    the agent's own ``status`` so there is a single source of truth.
    Registration, deactivation, health sweeps and shutdown are serialized
    by one lock.
    """

    def __init__(self, health_check_interval_seconds: float = 60.0):
        self._by_id: Dict[str, AgentRecord] = {}
        self._by_name: Dict[str, AgentRecord] = {}
        self._lock = asyncio.Lock()
        self.metrics = RegistryMetrics()
        self.health_monitor = HealthMonitor(health_check_interval_seconds)
        self.logger = get_logger(__name__)

    async def start(self):
        """Start the periodic health monitor."""
        await self.health_monitor.start(self)

    async def stop(self):
        await self.health_monitor.stop()

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, id_or_name: str) -> bool:
        return self.find_by_identity(id_or_name) is not None

    def _records(self) -> List[AgentRecord]:
        return list(self._by_id.values())

    # -- registration ------------------------------------------------------

    def _wire_listeners(self, agent: BaseAgent):
        def on_activated(_payload: Dict[str, Any]):
            self.metrics.activations += 1

        def on_deactivated(_payload: Dict[str, Any]):
            self.metrics.deactivations += 1

        agent.remove_listeners()
        agent.add_listener(AGENT_ACTIVATED, on_activated)
        agent.add_listener(AGENT_DEACTIVATED, on_deactivated)

    def observe_dispatcher(self, dispatcher: TaskDispatcher) -> None:
        """Count task outcomes reported by ``dispatcher``."""
        for event in (TASK_SUCCEEDED, TASK_FAILED, TASK_TIMED_OUT):
            dispatcher.add_listener(event, lambda _payload, event=event: self.metrics.record_dispatch(event))

    async def register(self, agent: BaseAgent) -> AgentResult:
        """
        Register and activate a worker.

        Args:
            agent: Worker instance to register

        Returns:
            AgentResult: success only if activation succeeded

        Raises:
            InvalidWorker: If ``agent`` has no executable task handler
        """
        if not isinstance(agent, BaseAgent) or not callable(getattr(agent, "execute", None)):
            raise InvalidWorker(
                "Invalid agent: must implement an executable task handler",
                value_type=type(agent).__name__
            )

        async with self._lock:
            existing = self._by_id.get(agent.id)
            if existing is not None:
                self.logger.warning(f"Agent {agent.id} already registered, updating in place")
                for name, record in list(self._by_name.items()):
                    if record is existing:
                        del self._by_name[name]

            shadowed = self._by_name.get(agent.name)
            if shadowed is not None and shadowed.agent.id != agent.id:
                self.logger.warning(
                    f"Agent name {agent.name} now refers to {agent.id} (was {shadowed.agent.id})"
                )

            record = AgentRecord(agent=agent, registered_at=datetime.now())
            self._by_id[agent.id] = record
            self._by_name[agent.name] = record

            self._wire_listeners(agent)

            try:
                activation = await agent.activate()
            except Exception as e:
                agent.status = AgentStatus.ERROR
                activation = AgentResult(success=False, error=str(e), agent_name=agent.name)

            # Only a successful activation may leave the worker active
            if not activation.success and agent.status == AgentStatus.ACTIVE:
                agent.status = AgentStatus.ERROR

        if activation.success:
            record.activated_at = datetime.now()
            self.logger.info(f"Agent {agent.name} registered and activated", agent_id=agent.id)
            return AgentResult(
                success=True,
                message=f"Agent {agent.name} registered successfully",
                agent_name=agent.name
            )

        self.logger.error(f"Failed to activate agent {agent.name}: {activation.error}")
        return AgentResult(
            success=False,
            error=f"Failed to activate agent: {activation.error}",
            agent_name=agent.name
        )

    # -- lookup ------------------------------------------------------------

    def find_by_type(self, type_name: str) -> Optional[BaseAgent]:
        """First active worker whose concrete kind matches ``type_name``."""
        for record in self._records():
            agent = record.agent
            if type_name in (agent.agent_type, type(agent).__name__) and record.is_active:
                return agent

        self.logger.debug(f"No active agent found for type: {type_name}")
        return None

    def find_by_identity(self, id_or_name: str) -> Optional[BaseAgent]:
        """Exact lookup by id first, then by name."""
        record = self._by_id.get(id_or_name) or self._by_name.get(id_or_name)
        return record.agent if record else None

    def first_active(self) -> Optional[BaseAgent]:
        """Any active worker, in registration order."""
        for record in self._records():
            if record.is_active:
                return record.agent
        return None

    def list_agents(self) -> List[BaseAgent]:
        return [record.agent for record in self._records()]

    def list_active(self) -> List[BaseAgent]:
        return [record.agent for record in self._records() if record.is_active]

    def agent_types(self) -> List[str]:
        return list(dict.fromkeys(record.agent.agent_type for record in self._records()))

    # -- lifecycle ---------------------------------------------------------

    async def deactivate_worker(self, id_or_name: str) -> AgentResult:
        """Deactivate a single worker."""
        async with self._lock:
            agent = self.find_by_identity(id_or_name)
            if agent is None:
                return AgentResult(success=False, error=f"Agent not found: {id_or_name}", agent_name=id_or_name)
            return await agent.deactivate()

    async def health_sweep(self) -> Dict[str, bool]:
        """
        Check every registered worker and demote unhealthy active ones.

        A health check that raises counts as unhealthy; the sweep always
        continues with the next worker.

        Returns:
            Dict mapping agent id to its health in this sweep
        """
        results: Dict[str, bool] = {}

        async with self._lock:
            for record in self._records():
                agent = record.agent
                try:
                    report = await agent.health_check()
                    healthy = bool(report.healthy)
                    record.last_health_error = None
                except Exception as e:
                    healthy = False
                    record.last_health_error = str(e)
                    self.logger.error(f"Health check failed for agent {agent.name}: {e}")

                record.last_health_check = datetime.now()
                results[agent.id] = healthy

                if not healthy and record.is_active:
                    self.logger.warning(f"Agent {agent.name} is unhealthy, deactivating")
                    agent.status = AgentStatus.INACTIVE
                    self.metrics.demotions += 1

        return results

    async def shutdown(self) -> Dict[str, Any]:
        """
        Deactivate every worker and clear the registry.

        Failures are recorded per worker and do not stop the shutdown.
        """
        await self.health_monitor.stop()

        deactivated: List[str] = []
        failed: Dict[str, str] = {}

        async with self._lock:
            for record in self._records():
                agent = record.agent
                try:
                    result = await agent.deactivate()
                    if result.success:
                        deactivated.append(agent.name)
                    else:
                        failed[agent.name] = result.error or "deactivation failed"
                except Exception as e:
                    failed[agent.name] = str(e)
                    self.logger.error(f"Error deactivating agent {agent.name}: {e}")

            for record in self._records():
                record.agent.remove_listeners()

            self._by_id.clear()
            self._by_name.clear()

        self.logger.info("Agent registry shut down", deactivated=len(deactivated), failed=len(failed))
        return {"deactivated": deactivated, "failed": failed}

    # -- reporting ---------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Get registry contents and global metrics."""
        workers = []
        for record in self._records():
            info = record.agent.describe()
            info.update({
                "is_active": record.is_active,
                "registered_at": record.registered_at.isoformat(),
                "activated_at": record.activated_at.isoformat() if record.activated_at else None,
                "last_health_check": record.last_health_check.isoformat() if record.last_health_check else None,
                "last_health_error": record.last_health_error,
            })
            workers.append(info)

        return {
            "workers": workers,
            "metrics": self.metrics.to_dict(),
            "total_workers": len(self._by_id),
            "active_workers": len(self.list_active()),
            "health_monitor_running": self.health_monitor.running,
        }
