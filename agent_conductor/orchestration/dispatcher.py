"""
Task dispatching with deadlines for Agent Conductor.

The dispatcher runs a worker's task handler as an independently scheduled
asyncio task and races it against a deadline. A deadline only abandons the
*wait*: the handler keeps running in the background until it finishes on
its own, and its late result is discarded.

The deadline covers the whole dispatch, including the wait for one of the
``max_concurrent_tasks`` slots. A slot is held until its handler finishes,
even after the caller has given up on it, so abandoned handlers keep
counting against the bound instead of piling up behind it.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from ..agents.base import AgentMetrics, BaseAgent
from ..models.core import AgentResult, InFlightRecord, Task
from ..models.errors import TaskTimeout, WorkerUnavailable
from ..utils.config import OrchestrationConfig
from ..utils.error_handler import ErrorHandler
from ..utils.logging import get_logger, log_context

logger = get_logger(__name__)

# Dispatcher signal names
TASK_SUCCEEDED = "dispatch_succeeded"
TASK_FAILED = "dispatch_failed"
TASK_TIMED_OUT = "dispatch_timed_out"

DUPLICATE_TASK = "DUPLICATE_TASK"


class TaskHandle:
    """
    Handle on a running task handler that can be awaited with a timeout.

    ``wait`` shields the underlying asyncio task, so a timeout never cancels
    the handler; it marks the handle abandoned and any result that arrives
    later is dropped.
    """

    def __init__(self, awaitable: Awaitable[AgentResult], task_id: str, agent_name: str):
        self.task_id = task_id
        self.agent_name = agent_name
        self.started_at = time.monotonic()
        self._abandoned = False
        self._future = asyncio.ensure_future(awaitable)
        self._future.add_done_callback(self._on_done)

    @property
    def abandoned(self) -> bool:
        return self._abandoned

    def done(self) -> bool:
        return self._future.done()

    def add_done_callback(self, callback: Callable[[asyncio.Future], None]) -> None:
        self._future.add_done_callback(callback)

    def abandon(self) -> None:
        """Stop waiting for the handler; it is not cancelled."""
        self._abandoned = True

    async def wait(self, timeout: Optional[float]) -> AgentResult:
        """
        Wait for the handler result.

        Raises:
            TaskTimeout: If the deadline fires first
        """
        try:
            return await asyncio.wait_for(asyncio.shield(self._future), timeout)
        except asyncio.TimeoutError:
            self.abandon()
            raise TaskTimeout(
                f"Task {self.task_id} timed out after {timeout}s",
                task_id=self.task_id,
                agent_name=self.agent_name
            )

    def _on_done(self, future: asyncio.Future) -> None:
        if not self._abandoned:
            return
        if future.cancelled():
            return
        # Retrieve the outcome so abandoned failures are not reported as unhandled
        error = future.exception()
        elapsed_ms = int((time.monotonic() - self.started_at) * 1000)
        logger.info(
            f"Discarding late result for abandoned task {self.task_id}",
            agent=self.agent_name,
            elapsed_ms=elapsed_ms,
            failed=error is not None
        )


class TaskDispatcher:
    """Runs tasks on workers under a deadline and tracks in-flight work."""

    def __init__(self, config: Optional[OrchestrationConfig] = None, error_handler: Optional[ErrorHandler] = None):
        self.config = config or OrchestrationConfig()
        self.logger = get_logger(f"{__name__}.TaskDispatcher")
        self.error_handler = error_handler or ErrorHandler()
        self._in_flight: Dict[str, InFlightRecord] = {}
        self._accepted: Set[str] = set()
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent_tasks)
        self._listeners: Dict[str, List[Callable[[Dict[str, Any]], None]]] = {}
        self.metrics = AgentMetrics(self.config.metrics_window_size)
        self.timeouts = 0
        self._agent_metrics: Dict[str, AgentMetrics] = {}

    # -- signals -----------------------------------------------------------

    def add_listener(self, event: str, callback: Callable[[Dict[str, Any]], None]) -> None:
        self._listeners.setdefault(event, []).append(callback)

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        for callback in list(self._listeners.get(event, [])):
            try:
                callback(payload)
            except Exception as e:
                self.logger.error(f"Dispatcher listener for {event} failed: {e}")

    # -- in-flight bookkeeping ----------------------------------------------

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def get_in_flight(self) -> List[InFlightRecord]:
        """Get list of currently running task records."""
        return list(self._in_flight.values())

    def is_in_flight(self, task_id: str) -> bool:
        return task_id in self._in_flight

    # -- execution ---------------------------------------------------------

    async def execute(
        self,
        agent: Optional[BaseAgent],
        task: Task,
        context: Optional[Dict[str, Any]] = None,
        timeout_seconds: Optional[float] = None
    ) -> AgentResult:
        """
        Execute ``task`` on ``agent`` with a deadline.

        Args:
            agent: Target worker; ``None`` fails fast with ``WorkerUnavailable``
            task: Task to execute
            context: Execution context handed to the worker
            timeout_seconds: Override for the configured deadline

        Returns:
            AgentResult: The handler's result verbatim, or a failure result
        """
        if agent is None:
            error = WorkerUnavailable(
                f"Cannot execute task {task.task_id}: agent not found or not available",
                task_id=task.task_id
            )
            self.logger.warning(error.message)
            return AgentResult(
                success=False,
                error=error.message,
                error_code=error.code,
                agent_name=task.target_agent or "unknown"
            )

        timeout = timeout_seconds if timeout_seconds is not None else self.config.task_timeout_seconds
        context = context if context is not None else dict(task.context)

        if task.task_id in self._accepted:
            self.logger.warning(f"Task {task.task_id} is already in flight, rejecting duplicate dispatch")
            return AgentResult(
                success=False,
                error=f"Task {task.task_id} is already in flight",
                error_code=DUPLICATE_TASK,
                agent_name=agent.name
            )

        with log_context(task_id=task.task_id, agent=agent.name):
            loop = asyncio.get_running_loop()
            deadline = loop.time() + timeout if timeout is not None else None
            start_time = time.monotonic()
            event = TASK_FAILED
            self._accepted.add(task.task_id)
            try:
                await self._acquire_slot(task, agent, timeout)
                handle = TaskHandle(agent.execute(task, context), task.task_id, agent.name)
                # Released when the handler finishes, abandoned or not
                handle.add_done_callback(lambda _future: self._semaphore.release())
                self._in_flight[task.task_id] = InFlightRecord(
                    task_id=task.task_id,
                    agent_id=agent.id,
                    agent_name=agent.name,
                    task=task
                )
                self.logger.info(f"Executing task {task.task_id} with agent {agent.name}", timeout_seconds=timeout)

                remaining = max(deadline - loop.time(), 0.0) if deadline is not None else None
                try:
                    result = await handle.wait(remaining)
                except TaskTimeout as e:
                    raise TaskTimeout(
                        f"Task {task.task_id} timed out after {timeout}s",
                        task_id=task.task_id,
                        agent_name=agent.name
                    ) from e
                if not isinstance(result, AgentResult):
                    result = AgentResult(success=True, data=result, agent_name=agent.name)
                event = TASK_SUCCEEDED if result.success else TASK_FAILED

            except TaskTimeout as e:
                self.logger.warning(e.message)
                self.timeouts += 1
                event = TASK_TIMED_OUT
                result = AgentResult(
                    success=False,
                    error=e.message,
                    error_code=e.code,
                    agent_name=agent.name
                )

            except Exception as e:
                response = self.error_handler.handle_agent_error(agent.name, e, task_id=task.task_id)
                result = AgentResult(
                    success=False,
                    error=response.error.message,
                    error_code=response.error.code,
                    agent_name=agent.name
                )

            finally:
                self._accepted.discard(task.task_id)
                self._in_flight.pop(task.task_id, None)

            latency_ms = (time.monotonic() - start_time) * 1000
            self._record(agent.name, result.success, latency_ms)
            if result.execution_time_ms is None:
                result.execution_time_ms = int(latency_ms)

            self._emit(event, {
                "task_id": task.task_id,
                "agent_id": agent.id,
                "agent_name": agent.name,
                "success": result.success,
                "error_code": result.error_code,
                "latency_ms": latency_ms
            })

            return result

    async def _acquire_slot(self, task: Task, agent: BaseAgent, timeout: Optional[float]) -> None:
        """
        Take a concurrency slot within ``timeout``.

        Raises:
            TaskTimeout: If no slot frees up before the deadline
        """
        try:
            await asyncio.wait_for(self._semaphore.acquire(), timeout)
        except asyncio.TimeoutError:
            raise TaskTimeout(
                f"Task {task.task_id} timed out after {timeout}s waiting for a free slot",
                task_id=task.task_id,
                agent_name=agent.name
            )

    def _record(self, agent_name: str, success: bool, latency_ms: float):
        self.metrics.record(success, latency_ms)
        agent_metrics = self._agent_metrics.get(agent_name)
        if agent_metrics is None:
            agent_metrics = AgentMetrics(self.config.metrics_window_size)
            self._agent_metrics[agent_name] = agent_metrics
        agent_metrics.record(success, latency_ms)

    def get_metrics(self) -> Dict[str, Any]:
        """Get dispatch counters and rolling latency."""
        return {
            **self.metrics.to_dict(),
            "timeouts": self.timeouts,
            "in_flight": self.in_flight_count(),
            "max_concurrent_tasks": self.config.max_concurrent_tasks,
            "agents": {name: metrics.to_dict() for name, metrics in self._agent_metrics.items()},
        }
