"""
Agent Orchestration System for Agent Conductor.

The :class:`AgentOrchestrator` is the caller-facing boundary: it owns the
registry, dispatcher, router, coordination pipeline and context store,
turns a free-text command into a routed or coordinated execution, and
always answers with a :class:`StructuredResult`.
"""

import time
from typing import Any, Dict, Optional

from ..agents.base import BaseAgent
from ..memory.context_store import InMemoryContextStore, SharedContextStore
from ..models.core import CoordinationResult, MULTI_AGENT, StructuredResult, Task
from ..models.errors import InvalidWorker, NoRouteFound, TargetNotFound
from ..utils.config import SystemConfig
from ..utils.error_handler import ErrorHandler
from ..utils.logging import get_logger, log_context
from .dispatcher import TaskDispatcher
from .pipeline import CoordinationPipeline, find_embedded_payload
from .registry import AgentRegistry
from .router import CommandRouter, RouteDecision, RouteKind

logger = get_logger(__name__)

ORCHESTRATOR_NAME = "AgentOrchestrator"

# Actions that only read state and are not written to the interaction log
READ_ONLY_ACTIONS = ("status", "session_info")

ACTIVATION_FAILED = "ACTIVATION_FAILED"
AUTO_ROUTING_DISABLED = "AUTO_ROUTING_DISABLED"
SESSION_NOT_FOUND = "SESSION_NOT_FOUND"


class AgentOrchestrator:
    """
    Routes commands to workers and coordinates multi-worker requests.

    Every collaborator can be injected; anything not given is built from
    ``config``. Instances share no state, so several can run side by side.
    """

    def __init__(
        self,
        config: Optional[SystemConfig] = None,
        registry: Optional[AgentRegistry] = None,
        dispatcher: Optional[TaskDispatcher] = None,
        router: Optional[CommandRouter] = None,
        pipeline: Optional[CoordinationPipeline] = None,
        context_store: Optional[SharedContextStore] = None
    ):
        self.config = config or SystemConfig()
        self.logger = get_logger(f"{__name__}.AgentOrchestrator")
        self.error_handler = ErrorHandler()

        self.registry = registry or AgentRegistry(self.config.orchestration.health_check_interval_seconds)
        self.dispatcher = dispatcher or TaskDispatcher(self.config.orchestration, self.error_handler)
        self.router = router or CommandRouter(self.registry, self.config.routing)
        self.context_store = context_store or InMemoryContextStore(self.config.session_ttl_hours)
        self.pipeline = pipeline or CoordinationPipeline(
            self.registry, self.dispatcher, self.router, self.context_store
        )

        self.registry.observe_dispatcher(self.dispatcher)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    # -- lifecycle ---------------------------------------------------------

    async def start(self):
        """Start background health monitoring."""
        if self._running:
            return
        await self.registry.start()
        self._running = True
        self.logger.info("Agent orchestrator started")

    async def shutdown(self) -> Dict[str, Any]:
        """Deregister every worker and stop background tasks."""
        summary = await self.deregister_all()
        self._running = False
        self.logger.info("Agent orchestrator shut down")
        return summary

    async def register_worker(self, agent: BaseAgent) -> StructuredResult:
        """Register and activate a worker."""
        try:
            result = await self.registry.register(agent)
        except InvalidWorker as e:
            self.logger.error(f"Rejected worker registration: {e.message}")
            return StructuredResult(success=False, error=e.message, error_code=e.code)

        return StructuredResult(
            success=result.success,
            message=result.message,
            error=result.error,
            error_code=None if result.success else ACTIVATION_FAILED,
            agent=result.agent_name,
            data={"agent_id": agent.id, "status": agent.status.value}
        )

    async def deregister_all(self) -> Dict[str, Any]:
        return await self.registry.shutdown()

    def get_registry_snapshot(self) -> Dict[str, Any]:
        """Registry contents plus dispatch state."""
        snapshot = self.registry.snapshot()
        snapshot.update({
            "in_flight_count": self.dispatcher.in_flight_count(),
            "dispatch_metrics": self.dispatcher.get_metrics(),
        })
        return snapshot

    async def health(self) -> Dict[str, Any]:
        """Summary health for liveness probes."""
        total = len(self.registry)
        active = len(self.registry.list_active())
        if total == 0:
            status = "idle"
        elif active == total:
            status = "healthy"
        elif active:
            status = "degraded"
        else:
            status = "unhealthy"

        return {
            "status": status,
            "total_workers": total,
            "active_workers": active,
            "in_flight_count": self.dispatcher.in_flight_count(),
            "health_monitor_running": self.registry.health_monitor.running,
            "sessions": await self.context_store.get_session_stats(),
        }

    # -- commands ----------------------------------------------------------

    async def submit_command(self, text: str, caller_context: Optional[Dict[str, Any]] = None) -> StructuredResult:
        """
        Handle one caller request.

        Args:
            text: Free-text command
            caller_context: Optional ``session_id``, ``user_id``, ``user_role``,
                ``target_agent``, ``action``, ``updates`` and ``params``

        Returns:
            StructuredResult: Never raises; failures are reported in the result
        """
        caller_context = dict(caller_context or {})
        action = caller_context.get("action") or "route"
        session_id = caller_context.get("session_id")
        start_time = time.monotonic()

        try:
            session = await self.context_store.get_or_create_session(
                session_id,
                user_id=caller_context.get("user_id") or "anonymous",
                user_role=caller_context.get("user_role") or "guest"
            )
            session_id = session.session_id

            with log_context(session_id=session_id):
                self.logger.info(f"Processing {action} request")

                if action == "status":
                    result = await self._system_status()
                elif action == "session_info":
                    result = await self._session_info(session_id)
                elif action == "update_context":
                    result = await self._update_context(session_id, caller_context.get("updates") or {})
                else:
                    result = await self._route_command(text, caller_context, session_id)

                result.session_id = session_id

                if action not in READ_ONLY_ACTIONS:
                    await self.context_store.append_interaction(
                        session_id,
                        ORCHESTRATOR_NAME,
                        action,
                        {"command": text, "target_agent": caller_context.get("target_agent")},
                        result,
                        int((time.monotonic() - start_time) * 1000),
                        result.success
                    )

                return result

        except Exception as e:
            response = self.error_handler.handle_agent_error(
                ORCHESTRATOR_NAME, e, context={"action": action, "session_id": session_id}
            )
            return StructuredResult(
                success=False,
                error=response.error.message,
                error_code=response.error.code,
                session_id=session_id
            )

    async def _route_command(self, text: str, caller_context: Dict[str, Any], session_id: str) -> StructuredResult:
        verbose = self.config.routing.verbose_routing

        try:
            decision = self.router.route(text, caller_context.get("target_agent"))
        except TargetNotFound as e:
            return StructuredResult(
                success=False,
                error=e.message,
                error_code=e.code,
                data={"available_agents": self.router.available_agent_types()}
            )
        except NoRouteFound as e:
            data: Dict[str, Any] = {
                "available_agents": self.router.available_agent_types(),
                "suggestion": "Name the target agent or use clearer keywords",
            }
            if verbose:
                data["keyword_hints"] = self.router.keyword_hints()
            return StructuredResult(success=False, error=e.message, error_code=e.code, data=data)

        if decision.kind == RouteKind.DISABLED:
            return StructuredResult(
                success=False,
                message=decision.message,
                error=decision.message,
                error_code=AUTO_ROUTING_DISABLED,
                data={"available_agents": self.router.available_agent_types()},
                routing=decision.describe(verbose)
            )

        params = dict(caller_context.get("params") or {})
        if decision.kind == RouteKind.COORDINATION:
            coordination = await self.pipeline.run(text, params, session_id)
            return self._coordination_result(coordination, decision, verbose)

        return await self._dispatch_single(text, decision, params, session_id, verbose)

    async def _dispatch_single(
        self,
        text: str,
        decision: RouteDecision,
        params: Dict[str, Any],
        session_id: str,
        verbose: bool
    ) -> StructuredResult:
        agent = decision.agent
        target_type = agent.agent_type if agent is not None else decision.rule.target

        context = dict(params)
        context["session_id"] = session_id
        if self.config.routing.context_sharing:
            context["enriched_context"] = await self.context_store.get_enriched_context(
                session_id, target_type, self.config.routing.enriched_context_limit
            )
        if decision.matched_keywords and decision.rule is not None:
            context["routing_reason"] = (
                f"Matched {decision.rule.category} keywords: {', '.join(decision.matched_keywords)}"
            )

        task = Task(command=text, target_agent=target_type, context=context)
        result = await self.dispatcher.execute(agent, task, context)

        payload = find_embedded_payload(result.data, result.agent_name)
        message = result.message
        if message is None and isinstance(result.data, dict):
            message = result.data.get("content")

        return StructuredResult(
            success=result.success,
            message=message,
            data=result.data,
            error=result.error,
            error_code=result.error_code,
            embedded_payload=payload.model_dump(mode="json") if payload else None,
            agent=result.agent_name,
            routing=decision.describe(verbose)
        )

    def _coordination_result(
        self,
        coordination: CoordinationResult,
        decision: RouteDecision,
        verbose: bool
    ) -> StructuredResult:
        data = coordination.model_dump(mode="json", exclude={"embedded_payload"})
        data["agents"] = coordination.agents

        return StructuredResult(
            success=coordination.success,
            message=coordination.summary or coordination.error,
            data=data,
            error=coordination.error,
            error_code=coordination.error_code,
            embedded_payload=(
                coordination.embedded_payload.model_dump(mode="json")
                if coordination.embedded_payload else None
            ),
            agent=MULTI_AGENT,
            routing=decision.describe(verbose)
        )

    # -- actions -----------------------------------------------------------

    async def _system_status(self) -> StructuredResult:
        agent_health: Dict[str, Any] = {}
        for agent in self.registry.list_agents():
            try:
                report = await agent.health_check()
                agent_health[agent.name] = report.model_dump(mode="json")
            except Exception as e:
                self.logger.error(f"Health check failed for agent {agent.name}: {e}")
                agent_health[agent.name] = {"healthy": False, "error": str(e)}

        return StructuredResult(
            success=True,
            message="System status",
            data={
                "registered_agents": [agent.name for agent in self.registry.list_agents()],
                "active_agents": [agent.name for agent in self.registry.list_active()],
                "agent_health": agent_health,
                "session_stats": await self.context_store.get_session_stats(),
                "dispatch_metrics": self.dispatcher.get_metrics(),
            }
        )

    async def _session_info(self, session_id: str) -> StructuredResult:
        session = await self.context_store.get_session(session_id)
        if session is None:
            return StructuredResult(success=False, error="Session not found", error_code=SESSION_NOT_FOUND)

        info = session.summary()
        info["interactions"] = [interaction.model_dump(mode="json") for interaction in session.interactions]
        return StructuredResult(success=True, message="Session info", data=info)

    async def _update_context(self, session_id: str, updates: Dict[str, Any]) -> StructuredResult:
        global_context = updates.get("global_context")
        if global_context:
            await self.context_store.update_global_context(session_id, global_context)

        for key, value in (updates.get("shared_data") or {}).items():
            await self.context_store.set_shared(session_id, key, value)

        self.logger.info(f"Context updated for session {session_id}")
        return StructuredResult(success=True, message="Context updated")
