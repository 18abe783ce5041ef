"""
API routes for Agent Conductor.
"""

import time

from fastapi import APIRouter, Depends, Request

from .models import CommandRequest, HealthCheck, RegistrySnapshot
from ..models.core import StructuredResult
from ..orchestration.orchestrator import AgentOrchestrator
from ..utils.logging import get_logger
from .. import __version__

logger = get_logger(__name__)

# Create router
router = APIRouter()

# Service start time for uptime calculation
_service_start_time = time.time()


def get_orchestrator(request: Request) -> AgentOrchestrator:
    """The orchestrator owned by the running application."""
    return request.app.state.orchestrator


@router.get("/health", response_model=HealthCheck, tags=["Health"])
async def health_check(orchestrator: AgentOrchestrator = Depends(get_orchestrator)):
    """Health check endpoint."""
    health = await orchestrator.health()
    return HealthCheck(
        status=health["status"],
        version=__version__,
        uptime_seconds=time.time() - _service_start_time,
        total_workers=health["total_workers"],
        active_workers=health["active_workers"],
        in_flight_count=health["in_flight_count"]
    )


@router.post("/commands", response_model=StructuredResult, tags=["Commands"])
async def submit_command(
    request: CommandRequest,
    orchestrator: AgentOrchestrator = Depends(get_orchestrator)
):
    """Route a command to a worker or a coordination pipeline."""
    logger.info(f"Command received: {request.command[:100]}", action=request.action)
    return await orchestrator.submit_command(request.command, request.caller_context())


@router.get("/registry", response_model=RegistrySnapshot, tags=["Registry"])
async def get_registry(orchestrator: AgentOrchestrator = Depends(get_orchestrator)):
    """Registered workers, registry counters and dispatch metrics."""
    return orchestrator.get_registry_snapshot()
