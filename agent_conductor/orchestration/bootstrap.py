"""
Wiring for a ready-to-use orchestrator with the built-in worker fleet.
"""

from typing import Optional

from ..agents.specialized import build_default_fleet
from ..services.completion import HTTPCompletionService, TemplateCompletionService, TextCompletionService
from ..utils.config import SystemConfig, get_config
from ..utils.logging import get_logger
from .orchestrator import AgentOrchestrator

logger = get_logger(__name__)


def build_completion_service(config: SystemConfig) -> TextCompletionService:
    """HTTP client when an endpoint is configured, the offline template service otherwise."""
    if config.completion.endpoint:
        logger.info("Using HTTP completion service", endpoint=config.completion.endpoint)
        return HTTPCompletionService(config.completion)

    logger.info("No completion endpoint configured, using template completion service")
    return TemplateCompletionService()


async def create_default_orchestrator(
    config: Optional[SystemConfig] = None,
    completion_service: Optional[TextCompletionService] = None
) -> AgentOrchestrator:
    """Build an orchestrator and register the blog, SEO and services workers."""
    config = config or get_config()
    completion_service = completion_service or build_completion_service(config)

    orchestrator = AgentOrchestrator(config)
    for agent in build_default_fleet(completion_service):
        result = await orchestrator.register_worker(agent)
        if not result.success:
            logger.warning(f"Worker {agent.name} failed to register: {result.error}")

    return orchestrator
