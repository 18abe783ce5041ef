"""
Agent Orchestration System for Agent Conductor.

This package provides:
- Worker registry with health monitoring and lifecycle management
- Deadline-bounded task dispatching
- Keyword-priority command routing
- Templated and dynamic multi-agent coordination pipelines
"""

from .registry import (
    AgentRegistry,
    AgentRecord,
    RegistryMetrics,
    HealthMonitor
)

from .dispatcher import (
    TaskDispatcher,
    TaskHandle,
    TASK_SUCCEEDED,
    TASK_FAILED,
    TASK_TIMED_OUT
)

from .router import (
    CommandRouter,
    RouteDecision,
    RouteKind
)

from .pipeline import (
    CoordinationPipeline,
    PipelineStep,
    PipelineTemplate,
    default_pipeline_templates,
    extract_embedded_payload,
    find_embedded_payload
)

from .orchestrator import AgentOrchestrator

__all__ = [
    # Registry components
    'AgentRegistry',
    'AgentRecord',
    'RegistryMetrics',
    'HealthMonitor',

    # Dispatch components
    'TaskDispatcher',
    'TaskHandle',
    'TASK_SUCCEEDED',
    'TASK_FAILED',
    'TASK_TIMED_OUT',

    # Routing components
    'CommandRouter',
    'RouteDecision',
    'RouteKind',

    # Coordination components
    'CoordinationPipeline',
    'PipelineStep',
    'PipelineTemplate',
    'default_pipeline_templates',
    'extract_embedded_payload',
    'find_embedded_payload',

    # Orchestrator
    'AgentOrchestrator'
]
