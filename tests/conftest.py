"""
Pytest configuration and fixtures for Agent Conductor tests.
"""

import pytest
import asyncio
from typing import Any, Dict, List, Optional, Tuple

from agent_conductor.agents.base import BaseAgent, HealthReport
from agent_conductor.memory.context_store import InMemoryContextStore
from agent_conductor.models.core import AgentResult, RoutingRule, MULTI_AGENT, Task
from agent_conductor.orchestration.registry import AgentRegistry
from agent_conductor.orchestration.dispatcher import TaskDispatcher
from agent_conductor.utils.config import OrchestrationConfig, RoutingConfig, SystemConfig, set_config


class MockAgent(BaseAgent):
    """Mock agent implementation for testing."""

    def __init__(
        self,
        name: str = "test_agent",
        kind: Optional[str] = None,
        result: Any = None,
        delay: float = 0.0,
        should_fail: bool = False,
        should_raise: bool = False,
        healthy: bool = True,
        activation_error: Optional[str] = None,
        capabilities: Optional[List[str]] = None
    ):
        super().__init__(name, description=f"Mock agent {name}", capabilities=capabilities)
        self.kind = kind
        self.result = result
        self.delay = delay
        self.should_fail = should_fail
        self.should_raise = should_raise
        self.healthy = healthy
        self.activation_error = activation_error
        self.execution_count = 0
        self.finished_count = 0
        self.received: List[Tuple[Task, Dict[str, Any]]] = []

    @property
    def agent_type(self) -> str:
        return self.kind or super().agent_type

    async def on_activate(self):
        if self.activation_error:
            raise RuntimeError(self.activation_error)

    async def health_check(self) -> HealthReport:
        report = await super().health_check()
        if not self.healthy:
            report.healthy = False
        return report

    async def execute_task(self, task: Task, context: Dict[str, Any]) -> Any:
        """Mock operation that simulates work."""
        self.execution_count += 1
        self.received.append((task, context))

        if self.delay:
            await asyncio.sleep(self.delay)
        self.finished_count += 1

        if self.should_raise:
            raise RuntimeError(f"Mock exception in {self.name}")
        if self.should_fail:
            return AgentResult(success=False, error=f"Mock failure in {self.name}", agent_name=self.name)
        if self.result is not None:
            return self.result
        return {"result": f"Mock result from {self.name}", "command": task.command}


class RaisingAgent(MockAgent):
    """Agent whose task entry point itself raises instead of returning a result."""

    async def execute(self, task: Task, context: Optional[Dict[str, Any]] = None) -> AgentResult:
        self.execution_count += 1
        raise ValueError(f"Handler exploded in {self.name}")


class RejectingAgent(MockAgent):
    """Agent whose activation reports failure without raising."""

    async def activate(self) -> AgentResult:
        return AgentResult(success=False, error="activation refused", agent_name=self.name)


class ExplodingHealthAgent(MockAgent):
    """Agent whose health check raises."""

    async def health_check(self) -> HealthReport:
        raise ConnectionError("health endpoint unreachable")


@pytest.fixture(autouse=True)
def reset_default_config():
    """Keep the process default configuration isolated between tests."""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def mock_agent():
    """Create a mock agent for testing."""
    return MockAgent("test_agent")


@pytest.fixture
def failing_mock_agent():
    """Create a mock agent that fails for testing error handling."""
    return MockAgent("failing_agent", should_fail=True)


@pytest.fixture
def registry():
    return AgentRegistry(health_check_interval_seconds=60.0)


@pytest.fixture
def orchestration_config():
    return OrchestrationConfig(task_timeout_seconds=1.0, health_check_interval_seconds=60.0)


@pytest.fixture
def dispatcher(orchestration_config):
    return TaskDispatcher(orchestration_config)


@pytest.fixture
def context_store():
    return InMemoryContextStore()


@pytest.fixture
def coordination_rules() -> List[RoutingRule]:
    """Small rule set with a coordination keyword overlapping the blog rule."""
    return [
        RoutingRule(category="blog", target="BlogAgent", keywords=["blog", "post", "artículo"], priority=2),
        RoutingRule(category="seo", target="SEOAgent", keywords=["seo", "keywords", "meta"], priority=1),
        RoutingRule(category="services", target="ServicesAgent", keywords=["servicio", "service", "precio"], priority=3),
        RoutingRule(category="coordination", target=MULTI_AGENT, keywords=["crea blog", "análisis completo"], priority=0),
    ]


@pytest.fixture
def routing_config(coordination_rules):
    return RoutingConfig(rules=coordination_rules)


@pytest.fixture
def system_config(routing_config):
    return SystemConfig(
        orchestration=OrchestrationConfig(task_timeout_seconds=1.0),
        routing=routing_config
    )


@pytest.fixture
def fleet():
    """One mock worker per routed type."""
    return {
        "BlogAgent": MockAgent("blog_worker", kind="BlogAgent"),
        "SEOAgent": MockAgent("seo_worker", kind="SEOAgent"),
        "ServicesAgent": MockAgent("services_worker", kind="ServicesAgent"),
    }
