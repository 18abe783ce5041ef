"""
Multi-agent coordination pipelines for Agent Conductor.

Two shapes are supported:

* templated pipelines: a fixed chain of (worker type, prompt template)
  steps where each step consumes the previous result; the first failed
  step aborts the chain.
* dynamic pipelines: every worker type whose rule matches the command is
  invoked in registry order with the running result; failures do not stop
  the remaining steps.

After a run the step results are scanned for an embedded payload, which is
promoted to the top of the :class:`CoordinationResult`.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from ..models.core import (
    AgentResult, CoordinationResult, CoordinationStep, EmbeddedPayload, RoutingRule, Task
)
from ..models.errors import PipelineStepFailed
from ..memory.context_store import SharedContextStore
from ..utils.logging import LoggerMixin
from .dispatcher import TaskDispatcher
from .registry import AgentRegistry
from .router import CommandRouter

DYNAMIC_COORDINATION = "complex_multi_agent"


class PipelineStep(BaseModel):
    """One templated delegation."""
    agent_type: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    prompt_template: str = "{command}"

    def render(self, command: str, previous: Optional[AgentResult]) -> str:
        previous_text = ""
        if previous is not None:
            previous_text = json.dumps(previous.model_dump(mode="json"), ensure_ascii=False)
        return self.prompt_template.format(command=command, previous=previous_text)


class PipelineTemplate(BaseModel):
    """
    A named chain of steps.

    ``trigger_keywords`` is a list of alternatives groups; the template applies
    to a command when every group has at least one term in it.
    """
    name: str = Field(..., min_length=1)
    steps: List[PipelineStep] = Field(..., min_length=1)
    trigger_keywords: List[List[str]] = Field(default_factory=list)
    summary: str = ""

    def matches(self, command: str) -> bool:
        if not self.trigger_keywords:
            return False
        content = (command or "").lower()
        return all(any(term.lower() in content for term in group) for group in self.trigger_keywords)

    @property
    def complete_key(self) -> str:
        return f"{self.name}_complete"


def default_pipeline_templates() -> List[PipelineTemplate]:
    return [
        PipelineTemplate(
            name="service_to_blog",
            trigger_keywords=[["blog"], ["servicio", "service"]],
            summary="Promotional blog created from a service analysis with SEO optimization",
            steps=[
                PipelineStep(
                    agent_type="ServicesAgent",
                    name="service_analysis",
                    prompt_template="Analyse this service and extract its key information: {command}"
                ),
                PipelineStep(
                    agent_type="BlogAgent",
                    name="blog_creation",
                    prompt_template="Write a promotional blog post based on this service analysis: {previous}"
                ),
                PipelineStep(
                    agent_type="SEOAgent",
                    name="seo_optimization",
                    prompt_template="Optimize the SEO of this blog content: {previous}"
                ),
            ]
        )
    ]


def find_embedded_payload(value: Any, agent: str) -> Optional[EmbeddedPayload]:
    """Recognize an embedded payload inside one step's result data."""
    if not isinstance(value, dict):
        return None

    tagged = value.get("embedded_payload")
    if isinstance(tagged, EmbeddedPayload):
        return tagged
    if isinstance(tagged, dict):
        try:
            return EmbeddedPayload(**tagged)
        except ValidationError:
            pass

    # Untagged result shapes; kept for workers that predate embedded_payload
    canvas = value.get("canvas_data")
    if canvas is None and isinstance(value.get("result"), dict):
        canvas = value["result"].get("canvas_data")
    if isinstance(canvas, dict) and canvas.get("type"):
        return EmbeddedPayload(
            type=canvas["type"],
            mode=canvas.get("mode") or "preview",
            data=canvas.get("data"),
            metadata={**(canvas.get("metadata") or {}), "agent": agent, "inferred": True}
        )

    blog = value.get("blog") or value.get("blog_post")
    if blog:
        return EmbeddedPayload(type="blog", mode="preview", data=blog,
                               metadata={"agent": agent, "action": "blog_preview", "inferred": True})

    service = value.get("service") or value.get("servicio")
    if service:
        return EmbeddedPayload(type="service", mode="preview", data=service,
                               metadata={"agent": agent, "action": "service_preview", "inferred": True})

    items = value.get("items")
    if isinstance(items, list):
        return EmbeddedPayload(
            type="list",
            mode="list",
            data={"items": items, "total_count": value.get("total_count", len(items))},
            metadata={"agent": agent, "action": "list_items", "inferred": True}
        )

    return None


def extract_embedded_payload(steps: List[CoordinationStep]) -> Optional[EmbeddedPayload]:
    """First recognizable payload across ``steps``, scanned in order."""
    for step in steps:
        payload = find_embedded_payload(step.result.data, step.agent)
        if payload is not None:
            return payload
    return None


class CoordinationPipeline(LoggerMixin):
    """Runs templated and dynamic multi-agent delegations."""

    def __init__(
        self,
        registry: AgentRegistry,
        dispatcher: TaskDispatcher,
        router: CommandRouter,
        context_store: SharedContextStore,
        templates: Optional[List[PipelineTemplate]] = None
    ):
        self.registry = registry
        self.dispatcher = dispatcher
        self.router = router
        self.context_store = context_store
        self.templates = templates if templates is not None else default_pipeline_templates()

    def select_template(self, command: str) -> Optional[PipelineTemplate]:
        return next((template for template in self.templates if template.matches(command)), None)

    async def run(self, command: str, context: Dict[str, Any], session_id: Optional[str] = None) -> CoordinationResult:
        """Run the matching template, or the dynamic form if none applies."""
        template = self.select_template(command)
        if template is not None:
            return await self.run_templated(template, command, context, session_id)
        return await self.run_dynamic(command, context, session_id)

    async def _delegate(
        self,
        agent_type: str,
        command: str,
        context: Dict[str, Any],
        session_id: Optional[str]
    ) -> AgentResult:
        agent = self.registry.find_by_type(agent_type)
        task = Task(command=command, target_agent=agent_type, context=context)
        result = await self.dispatcher.execute(agent, task, context)

        if session_id:
            await self.context_store.append_interaction(
                session_id,
                agent_type,
                context.get("action", "process"),
                {"command": command},
                result,
                result.execution_time_ms or 0,
                result.success
            )
            await self.context_store.set_shared(session_id, f"{agent_type}_lastResult", result)

        return result

    async def run_templated(
        self,
        template: PipelineTemplate,
        command: str,
        context: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None
    ) -> CoordinationResult:
        """
        Run ``template`` strictly in order, aborting on the first failure.

        The returned step list holds exactly the steps that executed.
        """
        context = dict(context or {})
        steps: List[CoordinationStep] = []
        previous: Optional[AgentResult] = None

        with self.log_operation("templated_pipeline", pipeline=template.name) as operation:
            for index, step in enumerate(template.steps, start=1):
                self.logger.info(f"Step {index}: {step.name} with {step.agent_type}")
                step_command = step.render(command, previous)
                step_context = {
                    **context,
                    "pipeline": template.name,
                    "step": index,
                    "previous_result": previous.model_dump(mode="json") if previous else None,
                }

                result = await self._delegate(step.agent_type, step_command, step_context, session_id)
                steps.append(CoordinationStep(agent=step.agent_type, step=index, name=step.name, result=result))
                operation.add(steps_run=index)

                if not result.success:
                    error = PipelineStepFailed(
                        f"Step {index} ({step.name}) failed on {step.agent_type}: {result.error}",
                        pipeline=template.name,
                        step=index
                    )
                    operation.fail(error)
                    return CoordinationResult(
                        success=False,
                        coordination_type=template.name,
                        steps=steps,
                        error=error.message,
                        error_code=error.code,
                        embedded_payload=extract_embedded_payload(steps)
                    )

                previous = result

            coordination = CoordinationResult(
                success=True,
                coordination_type=template.name,
                steps=steps,
                final_output={step.name: step.result.data for step in steps},
                embedded_payload=extract_embedded_payload(steps),
                summary=template.summary or f"Pipeline {template.name} completed"
            )

            if session_id:
                await self.context_store.set_shared(session_id, template.complete_key, coordination)

            return coordination

    def _order_by_registry(self, rules: List[RoutingRule]) -> List[RoutingRule]:
        """Sort rules by where their worker type first appears in the registry."""
        positions: Dict[str, int] = {}
        for position, agent in enumerate(self.registry.list_agents()):
            positions.setdefault(agent.agent_type, position)
        fallback = len(positions)
        return sorted(rules, key=lambda rule: positions.get(rule.target, fallback))

    async def run_dynamic(
        self,
        command: str,
        context: Optional[Dict[str, Any]] = None,
        session_id: Optional[str] = None
    ) -> CoordinationResult:
        """
        Fan the command out to every matching worker type.

        A failed step is recorded and the remaining steps still run; the
        overall result succeeds only if every step did.
        """
        context = dict(context or {})
        rules = self._order_by_registry(self.router.required_agent_types(command))

        if not rules:
            self.logger.info("No agents identified for coordination")
            return CoordinationResult(
                success=False,
                coordination_type=DYNAMIC_COORDINATION,
                error="Could not identify agents for this complex task",
                error_code="NO_AGENTS_IDENTIFIED",
                suggestion="Provide more details about what you need"
            )

        agent_types = [rule.target for rule in rules]
        steps: List[CoordinationStep] = []
        previous: Optional[AgentResult] = None

        with self.log_operation("dynamic_pipeline", agents=agent_types) as operation:
            for index, rule in enumerate(rules, start=1):
                step_context = {
                    **context,
                    "previous_result": previous.model_dump(mode="json") if previous else None,
                    "coordination_context": {
                        "total_agents": len(rules),
                        "current_step": index,
                        "other_agents": [t for t in agent_types if t != rule.target],
                    },
                }

                result = await self._delegate(rule.target, command, step_context, session_id)
                steps.append(CoordinationStep(agent=rule.target, step=index, name=rule.category, result=result))
                previous = result

                if session_id:
                    await self.context_store.set_shared(session_id, f"complex_task_step_{index}", result)

                if not result.success:
                    self.logger.warning(f"Dynamic step {index} on {rule.target} failed, continuing", error=result.error)

            failed = [step for step in steps if not step.success]
            operation.add(failed_steps=len(failed))
            coordination = CoordinationResult(
                success=not failed,
                coordination_type=DYNAMIC_COORDINATION,
                steps=steps,
                final_output=previous.data if previous else None,
                embedded_payload=extract_embedded_payload(steps),
                error=(
                    f"{len(failed)} of {len(steps)} steps failed: "
                    + ", ".join(f"{step.agent}: {step.result.error}" for step in failed)
                ) if failed else None,
                summary=f"Complex task completed using {len(steps)} agents"
            )

            if session_id:
                await self.context_store.set_shared(session_id, "complex_task_complete", coordination)

            return coordination
