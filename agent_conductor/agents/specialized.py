"""
Specialized workers backed by a text-completion service.
"""

import json
from typing import Any, Dict, List, Optional

from ..models.core import EmbeddedPayload, Task
from ..services.completion import CompletionOptions, TextCompletionService
from .base import BaseAgent


class CompletionAgent(BaseAgent):
    """
    Worker that turns a task into a prompt and delegates to a completion service.

    Subclasses set ``system_prompt`` and may override :meth:`build_output` to
    shape the returned data.
    """

    system_prompt = "You are a helpful assistant."

    def __init__(
        self,
        name: str,
        completion_service: TextCompletionService,
        description: str = "",
        capabilities: Optional[List[str]] = None,
        options: Optional[CompletionOptions] = None
    ):
        super().__init__(name, description, capabilities)
        self.completion_service = completion_service
        self.options = options or CompletionOptions(system_prompt=self.system_prompt)

    def build_prompt(self, task: Task, context: Dict[str, Any]) -> str:
        parts = [task.command]

        previous = context.get("previous_result")
        if previous is not None:
            parts.append(f"Previous step result:\n{json.dumps(previous, default=str, ensure_ascii=False)}")

        coordination = context.get("coordination_context")
        if coordination:
            parts.append(
                f"You are step {coordination.get('current_step')} of {coordination.get('total_agents')}; "
                f"other agents involved: {', '.join(coordination.get('other_agents', [])) or 'none'}."
            )

        if context.get("routing_reason"):
            parts.append(f"Routing note: {context['routing_reason']}")

        return "\n\n".join(parts)

    def build_output(self, task: Task, text: str) -> Dict[str, Any]:
        return {"content": text}

    async def execute_task(self, task: Task, context: Dict[str, Any]) -> Dict[str, Any]:
        self.validate_input({"command": task.command}, ["command"])
        prompt = self.build_prompt(task, context)
        text = await self.completion_service.complete(prompt, self.options)
        return self.build_output(task, text)


class BlogAgent(CompletionAgent):
    """Creates and optimizes blog content."""

    system_prompt = "You write clear, well structured blog posts in the user's language."

    def __init__(self, completion_service: TextCompletionService, **kwargs):
        super().__init__(
            "BlogAgent",
            completion_service,
            description="Blog content creation and optimization",
            capabilities=['content_optimization', 'seo_analysis', 'tag_generation', 'content_creation'],
            **kwargs
        )

    def build_output(self, task: Task, text: str) -> Dict[str, Any]:
        lines = [line.strip() for line in text.splitlines() if line.strip()]
        title = lines[0].lstrip("# ").strip() if lines else task.command[:80]
        post = {"title": title, "content": text}
        return {
            "content": text,
            "embedded_payload": EmbeddedPayload(
                type="blog",
                mode="preview",
                data=post,
                metadata={"agent": self.name, "action": "blog_preview"}
            ).model_dump()
        }


class SEOAgent(CompletionAgent):
    """Technical SEO review and keyword optimization."""

    system_prompt = "You are a technical SEO specialist. Return concrete, actionable recommendations."

    def __init__(self, completion_service: TextCompletionService, **kwargs):
        super().__init__(
            "SEOAgent",
            completion_service,
            description="Technical SEO and ranking analysis",
            capabilities=['technical_seo', 'keyword_research', 'competitor_analysis', 'seo_audit'],
            **kwargs
        )

    def build_output(self, task: Task, text: str) -> Dict[str, Any]:
        recommendations = [line.lstrip("-* ").strip() for line in text.splitlines() if line.strip()]
        return {"content": text, "recommendations": recommendations}


class ServicesAgent(CompletionAgent):
    """Analysis of professional service offerings."""

    system_prompt = "You analyse professional service offerings: audience, value proposition and pricing."

    def __init__(self, completion_service: TextCompletionService, **kwargs):
        super().__init__(
            "ServicesAgent",
            completion_service,
            description="Professional services analysis and management",
            capabilities=['service_management', 'pricing_strategy', 'content_generation', 'service_analysis'],
            **kwargs
        )

    def build_output(self, task: Task, text: str) -> Dict[str, Any]:
        return {
            "content": text,
            "embedded_payload": EmbeddedPayload(
                type="service",
                mode="preview",
                data={"analysis": text},
                metadata={"agent": self.name, "action": "service_preview"}
            ).model_dump()
        }


def build_default_fleet(completion_service: TextCompletionService) -> List[BaseAgent]:
    """Workers matching the built-in routing rules."""
    return [
        BlogAgent(completion_service),
        SEOAgent(completion_service),
        ServicesAgent(completion_service),
    ]
