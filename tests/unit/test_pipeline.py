"""
Unit tests for templated and dynamic coordination pipelines.
"""

import json
import pytest

from agent_conductor.models.core import AgentResult, CoordinationStep, EmbeddedPayload
from agent_conductor.orchestration.pipeline import (
    CoordinationPipeline, PipelineStep, PipelineTemplate,
    default_pipeline_templates, extract_embedded_payload
)
from agent_conductor.orchestration.router import CommandRouter

from conftest import MockAgent


@pytest.fixture
def pipeline(registry, dispatcher, routing_config, context_store):
    router = CommandRouter(registry, routing_config)
    return CoordinationPipeline(registry, dispatcher, router, context_store)


async def register_all(registry, *agents):
    for agent in agents:
        await registry.register(agent)


def step(agent, index, data, success=True):
    return CoordinationStep(
        agent=agent,
        step=index,
        result=AgentResult(success=success, data=data, agent_name=agent)
    )


class TestPipelineTemplate:
    """Test cases for template selection."""

    def test_service_to_blog_triggers(self):
        template = default_pipeline_templates()[0]

        assert template.name == "service_to_blog"
        assert [s.agent_type for s in template.steps] == ["ServicesAgent", "BlogAgent", "SEOAgent"]
        assert template.matches("Analiza el servicio y crea un BLOG") is True
        assert template.matches("write a blog about our service") is True
        assert template.matches("crea un blog") is False
        assert template.matches("analiza el servicio") is False

    def test_template_without_triggers_never_matches(self):
        template = PipelineTemplate(name="manual", steps=[PipelineStep(agent_type="BlogAgent", name="only")])
        assert template.matches("anything") is False

    def test_step_render_includes_previous_json(self):
        pipeline_step = PipelineStep(agent_type="BlogAgent", name="b", prompt_template="{command} | {previous}")
        previous = AgentResult(success=True, data={"analysis": "x"}, agent_name="ServicesAgent")

        rendered = pipeline_step.render("cmd", previous)
        command, payload = rendered.split(" | ", 1)

        assert command == "cmd"
        assert json.loads(payload)["data"] == {"analysis": "x"}
        assert pipeline_step.render("cmd", None) == "cmd | "


class TestTemplatedPipeline:
    """Test cases for run_templated."""

    @pytest.mark.asyncio
    async def test_runs_steps_in_order_and_writes_completion(self, pipeline, registry, context_store, fleet):
        await register_all(registry, *fleet.values())
        session = await context_store.get_or_create_session("s1")
        template = default_pipeline_templates()[0]

        result = await pipeline.run_templated(template, "analiza servicio y crea blog", {}, session.session_id)

        assert result.success is True
        assert result.coordination_type == "service_to_blog"
        assert result.agents == ["ServicesAgent", "BlogAgent", "SEOAgent"]
        assert [s.step for s in result.steps] == [1, 2, 3]
        assert set(result.final_output) == {"service_analysis", "blog_creation", "seo_optimization"}

        stored = await context_store.get_shared("s1", "service_to_blog_complete")
        assert stored["success"] is True
        assert len(stored["steps"]) == 3
        assert await context_store.get_shared("s1", "BlogAgent_lastResult") is not None

    @pytest.mark.asyncio
    async def test_each_step_receives_previous_result(self, pipeline, registry, fleet):
        await register_all(registry, *fleet.values())
        template = default_pipeline_templates()[0]

        await pipeline.run_templated(template, "analiza servicio y crea blog")

        services_task, services_context = fleet["ServicesAgent"].received[0]
        blog_task, blog_context = fleet["BlogAgent"].received[0]
        assert services_context["previous_result"] is None
        assert "analiza servicio y crea blog" in services_task.command
        assert blog_context["previous_result"]["agent_name"] == "services_worker"
        assert "Mock result from services_worker" in blog_task.command

    @pytest.mark.asyncio
    async def test_abort_after_failed_step(self, pipeline, registry, context_store, fleet):
        fleet["BlogAgent"].should_fail = True
        await register_all(registry, *fleet.values())
        session = await context_store.get_or_create_session("s1")
        template = default_pipeline_templates()[0]

        result = await pipeline.run_templated(template, "servicio y blog", {}, session.session_id)

        assert result.success is False
        assert result.error_code == "PIPELINE_STEP_FAILED"
        assert len(result.steps) == 2
        assert result.steps[0].success is True
        assert result.steps[1].success is False
        assert fleet["SEOAgent"].execution_count == 0
        assert await context_store.get_shared("s1", "service_to_blog_complete") is None

    @pytest.mark.asyncio
    async def test_first_step_failure_keeps_one_step(self, pipeline, registry, fleet):
        fleet["ServicesAgent"].should_raise = True
        await register_all(registry, *fleet.values())

        result = await pipeline.run_templated(default_pipeline_templates()[0], "servicio y blog")

        assert len(result.steps) == 1
        assert fleet["BlogAgent"].execution_count == 0
        assert fleet["SEOAgent"].execution_count == 0

    @pytest.mark.asyncio
    async def test_missing_worker_fails_step(self, pipeline, registry, fleet):
        await register_all(registry, fleet["ServicesAgent"], fleet["SEOAgent"])

        result = await pipeline.run_templated(default_pipeline_templates()[0], "servicio y blog")

        assert result.success is False
        assert len(result.steps) == 2
        assert result.steps[1].result.error_code == "WORKER_UNAVAILABLE"
        assert fleet["SEOAgent"].execution_count == 0

    @pytest.mark.asyncio
    async def test_records_interactions(self, pipeline, registry, context_store, fleet):
        await register_all(registry, *fleet.values())
        await context_store.get_or_create_session("s1")

        await pipeline.run_templated(default_pipeline_templates()[0], "servicio y blog", {}, "s1")

        session = await context_store.get_session("s1")
        assert [i.agent for i in session.interactions] == ["ServicesAgent", "BlogAgent", "SEOAgent"]

    @pytest.mark.asyncio
    async def test_run_selects_template(self, pipeline, registry, fleet):
        await register_all(registry, *fleet.values())

        templated = await pipeline.run("analiza servicio y crea blog", {})
        dynamic = await pipeline.run("análisis completo de seo", {})

        assert templated.coordination_type == "service_to_blog"
        assert dynamic.coordination_type == "complex_multi_agent"


class TestDynamicPipeline:
    """Test cases for run_dynamic."""

    @pytest.mark.asyncio
    async def test_failure_does_not_abort_remaining_steps(self, pipeline, registry, context_store, fleet):
        fleet["SEOAgent"].should_fail = True
        await register_all(registry, fleet["SEOAgent"], fleet["ServicesAgent"])
        await context_store.get_or_create_session("s1")

        result = await pipeline.run_dynamic("revisar seo y precio", {}, "s1")

        assert result.success is False
        assert len(result.steps) == 2
        assert result.steps[0].agent == "SEOAgent" and result.steps[0].success is False
        assert result.steps[1].agent == "ServicesAgent" and result.steps[1].success is True
        assert result.steps[0].result.error == "Mock failure in seo_worker"
        assert "SEOAgent" in result.error
        assert fleet["ServicesAgent"].execution_count == 1

        assert (await context_store.get_shared("s1", "complex_task_step_1"))["success"] is False
        assert (await context_store.get_shared("s1", "complex_task_step_2"))["success"] is True
        assert (await context_store.get_shared("s1", "SEOAgent_lastResult"))["success"] is False
        assert (await context_store.get_shared("s1", "complex_task_complete"))["success"] is False

    @pytest.mark.asyncio
    async def test_coordination_context_passed_to_steps(self, pipeline, registry, fleet):
        await register_all(registry, *fleet.values())

        result = await pipeline.run_dynamic("seo y precio")

        assert result.success is True
        _, seo_context = fleet["SEOAgent"].received[0]
        _, services_context = fleet["ServicesAgent"].received[0]
        assert seo_context["coordination_context"] == {
            "total_agents": 2,
            "current_step": 1,
            "other_agents": ["ServicesAgent"],
        }
        assert seo_context["previous_result"] is None
        assert services_context["previous_result"]["agent_name"] == "seo_worker"
        assert services_context["coordination_context"]["current_step"] == 2
        assert result.final_output["result"] == "Mock result from services_worker"

    @pytest.mark.asyncio
    async def test_steps_follow_registry_order(self, pipeline, registry, fleet):
        await register_all(registry, fleet["ServicesAgent"], fleet["BlogAgent"])

        result = await pipeline.run_dynamic("blog sobre el precio")

        assert result.agents == ["ServicesAgent", "BlogAgent"]

    @pytest.mark.asyncio
    async def test_no_agents_identified(self, pipeline, registry, fleet):
        await register_all(registry, *fleet.values())

        result = await pipeline.run_dynamic("algo totalmente distinto")

        assert result.success is False
        assert result.steps == []
        assert result.suggestion is not None


class TestPayloadExtraction:
    """Test cases for embedded payload extraction."""

    def test_tagged_payload_used_as_is(self):
        payload = EmbeddedPayload(type="blog", mode="edit", data={"title": "T"}, metadata={"agent": "BlogAgent"})
        steps = [
            step("ServicesAgent", 1, {"content": "plain"}),
            step("BlogAgent", 2, {"content": "x", "embedded_payload": payload.model_dump()}),
        ]

        extracted = extract_embedded_payload(steps)

        assert extracted == payload
        assert "inferred" not in extracted.metadata

    def test_first_step_wins(self):
        steps = [
            step("ServicesAgent", 1, {"service": {"name": "Web"}}),
            step("BlogAgent", 2, {"embedded_payload": {"type": "blog", "data": {}}}),
        ]

        assert extract_embedded_payload(steps).type == "service"

    def test_legacy_shapes_are_flagged_inferred(self):
        canvas = extract_embedded_payload([step("A", 1, {"result": {"canvas_data": {"type": "chart", "data": [1]}}})])
        blog = extract_embedded_payload([step("A", 1, {"blog_post": {"title": "T"}})])
        items = extract_embedded_payload([step("A", 1, {"items": [1, 2, 3]})])

        assert canvas.type == "chart" and canvas.metadata["inferred"] is True
        assert blog.type == "blog" and blog.metadata["inferred"] is True
        assert items.type == "list" and items.data == {"items": [1, 2, 3], "total_count": 3}

    def test_canvas_with_null_metadata_and_mode(self):
        extracted = extract_embedded_payload([
            step("ServicesAgent", 1, {"canvas_data": {"type": "service", "mode": None, "data": {"n": 1}, "metadata": None}})
        ])

        assert extracted.type == "service"
        assert extracted.mode == "preview"
        assert extracted.metadata == {"agent": "ServicesAgent", "inferred": True}

    def test_malformed_tag_falls_back_to_heuristics(self):
        extracted = extract_embedded_payload([step("A", 1, {"embedded_payload": {"mode": "x"}, "servicio": {"n": 1}})])
        assert extracted.type == "service"

    def test_no_payload(self):
        assert extract_embedded_payload([step("A", 1, "text"), step("B", 2, {"content": "x"})]) is None
        assert extract_embedded_payload([]) is None
