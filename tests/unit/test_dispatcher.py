"""
Unit tests for deadline-bounded task dispatching.
"""

import pytest
import asyncio
import time

from agent_conductor.models.core import AgentResult, Task
from agent_conductor.orchestration.dispatcher import (
    TaskDispatcher, TaskHandle, TASK_SUCCEEDED, TASK_FAILED, TASK_TIMED_OUT, DUPLICATE_TASK
)
from agent_conductor.models.errors import TaskTimeout
from agent_conductor.utils.config import OrchestrationConfig

from conftest import MockAgent, RaisingAgent


class TestTaskDispatcher:
    """Test cases for TaskDispatcher.execute."""

    @pytest.mark.asyncio
    async def test_handler_result_returned_verbatim(self, dispatcher):
        expected = AgentResult(success=True, data={"answer": 42}, message="done", agent_name="worker")
        agent = MockAgent("worker", result=expected)
        await agent.activate()

        result = await dispatcher.execute(agent, Task(command="x"))

        assert result is expected
        assert result.data == {"answer": 42}
        assert dispatcher.in_flight_count() == 0

    @pytest.mark.asyncio
    async def test_missing_agent_is_worker_unavailable(self, dispatcher):
        result = await dispatcher.execute(None, Task(command="x", target_agent="BlogAgent"))

        assert result.success is False
        assert result.error_code == "WORKER_UNAVAILABLE"
        assert result.agent_name == "BlogAgent"
        assert dispatcher.in_flight_count() == 0
        assert dispatcher.metrics.total_tasks == 0

    @pytest.mark.asyncio
    async def test_deadline_abandons_slow_handler(self):
        """A 0.1s deadline against a 0.5s handler yields TaskTimeout near the deadline."""
        dispatcher = TaskDispatcher(OrchestrationConfig(task_timeout_seconds=0.1))
        agent = MockAgent("slow", delay=0.5)
        before = dispatcher.in_flight_count()

        started = time.monotonic()
        result = await dispatcher.execute(agent, Task(command="x"))
        elapsed = time.monotonic() - started

        assert result.success is False
        assert result.error_code == "TASK_TIMEOUT"
        assert elapsed < 0.4
        assert dispatcher.in_flight_count() == before
        assert dispatcher.timeouts == 1

        # The handler was not cancelled; it finishes on its own later
        assert agent.finished_count == 0
        await asyncio.sleep(0.6)
        assert agent.finished_count == 1
        assert dispatcher.in_flight_count() == before

    @pytest.mark.asyncio
    async def test_per_call_timeout_override(self, dispatcher):
        agent = MockAgent("slow", delay=0.3)
        result = await dispatcher.execute(agent, Task(command="x"), timeout_seconds=0.05)
        assert result.error_code == "TASK_TIMEOUT"

    @pytest.mark.asyncio
    async def test_handler_exception_converted_to_failure(self, dispatcher):
        agent = RaisingAgent("raiser")

        result = await dispatcher.execute(agent, Task(command="x"))

        assert result.success is False
        assert result.error_code == "HANDLER_EXCEPTION"
        assert "Handler exploded" in result.error
        assert dispatcher.in_flight_count() == 0
        assert dispatcher.error_handler.get_error_stats()["raiser"] == {"validation": 1}

    @pytest.mark.asyncio
    async def test_failed_result_counts_as_failure(self, dispatcher, failing_mock_agent):
        result = await dispatcher.execute(failing_mock_agent, Task(command="x"))

        assert result.success is False
        assert dispatcher.metrics.failed_tasks == 1
        assert dispatcher.get_metrics()["agents"]["failing_agent"]["failed_tasks"] == 1

    @pytest.mark.asyncio
    async def test_in_flight_record_exists_only_while_running(self, dispatcher):
        agent = MockAgent("worker", delay=0.1)
        task = Task(command="x")

        pending = asyncio.create_task(dispatcher.execute(agent, task))
        await asyncio.sleep(0.02)

        assert dispatcher.is_in_flight(task.task_id)
        records = dispatcher.get_in_flight()
        assert len(records) == 1
        assert records[0].agent_id == agent.id
        assert records[0].task is task

        await pending
        assert not dispatcher.is_in_flight(task.task_id)

    @pytest.mark.asyncio
    async def test_duplicate_task_id_rejected_while_in_flight(self, dispatcher):
        agent = MockAgent("worker", delay=0.1)
        task = Task(command="x")

        first = asyncio.create_task(dispatcher.execute(agent, task))
        await asyncio.sleep(0.02)
        duplicate = await dispatcher.execute(agent, task)
        original = await first

        assert duplicate.success is False
        assert duplicate.error_code == DUPLICATE_TASK
        assert original.success is True
        assert agent.execution_count == 1

    @pytest.mark.asyncio
    async def test_task_id_reusable_after_completion(self, dispatcher, mock_agent):
        task = Task(command="x")
        await dispatcher.execute(mock_agent, task)
        result = await dispatcher.execute(mock_agent, task)
        assert result.success is True

    @pytest.mark.asyncio
    async def test_concurrency_bound(self):
        dispatcher = TaskDispatcher(OrchestrationConfig(max_concurrent_tasks=2))
        agent = MockAgent("worker", delay=0.1)

        tasks = [asyncio.create_task(dispatcher.execute(agent, Task(command=str(i)))) for i in range(4)]
        await asyncio.sleep(0.05)
        assert dispatcher.in_flight_count() == 2

        results = await asyncio.gather(*tasks)
        assert all(r.success for r in results)

    @pytest.mark.asyncio
    async def test_deadline_covers_wait_for_slot(self):
        """Callers queued behind a full dispatcher still time out within one deadline."""
        dispatcher = TaskDispatcher(OrchestrationConfig(task_timeout_seconds=0.2, max_concurrent_tasks=1))
        agent = MockAgent("slow", delay=1.0)

        started = time.monotonic()
        results = await asyncio.gather(*[
            dispatcher.execute(agent, Task(command=str(i))) for i in range(3)
        ])
        elapsed = time.monotonic() - started

        assert [r.error_code for r in results] == ["TASK_TIMEOUT"] * 3
        assert elapsed < 0.5
        assert "waiting for a free slot" in results[1].error
        assert agent.execution_count == 1
        assert dispatcher.timeouts == 3
        assert dispatcher.in_flight_count() == 0

    @pytest.mark.asyncio
    async def test_abandoned_handler_keeps_its_slot(self):
        dispatcher = TaskDispatcher(OrchestrationConfig(task_timeout_seconds=0.1, max_concurrent_tasks=1))
        slow = MockAgent("slow", delay=0.3)
        quick = MockAgent("quick")

        first = await dispatcher.execute(slow, Task(command="x"))
        blocked = await dispatcher.execute(quick, Task(command="y"))
        await asyncio.sleep(0.3)
        freed = await dispatcher.execute(quick, Task(command="z"))

        assert first.error_code == "TASK_TIMEOUT"
        assert blocked.error_code == "TASK_TIMEOUT"
        assert quick.execution_count == 1
        assert freed.success is True

    @pytest.mark.asyncio
    async def test_duplicate_rejected_while_waiting_for_slot(self):
        dispatcher = TaskDispatcher(OrchestrationConfig(max_concurrent_tasks=1))
        agent = MockAgent("worker", delay=0.1)
        task = Task(command="x")

        running = asyncio.create_task(dispatcher.execute(agent, Task(command="other")))
        queued = asyncio.create_task(dispatcher.execute(agent, task))
        await asyncio.sleep(0.02)
        duplicate = await dispatcher.execute(agent, task)

        assert duplicate.error_code == DUPLICATE_TASK
        assert (await queued).success is True
        assert (await running).success is True

    @pytest.mark.asyncio
    async def test_events_emitted(self):
        dispatcher = TaskDispatcher(OrchestrationConfig(task_timeout_seconds=0.05))
        events = []
        for name in (TASK_SUCCEEDED, TASK_FAILED, TASK_TIMED_OUT):
            dispatcher.add_listener(name, lambda payload, name=name: events.append((name, payload["agent_name"])))

        await dispatcher.execute(MockAgent("ok"), Task(command="x"))
        await dispatcher.execute(MockAgent("bad", should_fail=True), Task(command="x"))
        await dispatcher.execute(MockAgent("slow", delay=0.2), Task(command="x"))

        assert events == [(TASK_SUCCEEDED, "ok"), (TASK_FAILED, "bad"), (TASK_TIMED_OUT, "slow")]

    @pytest.mark.asyncio
    async def test_metrics_summary(self, dispatcher, mock_agent):
        await dispatcher.execute(mock_agent, Task(command="x"))
        metrics = dispatcher.get_metrics()

        assert metrics["total_tasks"] == 1
        assert metrics["success_rate"] == 100.0
        assert metrics["in_flight"] == 0
        assert metrics["timeouts"] == 0


class TestTaskHandle:
    """Test cases for TaskHandle."""

    @pytest.mark.asyncio
    async def test_wait_returns_result(self):
        async def work():
            return AgentResult(success=True, agent_name="w")

        handle = TaskHandle(work(), "task_1", "w")
        result = await handle.wait(1.0)

        assert result.success is True
        assert handle.done()
        assert handle.abandoned is False

    @pytest.mark.asyncio
    async def test_timeout_marks_abandoned_without_cancelling(self):
        finished = asyncio.Event()

        async def work():
            await asyncio.sleep(0.1)
            finished.set()
            return AgentResult(success=True, agent_name="w")

        handle = TaskHandle(work(), "task_1", "w")
        with pytest.raises(TaskTimeout) as exc_info:
            await handle.wait(0.01)

        assert exc_info.value.code == "TASK_TIMEOUT"
        assert handle.abandoned is True
        await asyncio.wait_for(finished.wait(), 1.0)
        assert handle.done()

    @pytest.mark.asyncio
    async def test_abandoned_failure_is_not_reraised(self):
        async def work():
            await asyncio.sleep(0.05)
            raise RuntimeError("late failure")

        handle = TaskHandle(work(), "task_1", "w")
        with pytest.raises(TaskTimeout):
            await handle.wait(0.01)

        await asyncio.sleep(0.1)
        assert handle.done()
