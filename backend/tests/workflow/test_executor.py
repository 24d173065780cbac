# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Unit tests for graph traversal and run orchestration
"""

import asyncio
import json
from collections import Counter
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from hookflow.execution_store import FileExecutionStore
from hookflow.workflow.actions import ActionRegistry
from hookflow.workflow.context import ExecutionContext
from hookflow.workflow.executor import WorkflowExecutor, WorkflowGraph, execute_workflow
from hookflow.workflow.models import ExecutionRun, RunStatus, StepResult, StepStatus
from tests.factories import action_node, edge, http_node, trigger_node


class RecordingAction:
    """Custom action that records the resolved configs it receives"""

    def __init__(self, result=None):
        self.calls = []
        self.result = result or StepResult(success=True, data={"ok": True})

    async def __call__(self, config):
        self.calls.append(config)
        return self.result


def api_handler(request: httpx.Request) -> httpx.Response:
    """Fake upstream API used by the HTTP Request nodes"""
    if request.url.path == "/items":
        return httpx.Response(200, json={"id": 7, "name": "widget"})
    if request.url.path == "/fail":
        return httpx.Response(500, text="upstream exploded")
    if request.url.path == "/missing":
        return httpx.Response(404, text="no such thing")
    return httpx.Response(200, json={"echo": request.content.decode() or None})


@pytest.fixture
def registry(make_http_client):
    return ActionRegistry(http_client=make_http_client(api_handler))


@pytest.fixture
def executor(registry, store):
    return WorkflowExecutor(registry, store)


async def start_run(store, execution_id="exec-1", workflow_id="wf-1"):
    await store.insert_run(ExecutionRun(id=execution_id, workflow_id=workflow_id))


def started_nodes(logs):
    return Counter(log.node_id for log in logs)


class TestWorkflowGraph:
    def test_roots_are_triggers_without_incoming_edges(self):
        graph = WorkflowGraph(
            [trigger_node("t1"), trigger_node("t2"), action_node("a", "A", actionType="Noop")],
            [edge("t1", "t2"), edge("t2", "a")],
        )

        assert [node.id for node in graph.roots] == ["t1"]

    def test_ancestors_follow_edges_backwards(self):
        graph = WorkflowGraph(
            [trigger_node("t"), action_node("a", "A"), action_node("b", "B"), action_node("c", "C")],
            [edge("t", "a"), edge("a", "b"), edge("t", "c")],
        )

        assert graph.ancestors("b") == {"t", "a"}
        assert graph.ancestors("c") == {"t"}

    def test_ancestors_tolerate_cycles(self):
        graph = WorkflowGraph(
            [trigger_node("t"), action_node("a", "A"), action_node("b", "B")],
            [edge("t", "a"), edge("a", "b"), edge("b", "a")],
        )

        assert graph.ancestors("a") == {"t", "b"}


class TestTraversal:
    """Graph traversal semantics"""

    @pytest.mark.asyncio
    async def test_triggers_only_never_run_actions(self, store):
        registry = MagicMock()
        registry.execute = AsyncMock()
        executor = WorkflowExecutor(registry, store)
        await start_run(store)

        result = await executor.execute(
            [trigger_node("t1"), trigger_node("t2"), action_node("a", "Orphan", actionType="HTTP Request")],
            [],
            {"source": "test"},
            "exec-1",
            "wf-1",
        )

        assert result.success is True
        assert set(result.results) == {"t1", "t2"}
        registry.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_trigger_output_merges_input(self, executor, store):
        await start_run(store)

        result = await executor.execute([trigger_node("t")], [], {"user": "ada"}, "exec-1", "wf-1")

        data = result.results["t"].data
        assert data["triggered"] is True
        assert data["user"] == "ada"
        assert isinstance(data["timestamp"], int)

    @pytest.mark.asyncio
    async def test_chain_resolves_upstream_outputs(self, executor, store, recorded_requests):
        await start_run(store)
        nodes = [
            trigger_node("t"),
            http_node("fetch-1", "Fetch", "https://api.example.com/items"),
            http_node(
                "post-1", "Post", "https://api.example.com/echo", method="POST",
                httpBody='{"item": "{{Fetch.id}}", "by_id": "{{@fetch-1:Fetch.name}}"}',
            ),
        ]

        result = await executor.execute(nodes, [edge("t", "fetch-1"), edge("fetch-1", "post-1")], {}, "exec-1", "wf-1")

        assert result.success is True
        assert json.loads(recorded_requests[1].content) == {"item": "7", "by_id": "widget"}

    @pytest.mark.asyncio
    async def test_diamond_runs_join_node_once(self, executor, store, registry):
        action = RecordingAction()
        registry.register("Record", action)
        await start_run(store)
        nodes = [
            trigger_node("t"),
            action_node("a", "A", actionType="Record"),
            action_node("b", "B", actionType="Record"),
            action_node("c", "C", actionType="Record"),
        ]
        edges = [edge("t", "a"), edge("t", "b"), edge("a", "c"), edge("b", "c")]

        result = await executor.execute(nodes, edges, {}, "exec-1", "wf-1")

        assert result.success is True
        assert len(action.calls) == 3
        assert all(count == 1 for count in started_nodes(await store.list_logs("exec-1")).values())

    @pytest.mark.asyncio
    async def test_cycle_terminates(self, executor, store, registry):
        action = RecordingAction()
        registry.register("Record", action)
        await start_run(store)
        nodes = [trigger_node("t"), action_node("a", "A", actionType="Record"), action_node("b", "B", actionType="Record")]

        await executor.execute(nodes, [edge("t", "a"), edge("a", "b"), edge("b", "a")], {}, "exec-1", "wf-1")

        assert len(action.calls) == 2

    @pytest.mark.asyncio
    async def test_failed_branch_stops_only_its_subtree(self, executor, store):
        await start_run(store)
        nodes = [
            trigger_node("t"),
            http_node("a", "Good", "https://api.example.com/items"),
            http_node("b", "Bad", "https://api.example.com/fail"),
            http_node("d", "After Bad", "https://api.example.com/items"),
        ]
        edges = [edge("t", "a"), edge("t", "b"), edge("b", "d")]

        result = await executor.execute(nodes, edges, {}, "exec-1", "wf-1")

        assert result.success is False
        logs = {log.node_id: log for log in await store.list_logs("exec-1")}
        assert logs["a"].status == StepStatus.SUCCESS
        assert logs["b"].status == StepStatus.ERROR
        assert "d" not in logs

        run = await store.get_run("exec-1")
        assert run.status == RunStatus.ERROR
        assert run.error == "HTTP request failed with status 500: upstream exploded"

    @pytest.mark.asyncio
    async def test_fatal_error_recorded_verbatim(self, executor, store):
        await start_run(store)
        nodes = [trigger_node("t"), http_node("a", "Lookup", "https://api.example.com/missing")]

        result = await executor.execute(nodes, [edge("t", "a")], {}, "exec-1", "wf-1")

        step = result.results["a"]
        assert step.fatal is True
        assert step.status_code == 404
        assert step.error == "HTTP request failed with status 404: no such thing"
        log = [log for log in await store.list_logs("exec-1") if log.node_id == "a"][0]
        assert log.error == step.error

    @pytest.mark.asyncio
    async def test_action_without_type_fails_without_dispatch(self, store):
        registry = MagicMock()
        registry.execute = AsyncMock()
        executor = WorkflowExecutor(registry, store)
        await start_run(store)

        result = await executor.execute(
            [trigger_node("t"), action_node("a", "Unset")], [edge("t", "a")], {}, "exec-1", "wf-1"
        )

        assert result.results["a"].error == 'Action node "Unset" has no action type configured'
        registry.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_node_type_fails(self, executor, store):
        await start_run(store)
        nodes = [trigger_node("t"), {"id": "x", "data": {"type": "condition", "label": "If", "config": {}}}]

        result = await executor.execute(nodes, [edge("t", "x")], {}, "exec-1", "wf-1")

        assert result.results["x"].error == "Unknown node type: condition"

    @pytest.mark.asyncio
    async def test_edge_to_missing_node_is_skipped(self, executor, store):
        await start_run(store)

        result = await executor.execute([trigger_node("t")], [edge("t", "ghost")], {}, "exec-1", "wf-1")

        assert result.success is True
        assert set(result.results) == {"t"}

    @pytest.mark.asyncio
    async def test_failure_is_not_masked_by_colliding_sanitized_id(self, executor, store, registry):
        async def fail(config):
            return StepResult(success=False, error="nope")

        async def slow_success(config):
            await asyncio.sleep(0.05)
            return StepResult(success=True, data={"ok": True})

        registry.register("Fail", fail)
        registry.register("Slow", slow_success)
        await start_run(store)
        nodes = [
            trigger_node("t"),
            action_node("a-b", "Failing", actionType="Fail"),
            action_node("a.b", "Succeeding", actionType="Slow"),
        ]

        result = await executor.execute(nodes, [edge("t", "a-b"), edge("t", "a.b")], {}, "exec-1", "wf-1")

        assert result.success is False
        assert result.results["a_b"].success is True
        run = await store.get_run("exec-1")
        assert run.status == RunStatus.ERROR
        assert run.error == "nope"

    @pytest.mark.asyncio
    async def test_sibling_outputs_are_not_visible(self, executor, store, registry):
        action = RecordingAction(StepResult(success=True, data={"x": "secret"}))
        registry.register("Record", action)
        await start_run(store)
        nodes = [
            trigger_node("t"),
            action_node("a", "Alpha", actionType="Record"),
            action_node("b", "Beta", actionType="Record", note="{{Alpha.x}}"),
        ]

        await executor.execute(nodes, [edge("t", "a"), edge("t", "b")], {}, "exec-1", "wf-1")

        beta_config = [call for call in action.calls if "note" in call][0]
        assert beta_config["note"] == "{{Alpha.x}}"

    @pytest.mark.asyncio
    async def test_results_are_keyed_by_sanitized_id(self, executor, store):
        await start_run(store)

        result = await executor.execute([trigger_node("trigger-1")], [], {}, "exec-1", "wf-1")

        assert "trigger_1" in result.results


class TestRunOrchestration:
    """Run record lifecycle"""

    @pytest.mark.asyncio
    async def test_empty_graph_is_success(self, executor, store):
        await start_run(store)

        result = await executor.execute([], [], {}, "exec-1", "wf-1")

        assert result.success is True
        assert result.results == {}
        run = await store.get_run("exec-1")
        assert run.status == RunStatus.SUCCESS
        assert run.completed_at is not None
        assert run.duration_ms is not None

    @pytest.mark.asyncio
    async def test_run_output_is_last_result(self, executor, store):
        await start_run(store)
        nodes = [trigger_node("t"), http_node("a", "Fetch", "https://api.example.com/items")]

        await executor.execute(nodes, [edge("t", "a")], {}, "exec-1", "wf-1")

        run = await store.get_run("exec-1")
        assert run.status == RunStatus.SUCCESS
        assert run.output == {"id": 7, "name": "widget"}
        assert run.error is None

    @pytest.mark.asyncio
    async def test_cancelled_before_start_runs_nothing(self, executor, store, registry):
        action = RecordingAction()
        registry.register("Record", action)
        await start_run(store)
        await store.update_run("exec-1", {"status": RunStatus.CANCELLED})

        result = await executor.execute(
            [trigger_node("t"), action_node("a", "A", actionType="Record")], [edge("t", "a")], {}, "exec-1", "wf-1"
        )

        assert result.results == {}
        assert action.calls == []
        assert (await store.get_run("exec-1")).status == RunStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_mid_run_skips_unstarted_nodes(self, executor, store, registry):
        later = RecordingAction()

        async def cancel_then_succeed(config):
            executor.cancel("exec-1")
            return StepResult(success=True, data={"done": True})

        registry.register("Cancel", cancel_then_succeed)
        registry.register("Record", later)
        await start_run(store)
        nodes = [
            trigger_node("t"),
            action_node("a", "A", actionType="Cancel"),
            action_node("b", "B", actionType="Record"),
        ]

        await executor.execute(nodes, [edge("t", "a"), edge("a", "b")], {}, "exec-1", "wf-1")

        assert later.calls == []
        assert (await store.get_run("exec-1")).status == RunStatus.CANCELLED
        assert executor.active_executions == {}

    @pytest.mark.asyncio
    async def test_terminal_run_is_not_overwritten(self, executor, store, registry):
        async def cancel_out_of_band(config):
            await store.update_run("exec-1", {"status": RunStatus.CANCELLED})
            return StepResult(success=True)

        registry.register("Cancel", cancel_out_of_band)
        await start_run(store)

        await executor.execute(
            [trigger_node("t"), action_node("a", "A", actionType="Cancel")], [edge("t", "a")], {}, "exec-1", "wf-1"
        )

        assert (await store.get_run("exec-1")).status == RunStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_racing_finalization_is_kept(self, registry, tmp_path):
        store = FileExecutionStore(str(tmp_path / "executions"))
        executor = WorkflowExecutor(registry, store)
        await store.insert_run(ExecutionRun(id="exec-1", workflow_id="wf-1", status=RunStatus.RUNNING))
        context = ExecutionContext("exec-1", "wf-1")

        await asyncio.gather(
            executor._finalize(context, RunStatus.SUCCESS),
            store.update_run("exec-1", {"status": RunStatus.CANCELLED}),
        )

        assert (await store.get_run("exec-1")).status == RunStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_after_finalization_is_rejected(self, registry, tmp_path):
        store = FileExecutionStore(str(tmp_path / "executions"))
        executor = WorkflowExecutor(registry, store)
        await store.insert_run(ExecutionRun(id="exec-1", workflow_id="wf-1", status=RunStatus.RUNNING))
        context = ExecutionContext("exec-1", "wf-1")

        _, cancelled = await asyncio.gather(
            executor._finalize(context, RunStatus.SUCCESS),
            store.update_run("exec-1", {"status": RunStatus.CANCELLED}, only_if_active=True),
        )

        assert cancelled is False
        assert (await store.get_run("exec-1")).status == RunStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_cancel_landing_before_running_stops_run(self, executor, store, registry):
        action = RecordingAction()
        registry.register("Record", action)
        await start_run(store)
        original_get_run = store.get_run

        async def get_run_then_cancel(execution_id):
            run = await original_get_run(execution_id)
            await store.update_run(execution_id, {"status": RunStatus.CANCELLED})
            return run

        store.get_run = get_run_then_cancel

        result = await executor.execute(
            [trigger_node("t"), action_node("a", "A", actionType="Record")], [edge("t", "a")], {}, "exec-1", "wf-1"
        )

        assert result.results == {}
        assert action.calls == []
        assert (await original_get_run("exec-1")).status == RunStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_finalization_failure_never_raises(self, registry):
        store = MagicMock()
        store.get_run = AsyncMock(return_value=None)
        store.update_run = AsyncMock(side_effect=RuntimeError("database down"))
        store.insert_log = AsyncMock(return_value="log-1")
        store.update_log = AsyncMock()
        executor = WorkflowExecutor(registry, store)

        result = await executor.execute([trigger_node("t")], [], {}, "exec-1", "wf-1")

        assert result.success is True

    @pytest.mark.asyncio
    async def test_traversal_exception_marks_run_error(self, executor, store):
        await start_run(store)

        result = await executor.execute([{"data": {"type": "trigger"}}], [], {}, "exec-1", "wf-1")

        assert result.success is False
        run = await store.get_run("exec-1")
        assert run.status == RunStatus.ERROR
        assert run.error

    @pytest.mark.asyncio
    async def test_execute_workflow_function(self, store, make_http_client):
        await start_run(store)
        registry = ActionRegistry(http_client=make_http_client(api_handler))

        result = await execute_workflow(
            [trigger_node("t"), http_node("a", "Fetch", "https://api.example.com/items")],
            [edge("t", "a")],
            {},
            "exec-1",
            "wf-1",
            store=store,
            registry=registry,
        )

        assert result.success is True
        assert (await store.get_run("exec-1")).status == RunStatus.SUCCESS
