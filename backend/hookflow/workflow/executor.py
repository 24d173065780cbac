# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow Executor

Concurrent graph traversal from every trigger node. A node runs at most once
per run; its successors run only after it succeeded. Sibling branches and
trigger roots run concurrently, and a failure stops only its own subtree.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from hookflow.core.errors import sanitize_error_for_user
from hookflow.core.logging import get_service_logger, log_event
from .actions import ActionRegistry
from .context import ExecutionContext
from .exceptions import FatalStepError
from .models import (
    ExecutionRun, NodeOutput, NodeType, RunStatus, StepResult, StepStatus,
    WorkflowEdge, WorkflowNode, WorkflowRunResult, utcnow,
)
from .step_logger import StepContext, StepLogger
from .templates import resolve, sanitize_node_id

NodeLike = Union[WorkflowNode, Dict[str, Any]]
EdgeLike = Union[WorkflowEdge, Dict[str, Any]]


class WorkflowGraph:
    """Adjacency, roots and ancestry of a workflow's nodes and edges"""

    def __init__(self, nodes: Iterable[NodeLike], edges: Iterable[EdgeLike]):
        self.nodes: Dict[str, WorkflowNode] = {}
        for node in nodes:
            node = node if isinstance(node, WorkflowNode) else WorkflowNode.model_validate(node)
            self.nodes[node.id] = node

        self.edges: List[WorkflowEdge] = [
            edge if isinstance(edge, WorkflowEdge) else WorkflowEdge.model_validate(edge)
            for edge in edges
        ]

        self.targets: Dict[str, List[str]] = {}
        self.sources: Dict[str, List[str]] = {}
        for edge in self.edges:
            self.targets.setdefault(edge.source, []).append(edge.target)
            self.sources.setdefault(edge.target, []).append(edge.source)

        self._ancestors: Dict[str, Set[str]] = {}

    @property
    def roots(self) -> List[WorkflowNode]:
        """Trigger nodes with no incoming edges"""
        return [
            node for node_id, node in self.nodes.items()
            if node.type == NodeType.TRIGGER.value and node_id not in self.sources
        ]

    def ancestors(self, node_id: str) -> Set[str]:
        """Every node with a path to ``node_id``"""
        if node_id not in self._ancestors:
            seen: Set[str] = set()
            queue = deque(self.sources.get(node_id, []))
            while queue:
                current = queue.popleft()
                if current in seen:
                    continue
                seen.add(current)
                queue.extend(self.sources.get(current, []))
            seen.discard(node_id)
            self._ancestors[node_id] = seen
        return self._ancestors[node_id]


class GraphExecutor:
    """
    Executes one run of a workflow graph.

    Shares a single ExecutionContext between all branches of the run.
    """

    def __init__(
        self,
        graph: WorkflowGraph,
        context: ExecutionContext,
        registry: ActionRegistry,
        step_logger: StepLogger,
        logger: logging.Logger
    ):
        self.graph = graph
        self.context = context
        self.registry = registry
        self.step_logger = step_logger
        self.logger = logger

    async def run(self) -> None:
        """Execute from every trigger root concurrently and wait for all branches"""
        roots = self.graph.roots
        log_event(
            self.logger, "workflow_traversal_started",
            execution_id=self.context.execution_id,
            node_count=len(self.graph.nodes),
            edge_count=len(self.graph.edges),
            trigger_count=len(roots),
        )
        await asyncio.gather(*(self.execute_node(root.id) for root in roots))

    async def execute_node(self, node_id: str) -> None:
        """Execute a node, then fan out to its successors if it succeeded"""
        if self.context.cancelled:
            log_event(self.logger, "node_skipped_cancelled", execution_id=self.context.execution_id, node_id=node_id)
            return

        if not await self.context.claim(node_id):
            return

        node = self.graph.nodes.get(node_id)
        if node is None:
            log_event(
                self.logger, "node_not_found", level="WARNING",
                execution_id=self.context.execution_id, node_id=node_id,
            )
            return

        step_context = StepContext(
            execution_id=self.context.execution_id,
            node_id=node.id,
            node_name=node.display_name,
            node_type=node.type,
        )

        try:
            result = await self._run_node(node, step_context)
        except Exception as e:
            self.logger.exception(f"Error executing node {node_id}")
            result = StepResult(success=False, error=sanitize_error_for_user(e))

        await self.context.record(
            sanitize_node_id(node_id),
            result,
            NodeOutput(
                label=node.label or node.id,
                node_type=node.type_tag,
                data=result.data,
                success=result.success,
            ),
        )

        log_event(
            self.logger, "node_completed",
            level="INFO" if result.success else "WARNING",
            execution_id=self.context.execution_id,
            node_id=node_id,
            success=result.success,
            fatal=result.fatal,
        )

        if result.success:
            next_nodes = self.graph.targets.get(node_id, [])
            await asyncio.gather(*(self.execute_node(target) for target in next_nodes))

    async def _run_node(self, node: WorkflowNode, step_context: StepContext) -> StepResult:
        if node.type == NodeType.TRIGGER.value:
            return await self._run_trigger(step_context)

        if node.type == NodeType.ACTION.value:
            if not node.action_type:
                result = StepResult(
                    success=False,
                    error=f'Action node "{node.label or node.id}" has no action type configured',
                    fatal=True,
                )
                handle = await self.step_logger.start(step_context, node.config)
                await self.step_logger.complete(handle, StepStatus.ERROR, error=result.error)
                return result
            return await self._run_action(node, step_context)

        result = StepResult(success=False, error=f"Unknown node type: {node.type}")
        handle = await self.step_logger.start(step_context, node.config)
        await self.step_logger.complete(handle, StepStatus.ERROR, error=result.error)
        return result

    async def _run_trigger(self, step_context: StepContext) -> StepResult:
        trigger_input = self.context.trigger_input
        handle = await self.step_logger.start(step_context, trigger_input)

        data = {
            "triggered": True,
            "timestamp": int(time.time() * 1000),
            **trigger_input,
        }

        await self.step_logger.complete(handle, StepStatus.SUCCESS, output=data)
        return StepResult(success=True, data=data)

    async def _run_action(self, node: WorkflowNode, step_context: StepContext) -> StepResult:
        upstream = {sanitize_node_id(node_id) for node_id in self.graph.ancestors(node.id)}
        resolved_config = resolve(node.config, self.context.outputs_for(upstream))

        handle = await self.step_logger.start(step_context, resolved_config)

        try:
            result = await self.registry.execute(node.action_type, resolved_config)
        except FatalStepError as e:
            result = StepResult(success=False, error=e.message, status_code=e.status_code, fatal=True)
        except Exception as e:
            self.logger.exception(f"Action {node.action_type} failed on node {node.id}")
            result = StepResult(success=False, error=sanitize_error_for_user(e))

        await self.step_logger.complete(
            handle,
            StepStatus.SUCCESS if result.success else StepStatus.ERROR,
            output=result.data,
            error=result.error,
        )
        return result


class WorkflowExecutor:
    """
    Run orchestrator.

    Marks the run running, traverses the graph, and finalizes the run record
    with status, duration and a summary output/error.
    """

    def __init__(self, registry: ActionRegistry, store, logger: Optional[logging.Logger] = None):
        self.registry = registry
        self.store = store
        self.logger = logger or get_service_logger("executor")
        self.step_logger = StepLogger(store, self.logger)

        # Execution tracking
        self.active_executions: Dict[str, ExecutionContext] = {}

    async def execute(
        self,
        nodes: Iterable[NodeLike],
        edges: Iterable[EdgeLike],
        trigger_input: Optional[Dict[str, Any]],
        execution_id: str,
        workflow_id: str
    ) -> WorkflowRunResult:
        """
        Execute a workflow graph for an existing run record.

        Never raises: failures are reflected in the returned result and the
        persisted run.
        """
        context = ExecutionContext(execution_id, workflow_id, trigger_input)
        self.active_executions[execution_id] = context

        try:
            await self._mark_running(context)

            try:
                graph = WorkflowGraph(nodes, edges)
                await GraphExecutor(graph, context, self.registry, self.step_logger, self.logger).run()
            except Exception as e:
                self.logger.exception(f"Fatal error during workflow execution {execution_id}")
                await self._finalize(context, RunStatus.ERROR, error=sanitize_error_for_user(e))
                return WorkflowRunResult(success=False, results=dict(context.results))

            results = dict(context.results)
            success = context.success

            last = context.last_result
            first_failure = context.failures[0] if context.failures else None

            if context.cancelled:
                status = RunStatus.CANCELLED
            else:
                status = RunStatus.SUCCESS if success else RunStatus.ERROR

            log_event(
                self.logger, "workflow_execution_completed",
                execution_id=execution_id,
                workflow_id=workflow_id,
                status=status.value,
                result_count=len(results),
            )

            await self._finalize(
                context,
                status,
                output=last.data if last else None,
                error=first_failure.error if first_failure else None,
            )
            return WorkflowRunResult(success=success, results=results)

        finally:
            self.active_executions.pop(execution_id, None)

    def cancel(self, execution_id: str) -> bool:
        """Signal an in-flight run to stop starting new nodes"""
        context = self.active_executions.get(execution_id)
        if context is None:
            return False
        context.cancel()
        return True

    async def _mark_running(self, context: ExecutionContext) -> None:
        try:
            run: Optional[ExecutionRun] = await self.store.get_run(context.execution_id)
            if run is None:
                log_event(self.logger, "execution_record_missing", level="WARNING", execution_id=context.execution_id)
                return
            if run.status == RunStatus.CANCELLED:
                context.cancel()
                return
            if run.status == RunStatus.PENDING:
                written = await self.store.update_run(
                    context.execution_id, {"status": RunStatus.RUNNING}, only_if_active=True
                )
                if not written:
                    context.cancel()
        except Exception as e:
            log_event(
                self.logger, "execution_update_failed", level="WARNING",
                execution_id=context.execution_id, phase="start", error=str(e),
            )

    async def _finalize(
        self,
        context: ExecutionContext,
        status: RunStatus,
        output: Any = None,
        error: Optional[str] = None
    ) -> None:
        """Write the terminal transition; never raises"""
        try:
            written = await self.store.update_run(context.execution_id, {
                "status": status,
                "output": output,
                "error": error,
                "completed_at": utcnow(),
                "duration_ms": context.elapsed_ms,
            }, only_if_active=True)
            if not written:
                log_event(
                    self.logger, "execution_already_terminal", level="WARNING",
                    execution_id=context.execution_id, status=status.value,
                )
        except Exception as e:
            log_event(
                self.logger, "execution_update_failed", level="WARNING",
                execution_id=context.execution_id, phase="finalize", error=str(e),
            )


async def execute_workflow(
    nodes: Iterable[NodeLike],
    edges: Iterable[EdgeLike],
    trigger_input: Optional[Dict[str, Any]],
    execution_id: str,
    workflow_id: str,
    *,
    store,
    registry: Optional[ActionRegistry] = None,
    logger: Optional[logging.Logger] = None
) -> WorkflowRunResult:
    """Execute a workflow once with a throwaway executor"""
    owns_registry = registry is None
    registry = registry or ActionRegistry()
    try:
        executor = WorkflowExecutor(registry, store, logger=logger)
        return await executor.execute(nodes, edges, trigger_input, execution_id, workflow_id)
    finally:
        if owns_registry:
            await registry.close()
