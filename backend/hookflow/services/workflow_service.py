# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow Service

Manages workflow definitions and their executions.
"""

import asyncio
import json
from pathlib import Path
from typing import List, Dict, Any, Optional, Set

import pydantic

from hookflow.core.errors import NotFoundError, ValidationError
from hookflow.core.logging import get_service_logger, log_event
from hookflow.execution_store import ExecutionStore
from hookflow.workflow.exceptions import WorkflowValidationError
from hookflow.workflow.executor import WorkflowExecutor
from hookflow.workflow.models import (
    ExecutionRun, ExecutionStatusResponse, NodeStatus, NodeType, RunStatus,
    WorkflowDefinition, utcnow,
)
from hookflow.workflow.validation import validate_workflow

logger = get_service_logger("workflow")

WEBHOOK_TRIGGER = "Webhook"


class WorkflowService:
    """
    Manages workflow definitions and execution.

    Responsibilities:
    - CRUD operations for workflow definitions (JSON files)
    - Starting runs in the background via WorkflowExecutor
    - Run status, logs, history and cancellation
    """

    def __init__(
        self,
        workflows_dir: Path,
        executor: WorkflowExecutor,
        store: ExecutionStore,
        list_limit: int = 50
    ):
        self.workflows_dir = workflows_dir
        self.workflows_dir.mkdir(parents=True, exist_ok=True)
        self.executor = executor
        self.store = store
        self.list_limit = list_limit

        # Background runs; held so they are not garbage collected mid-flight
        self._tasks: Set[asyncio.Task] = set()
        logger.info(f"WorkflowService initialized with directory: {workflows_dir}")

    # =========================================================================
    # Definitions
    # =========================================================================

    def _path(self, workflow_id: str) -> Path:
        return self.workflows_dir / f"{workflow_id}.json"

    def _parse(self, workflow_data: Dict[str, Any]) -> WorkflowDefinition:
        try:
            return WorkflowDefinition.model_validate(workflow_data)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Invalid workflow definition: {e.errors()[0]['msg']}")

    def _check(self, definition: WorkflowDefinition) -> List[str]:
        try:
            warnings = validate_workflow(definition)
        except WorkflowValidationError as e:
            raise ValidationError(e.message, field=e.field)
        for warning in warnings:
            logger.warning(f"Workflow {definition.id}: {warning}")
        return warnings

    async def list_workflows(self) -> List[Dict[str, Any]]:
        """List all workflow definitions"""
        workflows = []

        for file in sorted(self.workflows_dir.glob("*.json")):
            try:
                workflow_data = json.loads(file.read_text())
                workflows.append({
                    "id": workflow_data.get("id"),
                    "name": workflow_data.get("name"),
                    "description": workflow_data.get("description"),
                    "status": workflow_data.get("status"),
                    "webhook_id": workflow_data.get("webhook_id"),
                    "node_count": len(workflow_data.get("nodes", [])),
                })
            except Exception as e:
                logger.warning(f"Skipping invalid workflow file {file.name}: {e}")

        logger.info(f"Listed {len(workflows)} workflows")
        return workflows

    async def load_workflow(self, workflow_id: str) -> WorkflowDefinition:
        """Load a workflow definition as a model"""
        file_path = self._path(workflow_id)

        if not file_path.exists():
            raise NotFoundError("Workflow", workflow_id)

        return WorkflowDefinition.model_validate_json(file_path.read_text())

    async def get_workflow(self, workflow_id: str) -> Dict[str, Any]:
        """Get a specific workflow definition"""
        definition = await self.load_workflow(workflow_id)
        logger.info(f"Retrieved workflow: {workflow_id}")
        return definition.model_dump(mode="json")

    async def create_workflow(self, workflow_data: Dict[str, Any]) -> Dict[str, Any]:
        """Create a new workflow definition"""
        if not workflow_data.get("name"):
            raise ValidationError("name is required", field="name")

        definition = self._parse(workflow_data)
        if self._path(definition.id).exists():
            raise ValidationError(f"Workflow '{definition.id}' already exists", field="id")

        warnings = self._check(definition)

        # Save to disk
        self._path(definition.id).write_text(definition.model_dump_json(indent=2))

        logger.info(f"Created workflow: {definition.id}")
        return {**definition.model_dump(mode="json"), "warnings": warnings}

    async def update_workflow(self, workflow_id: str, workflow_data: Dict[str, Any]) -> Dict[str, Any]:
        """Update an existing workflow definition"""
        existing = await self.load_workflow(workflow_id)

        # Ensure id matches and webhook URL stays stable
        merged = {**existing.model_dump(mode="json"), **workflow_data, "id": workflow_id}
        definition = self._parse(merged)
        warnings = self._check(definition)

        self._path(workflow_id).write_text(definition.model_dump_json(indent=2))

        logger.info(f"Updated workflow: {workflow_id}")
        return {**definition.model_dump(mode="json"), "warnings": warnings}

    async def delete_workflow(self, workflow_id: str) -> Dict[str, str]:
        """Delete a workflow definition along with its execution history"""
        file_path = self._path(workflow_id)

        if not file_path.exists():
            raise NotFoundError("Workflow", workflow_id)

        file_path.unlink()
        await self.store.delete_executions(workflow_id)

        logger.info(f"Deleted workflow: {workflow_id}")
        return {"message": f"Workflow '{workflow_id}' deleted"}

    async def find_by_webhook_id(self, webhook_id: str) -> Optional[WorkflowDefinition]:
        """Find the workflow bound to a webhook URL"""
        for file in self.workflows_dir.glob("*.json"):
            try:
                definition = WorkflowDefinition.model_validate_json(file.read_text())
            except pydantic.ValidationError as e:
                logger.warning(f"Skipping invalid workflow file {file.name}: {e}")
                continue
            if definition.webhook_id == webhook_id:
                return definition
        return None

    # =========================================================================
    # Execution
    # =========================================================================

    async def start_execution(self, workflow_id: str, input: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Create a pending run and execute it in the background.

        Returns immediately with the execution ID.
        """
        definition = await self.load_workflow(workflow_id)
        run = await self._start(definition, input or {})
        return {"executionId": run.id, "status": RunStatus.RUNNING.value}

    async def _start(self, definition: WorkflowDefinition, input: Dict[str, Any]) -> ExecutionRun:
        run = ExecutionRun(workflow_id=definition.id, input=input)
        await self.store.insert_run(run)

        log_event(logger, "execution_created", execution_id=run.id, workflow_id=definition.id)

        task = asyncio.create_task(
            self.executor.execute(definition.nodes, definition.edges, input, run.id, definition.id)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return run

    async def handle_webhook(self, webhook_id: str, event: Dict[str, Any]) -> Optional[str]:
        """
        Run the workflow bound to ``webhook_id`` if its trigger is a webhook trigger.

        Returns the execution ID, or None when nothing was started.
        """
        definition = await self.find_by_webhook_id(webhook_id)
        if definition is None:
            log_event(logger, "webhook_unbound", webhook_id=webhook_id)
            return None

        trigger = next((node for node in definition.nodes if node.type == NodeType.TRIGGER.value), None)
        if trigger is None or trigger.config.get("triggerType") != WEBHOOK_TRIGGER:
            log_event(logger, "webhook_trigger_mismatch", webhook_id=webhook_id, workflow_id=definition.id)
            return None

        run = await self._start(definition, event)
        return run.id

    async def wait_for_all(self) -> None:
        """Wait for every in-flight background run"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _get_run(self, execution_id: str) -> ExecutionRun:
        run = await self.store.get_run(execution_id)
        if run is None:
            raise NotFoundError("Execution", execution_id)
        return run

    async def get_execution_status(self, execution_id: str) -> ExecutionStatusResponse:
        """Run status plus the latest status of each node"""
        run = await self._get_run(execution_id)
        logs = await self.store.list_logs(execution_id)

        # Last inserted log row wins for each node
        latest: Dict[str, Any] = {}
        for log in logs:
            latest[log.node_id] = log.status

        return ExecutionStatusResponse(
            status=run.status,
            node_statuses=[NodeStatus(node_id=node_id, status=status) for node_id, status in latest.items()],
        )

    async def get_execution_logs(self, execution_id: str) -> Dict[str, Any]:
        """Run record with its per-node logs ordered by start time"""
        run = await self._get_run(execution_id)
        logs = await self.store.list_logs(execution_id)
        return {
            "execution": run.model_dump(mode="json"),
            "logs": [log.model_dump(mode="json") for log in logs],
        }

    async def list_executions(self, workflow_id: str) -> List[Dict[str, Any]]:
        """Most recent runs of a workflow, newest first"""
        await self.load_workflow(workflow_id)
        runs = await self.store.list_executions(workflow_id, limit=self.list_limit)
        return [run.model_dump(mode="json") for run in runs]

    async def delete_executions(self, workflow_id: str) -> Dict[str, Any]:
        """Delete every run of a workflow and its logs"""
        await self.load_workflow(workflow_id)
        deleted = await self.store.delete_executions(workflow_id)
        logger.info(f"Deleted {deleted} executions of workflow: {workflow_id}")
        return {"success": True, "deletedCount": deleted}

    async def cancel_execution(self, execution_id: str) -> Dict[str, Any]:
        """
        Mark a run cancelled and signal it to stop starting new nodes.

        Nodes already in flight finish; their logs are still written.
        """
        await self._get_run(execution_id)

        written = await self.store.update_run(execution_id, {
            "status": RunStatus.CANCELLED,
            "error": "Execution cancelled",
            "completed_at": utcnow(),
        }, only_if_active=True)
        if not written:
            run = await self._get_run(execution_id)
            raise ValidationError(
                f"Execution '{execution_id}' already finished with status {run.status.value}",
                field="status",
            )
        signalled = self.executor.cancel(execution_id)

        log_event(logger, "execution_cancelled", execution_id=execution_id, in_flight=signalled)
        return {"success": True, "executionId": execution_id, "status": RunStatus.CANCELLED.value}
