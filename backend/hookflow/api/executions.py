# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Execution API Routes

Run status polling, per-node logs, run history and cancellation.
"""

from typing import List, Dict, Any
from fastapi import APIRouter, Depends, HTTPException

from hookflow.services.workflow_service import WorkflowService
from hookflow.core.dependencies import get_workflow_service
from hookflow.core.errors import NotFoundError, ValidationError

router = APIRouter(prefix="/api/workflows", tags=["executions"])


@router.get("/executions/{execution_id}/status")
async def get_execution_status(
    execution_id: str,
    service: WorkflowService = Depends(get_workflow_service)
) -> Dict[str, Any]:
    """Run status and the latest status of every node that started"""
    try:
        status = await service.get_execution_status(execution_id)
    except NotFoundError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return status.model_dump(mode="json", by_alias=True)


@router.get("/executions/{execution_id}/logs")
async def get_execution_logs(
    execution_id: str,
    service: WorkflowService = Depends(get_workflow_service)
) -> Dict[str, Any]:
    """Run record with its per-node logs"""
    try:
        return await service.get_execution_logs(execution_id)
    except NotFoundError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/executions/{execution_id}/cancel")
async def cancel_execution(
    execution_id: str,
    service: WorkflowService = Depends(get_workflow_service)
) -> Dict[str, Any]:
    """Cancel a pending or running execution"""
    try:
        return await service.cancel_execution(execution_id)
    except NotFoundError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/{workflow_id}/executions")
async def list_executions(
    workflow_id: str,
    service: WorkflowService = Depends(get_workflow_service)
) -> List[Dict[str, Any]]:
    """Most recent runs of a workflow, newest first"""
    try:
        return await service.list_executions(workflow_id)
    except NotFoundError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{workflow_id}/executions")
async def delete_executions(
    workflow_id: str,
    service: WorkflowService = Depends(get_workflow_service)
) -> Dict[str, Any]:
    """Delete all runs of a workflow and their logs"""
    try:
        return await service.delete_executions(workflow_id)
    except NotFoundError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
