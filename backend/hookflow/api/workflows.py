# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow API Routes

CRUD operations for workflow definitions and starting runs.
"""

from typing import List, Dict, Any
from fastapi import APIRouter, Depends, HTTPException, Request

from hookflow.services.workflow_service import WorkflowService
from hookflow.core.dependencies import get_workflow_service
from hookflow.core.errors import NotFoundError, ValidationError

router = APIRouter(prefix="/api/workflows", tags=["workflows"])


@router.get("")
async def list_workflows(
    service: WorkflowService = Depends(get_workflow_service)
) -> List[Dict[str, Any]]:
    """List all workflows"""
    return await service.list_workflows()


@router.get("/{workflow_id}")
async def get_workflow(
    workflow_id: str,
    service: WorkflowService = Depends(get_workflow_service)
) -> Dict[str, Any]:
    """Get a specific workflow definition"""
    try:
        return await service.get_workflow(workflow_id)
    except NotFoundError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("")
async def create_workflow(
    workflow_data: Dict[str, Any],
    service: WorkflowService = Depends(get_workflow_service)
) -> Dict[str, Any]:
    """Create a new workflow definition"""
    try:
        return await service.create_workflow(workflow_data)
    except ValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.put("/{workflow_id}")
async def update_workflow(
    workflow_id: str,
    workflow_data: Dict[str, Any],
    service: WorkflowService = Depends(get_workflow_service)
) -> Dict[str, Any]:
    """Update an existing workflow definition"""
    try:
        return await service.update_workflow(workflow_id, workflow_data)
    except NotFoundError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except ValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{workflow_id}")
async def delete_workflow(
    workflow_id: str,
    service: WorkflowService = Depends(get_workflow_service)
) -> Dict[str, str]:
    """Delete a workflow definition"""
    try:
        return await service.delete_workflow(workflow_id)
    except NotFoundError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/{workflow_id}/execute")
async def execute_workflow(
    workflow_id: str,
    request: Request,
    service: WorkflowService = Depends(get_workflow_service)
) -> Dict[str, Any]:
    """Start a run in the background and return its execution ID"""
    try:
        body = await request.json()
    except ValueError:
        body = {}
    input = (body.get("input") if isinstance(body, dict) else None) or {}
    if not isinstance(input, dict):
        raise HTTPException(status_code=400, detail="input must be an object")

    try:
        return await service.start_execution(workflow_id, input)
    except NotFoundError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to execute workflow: {str(e)}")
