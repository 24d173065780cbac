# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Webhook API Routes

Every HTTP method on /api/webhook/{webhook_id} is captured as an event and
starts the bound workflow when its trigger is a webhook trigger.
"""

import json
import time
from typing import Dict, Any
from urllib.parse import parse_qsl
from uuid import uuid4

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from hookflow.services.workflow_service import WorkflowService
from hookflow.core.dependencies import get_workflow_service
from hookflow.core.logging import get_api_logger, log_event

router = APIRouter(prefix="/api/webhook", tags=["webhooks"])

logger = get_api_logger()

WEBHOOK_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS", "HEAD"]


async def parse_webhook_body(request: Request) -> Any:
    """Decode the request body by content type; None when it cannot be read"""
    content_type = request.headers.get("content-type", "")
    try:
        raw = await request.body()
        text = raw.decode("utf-8")
        if "application/json" in content_type:
            return json.loads(text)
        if "application/x-www-form-urlencoded" in content_type:
            return dict(parse_qsl(text, keep_blank_values=True))
        if "text/" in content_type:
            return text
        return text or None
    except ValueError:
        return None


async def build_webhook_event(request: Request, webhook_id: str) -> Dict[str, Any]:
    """Webhook event passed to the workflow as its trigger input"""
    headers = {
        key: value for key, value in request.headers.items()
        if not key.lower().startswith("x-vercel-")
    }
    return {
        "id": str(uuid4()),
        "uuid": webhook_id,
        "method": request.method,
        "url": str(request.url),
        "headers": headers,
        "body": await parse_webhook_body(request),
        "query": dict(request.query_params),
        "timestamp": int(time.time() * 1000),
    }


@router.api_route("/{webhook_id}", methods=WEBHOOK_METHODS)
async def receive_webhook(
    webhook_id: str,
    request: Request,
    service: WorkflowService = Depends(get_workflow_service)
):
    """Receive a webhook call"""
    try:
        event = await build_webhook_event(request, webhook_id)
        execution_id = await service.handle_webhook(webhook_id, event)
    except Exception as e:
        logger.exception(f"Error processing webhook {webhook_id}: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Internal server error"},
        )

    log_event(logger, "webhook_received", webhook_id=webhook_id, execution_id=execution_id)
    return {"success": True, "message": "Webhook received"}
