# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Hookflow API

Serves workflow definitions, webhook triggers and execution tracking.
"""
# Load environment variables from .env file (local development)
from dotenv import load_dotenv
from pathlib import Path
_env_path = Path(__file__).parent.parent.parent / ".env"
if _env_path.exists():
    load_dotenv(_env_path)

from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hookflow import __version__
from hookflow.api import executions, webhooks, workflows
from hookflow.core.config import Config, get_config
from hookflow.core.logging import get_api_logger, log_event
from hookflow.execution_store import create_execution_store
from hookflow.services.workflow_service import WorkflowService
from hookflow.workflow.actions import ActionRegistry
from hookflow.workflow.executor import WorkflowExecutor

logger = get_api_logger()


def create_app(config: Optional[Config] = None, http_client: Optional[httpx.AsyncClient] = None) -> FastAPI:
    """
    Build the FastAPI application.

    ``http_client`` replaces the outbound client used by actions.
    """
    config = config or get_config()

    app = FastAPI(
        title="Hookflow",
        description="Webhook-driven workflow execution engine",
        version=__version__,
    )

    # CORS for the workflow editor
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(workflows.router)
    app.include_router(executions.router)
    app.include_router(webhooks.router)

    @app.on_event("startup")
    async def startup():
        """Store runtime objects in app.state for dependency injection"""
        store = create_execution_store(config)
        registry = ActionRegistry(
            http_client=http_client,
            http_timeout=config.http_timeout,
            email_api_base_url=config.email_api_base_url,
            email_timeout=config.email_timeout,
        )
        executor = WorkflowExecutor(registry, store)

        app.state.config = config
        app.state.execution_store = store
        app.state.action_registry = registry
        app.state.workflow_executor = executor
        app.state.workflow_service = WorkflowService(
            workflows_dir=Path(config.workflows_path),
            executor=executor,
            store=store,
            list_limit=config.executions_list_limit,
        )
        log_event(logger, "startup", store_backend=config.store_backend, workflows_path=config.workflows_path)

    @app.on_event("shutdown")
    async def shutdown():
        await app.state.workflow_service.wait_for_all()
        await app.state.action_registry.close()
        log_event(logger, "shutdown")

    @app.get("/health")
    async def health():
        """Health check"""
        return {"status": "healthy", "service": "hookflow", "version": __version__}

    return app


app = create_app()


def main():
    """Console entry point"""
    import uvicorn

    config = get_config()
    uvicorn.run(app, host=config.service_host, port=config.service_port)


if __name__ == "__main__":
    main()
