# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Dependency injection for the Hookflow backend.

Provides FastAPI dependencies for services and runtime objects.
"""

from fastapi import Request


def get_workflow_service(request: Request):
    """Get the WorkflowService instance created at startup."""
    # A single instance owns the background run tasks
    return request.app.state.workflow_service

