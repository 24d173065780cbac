# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow engine: template resolution, action dispatch, step logging and
graph execution.
"""

from hookflow.workflow.executor import WorkflowExecutor, execute_workflow

__all__ = ["WorkflowExecutor", "execute_workflow"]
