# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow Exceptions

Custom exceptions for the workflow engine.
"""

from typing import Optional


class WorkflowException(Exception):
    """Base exception for the workflow engine"""
    pass


class WorkflowValidationError(WorkflowException):
    """Workflow validation failed"""
    def __init__(self, message: str, field: str = None):
        self.message = message
        self.field = field
        super().__init__(message)


class WorkflowExecutionError(WorkflowException):
    """Workflow execution failed"""
    pass


class FatalStepError(WorkflowExecutionError):
    """
    Configuration or client error raised by an action.

    Never retried. The message is stored verbatim on the step log.
    """
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)
