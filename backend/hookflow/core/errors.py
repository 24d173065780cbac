# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Custom exceptions for the Hookflow backend.

Routers turn these into HTTP responses using ``status_code`` and ``message``.
"""

from typing import Optional


class HookflowError(Exception):
    """Base exception for all Hookflow errors."""

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundError(HookflowError):
    """Workflow or execution not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(f"{resource} not found: {identifier}", status_code=404)


class ValidationError(HookflowError):
    """Rejected request; ``field`` names the offending input when known."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, status_code=400)
        self.field = field


class ConfigurationError(HookflowError):
    """Unusable configuration value."""

    def __init__(self, message: str):
        super().__init__(message, status_code=500)


def sanitize_error_for_user(error: Exception) -> str:
    """Exception message fit for run and step records, without a stack trace."""
    error_msg = str(error).strip() or error.__class__.__name__

    # Limit message length
    if len(error_msg) > 500:
        error_msg = error_msg[:500] + "..."

    return error_msg
