# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Step Logging

Records the start and completion of every node execution in the execution
store. Fails gracefully if the store is unavailable.
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from hookflow.core.logging import log_event
from .models import ExecutionLog, StepStatus, utcnow


@dataclass(frozen=True)
class StepContext:
    """Identifies the node a step log row belongs to"""
    execution_id: str
    node_id: str
    node_name: str
    node_type: str


@dataclass
class LogHandle:
    """Opaque handle tying a start() to its complete()"""
    log_id: Optional[str]
    started_at: float
    completed: bool = False


class StepLogger:
    """
    Writes ExecutionLog rows for node executions.

    Store failures are reported to ``logger`` and never propagated; node
    execution must continue even when logging is unavailable.
    """

    def __init__(self, store, logger: logging.Logger):
        self.store = store
        self.logger = logger

    async def start(self, context: StepContext, input: Any = None) -> LogHandle:
        """Write a running log row for the node"""
        started_at = time.monotonic()

        try:
            log_id = await self.store.insert_log(ExecutionLog(
                execution_id=context.execution_id,
                node_id=context.node_id,
                node_name=context.node_name,
                node_type=context.node_type,
                status=StepStatus.RUNNING,
                input=input,
            ))
        except Exception as e:
            log_event(
                self.logger, "step_log_failed", level="WARNING",
                phase="start",
                execution_id=context.execution_id,
                node_id=context.node_id,
                error=str(e),
            )
            log_id = None

        return LogHandle(log_id=log_id, started_at=started_at)

    async def complete(
        self,
        handle: LogHandle,
        status: StepStatus,
        output: Any = None,
        error: Optional[str] = None
    ) -> None:
        """Write the terminal status of a node; no-op if start() failed"""
        if not handle.log_id or handle.completed:
            return
        handle.completed = True

        duration_ms = int((time.monotonic() - handle.started_at) * 1000)
        try:
            await self.store.update_log(handle.log_id, {
                "status": status,
                "output": output,
                "error": error,
                "completed_at": utcnow(),
                "duration_ms": duration_ms,
            })
        except Exception as e:
            log_event(
                self.logger, "step_log_failed", level="WARNING",
                phase="complete",
                log_id=handle.log_id,
                error=str(e),
            )
