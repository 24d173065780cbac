# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow Execution Context

Tracks execution state for a workflow run. One context per run; it is never
shared across runs. All mutation goes through the context's lock.
"""

import asyncio
import time
from typing import Any, Dict, Iterable, List, Optional, Set

from .models import NodeOutput, StepResult


class ExecutionContext:
    """
    Execution context for a workflow run.

    Tracks:
    - Visited nodes (a node executes at most once per run)
    - Node results, in completion order
    - Node outputs for template resolution
    - Cancellation
    """

    def __init__(self, execution_id: str, workflow_id: str, trigger_input: Optional[Dict[str, Any]] = None):
        self.execution_id = execution_id
        self.workflow_id = workflow_id
        self.trigger_input = dict(trigger_input or {})
        self.started_at = time.monotonic()

        self.visited: Set[str] = set()
        self.results: Dict[str, StepResult] = {}  # sanitized node_id -> result
        self.outputs: Dict[str, NodeOutput] = {}  # sanitized node_id -> output

        # Per invocation, so nodes sharing a sanitized id cannot mask a failure
        self.failures: List[StepResult] = []
        self.last_result: Optional[StepResult] = None

        self._lock = asyncio.Lock()
        self._cancelled = asyncio.Event()

    async def claim(self, node_id: str) -> bool:
        """Mark a node visited; False if it was already claimed"""
        async with self._lock:
            if node_id in self.visited:
                return False
            self.visited.add(node_id)
            return True

    async def record(self, key: str, result: StepResult, output: NodeOutput) -> None:
        """Store a node's result and output under its sanitized id"""
        async with self._lock:
            self.results[key] = result
            self.outputs[key] = output
            self.last_result = result
            if not result.success:
                self.failures.append(result)

    @property
    def success(self) -> bool:
        return not self.failures

    def outputs_for(self, keys: Iterable[str]) -> Dict[str, NodeOutput]:
        """Successful outputs among ``keys``, in completion order"""
        wanted = set(keys)
        return {
            key: output for key, output in self.outputs.items()
            if key in wanted and output.success
        }

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.started_at) * 1000)
