# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Execution Store - Storage for workflow runs and their per-node logs

Two backends:
    - InMemoryExecutionStore: process-local, used by default and in tests
    - FileExecutionStore: JSON text files, async file locking to prevent
      race conditions
"""
from pathlib import Path
from typing import List, Dict, Any, Optional
import asyncio
import json
import shutil

import aiofiles
import aiofiles.os

from .core.config import Config, get_config
from .core.errors import ConfigurationError
from .core.logging import get_service_logger
from .workflow.models import ExecutionLog, ExecutionRun, RunStatus

logger = get_service_logger("execution_store")


class ExecutionStore:
    """Interface shared by every execution store backend"""

    async def insert_run(self, run: ExecutionRun) -> str:
        raise NotImplementedError

    async def update_run(self, execution_id: str, fields: Dict[str, Any], only_if_active: bool = False) -> bool:
        """
        Apply ``fields`` to a run. With ``only_if_active`` the write is skipped
        when the stored run is already terminal; returns whether it was written.
        """
        raise NotImplementedError

    async def get_run(self, execution_id: str) -> Optional[ExecutionRun]:
        raise NotImplementedError

    async def insert_log(self, log: ExecutionLog) -> str:
        raise NotImplementedError

    async def update_log(self, log_id: str, fields: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def list_logs(self, execution_id: str) -> List[ExecutionLog]:
        raise NotImplementedError

    async def list_executions(self, workflow_id: str, limit: int = 50) -> List[ExecutionRun]:
        raise NotImplementedError

    async def delete_executions(self, workflow_id: str) -> int:
        raise NotImplementedError


def _sort_logs(logs: List[ExecutionLog]) -> List[ExecutionLog]:
    # Stable: rows started in the same instant keep insertion order
    return sorted(logs, key=lambda log: log.started_at)


def _sort_runs(runs: List[ExecutionRun]) -> List[ExecutionRun]:
    return sorted(runs, key=lambda run: run.started_at, reverse=True)


class InMemoryExecutionStore(ExecutionStore):
    """Process-local store. Returns copies so callers never alias stored rows."""

    def __init__(self):
        self._runs: Dict[str, ExecutionRun] = {}
        self._logs: Dict[str, ExecutionLog] = {}
        self._lock = asyncio.Lock()

    async def insert_run(self, run: ExecutionRun) -> str:
        async with self._lock:
            self._runs[run.id] = run.model_copy()
        return run.id

    async def update_run(self, execution_id: str, fields: Dict[str, Any], only_if_active: bool = False) -> bool:
        async with self._lock:
            run = self._runs.get(execution_id)
            if run is None:
                raise KeyError(f"Execution not found: {execution_id}")
            if only_if_active and RunStatus(run.status).is_terminal:
                return False
            self._runs[execution_id] = run.model_copy(update=fields)
        return True

    async def get_run(self, execution_id: str) -> Optional[ExecutionRun]:
        run = self._runs.get(execution_id)
        return run.model_copy() if run else None

    async def insert_log(self, log: ExecutionLog) -> str:
        async with self._lock:
            self._logs[log.id] = log.model_copy()
        return log.id

    async def update_log(self, log_id: str, fields: Dict[str, Any]) -> None:
        async with self._lock:
            log = self._logs.get(log_id)
            if log is None:
                raise KeyError(f"Execution log not found: {log_id}")
            self._logs[log_id] = log.model_copy(update=fields)

    async def list_logs(self, execution_id: str) -> List[ExecutionLog]:
        return _sort_logs([
            log.model_copy() for log in self._logs.values()
            if log.execution_id == execution_id
        ])

    async def list_executions(self, workflow_id: str, limit: int = 50) -> List[ExecutionRun]:
        runs = [run.model_copy() for run in self._runs.values() if run.workflow_id == workflow_id]
        return _sort_runs(runs)[:limit]

    async def delete_executions(self, workflow_id: str) -> int:
        async with self._lock:
            execution_ids = {
                run_id for run_id, run in self._runs.items() if run.workflow_id == workflow_id
            }
            for run_id in execution_ids:
                del self._runs[run_id]
            for log_id in [log_id for log_id, log in self._logs.items() if log.execution_id in execution_ids]:
                del self._logs[log_id]
        return len(execution_ids)


class FileExecutionStore(ExecutionStore):
    """
    Store runs and logs as JSON files.

    Storage structure:
        executions/
        └── {execution_id}/
            ├── run.json
            └── logs/
                ├── {log_id}.json
                └── {log_id}.json

    Log ids are indexed in memory on first use so ``update_log`` can find
    the owning run directory.
    """

    def __init__(self, base_dir: str = None):
        if base_dir is None:
            base_dir = get_config().executions_path

        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

        # Async locks for thread-safe file operations
        self._locks: Dict[str, asyncio.Lock] = {}
        self._log_index: Dict[str, Path] = {}

    def _get_lock(self, file_path: str) -> asyncio.Lock:
        """Get or create lock for a specific file"""
        if file_path not in self._locks:
            self._locks[file_path] = asyncio.Lock()
        return self._locks[file_path]

    def _run_file(self, execution_id: str) -> Path:
        return self.base_dir / execution_id / "run.json"

    async def _write(self, path: Path, data: Dict[str, Any]) -> None:
        async with aiofiles.open(path, 'w') as f:
            await f.write(json.dumps(data, indent=2))

    async def _read(self, path: Path) -> Optional[Dict[str, Any]]:
        if not await aiofiles.os.path.exists(path):
            return None
        async with aiofiles.open(path, 'r') as f:
            return json.loads(await f.read())

    async def insert_run(self, run: ExecutionRun) -> str:
        run_file = self._run_file(run.id)
        (run_file.parent / "logs").mkdir(parents=True, exist_ok=True)

        async with self._get_lock(str(run_file)):
            await self._write(run_file, run.model_dump(mode="json"))
        return run.id

    async def update_run(self, execution_id: str, fields: Dict[str, Any], only_if_active: bool = False) -> bool:
        run_file = self._run_file(execution_id)

        async with self._get_lock(str(run_file)):
            data = await self._read(run_file)
            if data is None:
                raise KeyError(f"Execution not found: {execution_id}")
            run = ExecutionRun.model_validate(data)
            if only_if_active and run.status.is_terminal:
                return False
            await self._write(run_file, run.model_copy(update=fields).model_dump(mode="json"))
        return True

    async def get_run(self, execution_id: str) -> Optional[ExecutionRun]:
        run_file = self._run_file(execution_id)

        async with self._get_lock(str(run_file)):
            data = await self._read(run_file)
        return ExecutionRun.model_validate(data) if data is not None else None

    async def insert_log(self, log: ExecutionLog) -> str:
        log_dir = self.base_dir / log.execution_id / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"{log.id}.json"

        async with self._get_lock(str(log_file)):
            await self._write(log_file, log.model_dump(mode="json"))
        self._log_index[log.id] = log_file
        return log.id

    def _find_log_file(self, log_id: str) -> Optional[Path]:
        if log_id in self._log_index:
            return self._log_index[log_id]
        for log_file in self.base_dir.glob(f"*/logs/{log_id}.json"):
            self._log_index[log_id] = log_file
            return log_file
        return None

    async def update_log(self, log_id: str, fields: Dict[str, Any]) -> None:
        log_file = self._find_log_file(log_id)
        if log_file is None:
            raise KeyError(f"Execution log not found: {log_id}")

        async with self._get_lock(str(log_file)):
            data = await self._read(log_file)
            if data is None:
                raise KeyError(f"Execution log not found: {log_id}")
            log = ExecutionLog.model_validate(data).model_copy(update=fields)
            await self._write(log_file, log.model_dump(mode="json"))

    async def list_logs(self, execution_id: str) -> List[ExecutionLog]:
        logs = []
        for log_file in (self.base_dir / execution_id / "logs").glob("*.json"):
            try:
                async with self._get_lock(str(log_file)):
                    data = await self._read(log_file)
                if data is not None:
                    logs.append(ExecutionLog.model_validate(data))
            except (ValueError, OSError) as e:
                logger.warning(f"Failed to load execution log {log_file}: {e}")
        return _sort_logs(logs)

    async def _load_runs(self, workflow_id: str) -> List[ExecutionRun]:
        runs = []
        for run_file in self.base_dir.glob("*/run.json"):
            try:
                async with self._get_lock(str(run_file)):
                    data = await self._read(run_file)
                if data is not None and data.get("workflow_id") == workflow_id:
                    runs.append(ExecutionRun.model_validate(data))
            except (ValueError, OSError) as e:
                logger.warning(f"Failed to load execution {run_file}: {e}")
        return runs

    async def list_executions(self, workflow_id: str, limit: int = 50) -> List[ExecutionRun]:
        return _sort_runs(await self._load_runs(workflow_id))[:limit]

    async def delete_executions(self, workflow_id: str) -> int:
        runs = await self._load_runs(workflow_id)
        for run in runs:
            run_dir = self.base_dir / run.id
            await asyncio.to_thread(shutil.rmtree, run_dir, True)
            self._log_index = {
                log_id: path for log_id, path in self._log_index.items()
                if run_dir not in path.parents
            }
        return len(runs)


def create_execution_store(config: Optional[Config] = None) -> ExecutionStore:
    """Build the store selected by ``store.backend``"""
    config = config or get_config()
    if config.store_backend == "file":
        return FileExecutionStore(config.executions_path)
    if config.store_backend == "memory":
        return InMemoryExecutionStore()
    raise ConfigurationError(f"Unknown store backend: {config.store_backend}")
