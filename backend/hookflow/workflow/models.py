# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Workflow Models

Pydantic models for workflow definitions, execution runs and step logs.
"""

import uuid
from enum import Enum
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional, Literal

from pydantic import BaseModel, Field, ConfigDict, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ============================================================================
# Workflow Definition Models
# ============================================================================

class NodeType(str, Enum):
    """
    Supported workflow node types.

    TRIGGER - Graph root, synthesizes the initial payload for a run
    ACTION - Performs an external effect (HTTP call, email send, ...)
    """
    TRIGGER = "trigger"
    ACTION = "action"


class WorkflowNode(BaseModel):
    """
    Single node in a workflow.

    Accepts both the flat form ``{id, type, label, config}`` and the canvas
    form ``{id, data: {label, type, config}}`` saved by the editor.
    """
    model_config = ConfigDict(extra="ignore")

    id: str
    type: str  # "trigger" or "action"; anything else fails at execution time
    label: str = ""
    description: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def flatten_canvas_data(cls, value: Any) -> Any:
        if isinstance(value, dict) and isinstance(value.get("data"), dict):
            data = value["data"]
            flattened = {"id": value.get("id")}
            flattened["type"] = data.get("type", value.get("type"))
            flattened["label"] = data.get("label") or ""
            flattened["description"] = data.get("description")
            flattened["config"] = data.get("config") or {}
            return flattened
        return value

    @property
    def action_type(self) -> Optional[str]:
        return self.config.get("actionType") or None

    @property
    def display_name(self) -> str:
        """Human-readable node name used in step logs"""
        if self.label:
            return self.label
        if self.type == NodeType.ACTION.value:
            return self.action_type or "Action"
        if self.type == NodeType.TRIGGER.value:
            return self.config.get("triggerType") or "Trigger"
        return self.type

    @property
    def type_tag(self) -> str:
        """Action type for action nodes, trigger type or kind otherwise"""
        if self.type == NodeType.ACTION.value and self.action_type:
            return self.action_type
        if self.type == NodeType.TRIGGER.value and self.config.get("triggerType"):
            return self.config["triggerType"]
        return self.type


class WorkflowEdge(BaseModel):
    """Directed connection between workflow nodes"""
    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_id)
    source: str
    target: str


class WorkflowStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"


class WorkflowDefinition(BaseModel):
    """Complete workflow definition"""
    id: str = Field(default_factory=new_id)
    name: str
    description: Optional[str] = None
    webhook_id: str = Field(default_factory=new_id)
    status: WorkflowStatus = WorkflowStatus.DRAFT
    nodes: List[WorkflowNode] = Field(default_factory=list)
    edges: List[WorkflowEdge] = Field(default_factory=list)


# ============================================================================
# Typed Action Configurations
# ============================================================================

class HttpRequestConfig(BaseModel):
    """Configuration for the "HTTP Request" action"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    action_type: Literal["HTTP Request"] = Field(default="HTTP Request", alias="actionType")
    endpoint: Optional[str] = None
    http_method: Optional[str] = Field(default="POST", alias="httpMethod")
    http_headers: Optional[str] = Field(default=None, alias="httpHeaders")
    http_body: Optional[str] = Field(default=None, alias="httpBody")


class SendEmailConfig(BaseModel):
    """Configuration for the "Send Email" action"""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    action_type: Literal["Send Email"] = Field(default="Send Email", alias="actionType")
    email_to: Optional[str] = Field(default=None, alias="emailTo")
    email_subject: Optional[str] = Field(default=None, alias="emailSubject")
    email_body: Optional[str] = Field(default=None, alias="emailBody")


# ============================================================================
# Execution Models
# ============================================================================

class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.SUCCESS, RunStatus.ERROR, RunStatus.CANCELLED)


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"


class StepResult(BaseModel):
    """Normalized outcome of one node execution"""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    fatal: bool = False


class NodeOutput(BaseModel):
    """Node output as seen by template resolution"""
    label: str
    node_type: str
    data: Optional[Any] = None
    success: bool = True


class ExecutionRun(BaseModel):
    """One end-to-end execution of a workflow"""
    id: str = Field(default_factory=new_id)
    workflow_id: str
    status: RunStatus = RunStatus.PENDING
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[Any] = None
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None


class ExecutionLog(BaseModel):
    """Step log entry for one node execution attempt"""
    id: str = Field(default_factory=new_id)
    execution_id: str
    node_id: str
    node_name: str
    node_type: str
    status: StepStatus = StepStatus.PENDING
    input: Optional[Any] = None
    output: Optional[Any] = None
    error: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None


class WorkflowRunResult(BaseModel):
    """Returned by the orchestrator once a run has finished"""
    success: bool
    results: Dict[str, StepResult] = Field(default_factory=dict)


class NodeStatus(BaseModel):
    node_id: str = Field(serialization_alias="nodeId")
    status: StepStatus


class ExecutionStatusResponse(BaseModel):
    status: RunStatus
    node_statuses: List[NodeStatus] = Field(default_factory=list, serialization_alias="nodeStatuses")

