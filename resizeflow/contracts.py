"""Core workflow contracts for resizeflow."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .errors import ErrorKind, ResizeflowError


class ActionType(str, Enum):
    """Fixed vocabulary of step actions."""

    DESCRIBE_RESOURCE = "DescribeResource"
    CREATE_RESERVATION = "CreateReservation"
    VERIFY_RESERVATION = "VerifyReservation"
    RUN_REMOTE_COMMAND = "RunRemoteCommand"
    STOP_RESOURCE = "StopResource"
    WAIT_FOR_STOPPED = "WaitForStopped"
    MODIFY_ATTRIBUTE = "ModifyAttribute"
    START_RESOURCE = "StartResource"
    WAIT_FOR_RUNNING = "WaitForRunning"
    CANCEL_RESERVATION = "CancelReservation"
    END = "End"


class OnFailure(str, Enum):
    ABORT = "Abort"
    CONTINUE = "Continue"


class ValueType(str, Enum):
    """Types usable for workflow parameters and captured outputs."""

    STRING = "String"
    INTEGER = "Integer"
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    STRING_LIST = "StringList"
    MAP_LIST = "MapList"


class _Contract(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ParameterSpec(_Contract):
    """Declared workflow parameter."""

    type: ValueType = ValueType.STRING
    description: Optional[str] = None
    default: Any = None


class OutputSpec(_Contract):
    """Value captured from an action response into the execution context."""

    name: str
    selector: str
    type: ValueType = ValueType.STRING


class Step(_Contract):
    """Defines one step in a workflow."""

    name: str
    action: ActionType
    inputs: Dict[str, Any] = Field(default_factory=dict)
    outputs: List[OutputSpec] = Field(default_factory=list)
    on_failure: OnFailure = Field(default=OnFailure.ABORT, alias="onFailure")
    next_step: Optional[str] = Field(default=None, alias="nextStep")
    is_end: bool = Field(default=False, alias="isEnd")
    timeout_seconds: Optional[float] = Field(default=None, alias="timeoutSeconds", gt=0)
    compensate_with: Optional[str] = Field(default=None, alias="compensateWith")


class Workflow(_Contract):
    """Ordered chain of steps plus the parameters they may reference."""

    name: str
    description: Optional[str] = None
    parameters: Dict[str, ParameterSpec] = Field(default_factory=dict)
    main_steps: List[Step] = Field(default_factory=list, alias="mainSteps")

    @property
    def first_step(self) -> Optional[Step]:
        return self.main_steps[0] if self.main_steps else None

    def get_step(self, name: str) -> Optional[Step]:
        return next((s for s in self.main_steps if s.name == name), None)


class RetrySpec(_Contract):
    """Bounded retry settings owned by the capacity reservation procedure."""

    max_attempts: int = Field(ge=1, alias="maxAttempts")
    interval_seconds: float = Field(ge=0, alias="intervalSeconds")
    backoff: float = Field(default=1.0, ge=1.0)


class WaitSpec(_Contract):
    """Property polling settings for a waiter."""

    property_selector: str = Field(alias="propertySelector")
    desired_values: frozenset[str] = Field(alias="desiredValues")
    timeout_seconds: float = Field(gt=0, alias="timeoutSeconds")
    poll_interval_seconds: float = Field(gt=0, alias="pollIntervalSeconds")


class RunStatus(str, Enum):
    SUCCEEDED = "Succeeded"
    ABORTED = "Aborted"
    FAILED = "Failed"


class ErrorInfo(_Contract):
    """Serializable description of a failure."""

    kind: ErrorKind
    message: str
    step: Optional[str] = None

    @classmethod
    def from_exception(cls, exc: ResizeflowError, step: Optional[str] = None) -> "ErrorInfo":
        return cls(kind=exc.kind, message=exc.message, step=step)


class RunResult(_Contract):
    """Terminal record of a workflow run."""

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_name: str
    status: RunStatus
    context: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    executed_steps: List[str] = Field(default_factory=list)
    failing_step: Optional[str] = None
    error: Optional[ErrorInfo] = None
    step_errors: Dict[str, ErrorInfo] = Field(default_factory=dict)
    compensated_steps: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    @property
    def has_tolerated_failures(self) -> bool:
        """``True`` when a Continue-policy step failed during the run."""
        return any(name != self.failing_step for name in self.step_errors)
