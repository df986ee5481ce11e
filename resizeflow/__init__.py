"""resizeflow: step-sequenced instance resize orchestration."""

from .builder import WorkflowBuilder, dump_workflow, load_workflow
from .capacity import CapacityReservationProcedure
from .clients import InMemoryResourceClient, ResourceClient, get_client
from .contracts import (
    ActionType,
    OnFailure,
    OutputSpec,
    RetrySpec,
    RunResult,
    RunStatus,
    Step,
    WaitSpec,
    Workflow,
)
from .engine import WorkflowEngine, validate_workflow
from .errors import (
    ApiError,
    CapacityExhaustedError,
    ConfigurationError,
    RunCancelledError,
    TransientCapacityError,
    WaitTimeoutError,
)
from .persistence import get_repository
from .resize import ResizeRequest, build_resize_workflow, resize_instance
from .utils.retry import RetryPolicy
from .waiter import Waiter

__version__ = "0.1.0"
__all__ = [
    "ActionType",
    "ApiError",
    "CapacityExhaustedError",
    "CapacityReservationProcedure",
    "ConfigurationError",
    "InMemoryResourceClient",
    "OnFailure",
    "OutputSpec",
    "ResizeRequest",
    "ResourceClient",
    "RetryPolicy",
    "RetrySpec",
    "RunCancelledError",
    "RunResult",
    "RunStatus",
    "Step",
    "TransientCapacityError",
    "WaitSpec",
    "WaitTimeoutError",
    "Waiter",
    "Workflow",
    "WorkflowBuilder",
    "WorkflowEngine",
    "build_resize_workflow",
    "dump_workflow",
    "get_client",
    "get_repository",
    "load_workflow",
    "resize_instance",
    "validate_workflow",
]
