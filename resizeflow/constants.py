"""Default tunables for resize workflows."""

DEFAULT_RETRY_ATTEMPTS = 5
DEFAULT_RETRY_INTERVAL_SECONDS = 30.0
DEFAULT_STOP_TIMEOUT_SECONDS = 600.0
DEFAULT_START_TIMEOUT_SECONDS = 600.0
DEFAULT_RESERVATION_TIMEOUT_SECONDS = 30.0
DEFAULT_POLL_INTERVAL_SECONDS = 5.0

SHELL_DOCUMENT = "AWS-RunShellScript"
POWERSHELL_DOCUMENT = "AWS-RunPowerShellScript"

# Error codes the control plane uses to signal temporarily unavailable capacity.
CAPACITY_ERROR_CODES = frozenset(
    {
        "InsufficientInstanceCapacity",
        "InsufficientCapacity",
        "InsufficientHostCapacity",
        "InsufficientReservedInstanceCapacity",
        "InsufficientCapacityOnHost",
    }
)
