"""Services layer: stateless coordinators shared by the transfer modules."""

from transfer_services.workflow_executor import (
    GuardExecutor,
    TransitionResult,
    WorkflowExecutor,
    default_guard_executor,
)

__all__ = [
    "GuardExecutor",
    "TransitionResult",
    "WorkflowExecutor",
    "default_guard_executor",
]
