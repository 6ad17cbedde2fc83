"""Pure domain value objects for the transfer kernel (no I/O)."""

from transfer_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from transfer_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "Guard",
    "Transition",
    "Workflow",
]
