"""
Canonical workflow types (``transfer_kernel.domain.workflow``).

Responsibility
--------------
Pure value objects for the status state machines.  The sender and
recipient workflows of a transfer order are each declared once as a
``Workflow`` and evaluated by ``transfer_services.workflow_executor``.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Transitions reference only states in ``Workflow.states``.
* ``initial_state`` is a member of ``states``.
* Terminal states have no outgoing transitions.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Guard:
    """A condition that must be satisfied before a transition fires.

    Descriptive only; the executor looks up the evaluator by ``name``.
    """
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition in a workflow.

    ``internal=True`` marks an edge that only the engine itself drives
    (e.g. completion by the receipt recorder), never a caller action.
    """
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    internal: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition for one status dimension of an order."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    terminal_states: tuple[str, ...] = ()

    def transitions_from(self, state: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.from_state == state)

    def find(self, from_state: str, action: str) -> Transition | None:
        for t in self.transitions:
            if t.from_state == from_state and t.action == action:
                return t
        return None
