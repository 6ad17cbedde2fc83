"""
Stock Transfer Workflows (``transfer_modules.sto.workflows``).

Responsibility
--------------
Declares the two independent state machines of a transfer order: the
sender track (what the origin outlet has done) and the recipient track
(what the destination outlet has done).  Guards express cross-track
preconditions.

Architecture position
---------------------
**Modules layer** -- declarative workflow definitions.  Imports canonical
Guard, Transition, Workflow from ``transfer_kernel.domain.workflow``.
Evaluated at runtime by ``transfer_services.workflow_executor``.

Invariants enforced
-------------------
* Neither track has a backward edge; statuses never regress.
* CANCELLED, REJECTED and COMPLETED have no outgoing transitions.
* ``complete`` is internal: only the receipt recorder drives it.

Audit relevance
---------------
Workflow definitions logged at module-load time with state and
transition counts.
"""

from transfer_kernel.domain.workflow import Guard, Transition, Workflow
from transfer_kernel.logging_config import get_logger

logger = get_logger("modules.sto.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

SENDER_SHIPPED = Guard(
    name="sender_shipped",
    description="sender status must be SHIPPED before the recipient can act",
)

FULLY_RECONCILED = Guard(
    name="fully_reconciled",
    description="every line must have received quantity equal to shipped quantity",
)

logger.info(
    "sto_workflow_guards_defined",
    extra={"guards": [SENDER_SHIPPED.name, FULLY_RECONCILED.name]},
)


# -----------------------------------------------------------------------------
# Sender Workflow
# -----------------------------------------------------------------------------

SENDER_WORKFLOW = Workflow(
    name="sto_sender",
    description="Origin outlet progress on a stock transfer order",
    initial_state="DRAFT",
    states=("DRAFT", "ISSUED", "SHIPPED", "CANCELLED"),
    terminal_states=("SHIPPED", "CANCELLED"),
    transitions=(
        Transition("DRAFT", "ISSUED", action="issue"),
        Transition("ISSUED", "SHIPPED", action="ship", internal=True),
        Transition("ISSUED", "CANCELLED", action="cancel"),
    ),
)

logger.info(
    "sto_sender_workflow_registered",
    extra={
        "workflow_name": SENDER_WORKFLOW.name,
        "state_count": len(SENDER_WORKFLOW.states),
        "transition_count": len(SENDER_WORKFLOW.transitions),
        "initial_state": SENDER_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Recipient Workflow
# -----------------------------------------------------------------------------

RECIPIENT_WORKFLOW = Workflow(
    name="sto_recipient",
    description="Destination outlet progress on a stock transfer order",
    initial_state="PENDING",
    states=("PENDING", "ACCEPTED", "REJECTED", "COMPLETED"),
    terminal_states=("REJECTED", "COMPLETED"),
    transitions=(
        Transition("PENDING", "ACCEPTED", action="accept", guard=SENDER_SHIPPED),
        Transition("PENDING", "REJECTED", action="reject", guard=SENDER_SHIPPED),
        Transition(
            "ACCEPTED", "COMPLETED", action="complete",
            guard=FULLY_RECONCILED, internal=True,
        ),
    ),
)

logger.info(
    "sto_recipient_workflow_registered",
    extra={
        "workflow_name": RECIPIENT_WORKFLOW.name,
        "state_count": len(RECIPIENT_WORKFLOW.states),
        "transition_count": len(RECIPIENT_WORKFLOW.transitions),
        "initial_state": RECIPIENT_WORKFLOW.initial_state,
    },
)
