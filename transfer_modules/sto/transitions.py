"""
Sender and recipient status transitions (``transfer_modules.sto.transitions``).

Responsibility
--------------
Drives the caller-initiated edges of both workflows: ``issue`` and
``cancel`` on the sender track, ``accept`` and ``reject`` on the
recipient track.  The internal edges (first shipment, completion) are
driven by the recorders through ``advance``.

Architecture position
---------------------
**Modules layer** -- write-side component.  Evaluates edges through
``WorkflowExecutor``; persists through the order store.  Flush-only.

Invariants enforced
-------------------
* A status moves only along a declared edge, against a locked row.
* The order revision advances exactly once per transition.
* Internal edges are never reachable through ``request``.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from transfer_kernel.domain.clock import Clock
from transfer_kernel.domain.workflow import Workflow
from transfer_kernel.exceptions import InvalidTransitionError
from transfer_kernel.logging_config import get_logger
from transfer_kernel.services.base import BaseService
from transfer_modules.sto.orm import TransferOrderModel
from transfer_modules.sto.store import OrderStore
from transfer_modules.sto.workflows import RECIPIENT_WORKFLOW, SENDER_WORKFLOW
from transfer_services.workflow_executor import WorkflowExecutor

logger = get_logger("modules.sto.transitions")

# Timestamp column stamped when a state is entered
_ENTERED_AT = {
    "ISSUED": "issued_at",
    "SHIPPED": "shipped_at",
    "CANCELLED": "cancelled_at",
    "ACCEPTED": "accepted_at",
    "REJECTED": "rejected_at",
    "COMPLETED": "completed_at",
}


class StatusService(BaseService[TransferOrderModel]):
    """Applies workflow transitions to a locked order."""

    def __init__(
        self,
        session: Session,
        store: OrderStore,
        workflow_executor: WorkflowExecutor,
        clock: Clock,
    ):
        super().__init__(session)
        self._store = store
        self._executor = workflow_executor
        self._clock = clock

    def issue(self, order_id: UUID, actor_id: UUID) -> TransferOrderModel:
        """DRAFT -> ISSUED."""
        return self.request(order_id, SENDER_WORKFLOW, "issue", actor_id)

    def cancel(self, order_id: UUID, actor_id: UUID) -> TransferOrderModel:
        """ISSUED -> CANCELLED."""
        return self.request(order_id, SENDER_WORKFLOW, "cancel", actor_id)

    def accept(self, order_id: UUID, actor_id: UUID) -> TransferOrderModel:
        """PENDING -> ACCEPTED; the sender must already be SHIPPED."""
        return self.request(order_id, RECIPIENT_WORKFLOW, "accept", actor_id)

    def reject(self, order_id: UUID, actor_id: UUID) -> TransferOrderModel:
        """PENDING -> REJECTED; the sender must already be SHIPPED."""
        return self.request(order_id, RECIPIENT_WORKFLOW, "reject", actor_id)

    def request(
        self,
        order_id: UUID,
        workflow: Workflow,
        action: str,
        actor_id: UUID,
    ) -> TransferOrderModel:
        """
        Apply a caller-initiated action to a locked order.

        Raises:
            InvalidTransitionError: ``action`` is an internal edge, or there
                is no such edge from the current state.
        """
        order = self._store.lock(order_id)
        current = getattr(order, _status_column(workflow))
        edge = workflow.find(current, action)
        if edge is not None and edge.internal:
            logger.warning(
                "sto_internal_action_refused",
                extra={
                    "order_id": str(order.id),
                    "workflow": workflow.name,
                    "action": action,
                    "from_state": current,
                },
            )
            raise InvalidTransitionError(workflow.name, current, action, str(order.id))
        self.advance(order, workflow, action, actor_id, context=_context_for(order))
        return order

    def advance(
        self,
        order: TransferOrderModel,
        workflow: Workflow,
        action: str,
        actor_id: UUID,
        context: dict[str, Any] | None = None,
    ) -> str:
        """
        Move ``order`` along ``action`` in ``workflow``.

        Preconditions:
            - ``order`` was obtained from ``OrderStore.lock`` in this
              transaction.

        Raises:
            InvalidTransitionError: no such edge from the current state.
            PreconditionError: the edge's guard failed.
            ConcurrencyConflictError: the revision moved underneath us.
        """
        column = _status_column(workflow)
        current = getattr(order, column)
        new_state = self._executor.require_transition(
            workflow, order.id, current, action, context,
        )
        self._store.claim(order, actor_id)
        setattr(order, column, new_state)
        stamp = _ENTERED_AT.get(new_state)
        if stamp is not None:
            setattr(order, stamp, self._clock.now_utc())
        self.session.flush()

        logger.info(
            "sto_status_changed",
            extra={
                "order_id": str(order.id),
                "document_number": order.document_number,
                "workflow": workflow.name,
                "action": action,
                "from_state": current,
                "to_state": new_state,
                "revision": order.revision,
            },
        )
        return new_state


def _status_column(workflow: Workflow) -> str:
    if workflow is SENDER_WORKFLOW:
        return "sender_status"
    if workflow is RECIPIENT_WORKFLOW:
        return "recipient_status"
    raise InvalidTransitionError(workflow.name, "?", "advance")


def _context_for(order: TransferOrderModel) -> dict[str, Any]:
    return {
        "sender_status": order.sender_status,
        "recipient_status": order.recipient_status,
    }
