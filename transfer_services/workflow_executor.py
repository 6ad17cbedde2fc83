"""
transfer_services.workflow_executor -- Workflow transition execution.

Responsibility:
    Resolves a requested action against a declared ``Workflow``, evaluates
    the transition guard and reports the outcome.  Emits a structured
    ``workflow_transition`` trace for every attempt, successful or not.

Architecture position:
    Services layer.  Imports only from transfer_kernel (domain, exceptions,
    logging).  Holds no session and performs no persistence; the caller
    writes the new state.

Invariants enforced:
    - A state moves only along a declared edge.
    - A guarded edge fires only when its evaluator returns True.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable

from transfer_kernel.domain.workflow import Guard, Transition, Workflow
from transfer_kernel.exceptions import InvalidTransitionError, PreconditionError
from transfer_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.workflow_executor")

TRACE_TYPE_WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
OUTCOME_SUCCESS = "success"
OUTCOME_GUARD_FAILED = "guard_failed"
OUTCOME_NO_TRANSITION = "no_transition"


@dataclass(frozen=True)
class TransitionResult:
    """Result of evaluating a workflow transition."""

    success: bool
    new_state: str | None = None
    outcome: str = OUTCOME_SUCCESS
    guard_name: str | None = None
    reason: str = ""


def _emit_workflow_trace(
    workflow_name: str,
    action: str,
    entity_id: Any,
    from_state: str,
    outcome: str,
    reason: str,
    duration_ms: float,
    to_state: str | None = None,
) -> None:
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_WORKFLOW_TRANSITION,
        "workflow": workflow_name,
        "action": action,
        "entity_id": str(entity_id),
        "from_state": from_state,
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round(duration_ms, 3),
    }
    if to_state is not None:
        record["to_state"] = to_state
    # Bound context fields are merged by the formatter
    for key in LogContext.get_all():
        record.pop(key, None)
    logger.info("workflow_transition", extra=record)


# ---------------------------------------------------------------------------
# Guard evaluation
# ---------------------------------------------------------------------------


def _get_attr(context: Any, key: str, default: Any = None) -> Any:
    """Get attribute from context (object or dict)."""
    if context is None:
        return default
    if hasattr(context, "get") and callable(getattr(context, "get")):
        return context.get(key, default)
    return getattr(context, key, default)


def _sender_shipped(context: Any) -> bool:
    """Recipient accept/reject: the sender must have dispatched the order."""
    status = _get_attr(context, "sender_status")
    return str(status).upper() == "SHIPPED" if status is not None else False


def _fully_reconciled(context: Any) -> bool:
    """Recipient completion: received == shipped on every line.

    ``line_quantities`` is an iterable of ``(shipped, received)`` pairs.
    """
    pairs = _get_attr(context, "line_quantities")
    if not pairs:
        return False
    for shipped, received in pairs:
        if Decimal(str(shipped)) != Decimal(str(received)):
            return False
    return True


class GuardExecutor:
    """Evaluates workflow guards against context.

    Guards are declared on transitions (name + description).  This executor
    holds the evaluation logic per guard name.
    """

    def __init__(self) -> None:
        self._evaluators: dict[str, Callable[[Any], bool]] = {}

    def register(self, guard_name: str, evaluator: Callable[[Any], bool]) -> None:
        """Register an evaluator for a guard by name."""
        self._evaluators[guard_name] = evaluator

    def evaluate(self, guard: Guard, context: Any = None) -> bool:
        """Evaluate a guard against context. Unknown guards never pass."""
        fn = self._evaluators.get(guard.name)
        if fn is None:
            logger.warning(
                "guard_no_evaluator",
                extra={"guard_name": guard.name},
            )
            return False
        return bool(fn(context))


def default_guard_executor() -> GuardExecutor:
    """Return a GuardExecutor with the transfer guards registered."""
    ex = GuardExecutor()
    ex.register("sender_shipped", _sender_shipped)
    ex.register("fully_reconciled", _fully_reconciled)
    return ex


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------


class WorkflowExecutor:
    """Resolves and guards workflow transitions."""

    def __init__(self, guard_executor: GuardExecutor | None = None) -> None:
        self._guard_executor = guard_executor or default_guard_executor()

    def execute_transition(
        self,
        workflow: Workflow,
        entity_id: Any,
        current_state: str,
        action: str,
        context: dict[str, Any] | None = None,
    ) -> TransitionResult:
        """Evaluate ``action`` from ``current_state``.

        Returns a TransitionResult; never raises for a disallowed action.
        """
        t0 = time.monotonic()

        transition = self._find_transition(workflow, current_state, action)
        if transition is None:
            reason = (
                f"No transition from '{current_state}' via action '{action}' "
                f"in workflow '{workflow.name}'"
            )
            _emit_workflow_trace(
                workflow_name=workflow.name,
                action=action,
                entity_id=entity_id,
                from_state=current_state,
                outcome=OUTCOME_NO_TRANSITION,
                reason=reason,
                duration_ms=(time.monotonic() - t0) * 1000,
            )
            return TransitionResult(
                success=False, outcome=OUTCOME_NO_TRANSITION, reason=reason,
            )

        if transition.guard is not None:
            if not self._guard_executor.evaluate(transition.guard, context or {}):
                reason = f"Guard not satisfied: {transition.guard.name}"
                _emit_workflow_trace(
                    workflow_name=workflow.name,
                    action=action,
                    entity_id=entity_id,
                    from_state=current_state,
                    outcome=OUTCOME_GUARD_FAILED,
                    reason=reason,
                    duration_ms=(time.monotonic() - t0) * 1000,
                )
                return TransitionResult(
                    success=False,
                    outcome=OUTCOME_GUARD_FAILED,
                    guard_name=transition.guard.name,
                    reason=reason,
                )

        _emit_workflow_trace(
            workflow_name=workflow.name,
            action=action,
            entity_id=entity_id,
            from_state=current_state,
            to_state=transition.to_state,
            outcome=OUTCOME_SUCCESS,
            reason="transition allowed",
            duration_ms=(time.monotonic() - t0) * 1000,
        )
        return TransitionResult(success=True, new_state=transition.to_state)

    def require_transition(
        self,
        workflow: Workflow,
        entity_id: Any,
        current_state: str,
        action: str,
        context: dict[str, Any] | None = None,
    ) -> str:
        """Like ``execute_transition`` but raises on refusal.

        Returns:
            The target state.

        Raises:
            InvalidTransitionError: no edge for ``action`` from ``current_state``.
            PreconditionError: the edge exists but its guard failed.
        """
        result = self.execute_transition(
            workflow, entity_id, current_state, action, context,
        )
        if result.success:
            return result.new_state
        if result.outcome == OUTCOME_GUARD_FAILED:
            transition = self._find_transition(workflow, current_state, action)
            raise PreconditionError(
                order_id=str(entity_id),
                operation=action,
                reason=transition.guard.description,
            )
        raise InvalidTransitionError(
            workflow=workflow.name,
            from_state=current_state,
            action=action,
            order_id=str(entity_id),
        )

    @staticmethod
    def _find_transition(
        workflow: Workflow, current_state: str, action: str,
    ) -> Transition | None:
        return workflow.find(current_state, action)
