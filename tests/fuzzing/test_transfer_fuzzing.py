"""
Hypothesis fuzzing of input validation and the STO workflows.

- Arbitrary (state, action) pairs never crash the executor and its
  result is always well-formed.
- Quantity normalization accepts exactly the positive finite decimals.
- Request fingerprints ignore line order and decimal scale.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from transfer_kernel.exceptions import ValidationError
from transfer_kernel.utils.hashing import hash_payload
from transfer_modules.sto import validation
from transfer_modules.sto.models import LineQuantity
from transfer_modules.sto.workflows import RECIPIENT_WORKFLOW, SENDER_WORKFLOW
from transfer_services.workflow_executor import (
    OUTCOME_GUARD_FAILED,
    OUTCOME_NO_TRANSITION,
    OUTCOME_SUCCESS,
    WorkflowExecutor,
)

WORKFLOWS = (SENDER_WORKFLOW, RECIPIENT_WORKFLOW)

# autouse log-context fixtures are function scoped
fuzz_settings = settings(
    max_examples=200,
    suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
)

positive_quantities = st.decimals(
    min_value=Decimal("0.001"), max_value=Decimal("1000000"),
    places=3, allow_nan=False, allow_infinity=False,
)
non_positive_quantities = st.decimals(
    max_value=Decimal("0"), min_value=Decimal("-1000000"),
    places=3, allow_nan=False, allow_infinity=False,
)


@st.composite
def state_action(draw):
    """A (workflow, state, action) triple that may or may not be an edge."""
    workflow = draw(st.sampled_from(WORKFLOWS))
    edges = [(t.from_state, t.action) for t in workflow.transitions]
    if draw(st.booleans()):
        state, action = draw(st.sampled_from(edges))
    else:
        state = draw(st.sampled_from(workflow.states))
        action = draw(st.text(alphabet="abcdefghijklmnopqrstuvwxyz_", max_size=20))
    return workflow, state, action


contexts = st.fixed_dictionaries({
    "sender_status": st.sampled_from(SENDER_WORKFLOW.states + (None,)),
    "line_quantities": st.lists(
        st.tuples(positive_quantities, positive_quantities), max_size=4,
    ),
})


class TestExecutorFuzzing:

    @given(triple=state_action(), context=contexts)
    @fuzz_settings
    def test_result_well_formed(self, triple, context):
        workflow, state, action = triple
        result = WorkflowExecutor().execute_transition(
            workflow, uuid4(), state, action, context,
        )

        assert result.outcome in (OUTCOME_SUCCESS, OUTCOME_GUARD_FAILED, OUTCOME_NO_TRANSITION)
        edge = workflow.find(state, action)
        if edge is None:
            assert result.outcome == OUTCOME_NO_TRANSITION
            assert not result.success
        elif result.success:
            assert result.new_state == edge.to_state
            assert result.new_state in workflow.states
        else:
            assert result.outcome == OUTCOME_GUARD_FAILED
            assert result.guard_name == edge.guard.name

    @given(state=st.sampled_from(("SHIPPED", "CANCELLED")), action=st.text(max_size=20))
    @fuzz_settings
    def test_terminal_sender_states_have_no_exit(self, state, action):
        result = WorkflowExecutor().execute_transition(SENDER_WORKFLOW, uuid4(), state, action)
        assert result.outcome == OUTCOME_NO_TRANSITION


class TestQuantityFuzzing:

    @given(qty=positive_quantities)
    @fuzz_settings
    def test_positive_accepted(self, qty):
        line_id = uuid4()
        [normalized] = validation.line_quantities([(line_id, qty)], {line_id})
        assert normalized == LineQuantity(line_id, qty)

    @given(qty=non_positive_quantities)
    @fuzz_settings
    def test_non_positive_rejected(self, qty):
        line_id = uuid4()
        with pytest.raises(ValidationError):
            validation.line_quantities([(line_id, qty)], {line_id})

    @given(text=st.text(alphabet="abcxyz!@# ", min_size=1, max_size=12))
    @fuzz_settings
    def test_garbage_rejected(self, text):
        with pytest.raises(ValidationError):
            validation.to_decimal(text, "quantity")

    @given(quantities=st.lists(positive_quantities, min_size=1, max_size=5))
    @fuzz_settings
    def test_fingerprint_ignores_order_and_scale(self, quantities):
        pairs = [LineQuantity(uuid4(), q) for q in quantities]
        rescaled = [LineQuantity(p.line_id, p.quantity.quantize(Decimal("0.000001"))) for p in pairs]

        forward = hash_payload(validation.quantities_fingerprint("shipment", pairs))
        backward = hash_payload(
            validation.quantities_fingerprint("shipment", list(reversed(rescaled)))
        )
        assert forward == backward

    @given(quantities=st.lists(positive_quantities, min_size=1, max_size=5))
    @fuzz_settings
    def test_fingerprint_separates_kinds(self, quantities):
        pairs = [LineQuantity(uuid4(), q) for q in quantities]
        assert hash_payload(validation.quantities_fingerprint("shipment", pairs)) != hash_payload(
            validation.quantities_fingerprint("receipt", pairs)
        )
