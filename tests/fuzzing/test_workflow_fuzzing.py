"""
Hypothesis fuzzing of lifecycle tables and donation crediting.

- Random walks through every transition table: an accepted edge is in
  the table, a refused edge raises InvalidTransitionError, and terminal
  states accept nothing.
- Random sequences of donation approvals and rejections against a real
  database: the campaign's raised total always equals the sum of its
  received donations.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from unifund_kernel.domain.lifecycle import (
    CAMPAIGN_TRANSITIONS,
    DONATION_TRANSITIONS,
    IDENTITY_TRANSITIONS,
    VERIFICATION_TRANSITIONS,
    CampaignStatus,
    IdentityStatus,
    check_transition,
    is_terminal,
)
from unifund_kernel.exceptions import InvalidTransitionError

TABLES = {
    "VerificationRequest": VERIFICATION_TRANSITIONS,
    "Student": IDENTITY_TRANSITIONS,
    "Campaign": CAMPAIGN_TRANSITIONS,
    "Donation": DONATION_TRANSITIONS,
}

amounts = st.decimals(
    min_value=Decimal("0.01"),
    max_value=Decimal("99999.99"),
    places=2,
    allow_nan=False,
    allow_infinity=False,
)


@st.composite
def table_walk(draw):
    """(entity_type, table, start, [targets]) with arbitrary, often invalid, targets."""
    entity_type = draw(st.sampled_from(sorted(TABLES)))
    table = TABLES[entity_type]
    states = sorted(table, key=lambda s: s.value)
    start = draw(st.sampled_from(states))
    targets = draw(st.lists(st.sampled_from(states), max_size=12))
    return entity_type, table, start, targets


class TestTransitionTables:

    @given(walk=table_walk())
    @settings(max_examples=300)
    def test_walk_follows_table(self, walk):
        entity_type, table, state, targets = walk
        for target in targets:
            try:
                check_transition(table, entity_type, "fuzz", state, target)
            except InvalidTransitionError as exc:
                assert target not in table[state]
                assert exc.from_state == state.value
                assert exc.to_state == target.value
                continue
            assert target in table[state]
            assert not is_terminal(table, state)
            state = target

    @given(walk=table_walk())
    @settings(max_examples=100)
    def test_terminal_states_accept_nothing(self, walk):
        entity_type, table, start, targets = walk
        if not is_terminal(table, start):
            return
        for target in targets:
            with pytest.raises(InvalidTransitionError):
                check_transition(table, entity_type, "fuzz", start, target)


class TestDonationCrediting:

    @given(decisions=st.lists(st.tuples(amounts, st.booleans()), min_size=1, max_size=6))
    @settings(
        max_examples=20,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_raised_equals_received_sum(
        self, coordinator, admin, create_student, create_campaign, create_donation, read,
        decisions,
    ):
        # Fixtures are shared across examples, so each example brings its
        # own campaign.
        campaign_id = create_campaign(
            create_student(IdentityStatus.APPROVED), status=CampaignStatus.ACTIVE,
        )
        expected = Decimal("0.00")
        for amount, approve in decisions:
            donation_id = create_donation(campaign_id, amount)
            if approve:
                coordinator.approve_donation(admin, donation_id)
                expected += amount
            else:
                coordinator.reject_donation(admin, donation_id)

        campaign = read(lambda q: q.campaign(campaign_id))
        assert campaign.raised_amount == expected
        assert read(lambda q: q.received_total(campaign_id)) == expected
