import pytest

from marina.models.models import Interest, InterestReply
from marina.services.errors import InvalidTransition
from marina.services.state_machine import (
    InterestStatus,
    OfferStatus,
    first_reply_status,
    transition_interest,
    transition_offer,
)


def test_interest_forward_and_override_transitions():
    assert transition_interest("Pending", "Contacted") == InterestStatus.contacted
    assert transition_interest("Contacted", "Resolved") == InterestStatus.resolved
    # manual override may move backwards
    assert transition_interest("Contacted", "Pending") == InterestStatus.pending
    assert transition_interest(None, "Pending") == InterestStatus.pending


def test_resolved_is_terminal():
    with pytest.raises(InvalidTransition):
        transition_interest("Resolved", "Pending")
    assert transition_interest("Resolved", "Resolved") == InterestStatus.resolved


def test_unknown_or_empty_interest_status_is_rejected():
    with pytest.raises(InvalidTransition):
        transition_interest("Pending", "Archived")
    with pytest.raises(InvalidTransition):
        transition_interest("Pending", None)


def test_offer_transitions():
    assert transition_offer(None, "pending") == OfferStatus.pending
    assert transition_offer("pending", "accepted") == OfferStatus.accepted
    assert transition_offer("pending", "declined") == OfferStatus.declined
    assert transition_offer(None, None) is None


@pytest.mark.parametrize("current, target", [
    ("accepted", "declined"),
    ("declined", "accepted"),
    ("accepted", "pending"),
    (None, "accepted"),
    ("pending", None),
])
def test_illegal_offer_transitions(current, target):
    with pytest.raises(InvalidTransition):
        transition_offer(current, target)


def test_first_reply_status():
    assert first_reply_status("Pending") == InterestStatus.contacted
    assert first_reply_status("Contacted") == InterestStatus.contacted
    assert first_reply_status("Resolved") == InterestStatus.resolved


def test_model_layer_enforces_transitions():
    interest = Interest(status="Pending", boat_width=3, boat_length=9)
    interest.status = "Resolved"
    with pytest.raises(InvalidTransition):
        interest.status = "Contacted"

    reply = InterestReply(message="hej")
    reply.offer_status = "pending"
    reply.offer_status = "declined"
    with pytest.raises(InvalidTransition):
        reply.offer_status = "accepted"
